from __future__ import annotations

from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from .engine import AnalysisResult, MetricAverage, score_band


class HealthResponse(BaseModel):
    ok: bool = True


class ColumnsResponse(BaseModel):
    fields: List[str]
    rows: int = 0
    entity_guess: Optional[str] = Field(default=None, examples=["학교명"])
    period_guess: Optional[str] = Field(default=None, examples=["기준연도"])
    entity_field: Optional[str] = None
    entities: List[str] = Field(default_factory=list)


class MetricAverageModel(BaseModel):
    by_period: Dict[str, float] = Field(default_factory=dict)
    overall: float = 0.0

    @classmethod
    def from_average(cls, average: MetricAverage) -> "MetricAverageModel":
        return cls(by_period=dict(average.by_period), overall=average.overall)


class EntityStatsModel(BaseModel):
    entity: str
    averages: Dict[str, MetricAverageModel]


class EntityScoreModel(BaseModel):
    entity: str
    metric_scores: Dict[str, float]
    composite: float
    band: str


class SeriesValue(BaseModel):
    entity: str
    metric: str
    value: float


class PeriodPointModel(BaseModel):
    period: str
    values: List[SeriesValue] = Field(default_factory=list)


class CohortAverageModel(BaseModel):
    name: str
    label: str
    averages: Dict[str, MetricAverageModel]


class AnalysisModel(BaseModel):
    baseline: str
    metrics: List[str]
    periods: List[str]
    entity_stats: List[EntityStatsModel]
    scores: List[EntityScoreModel]
    series: List[PeriodPointModel]
    cohorts: List[CohortAverageModel] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: AnalysisResult, cohort_labels: Dict[str, str]) -> "AnalysisModel":
        return cls(
            baseline=result.baseline,
            metrics=list(result.metrics),
            periods=list(result.periods),
            entity_stats=[
                EntityStatsModel(
                    entity=s.entity,
                    averages={m: MetricAverageModel.from_average(a) for m, a in s.averages.items()},
                )
                for s in result.entity_stats
            ],
            scores=[
                EntityScoreModel(
                    entity=s.entity,
                    metric_scores=dict(s.metric_scores),
                    composite=s.composite,
                    band=score_band(s.composite),
                )
                for s in result.scores
            ],
            series=[
                PeriodPointModel(
                    period=p.period,
                    values=[SeriesValue(entity=e, metric=m, value=v) for (e, m), v in p.values.items()],
                )
                for p in result.series
            ],
            cohorts=[
                CohortAverageModel(
                    name=c.name,
                    label=cohort_labels[c.name],
                    averages={m: MetricAverageModel.from_average(a) for m, a in c.averages.items()},
                )
                for c in result.cohorts
            ],
        )


class AnalyzeResponse(BaseModel):
    result: Optional[AnalysisModel] = None


class DownloadFile(BaseModel):
    filename: str
    sha256: str
    encoding: str = Field(default="utf-8-sig")
    content_b64: str


class ExportResponse(BaseModel):
    baseline: str
    files: List[DownloadFile]
