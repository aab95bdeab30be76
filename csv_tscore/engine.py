"""
Aggregation and baseline-relative scoring.

Every function here is pure: the same table and configuration always give
the same result, and missing or non-numeric data never raises.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigurationError
from .parser import Table
from .rules import (
    LOWEST_BAND,
    METRO_COHORT,
    METRO_TOKENS,
    NATIONWIDE_COHORT,
    NEUTRAL_SCORE,
    SCORE_BANDS,
    SCORE_MAX,
    SCORE_MIN,
)

logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

Row = Mapping[str, str]
RowPredicate = Callable[[Row], bool]


@dataclass(frozen=True)
class Configuration:
    entity_field: str
    metric_fields: Tuple[str, ...] = ()
    selected_entities: Tuple[str, ...] = ()
    period_field: Optional[str] = None
    cohort_field: Optional[str] = None
    cohort_tokens: Tuple[str, ...] = METRO_TOKENS

    def __post_init__(self):
        seen = set()
        for entity in self.selected_entities:
            if entity in seen:
                raise ConfigurationError(f"entity selected twice: {entity!r}")
            seen.add(entity)

    @property
    def baseline(self) -> Optional[str]:
        return self.selected_entities[0] if self.selected_entities else None

    def missing_fields(self, fields: Sequence[str]) -> List[str]:
        wanted = [self.entity_field, *self.metric_fields]
        wanted += [f for f in (self.period_field, self.cohort_field) if f]
        return [f for f in wanted if f not in fields]


@dataclass(frozen=True)
class MetricAverage:
    by_period: Mapping[str, float]
    overall: float


@dataclass(frozen=True)
class EntityStats:
    entity: str
    averages: Mapping[str, MetricAverage]


@dataclass(frozen=True)
class EntityScore:
    entity: str
    metric_scores: Mapping[str, float]
    composite: float


@dataclass(frozen=True)
class PeriodPoint:
    period: str
    values: Mapping[Tuple[str, str], float]


@dataclass(frozen=True)
class CohortAverage:
    name: str
    averages: Mapping[str, MetricAverage]


@dataclass(frozen=True)
class AnalysisResult:
    baseline: str
    metrics: Tuple[str, ...]
    periods: Tuple[str, ...]
    entity_stats: Tuple[EntityStats, ...]
    scores: Tuple[EntityScore, ...]
    series: Tuple[PeriodPoint, ...]
    cohorts: Tuple[CohortAverage, ...] = field(default_factory=tuple)
    config: Optional[Configuration] = None

    @property
    def entities(self) -> Tuple[str, ...]:
        return tuple(stat.entity for stat in self.entity_stats)

    def stats_for(self, entity: str) -> EntityStats:
        for stat in self.entity_stats:
            if stat.entity == entity:
                return stat
        raise KeyError(entity)

    def score_for(self, entity: str) -> EntityScore:
        for score in self.scores:
            if score.entity == entity:
                return score
        raise KeyError(entity)

    def cohort(self, name: str) -> Optional[CohortAverage]:
        for cohort in self.cohorts:
            if cohort.name == name:
                return cohort
        return None


def to_number(raw: Optional[str]) -> float:
    """
    Coerce a metric cell to float.

    The leading decimal number of the trimmed cell is used ("80점" -> 80.0);
    empty, non-numeric and non-finite cells become 0.0. Every metric read
    goes through this function.
    """
    if raw is None:
        return 0.0
    match = _LEADING_NUMBER.match(raw.strip())
    if not match:
        return 0.0
    try:
        value = float(match.group(0))
    except ValueError:
        return 0.0
    if math.isnan(value) or math.isinf(value):
        return 0.0
    return value


def period_set(table: Table, period_field: Optional[str]) -> Tuple[str, ...]:
    if not period_field:
        return ()
    return tuple(sorted({v for v in table.column(period_field) if v}))


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def average_rows(
    rows: Sequence[Row],
    metric_fields: Iterable[str],
    period_field: Optional[str],
    periods: Sequence[str],
) -> Dict[str, MetricAverage]:
    """
    Per-period and overall averages of each metric over ``rows``.

    A period with no rows averages to 0.0. The overall average only takes
    periods whose average is strictly positive; with no period field the
    rows form a single implicit period that is not listed in ``by_period``.
    """
    if period_field and periods:
        buckets = [(p, [r for r in rows if r.get(period_field, "") == p]) for p in periods]
    elif period_field:
        buckets = []
    else:
        buckets = [(None, list(rows))]

    out: Dict[str, MetricAverage] = {}
    for metric in metric_fields:
        by_period: Dict[str, float] = {}
        positives: List[float] = []
        for period, bucket in buckets:
            avg = _mean([to_number(r.get(metric)) for r in bucket])
            if period is not None:
                by_period[period] = avg
            if avg > 0:
                positives.append(avg)
        out[metric] = MetricAverage(by_period=by_period, overall=_mean(positives))
    return out


def compute_entity_averages(
    table: Table,
    config: Configuration,
    entity: str,
    periods: Optional[Sequence[str]] = None,
) -> Dict[str, MetricAverage]:
    if periods is None:
        periods = period_set(table, config.period_field)
    rows = [r for r in table.rows if r.get(config.entity_field, "") == entity]
    return average_rows(rows, config.metric_fields, config.period_field, periods)


def t_score(entity_avg: float, baseline_avg: float) -> float:
    if baseline_avg <= 0:
        return NEUTRAL_SCORE
    score = NEUTRAL_SCORE + ((entity_avg - baseline_avg) / baseline_avg) * NEUTRAL_SCORE
    return max(SCORE_MIN, min(SCORE_MAX, score))


def composite_score(metric_scores: Mapping[str, float], baseline_averages: Mapping[str, float]) -> float:
    """Mean of the metric scores whose baseline average is positive; neutral if none."""
    counted = [s for m, s in metric_scores.items() if baseline_averages.get(m, 0.0) > 0]
    return _mean(counted) if counted else NEUTRAL_SCORE


def score_band(score: float) -> str:
    for floor, band in SCORE_BANDS:
        if score >= floor:
            return band
    return LOWEST_BAND


def token_predicate(field_name: str, tokens: Iterable[str]) -> RowPredicate:
    """Row predicate: ``field_name`` is non-empty and contains any of ``tokens``."""
    tokens = tuple(tokens)

    def matches(row: Row) -> bool:
        value = row.get(field_name, "")
        return bool(value) and any(t in value for t in tokens)

    return matches


def _cohorts(
    table: Table,
    config: Configuration,
    periods: Sequence[str],
    predicate: Optional[RowPredicate],
) -> Tuple[CohortAverage, ...]:
    if not config.cohort_field:
        return ()
    if predicate is None:
        predicate = token_predicate(config.cohort_field, config.cohort_tokens)

    metro_rows = [r for r in table.rows if predicate(r)]
    if not metro_rows:
        logger.info("no rows matched the metro cohort on %r", config.cohort_field)
        return ()

    return (
        CohortAverage(
            name=METRO_COHORT,
            averages=average_rows(metro_rows, config.metric_fields, config.period_field, periods),
        ),
        CohortAverage(
            name=NATIONWIDE_COHORT,
            averages=average_rows(table.rows, config.metric_fields, config.period_field, periods),
        ),
    )


def analyze(
    table: Table,
    config: Configuration,
    cohort_predicate: Optional[RowPredicate] = None,
) -> Optional[AnalysisResult]:
    """
    Run the full analysis for ``config`` over ``table``.

    Returns None, without raising, when no entity or no metric is selected.
    ``cohort_predicate`` replaces the default capital-region token match.
    """
    if not config.selected_entities or not config.metric_fields:
        logger.info("analysis skipped: no entities or no metrics selected")
        return None

    baseline = config.selected_entities[0]
    periods = period_set(table, config.period_field)

    entity_stats = tuple(
        EntityStats(entity=e, averages=compute_entity_averages(table, config, e, periods))
        for e in config.selected_entities
    )

    baseline_averages = {m: avg.overall for m, avg in entity_stats[0].averages.items()}
    scores = []
    for stat in entity_stats:
        metric_scores = {
            m: t_score(stat.averages[m].overall, baseline_averages[m]) for m in config.metric_fields
        }
        scores.append(
            EntityScore(
                entity=stat.entity,
                metric_scores=metric_scores,
                composite=composite_score(metric_scores, baseline_averages),
            )
        )

    cohorts = _cohorts(table, config, periods, cohort_predicate)

    series = tuple(
        PeriodPoint(
            period=p,
            values={
                (stat.entity, m): stat.averages[m].by_period.get(p, 0.0)
                for stat in entity_stats
                for m in config.metric_fields
            },
        )
        for p in periods
    )

    logger.debug(
        "analysis done: baseline=%r entities=%d metrics=%d periods=%d cohorts=%d",
        baseline, len(entity_stats), len(config.metric_fields), len(periods), len(cohorts),
    )
    return AnalysisResult(
        baseline=baseline,
        metrics=tuple(config.metric_fields),
        periods=periods,
        entity_stats=entity_stats,
        scores=tuple(scores),
        series=series,
        cohorts=cohorts,
        config=config,
    )


def rank_by_composite(result: AnalysisResult) -> List[EntityScore]:
    # sorted() is stable, so ties keep the selection order
    return sorted(result.scores, key=lambda s: -s.composite)


def rank_by_metric(result: AnalysisResult, metric: str) -> List[EntityStats]:
    return sorted(result.entity_stats, key=lambda s: -s.averages[metric].overall)
