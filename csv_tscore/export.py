"""
Report serialization.

Reports are comma-joined lines with no quoting, matching what the parser
accepts. The BOM is only added when a report is packed for download.
"""

from __future__ import annotations

import base64
import hashlib
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, Dict, List, Sequence

from .engine import AnalysisResult, MetricAverage, rank_by_composite, rank_by_metric
from .rules import (
    AVERAGE_HEADER,
    COHORT_LABELS,
    COMPOSITE_HEADER,
    DELIMITER,
    ENTITY_HEADER,
    LEADERBOARD_FILENAME,
    SERIES_FILENAME,
    TARGET_ENCODING,
)

_ONE_PLACE = Decimal("0.1")
# enough digits for the integer part of any finite float
_PRECISION = 400


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def format_number(value: float) -> str:
    # Decimal(float) is exact, so halves round away from zero on the stored value
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return str(Decimal(value).quantize(_ONE_PLACE, rounding=ROUND_HALF_UP))


def _join(rows: Sequence[Sequence[str]]) -> str:
    return "\n".join(DELIMITER.join(row) for row in rows)


def _average_row(label: str, average: MetricAverage, periods: Sequence[str]) -> List[str]:
    return [
        label,
        *(format_number(average.by_period.get(p, 0.0)) for p in periods),
        format_number(average.overall),
    ]


def render_leaderboard(result: AnalysisResult) -> str:
    rows = [[ENTITY_HEADER, *result.metrics, COMPOSITE_HEADER]]
    for score in rank_by_composite(result):
        rows.append([
            score.entity,
            # a clamped 0 prints as 0.0, not as the neutral 50
            *(format_number(score.metric_scores[m]) for m in result.metrics),
            format_number(score.composite),
        ])
    return _join(rows)


def render_metric_time_series(result: AnalysisResult, metric: str) -> str:
    """
    Per-period averages of one metric, best overall average first.

    When cohort averages exist they follow the entities after a blank row.
    """
    if metric not in result.metrics:
        raise KeyError(metric)

    rows = [[ENTITY_HEADER, *result.periods, AVERAGE_HEADER]]
    for stat in rank_by_metric(result, metric):
        rows.append(_average_row(stat.entity, stat.averages[metric], result.periods))

    if result.cohorts:
        rows.append([""])
        for cohort in result.cohorts:
            rows.append(_average_row(COHORT_LABELS[cohort.name], cohort.averages[metric], result.periods))
    return _join(rows)


def leaderboard_filename(result: AnalysisResult) -> str:
    return LEADERBOARD_FILENAME.format(baseline=result.baseline)


def series_filename(metric: str) -> str:
    return SERIES_FILENAME.format(metric=metric)


def encode_report(text: str) -> bytes:
    return text.encode(TARGET_ENCODING)


def to_download(text: str, filename: str) -> Dict[str, Any]:
    """
    Pack a report for download.
    Returns a dict matching the API's download envelope.
    """
    data = encode_report(text)
    return {
        "filename": filename,
        "sha256": _sha256_hex(data),
        "encoding": TARGET_ENCODING,
        "content_b64": base64.b64encode(data).decode("ascii"),
    }


def export_all(result: AnalysisResult) -> List[Dict[str, Any]]:
    files = [to_download(render_leaderboard(result), leaderboard_filename(result))]
    for metric in result.metrics:
        files.append(to_download(render_metric_time_series(result, metric), series_filename(metric)))
    return files
