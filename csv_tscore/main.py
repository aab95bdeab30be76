from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import quote

from fastapi import FastAPI, UploadFile, File, Form, HTTPException, Query
from fastapi.responses import Response

from .config import LOG_LEVEL, MAX_UPLOAD_BYTES
from .engine import AnalysisResult, Configuration, analyze
from .errors import ConfigurationError, ParseError
from .export import (
    encode_report,
    export_all,
    leaderboard_filename,
    render_leaderboard,
    render_metric_time_series,
    series_filename,
)
from .models import AnalysisModel, AnalyzeResponse, ColumnsResponse, ExportResponse, HealthResponse
from .parser import Table, decode_bytes, default_entity_field, guess_columns, list_entities, parse_table
from .rules import COHORT_LABELS

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="csv-tscore",
    description="Baseline-relative T-score comparison for tabular CSV data",
    version="0.1.0",
)


async def _read_table(file: UploadFile) -> Table:
    if not (file.filename or "").lower().endswith(".csv"):
        raise HTTPException(status_code=422, detail="Only CSV files are supported")

    raw = await file.read()
    if len(raw) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"File exceeds {MAX_UPLOAD_BYTES} bytes")

    try:
        return parse_table(decode_bytes(raw))
    except ParseError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _configuration(
    table: Table,
    entity_field: str,
    metric_fields: List[str],
    selected_entities: List[str],
    period_field: Optional[str],
    cohort_field: Optional[str],
) -> Configuration:
    try:
        config = Configuration(
            entity_field=entity_field,
            metric_fields=tuple(metric_fields),
            selected_entities=tuple(selected_entities),
            period_field=period_field or None,
            cohort_field=cohort_field or None,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    missing = config.missing_fields(table.fields)
    if missing:
        raise HTTPException(status_code=422, detail=f"Unknown fields: {', '.join(missing)}")
    return config


async def _run(
    file: UploadFile,
    entity_field: str,
    metric_fields: List[str],
    selected_entities: List[str],
    period_field: Optional[str],
    cohort_field: Optional[str],
) -> Optional[AnalysisResult]:
    table = await _read_table(file)
    config = _configuration(table, entity_field, metric_fields, selected_entities, period_field, cohort_field)
    try:
        return analyze(table, config)
    except Exception:
        logger.exception("analysis failed")
        raise


def _require(result: Optional[AnalysisResult]) -> AnalysisResult:
    if result is None:
        raise HTTPException(status_code=409, detail="Select at least one entity and one metric")
    return result


def _csv_response(text: str, filename: str) -> Response:
    return Response(
        content=encode_report(text),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@app.get("/health", response_model=HealthResponse)
def health():
    return {"ok": True}


@app.post("/columns", response_model=ColumnsResponse)
async def columns(file: UploadFile = File(...), entity_field: Optional[str] = Form(None)):
    table = await _read_table(file)
    guess = guess_columns(table.fields)

    field = entity_field or default_entity_field(table.fields)
    if field is not None and field not in table.fields:
        raise HTTPException(status_code=422, detail=f"Unknown fields: {field}")

    return ColumnsResponse(
        fields=list(table.fields),
        rows=len(table.rows),
        entity_guess=guess.entity_field,
        period_guess=guess.period_field,
        entity_field=field,
        entities=list_entities(table, field) if field else [],
    )


@app.post("/analyze", response_model=AnalyzeResponse)
async def analyze_csv(
    file: UploadFile = File(...),
    entity_field: str = Form(...),
    metric_fields: List[str] = Form(default=[]),
    selected_entities: List[str] = Form(default=[]),
    period_field: Optional[str] = Form(None),
    cohort_field: Optional[str] = Form(None),
):
    result = await _run(file, entity_field, metric_fields, selected_entities, period_field, cohort_field)
    if result is None:
        return AnalyzeResponse(result=None)
    return AnalyzeResponse(result=AnalysisModel.from_result(result, COHORT_LABELS))


@app.post("/export", response_model=ExportResponse)
async def export_reports(
    file: UploadFile = File(...),
    entity_field: str = Form(...),
    metric_fields: List[str] = Form(default=[]),
    selected_entities: List[str] = Form(default=[]),
    period_field: Optional[str] = Form(None),
    cohort_field: Optional[str] = Form(None),
):
    result = _require(
        await _run(file, entity_field, metric_fields, selected_entities, period_field, cohort_field)
    )
    return {"baseline": result.baseline, "files": export_all(result)}


@app.post("/export/leaderboard")
async def export_leaderboard(
    file: UploadFile = File(...),
    entity_field: str = Form(...),
    metric_fields: List[str] = Form(default=[]),
    selected_entities: List[str] = Form(default=[]),
    period_field: Optional[str] = Form(None),
    cohort_field: Optional[str] = Form(None),
):
    result = _require(
        await _run(file, entity_field, metric_fields, selected_entities, period_field, cohort_field)
    )
    return _csv_response(render_leaderboard(result), leaderboard_filename(result))


@app.post("/export/series")
async def export_series(
    metric: str = Query(...),
    file: UploadFile = File(...),
    entity_field: str = Form(...),
    metric_fields: List[str] = Form(default=[]),
    selected_entities: List[str] = Form(default=[]),
    period_field: Optional[str] = Form(None),
    cohort_field: Optional[str] = Form(None),
):
    result = _require(
        await _run(file, entity_field, metric_fields, selected_entities, period_field, cohort_field)
    )
    if metric not in result.metrics:
        raise HTTPException(status_code=422, detail=f"Metric not analyzed: {metric}")
    return _csv_response(render_metric_time_series(result, metric), series_filename(metric))
