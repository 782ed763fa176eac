"""Analytics router — snapshot and export endpoints.

The engine is synchronous and side-effect-free; every request recomputes a
fresh snapshot from the payload it carries.
"""

from fastapi import APIRouter, Query, Request
from fastapi.responses import Response

from analytics_engine.common.exceptions import ValidationException
from analytics_engine.common.rate_limit import limiter
from analytics_engine.config import settings
from analytics_engine.dashboard.schemas import SnapshotRequest, SnapshotResponse
from analytics_engine.dashboard.service import AnalyticsEngine
from analytics_engine.reports.service import ReportExporter

router = APIRouter()

EXPORT_FORMATS = ("json", "csv")


# ── POST /snapshot ──────────────────────────────────────────────────

@router.post("/snapshot", response_model=SnapshotResponse, response_model_by_alias=True)
@limiter.limit(settings.ANALYTICS_RATE_LIMIT)
async def build_snapshot(request: Request, payload: SnapshotRequest):
    """Resolve authoritative and locally computed metrics into one snapshot."""
    return AnalyticsEngine.build_snapshot(payload)


# ── POST /export ────────────────────────────────────────────────────

@router.post("/export")
@limiter.limit(settings.ANALYTICS_RATE_LIMIT)
async def export_snapshot(
    request: Request,
    payload: SnapshotRequest,
    export_format: str = Query("json", alias="format", description="json or csv"),
):
    """Download the resolved snapshot as a JSON document or a flat CSV table."""
    fmt = export_format.strip().lower()
    if fmt not in EXPORT_FORMATS:
        raise ValidationException(
            {"format": [f"Unsupported export format '{export_format}'; expected one of: {', '.join(EXPORT_FORMATS)}"]}
        )

    result = AnalyticsEngine.build_snapshot(payload)
    filename = ReportExporter.filename(fmt, result.generated_at)
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    if fmt == "csv":
        return Response(ReportExporter.to_csv(result.snapshot), media_type="text/csv", headers=headers)
    return Response(
        ReportExporter.to_json(result.snapshot, generated_at=result.generated_at),
        media_type="application/json",
        headers=headers,
    )
