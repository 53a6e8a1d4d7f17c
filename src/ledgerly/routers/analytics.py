"""Revenue analytics and report export endpoints."""

from datetime import datetime
import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ledgerly import analytics
from ledgerly.database import get_db
from ledgerly.errors import ValidationError
from ledgerly.organizations.context import Scope, get_scope


router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])

EXPORT_FORMATS = ("csv", "json")


@router.get("/overview", response_model=dict)
async def analytics_overview(
    time_range: Optional[str] = Query(None, alias="timeRange"),
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    return {"success": True, "data": analytics.overview(db, scope, time_range)}


@router.get("/top-clients", response_model=dict)
async def analytics_top_clients(
    time_range: Optional[str] = Query(None, alias="timeRange"),
    limit: int = Query(10, ge=1, le=100),
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    window = analytics.date_window(time_range)
    return {"success": True, "data": analytics.top_clients(db, scope, window, limit=limit)}


@router.get("/reports", response_model=dict)
async def analytics_report(
    time_range: Optional[str] = Query(None, alias="timeRange"),
    report_type: Optional[str] = Query(None, alias="type"),
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    return {"success": True, "data": analytics.report(db, scope, time_range, report_type)}


@router.get("/export")
async def export_report(
    export_format: str = Query("csv", alias="format"),
    time_range: Optional[str] = Query(None, alias="timeRange"),
    report_type: Optional[str] = Query(None, alias="type"),
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    """Download a report as CSV or JSON."""
    export_format = (export_format or "csv").lower()
    if export_format not in EXPORT_FORMATS:
        raise ValidationError(f"Invalid export format: {export_format}")

    data = analytics.report(db, scope, time_range, report_type)
    stamp = datetime.utcnow().strftime("%Y%m%d")
    filename = f"report-{analytics.normalize_time_range(time_range).lower()}-{stamp}.{export_format}"
    if export_format == "csv":
        content = analytics.report_to_csv(data)
        media_type = "text/csv"
    else:
        content = json.dumps(data, indent=2)
        media_type = "application/json"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
