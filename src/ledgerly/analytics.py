"""Revenue and activity aggregates over a scope's invoices, contracts and clients."""

import csv
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
import io
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ledgerly.errors import ValidationError
from ledgerly.metadata import INVOICE_STATUSES, Client, Contract, Document, Invoice
from ledgerly.organizations.context import Scope


TIME_RANGES = ("THIS_MONTH", "LAST_MONTH", "THIS_QUARTER", "THIS_YEAR", "LAST_YEAR")
DEFAULT_TIME_RANGE = "THIS_MONTH"


@dataclass(frozen=True)
class Window:
    """Half-open datetime interval ``[start, end)``."""

    start: datetime
    end: datetime


def _month_start(year: int, month: int) -> datetime:
    # month may fall outside 1..12; normalise into the right year
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return datetime(year, month, 1)


def date_window(time_range: str, now: Optional[datetime] = None) -> Window:
    """Current-period window for a time range, ending at ``now``."""
    now = now or datetime.utcnow()
    time_range = normalize_time_range(time_range)
    if time_range == "LAST_MONTH":
        start = _month_start(now.year, now.month - 1)
    elif time_range == "THIS_QUARTER":
        start = _month_start(now.year, ((now.month - 1) // 3) * 3 + 1)
    elif time_range == "THIS_YEAR":
        start = datetime(now.year, 1, 1)
    elif time_range == "LAST_YEAR":
        start = datetime(now.year - 1, 1, 1)
    else:
        start = _month_start(now.year, now.month)
    return Window(start=start, end=now)


def previous_window(time_range: str, now: Optional[datetime] = None) -> Window:
    """The comparable period immediately preceding :func:`date_window`'s period."""
    now = now or datetime.utcnow()
    time_range = normalize_time_range(time_range)
    if time_range == "LAST_MONTH":
        return Window(_month_start(now.year, now.month - 2), _month_start(now.year, now.month - 1))
    if time_range == "THIS_QUARTER":
        quarter_start = ((now.month - 1) // 3) * 3 + 1
        return Window(_month_start(now.year, quarter_start - 3), _month_start(now.year, quarter_start))
    if time_range == "THIS_YEAR":
        return Window(datetime(now.year - 1, 1, 1), datetime(now.year, 1, 1))
    if time_range == "LAST_YEAR":
        return Window(datetime(now.year - 2, 1, 1), datetime(now.year - 1, 1, 1))
    return Window(_month_start(now.year, now.month - 1), _month_start(now.year, now.month))


def normalize_time_range(time_range: Optional[str]) -> str:
    value = str(time_range or DEFAULT_TIME_RANGE).strip().upper()
    if value not in TIME_RANGES:
        raise ValidationError(f"Invalid time range: {time_range}")
    return value


def growth_rate(current, previous) -> float:
    if not previous:
        return 0.0
    return float((Decimal(current or 0) - Decimal(previous)) / Decimal(previous) * 100)


def _in_window(column, window: Window):
    return (column >= window.start) & (column < window.end)


def _money(value) -> float:
    return float(value or 0)


def invoice_total(db: Session, scope: Scope, window: Window) -> Decimal:
    total = db.query(func.coalesce(func.sum(Invoice.total_amount), 0)).filter(
        scope.filter(Invoice),
        _in_window(Invoice.created_at, window),
    ).scalar()
    return Decimal(total or 0)


def monthly_stats(db: Session, scope: Scope, window: Window) -> List[Dict[str, Any]]:
    """Per-month invoice totals and counts from the window's start month through its end.

    Each month is clipped to the window, so the current month stops at ``window.end``.
    """
    stats = []
    cursor = _month_start(window.start.year, window.start.month)
    while cursor < window.end:
        next_month = _month_start(cursor.year, cursor.month + 1)
        month_window = Window(max(cursor, window.start), min(next_month, window.end))
        total, count = db.query(
            func.coalesce(func.sum(Invoice.total_amount), 0),
            func.count(Invoice.id),
        ).filter(
            scope.filter(Invoice),
            _in_window(Invoice.created_at, month_window),
        ).one()
        stats.append({
            "year": cursor.year,
            "month": cursor.month,
            "total_amount": _money(total),
            "total_count": int(count or 0),
        })
        cursor = next_month
    return stats


def top_clients(db: Session, scope: Scope, window: Window, limit: int = 10) -> List[Dict[str, Any]]:
    rows = db.query(
        Client.id,
        Client.name,
        func.coalesce(func.sum(Invoice.total_amount), 0).label("total_amount"),
        func.count(Invoice.id).label("invoice_count"),
    ).join(
        Invoice, Invoice.client_id == Client.id
    ).filter(
        scope.filter(Invoice),
        _in_window(Invoice.created_at, window),
    ).group_by(Client.id, Client.name).order_by(
        func.coalesce(func.sum(Invoice.total_amount), 0).desc()
    ).limit(limit).all()
    return [
        {
            "client_id": str(client_id),
            "name": name,
            "total_amount": _money(total),
            "invoice_count": int(count),
        }
        for client_id, name, total, count in rows
    ]


def overview(db: Session, scope: Scope, time_range: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    window = date_window(time_range, now)
    previous = previous_window(time_range, now)

    total_revenue = invoice_total(db, scope, window)
    previous_revenue = invoice_total(db, scope, previous)

    return {
        "time_range": normalize_time_range(time_range),
        "total_revenue": _money(total_revenue),
        "total_invoices": db.query(Invoice).filter(scope.filter(Invoice), _in_window(Invoice.created_at, window)).count(),
        "total_contracts": db.query(Contract).filter(scope.filter(Contract), _in_window(Contract.created_at, window)).count(),
        "total_clients": db.query(Client).filter(scope.filter(Client)).count(),
        "growth_rate": growth_rate(total_revenue, previous_revenue),
        "monthly_stats": monthly_stats(db, scope, window),
    }


def invoice_report(db: Session, scope: Scope, window: Window) -> Dict[str, Any]:
    rows = db.query(
        Invoice.status,
        func.count(Invoice.id),
        func.coalesce(func.sum(Invoice.total_amount), 0),
    ).filter(
        scope.filter(Invoice),
        _in_window(Invoice.created_at, window),
    ).group_by(Invoice.status).all()
    by_status = {status: {"count": 0, "total_amount": 0.0} for status in INVOICE_STATUSES}
    for status, count, total in rows:
        by_status[status] = {"count": int(count), "total_amount": _money(total)}
    return {
        "by_status": by_status,
        "total_count": sum(entry["count"] for entry in by_status.values()),
        "total_amount": sum(entry["total_amount"] for entry in by_status.values()),
    }


def client_report(db: Session, scope: Scope, window: Window) -> Dict[str, Any]:
    new_clients = db.query(Client).filter(scope.filter(Client), _in_window(Client.created_at, window)).count()
    return {
        "total_clients": db.query(Client).filter(scope.filter(Client)).count(),
        "new_clients": new_clients,
        "top_clients": top_clients(db, scope, window),
    }


def document_report(db: Session, scope: Scope, window: Window) -> Dict[str, Any]:
    query = db.query(Document.type, func.count(Document.id)).filter(
        scope.filter(Document),
        _in_window(Document.created_at, window),
    )
    by_type = {doc_type: int(count) for doc_type, count in query.group_by(Document.type).all()}
    return {"by_type": by_type, "total_documents": sum(by_type.values())}


REPORT_TYPES = ("invoices", "clients", "documents", "full")


def report(db: Session, scope: Scope, time_range: Optional[str] = None, report_type: Optional[str] = None,
           now: Optional[datetime] = None) -> Dict[str, Any]:
    window = date_window(time_range, now)
    report_type = (report_type or "full").lower()
    if report_type not in REPORT_TYPES:
        raise ValidationError(f"Invalid report type: {report_type}")
    if report_type == "invoices":
        return {"invoices": invoice_report(db, scope, window)}
    if report_type == "clients":
        return {"clients": client_report(db, scope, window)}
    if report_type == "documents":
        return {"documents": document_report(db, scope, window)}
    return {
        "invoices": invoice_report(db, scope, window),
        "clients": client_report(db, scope, window),
        "documents": document_report(db, scope, window),
    }


def report_to_csv(data: Dict[str, Any]) -> str:
    """Flatten a report into ``section,metric,value`` rows."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["section", "metric", "value"])

    def _walk(section: str, prefix: str, value: Any) -> None:
        if isinstance(value, dict):
            for key, nested in value.items():
                _walk(section, f"{prefix}.{key}" if prefix else str(key), nested)
        elif isinstance(value, list):
            for index, nested in enumerate(value):
                _walk(section, f"{prefix}[{index}]", nested)
        else:
            writer.writerow([section, prefix, value])

    for section, value in data.items():
        _walk(section, "", value)
    return buffer.getvalue()


def month_bounds(today: Optional[date] = None) -> Window:
    """Window covering the calendar month containing ``today``."""
    today = today or date.today()
    start = datetime(today.year, today.month, 1)
    return Window(start, _month_start(today.year, today.month + 1))
