"""Tests for analytics windows, aggregates and report export."""

import asyncio
from datetime import datetime
import json
import uuid

import pytest
from sqlalchemy.orm import Session

from ledgerly import analytics
from ledgerly.auth.models import UserProfile
from ledgerly.errors import ValidationError
from ledgerly.metadata import Client, Invoice
from ledgerly.organizations.context import Scope
from ledgerly.routers import analytics as analytics_router


NOW = datetime(2026, 5, 20, 12, 0)


def _create_user(test_db: Session, email: str = "analyst@example.com") -> UserProfile:
    user = UserProfile(id=uuid.uuid4(), email=email, name="Analyst", account_type="individual", is_active=True)
    test_db.add(user)
    test_db.commit()
    return user


def _create_client(test_db: Session, user: UserProfile, name: str) -> Client:
    client = Client(user_id=user.id, name=name)
    test_db.add(client)
    test_db.commit()
    return client


def _add_invoice(test_db: Session, user: UserProfile, client: Client, amount: int, created_at: datetime, status="PAID"):
    invoice = Invoice(
        user_id=user.id,
        client_id=client.id,
        status=status,
        total_amount=amount,
        created_at=created_at,
    )
    test_db.add(invoice)
    test_db.commit()
    return invoice


def test_date_windows():
    assert analytics.date_window("THIS_MONTH", NOW) == analytics.Window(datetime(2026, 5, 1), NOW)
    assert analytics.date_window("LAST_MONTH", NOW).start == datetime(2026, 4, 1)
    assert analytics.date_window("this_quarter", NOW).start == datetime(2026, 4, 1)
    assert analytics.date_window("THIS_YEAR", NOW).start == datetime(2026, 1, 1)
    assert analytics.date_window("LAST_YEAR", NOW).start == datetime(2025, 1, 1)
    assert analytics.date_window(None, NOW).start == datetime(2026, 5, 1)


def test_previous_windows_wrap_across_years():
    january = datetime(2026, 1, 10)

    assert analytics.previous_window("THIS_MONTH", january) == analytics.Window(datetime(2025, 12, 1), datetime(2026, 1, 1))
    assert analytics.previous_window("LAST_MONTH", january) == analytics.Window(datetime(2025, 11, 1), datetime(2025, 12, 1))
    assert analytics.previous_window("THIS_QUARTER", january) == analytics.Window(datetime(2025, 10, 1), datetime(2026, 1, 1))
    assert analytics.previous_window("LAST_YEAR", january) == analytics.Window(datetime(2024, 1, 1), datetime(2025, 1, 1))


def test_invalid_time_range_rejected():
    with pytest.raises(ValidationError):
        analytics.date_window("FOREVER", NOW)


def test_growth_rate():
    assert analytics.growth_rate(150, 100) == 50.0
    assert analytics.growth_rate(50, 100) == -50.0
    assert analytics.growth_rate(100, 0) == 0.0


def test_month_bounds_december():
    window = analytics.month_bounds(datetime(2026, 12, 5).date())

    assert window == analytics.Window(datetime(2026, 12, 1), datetime(2027, 1, 1))


def test_overview_compares_with_previous_period(test_db: Session):
    user = _create_user(test_db)
    client = _create_client(test_db, user, "Umbrella")
    _add_invoice(test_db, user, client, 300, datetime(2026, 5, 2))
    _add_invoice(test_db, user, client, 100, datetime(2026, 5, 19), status="SENT")
    _add_invoice(test_db, user, client, 200, datetime(2026, 4, 15))
    _add_invoice(test_db, user, client, 999, datetime(2026, 5, 21))

    data = analytics.overview(test_db, Scope(user=user), "THIS_MONTH", now=NOW)

    assert data["total_revenue"] == 400.0
    assert data["total_invoices"] == 2
    assert data["total_clients"] == 1
    assert data["growth_rate"] == 100.0
    assert data["monthly_stats"] == [{"year": 2026, "month": 5, "total_amount": 400.0, "total_count": 2}]


def test_monthly_stats_cover_each_month_of_window(test_db: Session):
    user = _create_user(test_db)
    client = _create_client(test_db, user, "Soylent")
    _add_invoice(test_db, user, client, 50, datetime(2026, 4, 3))

    window = analytics.date_window("THIS_QUARTER", NOW)
    stats = analytics.monthly_stats(test_db, Scope(user=user), window)

    assert [(row["month"], row["total_amount"]) for row in stats] == [(4, 50.0), (5, 0.0)]


def test_top_clients_ranked_by_revenue(test_db: Session):
    user = _create_user(test_db)
    small = _create_client(test_db, user, "Small")
    large = _create_client(test_db, user, "Large")
    _add_invoice(test_db, user, small, 10, datetime(2026, 5, 3))
    _add_invoice(test_db, user, large, 70, datetime(2026, 5, 4))
    _add_invoice(test_db, user, large, 30, datetime(2026, 5, 5))

    ranked = analytics.top_clients(test_db, Scope(user=user), analytics.date_window("THIS_MONTH", NOW))

    assert [(row["name"], row["total_amount"], row["invoice_count"]) for row in ranked] == [
        ("Large", 100.0, 2),
        ("Small", 10.0, 1),
    ]


def test_scope_excludes_other_users(test_db: Session):
    user = _create_user(test_db)
    other = _create_user(test_db, "other@example.com")
    client = _create_client(test_db, other, "Theirs")
    _add_invoice(test_db, other, client, 500, datetime(2026, 5, 3))

    assert analytics.invoice_total(test_db, Scope(user=user), analytics.date_window("THIS_MONTH", NOW)) == 0


def test_report_type_validation(test_db: Session):
    user = _create_user(test_db)

    with pytest.raises(ValidationError):
        analytics.report(test_db, Scope(user=user), "THIS_MONTH", "everything", now=NOW)

    full = analytics.report(test_db, Scope(user=user), "THIS_MONTH", None, now=NOW)
    assert set(full) == {"invoices", "clients", "documents"}
    assert full["invoices"]["by_status"]["PAID"] == {"count": 0, "total_amount": 0.0}


def test_report_to_csv_flattens_nested_values():
    content = analytics.report_to_csv({"invoices": {"by_status": {"PAID": {"count": 2}}, "total_count": 2}})

    rows = content.strip().splitlines()
    assert rows[0] == "section,metric,value"
    assert "invoices,by_status.PAID.count,2" in rows
    assert "invoices,total_count,2" in rows


def test_export_endpoint_sets_attachment_headers(test_db: Session):
    scope = Scope(user=_create_user(test_db))

    response = asyncio.run(analytics_router.export_report(
        export_format="json",
        time_range="THIS_YEAR",
        report_type="clients",
        scope=scope,
        db=test_db,
    ))

    assert response.media_type == "application/json"
    assert response.headers["content-disposition"].startswith('attachment; filename="report-this_year-')
    assert json.loads(response.body)["clients"]["total_clients"] == 0

    with pytest.raises(ValidationError):
        asyncio.run(analytics_router.export_report(
            export_format="xlsx",
            time_range=None,
            report_type=None,
            scope=scope,
            db=test_db,
        ))
