"""Tests for invoice endpoints and the overdue job."""

import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal
import uuid

import pytest
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ledgerly.auth.models import UserProfile
from ledgerly.errors import ExternalServiceError, ValidationError
from ledgerly.invoices import mark_overdue_invoices
from ledgerly.metadata import Client, Invoice, Notification
from ledgerly.models.requests import ClientPayload, InvoiceItemPayload, InvoicePayload, SendDocumentRequest
from ledgerly.organizations import service
from ledgerly.organizations.context import Scope, resolve_scope
from ledgerly.organizations.models import OrganizationActivity
from ledgerly.routers import invoices as invoices_router


def _create_user(test_db: Session, email: str = "biller@example.com", *, account_type: str = "individual") -> UserProfile:
    user = UserProfile(
        id=uuid.uuid4(),
        email=email,
        name="Billy Biller",
        account_type=account_type,
        is_active=True,
    )
    test_db.add(user)
    test_db.commit()
    return user


def _create_client(test_db: Session, user: UserProfile, *, organization_id=None, email="client@example.com") -> Client:
    client = Client(user_id=user.id, organization_id=organization_id, name="Wayne Enterprises", email=email)
    test_db.add(client)
    test_db.commit()
    return client


def _create_invoice(test_db: Session, scope: Scope, **fields) -> dict:
    return asyncio.run(invoices_router.create_invoice(body=InvoicePayload(**fields), scope=scope, db=test_db))["data"]


def test_create_invoice_with_inline_client_and_items(test_db: Session):
    user = _create_user(test_db)
    scope = Scope(user=user)

    invoice = _create_invoice(
        test_db,
        scope,
        client=ClientPayload(name="Inline Client", email="inline@example.com"),
        tax_amount=Decimal("5.00"),
        items=[
            InvoiceItemPayload(description="Design", quantity=2, unit_price=Decimal("40")),
            InvoiceItemPayload(description="  ", quantity=1, unit_price=Decimal("999")),
            InvoiceItemPayload(description="Hosting", quantity=1, unit_price=Decimal("20")),
        ],
    )

    assert invoice["status"] == "DRAFT"
    assert invoice["sub_total"] == 100.0
    assert invoice["total_amount"] == 105.0
    assert [item["description"] for item in invoice["items"]] == ["Design", "Hosting"]
    assert invoice["items"][0]["amount"] == 80.0
    assert invoice["client"]["name"] == "Inline Client"
    assert invoice["account_type"] == "individual"
    assert invoice["invoice_number"].startswith("INV-")
    assert test_db.query(Client).filter(Client.user_id == user.id).count() == 1

    notification = test_db.query(Notification).filter(Notification.user_id == user.id).one()
    assert notification.type == "INVOICE_CREATED"
    assert notification.message == f"Invoice #{invoice['invoice_number']} has been created for Inline Client"


def test_create_invoice_requires_client(test_db: Session):
    scope = Scope(user=_create_user(test_db))

    with pytest.raises(ValidationError) as exc:
        _create_invoice(test_db, scope, total_amount=Decimal("10"))
    assert exc.value.code == "MISSING_CLIENT"


def test_create_invoice_rejects_negative_total(test_db: Session):
    user = _create_user(test_db)
    client = _create_client(test_db, user)

    with pytest.raises(ValidationError) as exc:
        _create_invoice(test_db, Scope(user=user), client_id=client.id, total_amount=Decimal("-1"))
    assert exc.value.code == "INVALID_AMOUNT"


def test_create_invoice_rejects_client_from_another_account(test_db: Session):
    owner = _create_user(test_db)
    stranger = _create_user(test_db, "stranger@example.com")
    client = _create_client(test_db, owner)

    with pytest.raises(HTTPException) as exc:
        _create_invoice(test_db, Scope(user=stranger), client_id=client.id, total_amount=Decimal("10"))
    assert exc.value.status_code == 404


def test_business_invoice_records_activity(test_db: Session):
    owner = _create_user(test_db, "org-biller@example.com", account_type="business")
    organization = service.create_organization(test_db, owner, name="Biller Org")
    scope = resolve_scope(test_db, owner, str(organization.id))
    client = _create_client(test_db, owner, organization_id=organization.id)

    invoice = _create_invoice(test_db, scope, client_id=client.id, total_amount=Decimal("250"))

    assert invoice["organization_id"] == str(organization.id)
    assert invoice["account_type"] == "business"
    activity = test_db.query(OrganizationActivity).filter(
        OrganizationActivity.type == "INVOICE_CREATED"
    ).one()
    assert activity.entity_id == uuid.UUID(invoice["id"])


def test_update_invoice_replaces_items_and_notifies_on_paid(test_db: Session):
    user = _create_user(test_db)
    client = _create_client(test_db, user)
    scope = Scope(user=user)
    invoice = _create_invoice(
        test_db,
        scope,
        client_id=client.id,
        items=[InvoiceItemPayload(description="Old", quantity=1, unit_price=Decimal("10"))],
    )

    updated = asyncio.run(invoices_router.update_invoice(
        invoice_id=invoice["id"],
        body=InvoicePayload(items=[InvoiceItemPayload(description="New", quantity=3, unit_price=Decimal("15"))]),
        scope=scope,
        db=test_db,
    ))["data"]
    assert [item["description"] for item in updated["items"]] == ["New"]
    assert updated["total_amount"] == 45.0

    paid = asyncio.run(invoices_router.update_invoice(
        invoice_id=invoice["id"],
        body=InvoicePayload(status="paid"),
        scope=scope,
        db=test_db,
    ))["data"]
    assert paid["status"] == "PAID"
    types = [n.type for n in test_db.query(Notification).filter(Notification.user_id == user.id).all()]
    assert "INVOICE_PAID" in types


def test_update_invoice_rejects_zero_amount_outside_draft(test_db: Session):
    user = _create_user(test_db)
    client = _create_client(test_db, user)
    scope = Scope(user=user)
    invoice = _create_invoice(test_db, scope, client_id=client.id)

    with pytest.raises(ValidationError) as exc:
        asyncio.run(invoices_router.update_invoice(
            invoice_id=invoice["id"],
            body=InvoicePayload(status="SENT"),
            scope=scope,
            db=test_db,
        ))
    assert exc.value.code == "INVALID_AMOUNT"

    renamed = asyncio.run(invoices_router.update_invoice(
        invoice_id=invoice["id"],
        body=InvoicePayload(notes="Still a draft"),
        scope=scope,
        db=test_db,
    ))["data"]
    assert renamed["notes"] == "Still a draft"


def test_invoice_overview_totals(test_db: Session):
    user = _create_user(test_db)
    client = _create_client(test_db, user)
    scope = Scope(user=user)
    for status, amount in (("PAID", "100"), ("SENT", "40"), ("OVERDUE", "60"), ("DRAFT", "5")):
        _create_invoice(test_db, scope, client_id=client.id, status=status, total_amount=Decimal(amount))

    overview = asyncio.run(invoices_router.invoice_overview(scope=scope, db=test_db))["data"]

    assert overview["total_amount"] == 205.0
    assert overview["paid_amount"] == 100.0
    assert overview["pending_amount"] == 100.0
    assert overview["total_invoices"] == 4
    assert overview["pending_invoices"] == 2
    assert overview["status_counts"]["CANCELLED"] == 0


def test_send_invoice_marks_sent_and_builds_public_link(test_db: Session, monkeypatch):
    user = _create_user(test_db)
    client = _create_client(test_db, user)
    scope = Scope(user=user)
    invoice = _create_invoice(test_db, scope, client_id=client.id, total_amount=Decimal("75.5"))
    calls = []

    def _fake_send(to_email, link, number, amount, currency, **kwargs):
        calls.append({"to": to_email, "link": link, "amount": amount, **kwargs})
        return True

    monkeypatch.setattr("ledgerly.routers.invoices.send_invoice_email", _fake_send)

    response = asyncio.run(invoices_router.send_invoice(
        invoice_id=invoice["id"],
        body=SendDocumentRequest(message="Thanks!"),
        scope=scope,
        db=test_db,
    ))["data"]

    stored = test_db.query(Invoice).filter(Invoice.id == uuid.UUID(invoice["id"])).one()
    assert stored.status == "SENT"
    assert stored.email_sent_to == "client@example.com"
    assert len(stored.public_view_token) == 64
    assert response["public_url"].endswith(f"/public/invoice/{stored.public_view_token}")
    assert calls[0]["to"] == "client@example.com"
    assert calls[0]["amount"] == "75.50"
    assert calls[0]["sender_name"] == "Billy Biller"
    assert calls[0]["message"] == "Thanks!"


def test_send_invoice_email_failure_leaves_invoice_unchanged(test_db: Session, monkeypatch):
    user = _create_user(test_db)
    client = _create_client(test_db, user)
    scope = Scope(user=user)
    invoice = _create_invoice(test_db, scope, client_id=client.id, total_amount=Decimal("10"))
    monkeypatch.setattr("ledgerly.routers.invoices.send_invoice_email", lambda *args, **kwargs: False)

    with pytest.raises(ExternalServiceError) as exc:
        asyncio.run(invoices_router.send_invoice(
            invoice_id=invoice["id"],
            body=SendDocumentRequest(),
            scope=scope,
            db=test_db,
        ))
    assert exc.value.code == "EMAIL_FAILED"

    stored = test_db.query(Invoice).filter(Invoice.id == uuid.UUID(invoice["id"])).one()
    assert stored.status == "DRAFT"
    assert stored.public_view_token is None


def test_send_invoice_requires_recipient(test_db: Session):
    user = _create_user(test_db)
    client = _create_client(test_db, user, email=None)
    scope = Scope(user=user)
    invoice = _create_invoice(test_db, scope, client_id=client.id, total_amount=Decimal("10"))

    with pytest.raises(ValidationError) as exc:
        asyncio.run(invoices_router.send_invoice(
            invoice_id=invoice["id"],
            body=SendDocumentRequest(),
            scope=scope,
            db=test_db,
        ))
    assert exc.value.code == "MISSING_EMAIL"

    with pytest.raises(ValidationError) as exc:
        asyncio.run(invoices_router.send_invoice(
            invoice_id=invoice["id"],
            body=SendDocumentRequest(email="nope"),
            scope=scope,
            db=test_db,
        ))
    assert exc.value.code == "INVALID_EMAIL"


def test_mark_overdue_invoices_only_touches_sent_past_due(test_db: Session):
    user = _create_user(test_db)
    client = _create_client(test_db, user)
    today = date(2026, 6, 15)
    late = Invoice(user_id=user.id, client_id=client.id, status="SENT", total_amount=10, due_date=today - timedelta(days=1))
    due_today = Invoice(user_id=user.id, client_id=client.id, status="SENT", total_amount=10, due_date=today)
    draft = Invoice(user_id=user.id, client_id=client.id, status="DRAFT", total_amount=10, due_date=today - timedelta(days=9))
    test_db.add_all([late, due_today, draft])
    test_db.commit()

    changed = mark_overdue_invoices(test_db, now=datetime(2026, 6, 15, 8, 0))

    assert changed == [str(late.id)]
    assert late.status == "OVERDUE"
    assert due_today.status == "SENT"
    assert draft.status == "DRAFT"
    notification = test_db.query(Notification).filter(Notification.type == "INVOICE_OVERDUE").one()
    assert notification.message == f"Invoice #{late.invoice_number} for Wayne Enterprises is overdue"


def test_delete_invoice(test_db: Session):
    user = _create_user(test_db)
    client = _create_client(test_db, user)
    scope = Scope(user=user)
    invoice = _create_invoice(test_db, scope, client_id=client.id, total_amount=Decimal("10"))

    asyncio.run(invoices_router.delete_invoice(invoice_id=invoice["id"], scope=scope, db=test_db))

    with pytest.raises(HTTPException):
        asyncio.run(invoices_router.get_invoice(invoice_id=invoice["id"], scope=scope, db=test_db))


def test_resending_paid_invoice_keeps_status(test_db: Session, monkeypatch):
    user = _create_user(test_db)
    client = _create_client(test_db, user)
    scope = Scope(user=user)
    invoice = _create_invoice(test_db, scope, client_id=client.id, total_amount=Decimal("40"))
    stored = test_db.query(Invoice).filter(Invoice.id == uuid.UUID(invoice["id"])).one()
    stored.status = "PAID"
    test_db.commit()
    monkeypatch.setattr("ledgerly.routers.invoices.send_invoice_email", lambda *args, **kwargs: True)

    response = asyncio.run(invoices_router.send_invoice(
        invoice_id=invoice["id"],
        body=SendDocumentRequest(email="Receipts@Example.com"),
        scope=scope,
        db=test_db,
    ))["data"]

    assert response["invoice"]["status"] == "PAID"
    test_db.refresh(stored)
    assert stored.status == "PAID"
    assert stored.email_sent_to == "receipts@example.com"
    assert stored.email_sent_at is not None
