"""Invoice endpoints: CRUD, overview and email delivery."""

from datetime import datetime
from decimal import Decimal
import logging
import secrets
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ledgerly import activity
from ledgerly.database import get_db
from ledgerly.email import send_invoice_email
from ledgerly.errors import ExternalServiceError, ValidationError
from ledgerly.metadata import INVOICE_STATUSES, Invoice, InvoiceItem
from ledgerly.models.requests import InvoiceItemPayload, InvoicePayload, SendDocumentRequest
from ledgerly.notifications import notify_owner_or_org
from ledgerly.organizations.context import Scope, get_scope, parse_uuid
from ledgerly.routers.auth import is_valid_email
from ledgerly.routers.clients import create_client, get_client_in_scope
from ledgerly.settings import settings


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/invoices", tags=["invoices"])

LIST_LIMIT = 100
_CENTS = Decimal("0.01")
_SCALAR_FIELDS = (
    "invoice_number",
    "issue_date",
    "due_date",
    "sub_total",
    "tax_amount",
    "currency",
    "notes",
    "terms_and_conditions",
    "purchase_order_number",
    "project_code",
    "payment_terms",
    "template_id",
    "payment_information",
)


def _money(value) -> float:
    return float(value or 0)


def serialize_invoice(invoice: Invoice, *, public: bool = False) -> dict:
    payload = {
        "id": str(invoice.id),
        "invoice_number": invoice.invoice_number,
        "status": invoice.status,
        "issue_date": invoice.issue_date.isoformat() if invoice.issue_date else None,
        "due_date": invoice.due_date.isoformat() if invoice.due_date else None,
        "total_amount": _money(invoice.total_amount),
        "sub_total": _money(invoice.sub_total),
        "tax_amount": _money(invoice.tax_amount),
        "currency": invoice.currency,
        "notes": invoice.notes,
        "terms_and_conditions": invoice.terms_and_conditions,
        "purchase_order_number": invoice.purchase_order_number,
        "project_code": invoice.project_code,
        "payment_terms": invoice.payment_terms,
        "payment_information": invoice.payment_information or {},
        "items": [
            {
                "id": str(item.id),
                "description": item.description,
                "quantity": item.quantity,
                "unit_price": _money(item.unit_price),
                "amount": _money(item.amount),
            }
            for item in invoice.items
        ],
        "client": (
            {
                "id": str(invoice.client.id),
                "name": invoice.client.name,
                "email": invoice.client.email,
                "company_name": invoice.client.company_name,
                "address": invoice.client.address,
            }
            if invoice.client
            else None
        ),
        "created_at": invoice.created_at.isoformat() if invoice.created_at else None,
    }
    if not public:
        payload.update({
            "client_id": str(invoice.client_id) if invoice.client_id else None,
            "organization_id": str(invoice.organization_id) if invoice.organization_id else None,
            "user_id": str(invoice.user_id),
            "account_type": invoice.account_type,
            "template_id": invoice.template_id,
            "pdf_url": invoice.pdf_url,
            "email_sent_at": invoice.email_sent_at.isoformat() if invoice.email_sent_at else None,
            "email_sent_to": invoice.email_sent_to,
        })
    return payload


def get_invoice_in_scope(db: Session, scope: Scope, invoice_id) -> Invoice:
    invoice = db.query(Invoice).filter(
        Invoice.id == parse_uuid(invoice_id, "invoice id"),
        scope.filter(Invoice),
    ).first()
    if not invoice:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return invoice


def _build_items(items: Optional[List[InvoiceItemPayload]]) -> List[InvoiceItem]:
    built = []
    for position, item in enumerate(items or []):
        description = str(item.description or "").strip()
        if not description:
            continue
        built.append(InvoiceItem(
            description=description,
            quantity=item.quantity if item.quantity is not None else 1,
            unit_price=Decimal(item.unit_price or 0).quantize(_CENTS),
            position=position,
        ))
    return built


def _normalize_status(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = value.strip().upper()
    if normalized not in INVOICE_STATUSES:
        raise ValidationError(f"Invalid invoice status: {value}")
    return normalized


def _resolve_total(body: InvoicePayload, items: List[InvoiceItem]) -> Optional[Decimal]:
    if body.total_amount is not None:
        return Decimal(body.total_amount)
    if items:
        sub_total = sum((Decimal(i.quantity) * Decimal(i.unit_price) for i in items), Decimal(0))
        return sub_total + Decimal(body.tax_amount or 0)
    return None


def _notify_paid(db: Session, scope: Scope, invoice: Invoice) -> None:
    notify_owner_or_org(
        db,
        user_id=invoice.user_id,
        organization_id=invoice.organization_id,
        notification_type="INVOICE_PAID",
        data={
            "invoiceNumber": invoice.invoice_number,
            "clientName": invoice.client.name if invoice.client else "",
            "amount": f"{_money(invoice.total_amount):.2f}",
        },
        entity_type="invoice",
        entity_id=invoice.id,
    )


@router.get("", response_model=dict)
async def list_invoices(scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    invoices = db.query(Invoice).filter(scope.filter(Invoice)).order_by(
        Invoice.created_at.desc()
    ).limit(LIST_LIMIT).all()
    return {"success": True, "data": [serialize_invoice(i) for i in invoices]}


@router.get("/overview", response_model=dict)
async def invoice_overview(scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    rows = db.query(
        Invoice.status,
        func.count(Invoice.id),
        func.coalesce(func.sum(Invoice.total_amount), 0),
    ).filter(scope.filter(Invoice)).group_by(Invoice.status).all()

    counts = {s: 0 for s in INVOICE_STATUSES}
    amounts = {s: Decimal(0) for s in INVOICE_STATUSES}
    for invoice_status, count, total in rows:
        counts[invoice_status] = int(count)
        amounts[invoice_status] = Decimal(total or 0)

    return {
        "success": True,
        "data": {
            "total_amount": _money(sum(amounts.values())),
            "paid_amount": _money(amounts["PAID"]),
            "pending_amount": _money(amounts["SENT"] + amounts["OVERDUE"]),
            "status_counts": counts,
            "total_invoices": sum(counts.values()),
            "paid_invoices": counts["PAID"],
            "pending_invoices": counts["SENT"] + counts["OVERDUE"],
            "draft_invoices": counts["DRAFT"],
            "cancelled_invoices": counts["CANCELLED"],
        },
    }


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_invoice(body: InvoicePayload, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    """Create an invoice for an existing client (``client_id``) or an inline ``client``."""
    if body.client_id:
        client = get_client_in_scope(db, scope, body.client_id)
    elif body.client is not None:
        client = create_client(db, scope, body.client, notify=False)
    else:
        raise ValidationError("Client information is required", code="MISSING_CLIENT")

    items = _build_items(body.items)
    total = _resolve_total(body, items)
    if total is not None and total < 0:
        raise ValidationError("Total amount cannot be negative", code="INVALID_AMOUNT")

    values = {field: getattr(body, field) for field in _SCALAR_FIELDS if getattr(body, field) is not None}
    invoice = Invoice(
        **scope.stamp(),
        client_id=client.id,
        status=_normalize_status(body.status) or "DRAFT",
        total_amount=total if total is not None else Decimal(0),
        **values,
    )
    if "sub_total" not in values and items:
        invoice.sub_total = sum((Decimal(i.quantity) * Decimal(i.unit_price) for i in items), Decimal(0))
    invoice.items = items
    db.add(invoice)
    db.flush()

    activity.record_activity(
        db,
        organization_id=scope.organization_id,
        event_type=activity.EVENT_INVOICE_CREATED,
        user_id=scope.user.id,
        entity_type="invoice",
        entity_id=invoice.id,
        description=f"Invoice {invoice.invoice_number} created",
    )
    notify_owner_or_org(
        db,
        user_id=scope.user.id,
        organization_id=scope.organization_id,
        notification_type="INVOICE_CREATED",
        data={"invoiceNumber": invoice.invoice_number, "clientName": client.name},
        entity_type="invoice",
        entity_id=invoice.id,
    )
    db.commit()
    db.refresh(invoice)
    logger.info("Invoice %s created by %s", invoice.id, scope.user.id)
    return {"success": True, "data": serialize_invoice(invoice)}


@router.get("/{invoice_id}", response_model=dict)
async def get_invoice(invoice_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    return {"success": True, "data": serialize_invoice(get_invoice_in_scope(db, scope, invoice_id))}


@router.put("/{invoice_id}", response_model=dict)
async def update_invoice(
    invoice_id: str,
    body: InvoicePayload,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    """Update fields; a supplied ``items`` list replaces the existing line items."""
    invoice = get_invoice_in_scope(db, scope, invoice_id)
    previous_status = invoice.status
    changes = body.model_dump(exclude_unset=True)

    if body.client_id is not None:
        invoice.client_id = get_client_in_scope(db, scope, body.client_id).id

    items = None
    if "items" in changes:
        items = _build_items(body.items)
        invoice.items = items

    new_status = _normalize_status(body.status) if "status" in changes else invoice.status
    if "total_amount" in changes or items is not None:
        total = _resolve_total(body, items or [])
        if total is not None:
            if total < 0:
                raise ValidationError("Total amount cannot be negative", code="INVALID_AMOUNT")
            invoice.total_amount = total

    amount_or_status_changed = "status" in changes or "total_amount" in changes or items is not None
    if amount_or_status_changed and Decimal(invoice.total_amount or 0) == 0 and new_status != "DRAFT":
        raise ValidationError("Only draft invoices can have a zero amount", code="INVALID_AMOUNT")

    for field in _SCALAR_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(invoice, field, changes[field])
    invoice.status = new_status

    if new_status == "PAID" and previous_status != "PAID":
        _notify_paid(db, scope, invoice)

    db.commit()
    db.refresh(invoice)
    return {"success": True, "data": serialize_invoice(invoice)}


@router.delete("/{invoice_id}", response_model=dict)
async def delete_invoice(invoice_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    invoice = get_invoice_in_scope(db, scope, invoice_id)
    db.delete(invoice)
    db.commit()
    return {"success": True, "message": "Invoice deleted successfully"}


@router.post("/{invoice_id}/send", response_model=dict)
async def send_invoice(
    invoice_id: str,
    body: SendDocumentRequest,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    """Email the client a public link to the invoice and mark it SENT."""
    invoice = get_invoice_in_scope(db, scope, invoice_id)
    recipient = (body.email or (invoice.client.email if invoice.client else None) or "").strip().lower()
    if not recipient:
        raise ValidationError("Recipient email is required", code="MISSING_EMAIL")
    if not is_valid_email(recipient):
        raise ValidationError("Please provide a valid email address", code="INVALID_EMAIL")

    if not invoice.public_view_token:
        invoice.public_view_token = secrets.token_hex(32)
    public_url = f"{settings.app_url}/public/invoice/{invoice.public_view_token}"

    sent = await run_in_threadpool(
        send_invoice_email,
        recipient,
        public_url,
        invoice.invoice_number,
        f"{_money(invoice.total_amount):.2f}",
        invoice.currency,
        due_date=invoice.due_date.isoformat() if invoice.due_date else None,
        sender_name=scope.organization.name if scope.is_business else scope.user.name,
        message=body.message,
    )
    if not sent:
        db.rollback()
        raise ExternalServiceError("Failed to send invoice email", code="EMAIL_FAILED")

    # Reminders keep PAID, OVERDUE and CANCELLED as they are.
    if invoice.status == "DRAFT":
        invoice.status = "SENT"
    invoice.email_sent_at = datetime.utcnow()
    invoice.email_sent_to = recipient
    activity.record_activity(
        db,
        organization_id=scope.organization_id,
        event_type=activity.EVENT_INVOICE_SENT,
        user_id=scope.user.id,
        entity_type="invoice",
        entity_id=invoice.id,
        description=f"Invoice {invoice.invoice_number} sent to {recipient}",
    )
    db.commit()
    db.refresh(invoice)
    return {
        "success": True,
        "message": "Invoice sent successfully",
        "data": {"invoice": serialize_invoice(invoice), "public_url": public_url},
    }
