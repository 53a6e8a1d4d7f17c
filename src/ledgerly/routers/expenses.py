"""Expense endpoints with the business approval workflow and receipt storage."""

from datetime import datetime
from decimal import Decimal
import logging
import mimetypes
import os
import time

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy import func
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ledgerly import activity
from ledgerly.analytics import month_bounds
from ledgerly.database import get_db
from ledgerly.errors import ExternalServiceError, ValidationError
from ledgerly.metadata import Expense
from ledgerly.models.requests import ExpensePayload
from ledgerly.notifications import create_notification
from ledgerly.organizations.context import Scope, get_scope, parse_uuid
from ledgerly.settings import settings
from ledgerly.storage import StorageError, StorageProvider, get_storage_provider


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/expenses", tags=["expenses"])

RECEIPT_CONTENT_TYPES = (
    "image/jpeg",
    "image/png",
    "image/jpg",
    "image/gif",
    "image/webp",
    "application/pdf",
    "text/plain",
)
_EDITABLE_FIELDS = ("amount", "date", "category", "description", "notes", "receipt_url")


def serialize_expense(expense: Expense) -> dict:
    return {
        "id": str(expense.id),
        "user_id": str(expense.user_id),
        "organization_id": str(expense.organization_id) if expense.organization_id else None,
        "account_type": expense.account_type,
        "amount": float(expense.amount),
        "date": expense.date.isoformat() if expense.date else None,
        "category": expense.category,
        "description": expense.description,
        "notes": expense.notes,
        "receipt_url": expense.receipt_url,
        "status": expense.status,
        "reviewed_by": str(expense.reviewed_by) if expense.reviewed_by else None,
        "reviewed_at": expense.reviewed_at.isoformat() if expense.reviewed_at else None,
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
    }


def _get_expense(db: Session, criterion, expense_id) -> Expense:
    expense = db.query(Expense).filter(
        Expense.id == parse_uuid(expense_id, "expense id"),
        criterion,
    ).first()
    if not expense:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found")
    return expense


def _positive_amount(value) -> Decimal:
    try:
        amount = Decimal(str(value))
    except ArithmeticError:
        raise ValidationError("Amount must be a positive number", code="INVALID_AMOUNT")
    if amount <= 0:
        raise ValidationError("Amount must be a positive number", code="INVALID_AMOUNT")
    return amount


def _receipt_key(scope: Scope, value):
    """Receipt keys must point at the caller's own ``receipts/`` prefix."""
    if value is None or value == "":
        return None
    key = str(value).strip()
    if not key.startswith(f"receipts/{scope.user.id}/") or ".." in key:
        raise ValidationError("Receipt does not belong to this account", code="INVALID_RECEIPT")
    return key


def _sum(db: Session, *criteria) -> float:
    total = db.query(func.coalesce(func.sum(Expense.amount), 0)).filter(*criteria).scalar()
    return float(total or 0)


def _review(db: Session, scope: Scope, expense: Expense, decision: str) -> Expense:
    scope.require_manager()
    if expense.status != "pending":
        raise ValidationError(f"Expense has already been {expense.status}", code="ALREADY_REVIEWED")

    expense.status = decision
    expense.reviewed_by = scope.user.id
    expense.reviewed_at = datetime.utcnow()
    activity.record_activity(
        db,
        organization_id=scope.organization_id,
        event_type=activity.EVENT_EXPENSE_REVIEWED,
        user_id=scope.user.id,
        entity_type="expense",
        entity_id=expense.id,
        description=f"Expense {decision}",
    )
    create_notification(
        db,
        user_id=expense.user_id,
        organization_id=expense.organization_id,
        notification_type=f"EXPENSE_{decision.upper()}",
        data={"amount": f"{float(expense.amount):.2f}", "category": expense.category},
        entity_type="expense",
        entity_id=expense.id,
    )
    db.commit()
    db.refresh(expense)
    logger.info("Expense %s %s by %s", expense.id, decision, scope.user.id)
    return expense


@router.get("", response_model=dict)
async def list_expenses(scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    expenses = db.query(Expense).filter(scope.filter(Expense)).order_by(
        Expense.date.desc(), Expense.created_at.desc()
    ).all()
    return {"success": True, "data": [serialize_expense(e) for e in expenses]}


@router.get("/overview", response_model=dict)
async def expense_overview(scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    """Totals for the scope; business accounts also get pending and approved sums."""
    in_scope = scope.filter(Expense)
    month = month_bounds()
    data = {
        "total_expenses": _sum(db, in_scope),
        "monthly_expenses": _sum(
            db,
            in_scope,
            Expense.date >= month.start.date(),
            Expense.date < month.end.date(),
        ),
        "pending_expenses": 0.0,
        "approved_expenses": 0.0,
    }
    if scope.is_business:
        data["pending_expenses"] = _sum(db, in_scope, Expense.status == "pending")
        data["approved_expenses"] = _sum(db, in_scope, Expense.status == "approved")
    return {"success": True, "data": data}


@router.post("/upload-receipt", response_model=dict, status_code=status.HTTP_201_CREATED)
async def upload_receipt(
    file: UploadFile = File(...),
    scope: Scope = Depends(get_scope),
    storage: StorageProvider = Depends(get_storage_provider),
):
    """Store a receipt file and return its storage key for ``receipt_url``."""
    filename = os.path.basename((file.filename or "").strip()) or "receipt"
    content_type = file.content_type or mimetypes.guess_type(filename)[0] or ""
    if content_type not in RECEIPT_CONTENT_TYPES:
        raise ValidationError(
            "Invalid file type. Only images (JPEG, PNG, JPG, GIF, WEBP), PDF, and text files are allowed",
            code="INVALID_FILE_TYPE",
        )

    file_bytes = await file.read()
    if not file_bytes:
        raise ValidationError("No file uploaded", code="MISSING_FILE")
    if len(file_bytes) > settings.document_max_bytes:
        raise ValidationError("File too large (max 10 MB)", code="FILE_TOO_LARGE")

    key = f"receipts/{scope.user.id}/{int(time.time() * 1000)}-{filename}"
    try:
        await run_in_threadpool(storage.upload, key, file_bytes, content_type)
    except StorageError as exc:
        logger.error("Receipt upload failed for %s: %s", scope.user.id, exc)
        raise ExternalServiceError("Failed to upload receipt", code="STORAGE_ERROR")
    return {"success": True, "data": {"receipt_url": key, "file_name": filename, "file_size": len(file_bytes)}}


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_expense(body: ExpensePayload, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    missing = [field for field in ("amount", "date") if getattr(body, field) is None]
    if not (body.category or "").strip():
        missing.append("category")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", code="MISSING_FIELDS")

    expense = Expense(
        **scope.stamp(),
        amount=_positive_amount(body.amount),
        date=body.date,
        category=body.category.strip(),
        description=body.description or "",
        notes=body.notes or "",
        receipt_url=_receipt_key(scope, body.receipt_url),
        status="pending",
    )
    db.add(expense)
    db.flush()

    activity.record_activity(
        db,
        organization_id=scope.organization_id,
        event_type=activity.EVENT_EXPENSE_CREATED,
        user_id=scope.user.id,
        entity_type="expense",
        entity_id=expense.id,
        description=f"Expense of {float(expense.amount):.2f} for {expense.category}",
    )
    create_notification(
        db,
        user_id=scope.user.id,
        organization_id=scope.organization_id,
        notification_type="EXPENSE_CREATED",
        data={"amount": f"{float(expense.amount):.2f}", "category": expense.category},
        entity_type="expense",
        entity_id=expense.id,
    )
    db.commit()
    db.refresh(expense)
    return {"success": True, "data": serialize_expense(expense)}


@router.get("/{expense_id}", response_model=dict)
async def get_expense(expense_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    return {"success": True, "data": serialize_expense(_get_expense(db, scope.filter(Expense), expense_id))}


@router.get("/{expense_id}/receipt", response_model=dict)
async def get_receipt_url(
    expense_id: str,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
):
    expense = _get_expense(db, scope.filter(Expense), expense_id)
    if not expense.receipt_url:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense has no receipt")
    try:
        url = await run_in_threadpool(storage.create_signed_url, expense.receipt_url, settings.signed_url_expiry_seconds)
    except StorageError as exc:
        logger.error("Receipt signing failed for expense %s: %s", expense.id, exc)
        raise ExternalServiceError("Failed to create receipt link", code="STORAGE_ERROR")
    return {"success": True, "data": {"url": url, "expires_in": settings.signed_url_expiry_seconds}}


@router.put("/{expense_id}", response_model=dict)
async def update_expense(
    expense_id: str,
    body: ExpensePayload,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    """Update the caller's own expense; ownership and review fields are not editable."""
    expense = _get_expense(db, scope.owned_filter(Expense), expense_id)
    changes = body.model_dump(exclude_unset=True)
    if "amount" in changes:
        changes["amount"] = _positive_amount(changes["amount"])
    if "receipt_url" in changes:
        changes["receipt_url"] = _receipt_key(scope, changes["receipt_url"])
    for field in _EDITABLE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(expense, field, changes[field])
    db.commit()
    db.refresh(expense)
    return {"success": True, "data": serialize_expense(expense)}


@router.delete("/{expense_id}", response_model=dict)
async def delete_expense(
    expense_id: str,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
):
    expense = _get_expense(db, scope.owned_filter(Expense), expense_id)
    if expense.receipt_url:
        try:
            await run_in_threadpool(storage.delete, expense.receipt_url)
        except StorageError as exc:
            logger.warning("Could not delete receipt %s: %s", expense.receipt_url, exc)
    db.delete(expense)
    db.commit()
    return {"success": True, "message": "Expense deleted successfully"}


@router.post("/{expense_id}/approve", response_model=dict)
async def approve_expense(expense_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    expense = _review(db, scope, _get_expense(db, scope.filter(Expense), expense_id), "approved")
    return {"success": True, "message": "Expense approved", "data": serialize_expense(expense)}


@router.post("/{expense_id}/reject", response_model=dict)
async def reject_expense(expense_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    expense = _review(db, scope, _get_expense(db, scope.filter(Expense), expense_id), "rejected")
    return {"success": True, "message": "Expense rejected", "data": serialize_expense(expense)}
