"""Contract endpoints: CRUD, approval workflow, renewal and delivery."""

from datetime import datetime
from decimal import Decimal
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ledgerly import activity, contracts
from ledgerly.database import get_db
from ledgerly.email import send_contract_email
from ledgerly.errors import ExternalServiceError, ValidationError
from ledgerly.metadata import BILLING_FREQUENCIES, CONTRACT_STATUSES, CONTRACT_TYPES, Contract
from ledgerly.models.requests import ContractPayload, RenewalSettingsRequest, SendDocumentRequest, StatusChangeRequest
from ledgerly.notifications import create_notification, notify_owner_or_org
from ledgerly.organizations.context import Scope, get_scope, parse_uuid
from ledgerly.routers.auth import is_valid_email
from ledgerly.routers.clients import get_client_in_scope
from ledgerly.settings import settings


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/contracts", tags=["contracts"])

_EDITABLE_FIELDS = (
    "title",
    "description",
    "start_date",
    "end_date",
    "value",
    "currency",
    "payment_terms",
    "contract_type",
    "billing_frequency",
)


def serialize_contract(contract: Contract, *, public: bool = False) -> dict:
    payload = {
        "id": str(contract.id),
        "title": contract.title,
        "description": contract.description,
        "start_date": contract.start_date.isoformat() if contract.start_date else None,
        "end_date": contract.end_date.isoformat() if contract.end_date else None,
        "status": contract.status,
        "value": float(contract.value or 0),
        "currency": contract.currency,
        "payment_terms": contract.payment_terms,
        "contract_type": contract.contract_type,
        "billing_frequency": contract.billing_frequency,
        "client": (
            {
                "id": str(contract.client.id),
                "name": contract.client.name,
                "email": contract.client.email,
                "company_name": contract.client.company_name,
            }
            if contract.client
            else None
        ),
        "created_at": contract.created_at.isoformat() if contract.created_at else None,
    }
    if public:
        return payload

    payload.update({
        "client_id": str(contract.client_id),
        "organization_id": str(contract.organization_id) if contract.organization_id else None,
        "user_id": str(contract.user_id),
        "account_type": contract.account_type,
        "auto_renew": bool(contract.auto_renew),
        "renewal_terms": contracts.renewal_terms(contract),
        "last_renewal_date": contract.last_renewal_date.isoformat() if contract.last_renewal_date else None,
        "next_renewal_date": contract.next_renewal_date.isoformat() if contract.next_renewal_date else None,
        "renewal_history": contract.renewal_history or [],
        "notifications_sent": contract.notifications_sent or [],
        "approval_status": contract.approval_status,
        "approved_by": str(contract.approved_by) if contract.approved_by else None,
        "approved_at": contract.approved_at.isoformat() if contract.approved_at else None,
        "email_sent_at": contract.email_sent_at.isoformat() if contract.email_sent_at else None,
        "email_sent_to": contract.email_sent_to,
        "metadata": contract.extra or {},
        "updated_at": contract.updated_at.isoformat() if contract.updated_at else None,
    })
    return payload


def get_contract_in_scope(db: Session, scope: Scope, contract_id) -> Contract:
    contract = db.query(Contract).filter(
        Contract.id == parse_uuid(contract_id, "contract id"),
        scope.filter(Contract),
    ).first()
    if not contract:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contract not found")
    return contract


def _validate_contract(contract: Contract) -> None:
    if not str(contract.title or "").strip():
        raise ValidationError("Contract title is required", code="MISSING_FIELDS")
    if contract.start_date is None:
        raise ValidationError("Contract start date is required", code="MISSING_FIELDS")
    if contract.end_date is not None and contract.end_date < contract.start_date:
        raise ValidationError("End date must be after the start date")
    if Decimal(contract.value or 0) < 0:
        raise ValidationError("Contract value cannot be negative", code="INVALID_AMOUNT")
    if contract.contract_type not in CONTRACT_TYPES:
        raise ValidationError(f"Invalid contract type: {contract.contract_type}")
    if contract.billing_frequency not in BILLING_FREQUENCIES:
        raise ValidationError(f"Invalid billing frequency: {contract.billing_frequency}")


def _review(db: Session, scope: Scope, contract: Contract, decision: str) -> Contract:
    scope.require_manager()
    contract.approval_status = decision
    contract.approved_by = scope.user.id
    contract.approved_at = datetime.utcnow()
    if contract.user_id != scope.user.id:
        create_notification(
            db,
            user_id=contract.user_id,
            organization_id=contract.organization_id,
            notification_type=f"CONTRACT_{decision}",
            data={"contractTitle": contract.title, "approverName": scope.user.name or scope.user.email},
            entity_type="contract",
            entity_id=contract.id,
        )
    db.commit()
    db.refresh(contract)
    logger.info("Contract %s %s by %s", contract.id, decision.lower(), scope.user.id)
    return contract


@router.get("", response_model=dict)
async def list_contracts(
    status_filter: Optional[str] = Query(None, alias="status"),
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    query = db.query(Contract).filter(scope.filter(Contract))
    if status_filter:
        normalized = status_filter.strip().upper()
        if normalized not in CONTRACT_STATUSES:
            raise ValidationError(f"Invalid contract status: {status_filter}")
        query = query.filter(Contract.status == normalized)
    contract_rows = query.order_by(Contract.created_at.desc()).all()
    return {"success": True, "data": [serialize_contract(c) for c in contract_rows]}


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_contract(body: ContractPayload, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    if not body.client_id:
        raise ValidationError("Client is required", code="MISSING_CLIENT")
    client = get_client_in_scope(db, scope, body.client_id)

    values = {field: getattr(body, field) for field in _EDITABLE_FIELDS if getattr(body, field) is not None}
    contract = Contract(
        **scope.stamp(),
        client_id=client.id,
        status="DRAFT",
        contract_type=values.pop("contract_type", "service_agreement"),
        billing_frequency=values.pop("billing_frequency", "one_time"),
        auto_renew=bool(body.auto_renew),
        extra=dict(body.metadata or {}),
        **values,
    )
    contract.renewal_history = []
    contract.notifications_sent = []
    _validate_contract(contract)
    contracts.apply_renewal_settings(contract, terms=body.renewal_terms)
    db.add(contract)
    db.flush()

    activity.record_activity(
        db,
        organization_id=scope.organization_id,
        event_type=activity.EVENT_CONTRACT_CREATED,
        user_id=scope.user.id,
        entity_type="contract",
        entity_id=contract.id,
        description=f"Contract {contract.title} created",
    )
    notify_owner_or_org(
        db,
        user_id=scope.user.id,
        organization_id=scope.organization_id,
        notification_type="CONTRACT_CREATED",
        data={"contractTitle": contract.title, "clientName": client.name},
        entity_type="contract",
        entity_id=contract.id,
    )
    db.commit()
    db.refresh(contract)
    logger.info("Contract %s created by %s", contract.id, scope.user.id)
    return {"success": True, "data": serialize_contract(contract)}


@router.get("/{contract_id}", response_model=dict)
async def get_contract(contract_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    return {"success": True, "data": serialize_contract(get_contract_in_scope(db, scope, contract_id))}


@router.put("/{contract_id}", response_model=dict)
async def update_contract(
    contract_id: str,
    body: ContractPayload,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    contract = get_contract_in_scope(db, scope, contract_id)
    changes = body.model_dump(exclude_unset=True)

    if body.client_id is not None:
        contract.client_id = get_client_in_scope(db, scope, body.client_id).id
    for field in _EDITABLE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(contract, field, changes[field])
    if "metadata" in changes:
        contract.extra = dict(body.metadata or {})
    _validate_contract(contract)

    if "auto_renew" in changes or "renewal_terms" in changes or "end_date" in changes:
        contracts.apply_renewal_settings(contract, auto_renew=body.auto_renew, terms=body.renewal_terms)

    db.commit()
    db.refresh(contract)
    return {"success": True, "data": serialize_contract(contract)}


@router.delete("/{contract_id}", response_model=dict)
async def delete_contract(contract_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    contract = get_contract_in_scope(db, scope, contract_id)
    db.delete(contract)
    db.commit()
    return {"success": True, "message": "Contract deleted successfully"}


@router.patch("/{contract_id}/status", response_model=dict)
async def change_contract_status(
    contract_id: str,
    body: StatusChangeRequest,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    contract = get_contract_in_scope(db, scope, contract_id)
    contracts.change_status(contract, body.status)
    db.commit()
    db.refresh(contract)
    return {"success": True, "data": serialize_contract(contract)}


@router.post("/{contract_id}/approve", response_model=dict)
async def approve_contract(contract_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    contract = _review(db, scope, get_contract_in_scope(db, scope, contract_id), "APPROVED")
    return {"success": True, "message": "Contract approved", "data": serialize_contract(contract)}


@router.post("/{contract_id}/reject", response_model=dict)
async def reject_contract(contract_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    contract = _review(db, scope, get_contract_in_scope(db, scope, contract_id), "REJECTED")
    return {"success": True, "message": "Contract rejected", "data": serialize_contract(contract)}


@router.post("/{contract_id}/cancel", response_model=dict)
async def cancel_contract(contract_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    contract = get_contract_in_scope(db, scope, contract_id)
    contracts.change_status(contract, contracts.CANCELLED)
    contract.next_renewal_date = None
    db.commit()
    db.refresh(contract)
    return {"success": True, "message": "Contract cancelled", "data": serialize_contract(contract)}


@router.post("/{contract_id}/renew", response_model=dict)
async def renew_contract(contract_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    contract = get_contract_in_scope(db, scope, contract_id)
    result = contracts.renew_contract(db, contract, user_id=scope.user.id)
    db.commit()
    renewed = result["contract"]
    db.refresh(renewed)
    return {"success": True, "message": result["message"], "data": serialize_contract(renewed)}


@router.put("/{contract_id}/renewal-settings", response_model=dict)
async def update_renewal_settings(
    contract_id: str,
    body: RenewalSettingsRequest,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    contract = get_contract_in_scope(db, scope, contract_id)
    contracts.apply_renewal_settings(contract, auto_renew=body.auto_renew, terms=body.renewal_terms)
    db.commit()
    db.refresh(contract)
    return {"success": True, "data": serialize_contract(contract)}


@router.post("/{contract_id}/send", response_model=dict)
async def send_contract(
    contract_id: str,
    body: SendDocumentRequest,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    """Email the client a public review link for the contract."""
    contract = get_contract_in_scope(db, scope, contract_id)
    recipient = (body.email or (contract.client.email if contract.client else None) or "").strip().lower()
    if not recipient:
        raise ValidationError("Recipient email is required", code="MISSING_EMAIL")
    if not is_valid_email(recipient):
        raise ValidationError("Please provide a valid email address", code="INVALID_EMAIL")

    if not contract.public_view_token:
        contract.public_view_token = secrets.token_hex(32)
    public_url = f"{settings.app_url}/public/contract/{contract.public_view_token}"

    sent = await run_in_threadpool(
        send_contract_email,
        recipient,
        public_url,
        contract.title,
        sender_name=scope.organization.name if scope.is_business else scope.user.name,
        message=body.message,
    )
    if not sent:
        db.rollback()
        raise ExternalServiceError("Failed to send contract email", code="EMAIL_FAILED")

    if contract.status == contracts.DRAFT:
        contract.status = contracts.PENDING_SIGNATURE
    contract.email_sent_at = datetime.utcnow()
    contract.email_sent_to = recipient
    db.commit()
    db.refresh(contract)
    return {
        "success": True,
        "message": "Contract sent successfully",
        "data": {"contract": serialize_contract(contract), "public_url": public_url},
    }
