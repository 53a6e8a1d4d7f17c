"""Client directory endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ledgerly import activity
from ledgerly.database import get_db
from ledgerly.errors import ConflictError, ValidationError
from ledgerly.metadata import Client, Contract, Invoice
from ledgerly.models.requests import ClientPayload
from ledgerly.notifications import notify_owner_or_org
from ledgerly.organizations.context import Scope, get_scope, parse_uuid
from ledgerly.routers.auth import is_valid_email


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/clients", tags=["clients"])

SEARCH_LIMIT = 10
CLIENT_TYPES = ("individual", "business")
CLIENT_STATUSES = ("active", "inactive")


def serialize_client(client: Client) -> dict:
    return {
        "id": str(client.id),
        "name": client.name,
        "email": client.email,
        "phone": client.phone,
        "address": client.address,
        "city": client.city,
        "state": client.state,
        "country": client.country,
        "zip_code": client.zip_code,
        "company_name": client.company_name,
        "tax_id": client.tax_id,
        "website": client.website,
        "industry": client.industry,
        "payment_terms": client.payment_terms,
        "notes": client.notes,
        "type": client.type,
        "status": client.status,
        "organization_id": str(client.organization_id) if client.organization_id else None,
        "created_at": client.created_at.isoformat() if client.created_at else None,
    }


def get_client_in_scope(db: Session, scope: Scope, client_id) -> Client:
    client = db.query(Client).filter(
        Client.id == parse_uuid(client_id, "client id"),
        scope.filter(Client),
    ).first()
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return client


def _check_duplicates(db: Session, scope: Scope, name: str, email: Optional[str], exclude_id=None) -> None:
    criteria = [func.lower(Client.name) == name.lower()]
    if email:
        criteria.append(func.lower(Client.email) == email.lower())
    query = db.query(Client).filter(scope.filter(Client), or_(*criteria))
    if exclude_id is not None:
        query = query.filter(Client.id != exclude_id)
    if query.first():
        raise ConflictError("A client with this name or email already exists", code="DUPLICATE_CLIENT")


def _validate_client_fields(values: dict) -> dict:
    if "email" in values and values["email"]:
        values["email"] = values["email"].strip().lower()
        if not is_valid_email(values["email"]):
            raise ValidationError("Please provide a valid email address", code="INVALID_EMAIL")
    if values.get("type") is not None and values["type"] not in CLIENT_TYPES:
        raise ValidationError(f"Invalid client type: {values['type']}")
    if values.get("status") is not None and values["status"] not in CLIENT_STATUSES:
        raise ValidationError(f"Invalid client status: {values['status']}")
    return values


def create_client(db: Session, scope: Scope, payload: ClientPayload, *, notify: bool = True) -> Client:
    """Validate and add a client in ``scope`` (caller commits)."""
    name = str(payload.name or "").strip()
    if not name:
        raise ValidationError("Client name is required", code="MISSING_FIELDS")
    values = _validate_client_fields(payload.model_dump(exclude_unset=True, exclude_none=True))
    values["name"] = name
    if "type" not in values:
        values["type"] = "business" if values.get("company_name") else "individual"
    _check_duplicates(db, scope, name, values.get("email"))

    client = Client(user_id=scope.user.id, organization_id=scope.organization_id, **values)
    db.add(client)
    db.flush()

    activity.record_activity(
        db,
        organization_id=scope.organization_id,
        event_type=activity.EVENT_CLIENT_CREATED,
        user_id=scope.user.id,
        entity_type="client",
        entity_id=client.id,
        description=f"Client {name} added",
    )
    if notify:
        notify_owner_or_org(
            db,
            user_id=scope.user.id,
            organization_id=scope.organization_id,
            notification_type="CLIENT_CREATED",
            data={"clientName": name},
            entity_type="client",
            entity_id=client.id,
        )
    return client


@router.get("", response_model=dict)
async def list_clients(scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    clients = db.query(Client).filter(scope.filter(Client)).order_by(Client.name.asc()).all()
    return {"success": True, "data": [serialize_client(c) for c in clients]}


@router.get("/search", response_model=dict)
async def search_clients(
    q: Optional[str] = Query(None),
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    if not q or not q.strip():
        raise ValidationError("Search query is required", code="MISSING_QUERY")
    pattern = f"%{q.strip()}%"
    clients = db.query(Client).filter(
        scope.filter(Client),
        or_(
            Client.name.ilike(pattern),
            Client.email.ilike(pattern),
            Client.company_name.ilike(pattern),
        ),
    ).order_by(Client.name.asc()).limit(SEARCH_LIMIT).all()
    return {"success": True, "data": [serialize_client(c) for c in clients]}


@router.get("/analytics", response_model=dict)
async def client_analytics(scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    total_revenue = db.query(func.coalesce(func.sum(Invoice.total_amount), 0)).filter(
        scope.filter(Invoice),
        Invoice.status == "PAID",
    ).scalar()
    by_type = dict(
        db.query(Client.type, func.count(Client.id)).filter(scope.filter(Client)).group_by(Client.type).all()
    )
    return {
        "success": True,
        "data": {
            "total_clients": sum(by_type.values()),
            "total_revenue": float(total_revenue or 0),
            "by_type": {client_type: int(by_type.get(client_type, 0)) for client_type in CLIENT_TYPES},
        },
    }


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def add_client(body: ClientPayload, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    client = create_client(db, scope, body)
    db.commit()
    db.refresh(client)
    return {"success": True, "data": serialize_client(client)}


@router.get("/{client_id}", response_model=dict)
async def get_client(client_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    return {"success": True, "data": serialize_client(get_client_in_scope(db, scope, client_id))}


@router.put("/{client_id}", response_model=dict)
async def update_client(
    client_id: str,
    body: ClientPayload,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    client = get_client_in_scope(db, scope, client_id)
    values = _validate_client_fields(body.model_dump(exclude_unset=True))
    if "name" in values:
        values["name"] = str(values["name"] or "").strip()
        if not values["name"]:
            raise ValidationError("Client name is required", code="MISSING_FIELDS")
    if "name" in values or values.get("email"):
        _check_duplicates(db, scope, values.get("name", client.name), values.get("email"), exclude_id=client.id)
    for field, value in values.items():
        setattr(client, field, value)
    db.commit()
    db.refresh(client)
    return {"success": True, "data": serialize_client(client)}


@router.delete("/{client_id}", response_model=dict)
async def delete_client(client_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    client = get_client_in_scope(db, scope, client_id)
    db.delete(client)
    db.commit()
    return {"success": True, "message": "Client deleted successfully"}


@router.get("/{client_id}/invoices", response_model=dict)
async def client_invoices(client_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    from ledgerly.routers.invoices import serialize_invoice

    client = get_client_in_scope(db, scope, client_id)
    invoices = db.query(Invoice).filter(
        Invoice.client_id == client.id,
        scope.filter(Invoice),
    ).order_by(Invoice.created_at.desc()).all()
    return {"success": True, "data": [serialize_invoice(i) for i in invoices]}


@router.get("/{client_id}/contracts", response_model=dict)
async def client_contracts(client_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    from ledgerly.routers.contracts import serialize_contract

    client = get_client_in_scope(db, scope, client_id)
    contracts = db.query(Contract).filter(
        Contract.client_id == client.id,
        scope.filter(Contract),
    ).order_by(Contract.created_at.desc()).all()
    return {"success": True, "data": [serialize_contract(c) for c in contracts]}
