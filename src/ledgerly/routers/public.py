"""Unauthenticated share-link views for invoices and contracts."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ledgerly.auth.models import UserProfile
from ledgerly.database import get_db
from ledgerly.metadata import Contract, Invoice
from ledgerly.organizations.models import Organization
from ledgerly.ratelimit import limiter
from ledgerly.routers.contracts import serialize_contract
from ledgerly.routers.invoices import serialize_invoice


router = APIRouter(prefix="/api/v1/public", tags=["public"])


def _issuer_name(db: Session, record) -> str:
    if record.organization_id:
        organization = db.query(Organization).filter(Organization.id == record.organization_id).first()
        if organization:
            return organization.name
    user = db.query(UserProfile).filter(UserProfile.id == record.user_id).first()
    if not user:
        return ""
    return user.business_name or user.name or ""


@router.get("/invoices/{token}", response_model=dict)
@limiter.limit("60/minute")
async def view_public_invoice(request: Request, token: str, db: Session = Depends(get_db)):
    invoice = db.query(Invoice).filter(Invoice.public_view_token == token).first() if token else None
    if not invoice:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found or link expired")
    payload = serialize_invoice(invoice, public=True)
    payload["issuer_name"] = _issuer_name(db, invoice)
    return {"success": True, "data": payload}


@router.get("/contracts/{token}", response_model=dict)
@limiter.limit("60/minute")
async def view_public_contract(request: Request, token: str, db: Session = Depends(get_db)):
    contract = db.query(Contract).filter(Contract.public_view_token == token).first() if token else None
    if not contract:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contract not found or link expired")
    payload = serialize_contract(contract, public=True)
    payload["issuer_name"] = _issuer_name(db, contract)
    return {"success": True, "data": payload}
