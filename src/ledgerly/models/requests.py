"""Pydantic request models for API endpoints."""

import datetime as dt
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class OrganizationCreateRequest(BaseModel):
    name: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    features: List[str] = Field(default_factory=list)


class OrganizationUpdateRequest(BaseModel):
    name: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    features: Optional[List[str]] = None


class InviteMemberRequest(BaseModel):
    email: Optional[str] = None
    role: Optional[str] = Field(default=None, description="ADMIN, MANAGER, MEMBER or VIEWER (default MEMBER)")
    department: Optional[str] = None
    position: Optional[str] = None


class AcceptInvitationRequest(BaseModel):
    token: Optional[str] = None


class MemberUpdateRequest(BaseModel):
    role: Optional[str] = None
    status: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    permissions: Optional[Dict[str, Any]] = None


class ActivateSubscriptionRequest(BaseModel):
    tier: Optional[str] = Field(default=None, description="Plan tier purchased at checkout")


class DepartmentRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    manager_id: Optional[UUID] = None
    parent_department_id: Optional[UUID] = None
    status: Optional[str] = None


class ClientPayload(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None
    company_name: Optional[str] = None
    tax_id: Optional[str] = None
    website: Optional[str] = None
    industry: Optional[str] = None
    payment_terms: Optional[str] = None
    notes: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None


class InvoiceItemPayload(BaseModel):
    description: Optional[str] = None
    quantity: int = Field(default=1, ge=0)
    unit_price: Decimal = Field(default=Decimal("0"))


class InvoicePayload(BaseModel):
    client_id: Optional[UUID] = None
    client: Optional[ClientPayload] = Field(default=None, description="Inline client created with the invoice")
    status: Optional[str] = None
    invoice_number: Optional[str] = None
    issue_date: Optional[dt.date] = None
    due_date: Optional[dt.date] = None
    total_amount: Optional[Decimal] = None
    sub_total: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    notes: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    purchase_order_number: Optional[str] = None
    project_code: Optional[str] = None
    payment_terms: Optional[str] = None
    template_id: Optional[str] = None
    payment_information: Optional[Dict[str, Any]] = None
    items: Optional[List[InvoiceItemPayload]] = None


class SendDocumentRequest(BaseModel):
    email: Optional[str] = None
    message: Optional[str] = None


class ContractPayload(BaseModel):
    client_id: Optional[UUID] = None
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    value: Optional[Decimal] = None
    currency: Optional[str] = None
    payment_terms: Optional[str] = None
    contract_type: Optional[str] = None
    billing_frequency: Optional[str] = None
    auto_renew: Optional[bool] = None
    renewal_terms: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None


class StatusChangeRequest(BaseModel):
    status: Optional[str] = None


class RenewalSettingsRequest(BaseModel):
    auto_renew: Optional[bool] = None
    renewal_terms: Optional[Dict[str, Any]] = None


class ExpensePayload(BaseModel):
    amount: Optional[Decimal] = None
    date: Optional[dt.date] = None
    category: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    receipt_url: Optional[str] = None


class NotificationCreateRequest(BaseModel):
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[UUID] = Field(default=None, description="Recipient (defaults to the caller)")
    organization_id: Optional[UUID] = None
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    channels: Optional[List[str]] = None
