"""Pydantic schemas for auth and user endpoints."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    """Sign-up payload. Field presence is checked by the handler so that
    missing values produce the MISSING_FIELDS error code instead of a 422."""

    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    account_type: str = Field(default="individual", description="'individual' or 'business'")
    industry: Optional[str] = None
    business_name: Optional[str] = None
    phone: Optional[str] = None
    invite_token: Optional[str] = Field(default=None, description="Pending organization invitation to accept")


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class EmailRequest(BaseModel):
    email: Optional[str] = None


class MembershipSummary(BaseModel):
    organization_id: UUID
    organization_name: str
    role: str
    status: str


class UserProfileResponse(BaseModel):
    id: UUID
    email: str
    name: str
    account_type: str
    default_organization_id: Optional[UUID] = None
    industry: Optional[str] = None
    business_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None
    tax_id: Optional[str] = None
    is_active: bool
    cancel_scheduled: bool = False
    subscription_end_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MeResponse(BaseModel):
    user: UserProfileResponse
    memberships: List[MembershipSummary] = Field(default_factory=list)


class UserUpdateRequest(BaseModel):
    """Profile fields a user may change on their own account."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = None
    industry: Optional[str] = None
    business_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None
    tax_id: Optional[str] = None


class PreferencesRequest(BaseModel):
    email_notifications: Optional[bool] = None
    push_notifications: Optional[bool] = None
    dark_mode: Optional[bool] = None
    language: Optional[str] = Field(default=None, min_length=2, max_length=10)


class PreferencesResponse(BaseModel):
    email_notifications: bool
    push_notifications: bool
    dark_mode: bool
    language: str

    class Config:
        from_attributes = True
