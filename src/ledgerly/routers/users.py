"""Current-user profile, preferences and account settings."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ledgerly.auth.dependencies import get_current_user
from ledgerly.auth.models import UserPreference, UserProfile
from ledgerly.auth.schemas import PreferencesRequest, PreferencesResponse, UserProfileResponse, UserUpdateRequest
from ledgerly.database import get_db
from ledgerly.errors import ValidationError


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["users"])

INDIVIDUAL_FEATURES = ["invoices", "contracts", "clients", "expenses", "documents", "analytics"]
BUSINESS_FEATURES = INDIVIDUAL_FEATURES + ["team", "departments", "approvals", "activity_log"]


def get_or_create_preferences(db: Session, user: UserProfile) -> UserPreference:
    preferences = db.query(UserPreference).filter(UserPreference.user_id == user.id).first()
    if preferences is None:
        preferences = UserPreference(user_id=user.id)
        db.add(preferences)
        db.commit()
        db.refresh(preferences)
    return preferences


@router.get("/me", response_model=UserProfileResponse)
async def get_profile(user: UserProfile = Depends(get_current_user)):
    return UserProfileResponse.model_validate(user)


@router.put("/me", response_model=UserProfileResponse)
async def update_profile(
    body: UserUpdateRequest,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update the caller's own profile; only fields on :class:`UserUpdateRequest` are accepted."""
    changes = body.model_dump(exclude_unset=True)
    if "name" in changes and not str(changes["name"] or "").strip():
        raise ValidationError("Name cannot be empty")
    for field, value in changes.items():
        setattr(user, field, value.strip() if isinstance(value, str) else value)
    db.commit()
    db.refresh(user)
    return UserProfileResponse.model_validate(user)


@router.get("/me/preferences", response_model=PreferencesResponse)
async def get_preferences(
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return PreferencesResponse.model_validate(get_or_create_preferences(db, user))


@router.put("/me/preferences", response_model=PreferencesResponse)
async def update_preferences(
    body: PreferencesRequest,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    preferences = get_or_create_preferences(db, user)
    for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(preferences, field, value)
    db.commit()
    db.refresh(preferences)
    return PreferencesResponse.model_validate(preferences)


@router.get("/settings", response_model=dict)
async def get_account_settings(
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Account type, enabled features and preferences for the settings page."""
    preferences = get_or_create_preferences(db, user)
    return {
        "account_type": user.account_type,
        "features": BUSINESS_FEATURES if user.is_business else INDIVIDUAL_FEATURES,
        "default_organization_id": str(user.default_organization_id) if user.default_organization_id else None,
        "subscription": {
            "cancel_scheduled": bool(user.cancel_scheduled),
            "subscription_end_date": user.subscription_end_date.isoformat() if user.subscription_end_date else None,
        },
        "preferences": PreferencesResponse.model_validate(preferences).model_dump(),
    }
