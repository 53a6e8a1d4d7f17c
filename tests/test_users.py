"""Tests for the current-user profile and preferences endpoints."""

import asyncio
import uuid

import pytest
from sqlalchemy.orm import Session

from ledgerly.auth.models import UserPreference, UserProfile
from ledgerly.auth.schemas import PreferencesRequest, UserUpdateRequest
from ledgerly.errors import ValidationError
from ledgerly.routers import users


def _create_user(test_db: Session, account_type: str = "individual") -> UserProfile:
    user = UserProfile(
        id=uuid.uuid4(),
        email=f"{account_type}@example.com",
        name="Pat Profile",
        account_type=account_type,
        is_active=True,
    )
    test_db.add(user)
    test_db.commit()
    return user


def test_update_profile_trims_values(test_db: Session):
    user = _create_user(test_db)

    profile = asyncio.run(users.update_profile(
        body=UserUpdateRequest(name="  Pat Updated ", city="Lisbon"),
        user=user,
        db=test_db,
    ))

    assert profile.name == "Pat Updated"
    assert profile.city == "Lisbon"
    assert profile.email == "individual@example.com"


def test_update_profile_rejects_blank_name(test_db: Session):
    user = _create_user(test_db)

    with pytest.raises(ValidationError):
        asyncio.run(users.update_profile(body=UserUpdateRequest(name="   "), user=user, db=test_db))


def test_preferences_created_on_first_read(test_db: Session):
    user = _create_user(test_db)

    preferences = asyncio.run(users.get_preferences(user=user, db=test_db))

    assert preferences.language == "en"
    assert preferences.dark_mode is False
    assert test_db.query(UserPreference).count() == 1


def test_update_preferences_ignores_unset_fields(test_db: Session):
    user = _create_user(test_db)

    preferences = asyncio.run(users.update_preferences(
        body=PreferencesRequest(dark_mode=True, language="pt"),
        user=user,
        db=test_db,
    ))

    assert preferences.dark_mode is True
    assert preferences.language == "pt"
    assert preferences.email_notifications is True


def test_account_settings_features_by_account_type(test_db: Session):
    individual = asyncio.run(users.get_account_settings(user=_create_user(test_db), db=test_db))
    business = asyncio.run(users.get_account_settings(user=_create_user(test_db, "business"), db=test_db))

    assert "team" not in individual["features"]
    assert "approvals" in business["features"]
    assert individual["subscription"] == {"cancel_scheduled": False, "subscription_end_date": None}
    assert individual["preferences"]["language"] == "en"
