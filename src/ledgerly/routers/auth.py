"""Authentication endpoints backed by Supabase Auth.

Password sign-up, sign-in, refresh and recovery are proxied to Supabase so the
frontend only ever talks to this API. Local :class:`UserProfile` rows share
the Supabase user id, which lets access tokens resolve directly to a profile.

OAuth sign-in finishes at ``/callback``: Supabase redirects here with a PKCE
``code`` which is exchanged for a session; the browser is then sent back to
the frontend with the tokens (or with an ``error`` query parameter).
"""

import logging
import re
from typing import Optional
from urllib.parse import urlencode
import uuid

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledgerly.auth.dependencies import extract_bearer_token, get_current_user
from ledgerly.auth.models import UserProfile
from ledgerly.auth.schemas import (
    EmailRequest,
    LoginRequest,
    MembershipSummary,
    MeResponse,
    RefreshRequest,
    RegisterRequest,
    UserProfileResponse,
)
from ledgerly.auth.supabase import SupabaseAuthClient, SupabaseAuthError, get_supabase_auth
from ledgerly.database import get_db
from ledgerly.errors import AuthenticationError, DatabaseError, ExternalServiceError, NotFoundError, ValidationError
from ledgerly.organizations.invitations import accept_invitation, ensure_member_capacity, validate_invitation
from ledgerly.organizations.models import Organization, OrganizationMembership
from ledgerly.ratelimit import limiter
from ledgerly.settings import settings


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value and EMAIL_PATTERN.match(value))


def _serialize_user(user: UserProfile) -> dict:
    return UserProfileResponse.model_validate(user).model_dump(mode="json")


def _find_user_by_email(db: Session, email: str) -> Optional[UserProfile]:
    return db.query(UserProfile).filter(func.lower(UserProfile.email) == email.strip().lower()).first()


def _name_from_session_user(user_payload: dict, email: str) -> str:
    metadata = user_payload.get("user_metadata") or {}
    return metadata.get("name") or metadata.get("full_name") or email.split("@")[0]


def ensure_local_user(db: Session, *, user_id: str, email: str, user_payload: Optional[dict] = None) -> UserProfile:
    """Find the profile for a Supabase user by id, then by email, else create it."""
    uid = uuid.UUID(str(user_id))
    user = db.query(UserProfile).filter(UserProfile.id == uid).first()
    if user:
        return user

    user = _find_user_by_email(db, email)
    if user:
        # Same email under a different Supabase identity (e.g. OAuth after password sign-up).
        logger.info("Linking Supabase user %s to existing profile %s", uid, user.id)
        return user

    payload = user_payload or {}
    metadata = payload.get("user_metadata") or {}
    account_type = metadata.get("account_type") if metadata.get("account_type") in ("individual", "business") else "individual"
    user = UserProfile(
        id=uid,
        email=email,
        name=_name_from_session_user(payload, email),
        account_type=account_type,
        industry=metadata.get("industry"),
        business_name=metadata.get("business_name"),
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created local profile for Supabase user %s", uid)
    return user


def _tokens(session) -> dict:
    return {
        "id_token": session.access_token,
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
        "expires_in": session.expires_in,
    }


@router.post("/register", response_model=dict, status_code=201)
@limiter.limit("30/minute")
async def register(
    request: Request,
    body: RegisterRequest,
    db: Session = Depends(get_db),
    auth_client: SupabaseAuthClient = Depends(get_supabase_auth),
):
    """Create a Supabase account and the matching local profile.

    When ``invite_token`` is supplied the invitation must still be pending; it
    is accepted as part of registration.

    Raises:
        ValidationError: MISSING_FIELDS, INVALID_EMAIL, WEAK_PASSWORD,
            EMAIL_EXISTS, missing industry for business accounts, or
            MEMBER_LIMIT_REACHED when the inviting organization is full
        NotFoundError: INVITATION_INVALID
    """
    if not body.email or not body.password or not body.name:
        raise ValidationError("Please provide all required fields", code="MISSING_FIELDS")

    email = body.email.strip().lower()
    if not is_valid_email(email):
        raise ValidationError("Please provide a valid email address", code="INVALID_EMAIL")

    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
            code="WEAK_PASSWORD",
        )

    account_type = (body.account_type or "individual").lower()
    if account_type not in ("individual", "business"):
        raise ValidationError("Account type must be 'individual' or 'business'", code="INVALID_ACCOUNT_TYPE")
    if account_type == "business" and not body.industry:
        raise ValidationError("Industry is required for business accounts", code="MISSING_FIELDS")

    invitation = None
    if body.invite_token:
        invitation = validate_invitation(db, body.invite_token)
        if not invitation:
            raise NotFoundError("Invalid or expired invitation", code="INVITATION_INVALID")
        ensure_member_capacity(db, invitation.organization)

    if _find_user_by_email(db, email):
        raise ValidationError("An account with this email already exists", code="EMAIL_EXISTS")

    try:
        supabase_user = await run_in_threadpool(
            auth_client.sign_up,
            email,
            body.password,
            data={
                "name": body.name.strip(),
                "account_type": account_type,
                "industry": body.industry,
                "business_name": body.business_name,
            },
            redirect_to=f"{settings.app_url}/login",
        )
    except SupabaseAuthError as exc:
        logger.warning("Supabase sign-up failed for %s: %s", email, exc.message)
        if "already registered" in exc.message.lower():
            raise ValidationError("An account with this email already exists", code="EMAIL_EXISTS")
        raise ValidationError(exc.message, code="REGISTRATION_FAILED")

    user = UserProfile(
        id=uuid.UUID(str(supabase_user["id"])),
        email=email,
        name=body.name.strip(),
        account_type=account_type,
        industry=body.industry,
        business_name=body.business_name,
        phone=body.phone,
        is_active=True,
    )
    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to create user profile for %s: %s", email, e)
        raise DatabaseError("Failed to create user profile")

    if body.invite_token:
        accept_invitation(db, user, body.invite_token)
        db.refresh(user)

    return {
        "success": True,
        "data": {"user": _serialize_user(user)},
        "message": "Registration successful. You can now sign in.",
    }


@router.post("/login", response_model=dict)
@limiter.limit("30/minute")
async def login(
    request: Request,
    body: LoginRequest,
    db: Session = Depends(get_db),
    auth_client: SupabaseAuthClient = Depends(get_supabase_auth),
):
    """Password sign-in. Returns the local profile plus Supabase tokens."""
    if not body.email or not body.password:
        raise ValidationError("Please provide email and password", code="MISSING_FIELDS")

    email = body.email.strip().lower()
    if not is_valid_email(email):
        raise ValidationError("Please provide a valid email address", code="INVALID_EMAIL")

    try:
        session = await run_in_threadpool(auth_client.sign_in_with_password, email, body.password)
    except SupabaseAuthError as exc:
        message = exc.message.lower()
        if "invalid login credentials" in message:
            raise AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")
        if "email not confirmed" in message:
            raise ValidationError(
                "Please confirm your email address before signing in",
                code="ACCOUNT_NOT_CONFIRMED",
            )
        logger.error("Supabase sign-in failed for %s: %s", email, exc.message)
        raise AuthenticationError(exc.message, code="LOGIN_FAILED")

    user = ensure_local_user(db, user_id=session.user_id, email=session.email or email, user_payload=session.user)
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")

    return {
        "success": True,
        "data": {
            "user": _serialize_user(user),
            "tokens": _tokens(session),
        },
    }


@router.post("/refresh", response_model=dict)
@limiter.limit("60/minute")
async def refresh_token(
    request: Request,
    body: RefreshRequest,
    auth_client: SupabaseAuthClient = Depends(get_supabase_auth),
):
    """Exchange a refresh token for a new access/refresh pair."""
    if not body.refresh_token:
        raise ValidationError("Refresh token is required", code="MISSING_TOKEN")

    try:
        session = await run_in_threadpool(auth_client.refresh_session, body.refresh_token)
    except SupabaseAuthError as exc:
        logger.info("Token refresh rejected: %s", exc.message)
        raise AuthenticationError("Failed to refresh token", code="REFRESH_FAILED")

    return {
        "success": True,
        "data": {
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "expires_in": session.expires_in,
        },
    }


@router.post("/logout", response_model=dict)
async def logout(
    authorization: Optional[str] = Header(None),
    auth_client: SupabaseAuthClient = Depends(get_supabase_auth),
):
    """Revoke the caller's Supabase session when a token is supplied."""
    if authorization:
        token = extract_bearer_token(authorization)
        try:
            await run_in_threadpool(auth_client.sign_out, token)
        except SupabaseAuthError as exc:
            logger.info("Supabase sign-out failed (token likely expired): %s", exc.message)
    return {"success": True, "message": "Logged out successfully"}


@router.post("/forgot-password", response_model=dict)
@limiter.limit("10/minute")
async def forgot_password(
    request: Request,
    body: EmailRequest,
    auth_client: SupabaseAuthClient = Depends(get_supabase_auth),
):
    """Send a password recovery email.

    The response does not reveal whether the address is registered.
    """
    if not body.email:
        raise ValidationError("Email is required", code="MISSING_FIELDS")

    try:
        await run_in_threadpool(
            auth_client.reset_password_for_email,
            body.email.strip().lower(),
            redirect_to=f"{settings.app_url}/reset-password",
        )
    except SupabaseAuthError as exc:
        if exc.status_code >= 500:
            raise ExternalServiceError("Failed to send password reset email")
        logger.info("Password recovery request rejected: %s", exc.message)

    return {"success": True, "message": "If an account exists, a password reset email has been sent"}


@router.post("/resend-confirmation", response_model=dict)
@limiter.limit("10/minute")
async def resend_confirmation(
    request: Request,
    body: EmailRequest,
    auth_client: SupabaseAuthClient = Depends(get_supabase_auth),
):
    """Re-send the sign-up confirmation email."""
    if not body.email or not is_valid_email(body.email.strip()):
        raise ValidationError("Please provide a valid email address", code="INVALID_EMAIL")

    try:
        await run_in_threadpool(auth_client.resend_signup_confirmation, body.email.strip().lower())
    except SupabaseAuthError as exc:
        raise ValidationError(exc.message, code="RESEND_FAILED")

    return {"success": True, "message": "Confirmation email sent"}


def _login_redirect(error: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.app_url}/login?{urlencode({'error': error})}", status_code=status.HTTP_302_FOUND)


@router.get("/callback")
async def auth_callback(
    code: Optional[str] = Query(None),
    code_verifier: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    auth_client: SupabaseAuthClient = Depends(get_supabase_auth),
):
    """Finish an OAuth sign-in and hand the tokens to the frontend."""
    if error:
        return _login_redirect(error_description or error)

    if not code:
        return _login_redirect("no_code")

    try:
        session = await run_in_threadpool(auth_client.exchange_code_for_session, code, code_verifier)
    except SupabaseAuthError as exc:
        logger.warning("OAuth code exchange failed: %s", exc.message)
        return _login_redirect("exchange_failed")

    if not session.user_id or not session.email:
        return _login_redirect("no_user")

    try:
        ensure_local_user(db, user_id=session.user_id, email=session.email, user_payload=session.user)
    except (SQLAlchemyError, ValueError) as exc:
        db.rollback()
        logger.error("Auth callback failed for %s: %s", session.email, exc)
        return _login_redirect("callback_failed")

    query = urlencode({"token": session.access_token, "refresh": session.refresh_token})
    return RedirectResponse(f"{settings.app_url}/auth/callback?{query}", status_code=status.HTTP_302_FOUND)


@router.get("/check-invite/{token}", response_model=dict)
@limiter.limit("30/minute")
async def check_invite(request: Request, token: str, db: Session = Depends(get_db)):
    """Describe a pending invitation so the sign-up page can prefill it."""
    invitation = validate_invitation(db, token)
    if not invitation:
        raise NotFoundError("Invalid or expired invitation", code="INVITATION_INVALID")

    return {
        "success": True,
        "data": {
            "email": invitation.email,
            "role": invitation.role,
            "organization_id": str(invitation.organization_id),
            "organization_name": invitation.organization.name,
            "expires_at": invitation.invitation_expiry.isoformat(),
            "account_exists": _find_user_by_email(db, invitation.email) is not None,
        },
    }


@router.get("/me", response_model=MeResponse)
async def get_current_user_info(
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Current profile and ACTIVE organization memberships."""
    rows = db.query(OrganizationMembership, Organization).join(
        Organization, Organization.id == OrganizationMembership.organization_id
    ).filter(
        OrganizationMembership.user_id == user.id,
        OrganizationMembership.status == "ACTIVE",
        Organization.status == "ACTIVE",
    ).order_by(OrganizationMembership.created_at.asc()).all()

    return MeResponse(
        user=UserProfileResponse.model_validate(user),
        memberships=[
            MembershipSummary(
                organization_id=organization.id,
                organization_name=organization.name,
                role=membership.role,
                status=membership.status,
            )
            for membership, organization in rows
        ],
    )
