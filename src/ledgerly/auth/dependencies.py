"""FastAPI dependencies for authentication."""

from typing import Optional
import uuid

from fastapi import Header, HTTPException, Depends, status
from sqlalchemy.orm import Session
from jose import JWTError
from datetime import datetime, timedelta

from ledgerly.database import get_db
from ledgerly.auth.jwt import get_user_id_from_token
from ledgerly.auth.models import UserProfile


LAST_LOGIN_RESOLUTION = timedelta(hours=1)


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        HTTPException 401: Header missing or not a Bearer credential
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return authorization[7:]


def touch_last_login(db: Session, user: UserProfile, now: Optional[datetime] = None) -> bool:
    """Record activity on the profile at most once per hour.

    Returns True when the timestamp was written.
    """
    now = now or datetime.utcnow()
    last = user.last_login_at
    if last is not None and last.tzinfo is not None:
        last = last.replace(tzinfo=None)
    if last is None or (now - last) > LAST_LOGIN_RESOLUTION:
        user.last_login_at = now
        db.commit()
        return True
    return False


async def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db)
) -> UserProfile:
    """Verify JWT token and return current authenticated user.

    This dependency:
    1. Extracts the Bearer token from Authorization header
    2. Verifies the JWT using Supabase JWKS (or the legacy HS256 secret)
    3. Loads the user profile from the database
    4. Checks that the account is active
    5. Refreshes last_login_at (hourly granularity)

    Args:
        authorization: Authorization header (should be "Bearer <token>")
        db: Database session

    Returns:
        UserProfile: The authenticated user

    Raises:
        HTTPException 401: Invalid or missing token
        HTTPException 403: Account deactivated
        HTTPException 404: User profile not found
    """
    token = extract_bearer_token(authorization)

    try:
        user_id = uuid.UUID(await get_user_id_from_token(token))
    except (JWTError, ValueError, KeyError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(UserProfile).filter(UserProfile.id == user_id).first()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found. Please complete registration."
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated"
        )

    touch_last_login(db, user)
    return user
