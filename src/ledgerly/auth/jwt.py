"""JWT token verification using the Supabase JWKS endpoint."""

import asyncio
import httpx
from typing import Dict, Any
from datetime import datetime, timedelta
from jose import jwt, JWTError

from ledgerly.auth.config import get_auth_settings


# Supabase signing keys rarely rotate; refresh the key set daily.
_jwks_cache: Dict[str, Any] = {}
_jwks_cache_time: datetime = datetime.min
_jwks_inflight: Any = None  # shared future so concurrent callers wait on one fetch
_JWKS_TTL = timedelta(hours=24)


def _fetch_jwks_sync() -> Dict:
    """Synchronous JWKS fetch, run in an executor."""
    settings = get_auth_settings()
    try:
        response = httpx.get(settings.jwks_url, timeout=settings.request_timeout_seconds)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPError as e:
        raise JWTError(f"Failed to fetch JWKS from {settings.jwks_url}: {str(e)}")


async def get_jwks() -> Dict:
    """Fetch and cache JWKS from Supabase. Concurrent callers share a single fetch."""
    global _jwks_cache, _jwks_cache_time, _jwks_inflight

    if _jwks_cache and datetime.utcnow() - _jwks_cache_time < _JWKS_TTL:
        return _jwks_cache

    if _jwks_inflight is not None:
        return await _jwks_inflight

    loop = asyncio.get_event_loop()
    _jwks_inflight = asyncio.ensure_future(
        loop.run_in_executor(None, _fetch_jwks_sync)
    )
    try:
        _jwks_cache = await _jwks_inflight
        _jwks_cache_time = datetime.utcnow()
        return _jwks_cache
    finally:
        _jwks_inflight = None


async def verify_supabase_jwt(token: str) -> Dict[str, Any]:
    """Verify a Supabase access token.

    Tokens signed with the project's asymmetric keys are checked against the
    JWKS. Projects still on the legacy shared secret issue HS256 tokens;
    those are accepted only when ``SUPABASE_JWT_SECRET`` is configured.

    Args:
        token: JWT access token from Supabase Auth

    Returns:
        dict: Decoded token claims, including 'sub' (user id) and 'email'

    Raises:
        JWTError: If token is invalid, expired, or verification fails
    """
    settings = get_auth_settings()
    options = {
        "verify_signature": True,
        "verify_exp": True,
        "verify_aud": True,
    }

    try:
        header = jwt.get_unverified_header(token)
        if header.get("alg") == "HS256":
            if not settings.supabase_jwt_secret:
                raise JWTError("HS256 tokens are not accepted")
            return jwt.decode(
                token,
                settings.supabase_jwt_secret,
                algorithms=["HS256"],
                audience=settings.jwt_audience,
                options=options,
            )

        jwks = await get_jwks()
        return jwt.decode(
            token,
            jwks,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except JWTError as e:
        raise JWTError(f"JWT verification failed: {str(e)}")


async def get_user_id_from_token(token: str) -> str:
    """Return the verified 'sub' claim (Supabase user id) of a token."""
    decoded = await verify_supabase_jwt(token)
    return decoded["sub"]
