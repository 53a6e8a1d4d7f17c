"""Thin client for the Supabase Auth (GoTrue) REST API."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, Optional

import httpx

from ledgerly.auth.config import AuthSettings, get_auth_settings


logger = logging.getLogger(__name__)


class SupabaseAuthError(Exception):
    """GoTrue rejected a request. ``message`` is the provider's own text."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class AuthSession:
    """Tokens and user payload returned by a successful grant."""

    access_token: str
    refresh_token: str
    expires_in: int = 3600
    user: Dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> Optional[str]:
        return self.user.get("id")

    @property
    def email(self) -> Optional[str]:
        return self.user.get("email")

    @property
    def user_metadata(self) -> Dict[str, Any]:
        return self.user.get("user_metadata") or {}


class SupabaseAuthClient:
    """Server-side calls to GoTrue using the anon key."""

    def __init__(self, settings: Optional[AuthSettings] = None, transport: Optional[httpx.BaseTransport] = None):
        self._settings = settings or get_auth_settings()
        self._transport = transport

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {
            "apikey": self._settings.supabase_anon_key,
            "Content-Type": "application/json",
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            with httpx.Client(timeout=self._settings.request_timeout_seconds, transport=self._transport) as client:
                response = client.request(
                    method,
                    f"{self._settings.auth_url}{path}",
                    headers=headers,
                    params=params,
                    json=json,
                )
        except httpx.HTTPError as exc:
            logger.error("Supabase auth request %s %s failed: %s", method, path, exc)
            raise SupabaseAuthError("Authentication service unavailable", status_code=503) from exc

        if response.status_code >= 400:
            raise SupabaseAuthError(_error_message(response), status_code=response.status_code)
        if not response.content:
            return {}
        return response.json()

    def sign_up(self, email: str, password: str, *, data: Optional[Dict[str, Any]] = None, redirect_to: Optional[str] = None) -> Dict[str, Any]:
        """Create an auth user. Returns the GoTrue user payload."""
        params = {"redirect_to": redirect_to} if redirect_to else None
        payload = self._request(
            "POST",
            "/signup",
            params=params,
            json={"email": email, "password": password, "data": data or {}},
        )
        # With email confirmation on, GoTrue returns the user at top level;
        # with autoconfirm it returns a session wrapping the user.
        user = payload.get("user") if "access_token" in payload else payload
        if not user or not user.get("id"):
            raise SupabaseAuthError("Sign up did not return a user")
        return user

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        payload = self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return _session_from_payload(payload)

    def refresh_session(self, refresh_token: str) -> AuthSession:
        payload = self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return _session_from_payload(payload)

    def exchange_code_for_session(self, auth_code: str, code_verifier: Optional[str] = None) -> AuthSession:
        payload = self._request(
            "POST",
            "/token",
            params={"grant_type": "pkce"},
            json={"auth_code": auth_code, "code_verifier": code_verifier or ""},
        )
        return _session_from_payload(payload)

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/logout", access_token=access_token)

    def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        self._request(
            "POST",
            "/recover",
            params={"redirect_to": redirect_to},
            json={"email": email},
        )

    def resend_signup_confirmation(self, email: str) -> None:
        self._request("POST", "/resend", json={"type": "signup", "email": email})


def _session_from_payload(payload: Dict[str, Any]) -> AuthSession:
    access_token = payload.get("access_token")
    if not access_token:
        raise SupabaseAuthError("Token response missing access_token")
    return AuthSession(
        access_token=access_token,
        refresh_token=payload.get("refresh_token") or "",
        expires_in=int(payload.get("expires_in") or 3600),
        user=payload.get("user") or {},
    )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    for key in ("error_description", "msg", "message", "error"):
        value = body.get(key) if isinstance(body, dict) else None
        if value:
            return str(value)
    return f"HTTP {response.status_code}"


def get_supabase_auth() -> SupabaseAuthClient:
    """FastAPI dependency returning a GoTrue client."""
    return SupabaseAuthClient()
