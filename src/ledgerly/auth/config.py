"""Supabase Auth configuration."""

from functools import lru_cache
from typing import Optional
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[3]
ENV_FILE = BASE_DIR / ".env"


class AuthSettings(BaseSettings):
    """Supabase Auth settings from environment variables."""

    supabase_url: str = "http://localhost:54321"
    """Supabase project URL (e.g., https://xxx.supabase.co)"""

    supabase_anon_key: str = ""
    """Supabase public (anonymous) API key, sent with GoTrue calls"""

    supabase_service_role_key: str = ""
    """Supabase service role key - server-only, bypasses RLS"""

    supabase_jwt_secret: Optional[str] = None
    """Legacy HS256 project secret; enables symmetric verification when set"""

    jwt_algorithm: str = "ES256"
    """Asymmetric algorithm of the project's signing keys"""

    jwt_audience: str = "authenticated"
    """JWT audience claim expected by Supabase"""

    request_timeout_seconds: float = 10.0

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def jwks_url(self) -> str:
        """JWKS endpoint URL for fetching public keys."""
        return f"{self.supabase_url}/auth/v1/.well-known/jwks.json"

    @property
    def auth_url(self) -> str:
        """Base URL of the GoTrue REST API."""
        return f"{self.supabase_url}/auth/v1"

    @property
    def storage_url(self) -> str:
        """Base URL of the Storage REST API."""
        return f"{self.supabase_url}/storage/v1"


@lru_cache(maxsize=1)
def get_auth_settings() -> AuthSettings:
    """Get cached auth settings.

    Loaded from SUPABASE_URL, SUPABASE_ANON_KEY, SUPABASE_SERVICE_ROLE_KEY and
    SUPABASE_JWT_SECRET (environment or ``.env``).

    Returns:
        AuthSettings: Cached settings instance
    """
    return AuthSettings()
