"""Application settings and environment configuration."""

from typing import Optional
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[2]
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = "Ledgerly"
    debug: bool = False
    environment: str = "dev"  # 'dev' or 'prod'
    log_level: str = "INFO"

    # Database
    database_url: str = "postgresql://localhost/ledgerly"
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800
    db_pool_pre_ping: bool = True
    db_connect_timeout: int = 10
    db_pool_use_lifo: bool = True

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_workers: int = 4

    # Frontend URL (redirects, share links, email links)
    app_url: str = "http://localhost:5173"

    # Supabase
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    supabase_storage_bucket: str = "documents"
    signed_url_expiry_seconds: int = 3600

    # Email (Resend)
    email_resend_api_key: Optional[str] = None
    email_from_address: str = "Ledgerly <billing@ledgerly.app>"

    # Business rules
    default_member_limit: int = 5
    invitation_expiry_days: int = 7
    subscription_grace_days: int = 30
    default_subscription_tier: str = "business"
    auto_activate_organizations: bool = False
    # Owners may mark their organization subscribed through the API
    self_service_activation: bool = False
    notification_retention_days: int = 90
    contract_expiry_window_days: int = 30
    document_max_bytes: int = 10 * 1024 * 1024

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "dev"


settings = Settings()
