"""SQLAlchemy models for Supabase-backed user accounts."""

from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ledgerly.metadata import Base


class UserProfile(Base):
    """Local profile for a Supabase Auth user.

    The primary key is the Supabase ``auth.users.id`` so that the ``sub``
    claim of an access token maps directly onto a row.

    Attributes:
        id: UUID primary key from auth.users.id
        email: User's email address (unique)
        name: Display name
        account_type: 'individual' or 'business'
        default_organization_id: Organization a business account works in
        is_active: Whether the account may sign in (default True)
        cancel_scheduled: Account-level subscription cancel flag
        subscription_end_date: When a scheduled cancellation takes effect
        last_login_at: Last successful authenticated request (hourly granularity)
    """

    __tablename__ = "user_profiles"

    id = Column(UUID(as_uuid=True), primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    account_type = Column(String(20), nullable=False, default="individual")
    default_organization_id = Column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="SET NULL", use_alter=True),
        nullable=True,
    )

    # Profile
    industry = Column(String(100))
    business_name = Column(String(255))
    phone = Column(String(50))
    address = Column(String(255))
    city = Column(String(100))
    state = Column(String(100))
    country = Column(String(100))
    zip_code = Column(String(20))
    tax_id = Column(String(100))

    is_active = Column(Boolean, default=True, nullable=False)
    cancel_scheduled = Column(Boolean, default=False, nullable=False)
    subscription_end_date = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login_at = Column(DateTime, nullable=True)

    # Relationships
    memberships = relationship(
        "OrganizationMembership",
        back_populates="user",
        foreign_keys="[OrganizationMembership.user_id]",
        cascade="all, delete-orphan",
    )
    preferences = relationship(
        "UserPreference",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("account_type IN ('individual', 'business')", name="ck_user_profiles_account_type"),
    )

    @property
    def is_business(self) -> bool:
        return self.account_type == "business"

    def __repr__(self) -> str:
        return f"<UserProfile(id={self.id}, email={self.email}, type={self.account_type})>"


class UserPreference(Base):
    """Per-user UI and notification preferences."""

    __tablename__ = "user_preferences"

    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    email_notifications = Column(Boolean, nullable=False, default=True)
    push_notifications = Column(Boolean, nullable=False, default=True)
    dark_mode = Column(Boolean, nullable=False, default=False)
    language = Column(String(10), nullable=False, default="en")

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("UserProfile", back_populates="preferences")

    def __repr__(self) -> str:
        return f"<UserPreference(user={self.user_id}, language={self.language})>"
