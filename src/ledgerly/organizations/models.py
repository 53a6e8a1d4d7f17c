"""SQLAlchemy models for organizations, memberships and departments."""

from datetime import datetime
import uuid

from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, ForeignKey, CheckConstraint, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from ledgerly.metadata import Base


ROLE_OWNER = "OWNER"
ROLE_ADMIN = "ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_MEMBER = "MEMBER"
ROLE_VIEWER = "VIEWER"
ROLES = (ROLE_OWNER, ROLE_ADMIN, ROLE_MANAGER, ROLE_MEMBER, ROLE_VIEWER)
ADMIN_ROLES = (ROLE_OWNER, ROLE_ADMIN)
MANAGER_ROLES = (ROLE_OWNER, ROLE_ADMIN, ROLE_MANAGER)

MEMBER_PENDING = "PENDING"
MEMBER_ACTIVE = "ACTIVE"
MEMBER_INACTIVE = "INACTIVE"

ORG_ACTIVE = "ACTIVE"
ORG_SUSPENDED = "SUSPENDED"
ORG_DELETED = "DELETED"
ORG_INACTIVE = "INACTIVE"

DEFAULT_ORG_SETTINGS = {
    "requireInvoiceApproval": False,
    "requireExpenseApproval": False,
    "autoReminders": True,
    "allowMemberInvites": True,
}


def default_org_settings() -> dict:
    return dict(DEFAULT_ORG_SETTINGS)


class Organization(Base):
    """A tenant: a business with members, subscription state and settings.

    Attributes:
        status: ACTIVE, SUSPENDED, DELETED (soft delete) or INACTIVE
        member_limit: Maximum number of ACTIVE memberships
        is_subscribed: Set once the owner completes checkout
        subscription_tier: Plan name (e.g. 'business')
        cancel_scheduled: Owner requested cancellation at period end
        subscription_end_date: When a scheduled cancellation takes effect
    """

    __tablename__ = "organizations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    industry = Column(String(100))
    description = Column(Text)
    features = Column(JSONB, default=list)
    settings = Column(JSONB, default=default_org_settings)
    status = Column(String(20), nullable=False, default=ORG_ACTIVE, index=True)
    member_limit = Column(Integer, nullable=False, default=5)

    # Subscription
    is_subscribed = Column(Boolean, nullable=False, default=False)
    subscription_tier = Column(String(50), nullable=True)
    subscription_end_date = Column(DateTime, nullable=True)
    cancel_scheduled = Column(Boolean, nullable=False, default=False)

    created_by = Column(UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    memberships = relationship(
        "OrganizationMembership",
        back_populates="organization",
        cascade="all, delete-orphan",
    )
    departments = relationship("Department", back_populates="organization", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'SUSPENDED', 'DELETED', 'INACTIVE')",
            name="ck_organizations_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name}, status={self.status})>"


class OrganizationMembership(Base):
    """User membership in an organization, doubling as the invitation record.

    Invitations are PENDING rows with ``user_id`` unset, an ``invitation_token``
    and an ``invitation_expiry``. Accepting an invitation claims the row.
    """

    __tablename__ = "organization_users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    email = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=ROLE_MEMBER)
    status = Column(String(20), nullable=False, default=MEMBER_PENDING)

    invitation_token = Column(String(64), unique=True, nullable=True)
    invitation_expiry = Column(DateTime, nullable=True)
    invited_by = Column(UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="SET NULL"), nullable=True)

    department = Column(String(100))
    position = Column(String(100))
    permissions = Column(JSONB, default=dict)
    last_accessed = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization = relationship("Organization", back_populates="memberships")
    user = relationship("UserProfile", back_populates="memberships", foreign_keys=[user_id])

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_organization_users_org_user"),
        CheckConstraint(
            "role IN ('OWNER', 'ADMIN', 'MANAGER', 'MEMBER', 'VIEWER')",
            name="ck_organization_users_role",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'ACTIVE', 'INACTIVE')",
            name="ck_organization_users_status",
        ),
        Index("idx_organization_users_org_status", "organization_id", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == MEMBER_ACTIVE

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    def __repr__(self) -> str:
        return f"<OrganizationMembership(org={self.organization_id}, email={self.email}, role={self.role}, status={self.status})>"


class Department(Base):
    """Department inside an organization."""

    __tablename__ = "departments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(100), nullable=False)
    description = Column(Text)
    manager_id = Column(UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="SET NULL"), nullable=True)
    parent_department_id = Column(UUID(as_uuid=True), ForeignKey("departments.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), nullable=False, default="ACTIVE")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization = relationship("Organization", back_populates="departments")

    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_departments_org_name"),
    )

    def __repr__(self) -> str:
        return f"<Department(org={self.organization_id}, name={self.name})>"


class OrganizationActivity(Base):
    """Audit trail entry for an organization."""

    __tablename__ = "organization_activities"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = Column(UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="SET NULL"), nullable=True)
    type = Column(String(50), nullable=False)
    entity_type = Column(String(50))
    entity_id = Column(UUID(as_uuid=True), nullable=True)
    description = Column(Text)
    extra = Column("metadata", JSONB, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_organization_activities_org_created", "organization_id", "created_at"),
    )
