"""Organization context resolution and role guards.

Two entry points are used by routers:

* :func:`get_org_context` for ``/organizations/{organization_id}/...`` routes,
  where the organization comes from the path.
* :func:`get_scope` for business records (clients, invoices, ...), where
  individual accounts are scoped to their own rows and business accounts to
  the organization named by the ``X-Organization-ID`` header.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
import uuid

from fastapi import Depends, Header
from sqlalchemy import and_
from sqlalchemy.orm import Session

from ledgerly.auth.dependencies import get_current_user
from ledgerly.auth.models import UserProfile
from ledgerly.database import get_db
from ledgerly.errors import AuthorizationError, NotFoundError, ValidationError
from ledgerly.organizations.models import (
    ADMIN_ROLES,
    MANAGER_ROLES,
    MEMBER_ACTIVE,
    ORG_ACTIVE,
    ROLE_OWNER,
    Organization,
    OrganizationMembership,
)


@dataclass
class OrgContext:
    """Resolved organization plus the caller's active membership."""

    organization: Organization
    membership: OrganizationMembership
    user: UserProfile

    @property
    def role(self) -> str:
        return self.membership.role

    @property
    def organization_id(self):
        return self.organization.id


def parse_uuid(value, label: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label}")


def _check_default_org(user: UserProfile, organization_id: uuid.UUID) -> None:
    # Business accounts are bound to the organization they created or joined.
    if user.is_business and user.default_organization_id and user.default_organization_id != organization_id:
        raise AuthorizationError(
            "Access denied. Business accounts can only access their default organization.",
            code="INVALID_ORG_ACCESS",
        )


def load_org_context(
    db: Session,
    user: UserProfile,
    organization_id,
    *,
    enforce_default_org: bool = True,
) -> OrgContext:
    """Resolve an ACTIVE organization and the caller's ACTIVE membership.

    Args:
        db: Database session
        user: Authenticated user
        organization_id: Organization UUID (string or UUID)
        enforce_default_org: Restrict business accounts to their default
            organization (disabled for invitation handling)

    Returns:
        OrgContext: Organization, membership and user

    Raises:
        NotFoundError: Organization missing or not ACTIVE
        AuthorizationError: Caller is not an active member
    """
    org_id = parse_uuid(organization_id, "organization id")

    organization = db.query(Organization).filter(
        Organization.id == org_id,
        Organization.status == ORG_ACTIVE,
    ).first()
    if not organization:
        raise NotFoundError("Organization not found")

    if enforce_default_org:
        _check_default_org(user, org_id)

    membership = db.query(OrganizationMembership).filter(
        OrganizationMembership.organization_id == org_id,
        OrganizationMembership.user_id == user.id,
        OrganizationMembership.status == MEMBER_ACTIVE,
    ).first()
    if not membership:
        raise AuthorizationError("Not a member of this organization", code="NOT_ORG_MEMBER")

    membership.last_accessed = datetime.utcnow()
    return OrgContext(organization=organization, membership=membership, user=user)


def require_role(ctx: OrgContext, roles, message: str) -> OrgContext:
    if ctx.role not in roles:
        raise AuthorizationError(message)
    return ctx


async def get_org_context(
    organization_id: str,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> OrgContext:
    """Dependency: caller must be an active member of the path organization."""
    return load_org_context(db, user, organization_id)


def _role_dependency(roles, message: str) -> Callable:
    async def check_role(ctx: OrgContext = Depends(get_org_context)) -> OrgContext:
        return require_role(ctx, roles, message)

    return check_role


require_org_membership = get_org_context
require_org_manager = _role_dependency(MANAGER_ROLES, "Manager access required")
require_org_admin = _role_dependency(ADMIN_ROLES, "Admin access required")
require_org_owner = _role_dependency((ROLE_OWNER,), "Only the organization owner can perform this action")


@dataclass
class Scope:
    """Ownership scope for business records."""

    user: UserProfile
    organization: Optional[Organization] = None
    membership: Optional[OrganizationMembership] = None

    @property
    def is_business(self) -> bool:
        return self.organization is not None

    @property
    def organization_id(self):
        return self.organization.id if self.organization is not None else None

    @property
    def account_type(self) -> str:
        return "business" if self.is_business else "individual"

    def filter(self, model):
        """SQL criterion restricting ``model`` rows to this scope."""
        if self.is_business:
            return model.organization_id == self.organization.id
        return and_(model.user_id == self.user.id, model.organization_id.is_(None))

    def owned_filter(self, model):
        """Like :meth:`filter` but also restricted to rows the caller created."""
        return and_(self.filter(model), model.user_id == self.user.id)

    def stamp(self) -> dict:
        """Ownership columns for a new row."""
        return {
            "user_id": self.user.id,
            "organization_id": self.organization_id,
            "account_type": self.account_type,
        }

    def require_manager(self) -> None:
        if not self.is_business:
            raise ValidationError("This action is only available for business accounts")
        if self.membership.role not in MANAGER_ROLES:
            raise AuthorizationError("Manager access required")


def resolve_scope(db: Session, user: UserProfile, organization_header: Optional[str]) -> Scope:
    """Build the record scope for a request.

    Raises:
        ValidationError: Business account without an organization header
        AuthorizationError: Caller is not an active member of that organization
    """
    if not user.is_business:
        return Scope(user=user)

    if not organization_header:
        raise ValidationError("Organization context required", code="ORG_CONTEXT_REQUIRED")

    ctx = load_org_context(db, user, organization_header)
    return Scope(user=user, organization=ctx.organization, membership=ctx.membership)


async def get_scope(
    x_organization_id: Optional[str] = Header(None, alias="X-Organization-ID"),
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Scope:
    """Dependency: ownership scope for business records."""
    return resolve_scope(db, user, x_organization_id)
