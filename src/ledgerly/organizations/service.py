"""Organization and membership operations."""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from ledgerly import activity
from ledgerly.auth.models import UserProfile
from ledgerly.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ledgerly.notifications import notify_organization
from ledgerly.organizations.context import OrgContext
from ledgerly.organizations.models import (
    DEFAULT_ORG_SETTINGS,
    MEMBER_ACTIVE,
    MEMBER_INACTIVE,
    ORG_ACTIVE,
    ORG_DELETED,
    ROLE_OWNER,
    ROLES,
    Department,
    Organization,
    OrganizationMembership,
)
from ledgerly.settings import settings


logger = logging.getLogger(__name__)

ORG_NAME_MAX_LENGTH = 100
UPDATABLE_ORG_FIELDS = ("name", "industry", "description", "features")
UPDATABLE_MEMBER_FIELDS = ("role", "status", "department", "position", "permissions")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_organization(organization: Organization) -> Dict[str, Any]:
    return {
        "id": str(organization.id),
        "name": organization.name,
        "industry": organization.industry,
        "description": organization.description,
        "features": organization.features or [],
        "settings": effective_settings(organization),
        "status": organization.status,
        "member_limit": organization.member_limit,
        "is_subscribed": bool(organization.is_subscribed),
        "subscription_tier": organization.subscription_tier,
        "subscription_end_date": _iso(organization.subscription_end_date),
        "cancel_scheduled": bool(organization.cancel_scheduled),
        "created_by": str(organization.created_by) if organization.created_by else None,
        "created_at": _iso(organization.created_at),
    }


def serialize_membership(membership: OrganizationMembership) -> Dict[str, Any]:
    user = membership.user
    return {
        "id": str(membership.id),
        "organization_id": str(membership.organization_id),
        "user_id": str(membership.user_id) if membership.user_id else None,
        "email": membership.email,
        "name": user.name if user else None,
        "role": membership.role,
        "status": membership.status,
        "department": membership.department,
        "position": membership.position,
        "permissions": membership.permissions or {},
        "invitation_expiry": _iso(membership.invitation_expiry),
        "last_accessed": _iso(membership.last_accessed),
        "created_at": _iso(membership.created_at),
    }


def create_organization(
    db: Session,
    user: UserProfile,
    *,
    name: Optional[str],
    industry: Optional[str] = None,
    description: Optional[str] = None,
    features: Optional[List[str]] = None,
) -> Organization:
    """Create an organization with ``user`` as its OWNER.

    Raises:
        ValidationError: Name missing/too long, or business account already owns one
    """
    clean_name = str(name or "").strip()
    if not clean_name:
        raise ValidationError("Organization name is required")
    if len(clean_name) > ORG_NAME_MAX_LENGTH:
        raise ValidationError(f"Organization name must be at most {ORG_NAME_MAX_LENGTH} characters")

    if user.is_business:
        owned = db.query(OrganizationMembership).join(
            Organization, Organization.id == OrganizationMembership.organization_id
        ).filter(
            OrganizationMembership.user_id == user.id,
            OrganizationMembership.role == ROLE_OWNER,
            Organization.status != ORG_DELETED,
        ).count()
        if owned:
            raise ValidationError("Business accounts can only have one organization", code="ORG_LIMIT_REACHED")

    auto_activate = settings.auto_activate_organizations
    organization = Organization(
        name=clean_name,
        industry=industry,
        description=description,
        features=features or [],
        settings=dict(DEFAULT_ORG_SETTINGS),
        status=ORG_ACTIVE,
        member_limit=settings.default_member_limit,
        is_subscribed=auto_activate,
        subscription_tier=settings.default_subscription_tier if auto_activate else None,
        created_by=user.id,
    )
    db.add(organization)
    db.flush()

    db.add(OrganizationMembership(
        organization_id=organization.id,
        user_id=user.id,
        email=user.email,
        role=ROLE_OWNER,
        status=MEMBER_ACTIVE,
        last_accessed=datetime.utcnow(),
    ))

    if user.is_business:
        user.default_organization_id = organization.id

    activity.record_activity(
        db,
        organization_id=organization.id,
        event_type=activity.EVENT_ORG_CREATED,
        user_id=user.id,
        entity_type="organization",
        entity_id=organization.id,
        description=f"Organization {clean_name} created",
    )
    db.commit()
    db.refresh(organization)
    logger.info("Organization %s created by %s", organization.id, user.id)
    return organization


def list_user_organizations(db: Session, user: UserProfile) -> List[Dict[str, Any]]:
    """Organizations where ``user`` holds an ACTIVE membership, oldest membership first."""
    rows = db.query(OrganizationMembership, Organization).join(
        Organization, Organization.id == OrganizationMembership.organization_id
    ).filter(
        OrganizationMembership.user_id == user.id,
        OrganizationMembership.status == MEMBER_ACTIVE,
        Organization.status == ORG_ACTIVE,
    ).order_by(OrganizationMembership.created_at.asc()).all()

    results = []
    for membership, organization in rows:
        payload = serialize_organization(organization)
        payload["role"] = membership.role
        payload["user_status"] = membership.status
        if user.is_business:
            is_owner = membership.role == ROLE_OWNER
            payload["needs_activation"] = not organization.is_subscribed and is_owner
            payload["can_manage_subscription"] = is_owner
        results.append(payload)
    return results


def update_organization(db: Session, ctx: OrgContext, changes: Dict[str, Any]) -> Organization:
    organization = ctx.organization
    for field in UPDATABLE_ORG_FIELDS:
        if field not in changes:
            continue
        value = changes[field]
        if field == "name":
            value = str(value or "").strip()
            if not value:
                raise ValidationError("Organization name is required")
            if len(value) > ORG_NAME_MAX_LENGTH:
                raise ValidationError(f"Organization name must be at most {ORG_NAME_MAX_LENGTH} characters")
        setattr(organization, field, value)

    activity.record_activity(
        db,
        organization_id=organization.id,
        event_type=activity.EVENT_ORG_UPDATED,
        user_id=ctx.user.id,
        entity_type="organization",
        entity_id=organization.id,
        description="Organization details updated",
        details={"fields": sorted(k for k in changes if k in UPDATABLE_ORG_FIELDS)},
    )
    db.commit()
    db.refresh(organization)
    return organization


def delete_organization(db: Session, ctx: OrgContext) -> None:
    """Soft delete: the organization stops resolving but rows are kept."""
    organization = ctx.organization
    organization.status = ORG_DELETED
    activity.record_activity(
        db,
        organization_id=organization.id,
        event_type=activity.EVENT_ORG_DELETED,
        user_id=ctx.user.id,
        entity_type="organization",
        entity_id=organization.id,
        description="Organization deleted",
    )
    db.commit()
    logger.info("Organization %s soft-deleted by %s", organization.id, ctx.user.id)


def list_members(db: Session, organization_id) -> List[OrganizationMembership]:
    return db.query(OrganizationMembership).filter(
        OrganizationMembership.organization_id == organization_id,
        OrganizationMembership.user_id.isnot(None),
    ).order_by(OrganizationMembership.created_at.asc()).all()


def _get_member(db: Session, organization_id, member_id) -> OrganizationMembership:
    membership = db.query(OrganizationMembership).filter(
        OrganizationMembership.id == member_id,
        OrganizationMembership.organization_id == organization_id,
        OrganizationMembership.user_id.isnot(None),
    ).first()
    if not membership:
        raise NotFoundError("Member not found")
    return membership


def update_member(db: Session, ctx: OrgContext, member_id, changes: Dict[str, Any]) -> OrganizationMembership:
    membership = _get_member(db, ctx.organization.id, member_id)

    if "role" in changes and changes["role"] is not None:
        role = str(changes["role"]).upper()
        if role not in ROLES:
            raise ValidationError(f"Invalid role: {changes['role']}")
        if membership.role == ROLE_OWNER and role != ROLE_OWNER:
            raise AuthorizationError("The owner's role cannot be changed")
        if role == ROLE_OWNER and membership.role != ROLE_OWNER:
            raise AuthorizationError("Ownership cannot be assigned through a member update")
        changes = {**changes, "role": role}

    if "status" in changes and changes["status"] is not None:
        new_status = str(changes["status"]).upper()
        if new_status not in (MEMBER_ACTIVE, MEMBER_INACTIVE):
            raise ValidationError(f"Invalid member status: {changes['status']}")
        if membership.role == ROLE_OWNER and new_status != MEMBER_ACTIVE:
            raise AuthorizationError("The owner cannot be deactivated")
        changes = {**changes, "status": new_status}

    for field in UPDATABLE_MEMBER_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(membership, field, changes[field])
            if field == "permissions":
                flag_modified(membership, "permissions")

    activity.record_activity(
        db,
        organization_id=ctx.organization.id,
        event_type=activity.EVENT_MEMBER_UPDATED,
        user_id=ctx.user.id,
        entity_type="membership",
        entity_id=membership.id,
        description=f"Member {membership.email} updated",
    )
    db.commit()
    db.refresh(membership)
    return membership


def remove_member(db: Session, ctx: OrgContext, member_id) -> None:
    membership = _get_member(db, ctx.organization.id, member_id)
    if membership.role == ROLE_OWNER:
        raise AuthorizationError("The organization owner cannot be removed")

    member_name = membership.user.name if membership.user else membership.email
    removed_user = membership.user
    if removed_user is not None and removed_user.default_organization_id == ctx.organization.id:
        removed_user.default_organization_id = None

    db.delete(membership)
    db.flush()

    activity.record_activity(
        db,
        organization_id=ctx.organization.id,
        event_type=activity.EVENT_MEMBER_REMOVED,
        user_id=ctx.user.id,
        entity_type="membership",
        entity_id=membership.id,
        description=f"{member_name} removed from the organization",
    )
    notify_organization(
        db,
        organization_id=ctx.organization.id,
        notification_type="ORG_MEMBER_LEFT",
        data={"memberName": member_name, "organizationName": ctx.organization.name},
        entity_type="organization",
        entity_id=ctx.organization.id,
    )
    db.commit()


def effective_settings(organization: Organization) -> Dict[str, Any]:
    return {**DEFAULT_ORG_SETTINGS, **(organization.settings or {})}


def update_settings(db: Session, ctx: OrgContext, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Shallow-merge ``changes`` over the current settings."""
    if not isinstance(changes, dict):
        raise ValidationError("Settings must be an object")
    organization = ctx.organization
    organization.settings = {**effective_settings(organization), **changes}
    flag_modified(organization, "settings")
    activity.record_activity(
        db,
        organization_id=organization.id,
        event_type=activity.EVENT_SETTINGS_UPDATED,
        user_id=ctx.user.id,
        entity_type="organization",
        entity_id=organization.id,
        description="Organization settings updated",
        details={"keys": sorted(changes.keys())},
    )
    db.commit()
    return effective_settings(organization)


def serialize_department(department: Department) -> Dict[str, Any]:
    return {
        "id": str(department.id),
        "organization_id": str(department.organization_id),
        "name": department.name,
        "description": department.description,
        "manager_id": str(department.manager_id) if department.manager_id else None,
        "parent_department_id": str(department.parent_department_id) if department.parent_department_id else None,
        "status": department.status,
        "created_at": _iso(department.created_at),
    }


def _validate_department_name(name: Optional[str]) -> str:
    clean = str(name or "").strip()
    if not 2 <= len(clean) <= 100:
        raise ValidationError("Department name must be between 2 and 100 characters")
    return clean


def create_department(db: Session, ctx: OrgContext, *, name: str, description: Optional[str] = None,
                      manager_id=None, parent_department_id=None) -> Department:
    clean_name = _validate_department_name(name)
    duplicate = db.query(Department).filter(
        Department.organization_id == ctx.organization.id,
        Department.name == clean_name,
    ).first()
    if duplicate:
        raise ConflictError("A department with this name already exists")
    department = Department(
        organization_id=ctx.organization.id,
        name=clean_name,
        description=description,
        manager_id=manager_id,
        parent_department_id=parent_department_id,
    )
    db.add(department)
    db.commit()
    db.refresh(department)
    return department


def list_departments(db: Session, organization_id) -> List[Department]:
    return db.query(Department).filter(
        Department.organization_id == organization_id,
        Department.status == "ACTIVE",
    ).order_by(Department.name.asc()).all()


def update_department(db: Session, ctx: OrgContext, department_id, changes: Dict[str, Any]) -> Department:
    department = db.query(Department).filter(
        Department.id == department_id,
        Department.organization_id == ctx.organization.id,
    ).first()
    if not department:
        raise NotFoundError("Department not found")
    if "name" in changes and changes["name"] is not None:
        changes = {**changes, "name": _validate_department_name(changes["name"])}
    for field in ("name", "description", "manager_id", "parent_department_id", "status"):
        if field in changes and changes[field] is not None:
            setattr(department, field, changes[field])
    db.commit()
    db.refresh(department)
    return department
