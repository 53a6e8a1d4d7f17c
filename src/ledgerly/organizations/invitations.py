"""Invitation lifecycle for organization memberships.

Invitations are PENDING :class:`OrganizationMembership` rows without a user.
A token is valid while the row is PENDING, unclaimed, unexpired and its
organization is ACTIVE.
"""

from datetime import datetime, timedelta
import logging
from typing import List, Optional, Tuple
import uuid

from sqlalchemy import func
from sqlalchemy.orm import Session

from ledgerly import activity
from ledgerly.auth.models import UserProfile
from ledgerly.errors import ConflictError, NotFoundError, ValidationError
from ledgerly.notifications import notify_organization
from ledgerly.organizations.models import (
    MEMBER_ACTIVE,
    MEMBER_PENDING,
    ORG_ACTIVE,
    ROLE_MEMBER,
    ROLE_OWNER,
    ROLES,
    Organization,
    OrganizationMembership,
)
from ledgerly.settings import settings


logger = logging.getLogger(__name__)


def new_invitation_token() -> str:
    return str(uuid.uuid4())


def invitation_expiry(now: Optional[datetime] = None) -> datetime:
    return (now or datetime.utcnow()) + timedelta(days=settings.invitation_expiry_days)


def invitation_link(token: str) -> str:
    return f"{settings.app_url}/accept-invite?token={token}"


def active_member_count(db: Session, organization_id) -> int:
    return db.query(OrganizationMembership).filter(
        OrganizationMembership.organization_id == organization_id,
        OrganizationMembership.status == MEMBER_ACTIVE,
    ).count()


def ensure_member_capacity(db: Session, organization: Organization) -> None:
    """Raise when the organization already has ``member_limit`` active members."""
    if active_member_count(db, organization.id) >= organization.member_limit:
        raise ValidationError(
            f"Member limit ({organization.member_limit}) reached for this organization",
            code="MEMBER_LIMIT_REACHED",
        )


def _pending_filter(query, now: datetime):
    return query.filter(
        OrganizationMembership.status == MEMBER_PENDING,
        OrganizationMembership.user_id.is_(None),
        OrganizationMembership.invitation_expiry > now,
    )


def validate_invitation(db: Session, token: str, now: Optional[datetime] = None) -> Optional[OrganizationMembership]:
    """Return the pending invitation for ``token`` if it can still be accepted."""
    if not token:
        return None
    now = now or datetime.utcnow()
    query = db.query(OrganizationMembership).join(
        Organization, Organization.id == OrganizationMembership.organization_id
    ).filter(
        OrganizationMembership.invitation_token == token,
        Organization.status == ORG_ACTIVE,
    )
    return _pending_filter(query, now).first()


def cleanup_expired_invitation(db: Session, token: str, now: Optional[datetime] = None) -> int:
    """Delete the invitation for ``token`` if it has expired."""
    now = now or datetime.utcnow()
    deleted = db.query(OrganizationMembership).filter(
        OrganizationMembership.invitation_token == token,
        OrganizationMembership.status == MEMBER_PENDING,
        OrganizationMembership.invitation_expiry <= now,
    ).delete(synchronize_session=False)
    if deleted:
        logger.info("Removed expired invitation token %s", token[:8])
    return deleted


def cleanup_expired_invitations(db: Session, organization_id=None, now: Optional[datetime] = None) -> int:
    """Delete expired pending invitations, for one organization or globally."""
    now = now or datetime.utcnow()
    query = db.query(OrganizationMembership).filter(
        OrganizationMembership.status == MEMBER_PENDING,
        OrganizationMembership.user_id.is_(None),
        OrganizationMembership.invitation_expiry <= now,
    )
    if organization_id is not None:
        query = query.filter(OrganizationMembership.organization_id == organization_id)
    deleted = query.delete(synchronize_session=False)
    db.commit()
    logger.info("Cleaned up %s expired invitations", deleted)
    return deleted


def get_pending_invitations(db: Session, organization_id, now: Optional[datetime] = None) -> List[OrganizationMembership]:
    now = now or datetime.utcnow()
    query = db.query(OrganizationMembership).filter(
        OrganizationMembership.organization_id == organization_id,
    )
    return _pending_filter(query, now).order_by(OrganizationMembership.created_at.desc()).all()


def cancel_invitation(db: Session, organization_id, invitation_id) -> None:
    deleted = db.query(OrganizationMembership).filter(
        OrganizationMembership.id == invitation_id,
        OrganizationMembership.organization_id == organization_id,
        OrganizationMembership.status == MEMBER_PENDING,
        OrganizationMembership.user_id.is_(None),
    ).delete(synchronize_session=False)
    if not deleted:
        raise NotFoundError("Invitation not found")
    db.commit()


def _normalize_role(role: Optional[str]) -> str:
    normalized = str(role or ROLE_MEMBER).strip().upper()
    if normalized not in ROLES:
        raise ValidationError(f"Invalid role: {role}")
    if normalized == ROLE_OWNER:
        raise ValidationError("Cannot invite a member as owner")
    return normalized


def create_invitation(
    db: Session,
    organization: Organization,
    *,
    email: str,
    invited_by: UserProfile,
    role: Optional[str] = None,
    department: Optional[str] = None,
    position: Optional[str] = None,
) -> OrganizationMembership:
    """Create a pending membership with a fresh token (caller commits)."""
    normalized_email = str(email or "").strip().lower()
    if not normalized_email:
        raise ValidationError("Email is required")
    normalized_role = _normalize_role(role)

    existing = db.query(OrganizationMembership).filter(
        OrganizationMembership.organization_id == organization.id,
        func.lower(OrganizationMembership.email) == normalized_email,
    ).all()
    for row in existing:
        if row.status == MEMBER_ACTIVE:
            raise ConflictError("User is already a member of this organization")
        if row.status == MEMBER_PENDING and row.invitation_expiry and row.invitation_expiry > datetime.utcnow():
            raise ConflictError("An invitation is already pending for this email")

    ensure_member_capacity(db, organization)

    invitation = OrganizationMembership(
        organization_id=organization.id,
        email=normalized_email,
        role=normalized_role,
        status=MEMBER_PENDING,
        invitation_token=new_invitation_token(),
        invitation_expiry=invitation_expiry(),
        invited_by=invited_by.id,
        department=department,
        position=position,
    )
    db.add(invitation)
    db.flush()
    activity.record_activity(
        db,
        organization_id=organization.id,
        event_type=activity.EVENT_MEMBER_INVITED,
        user_id=invited_by.id,
        entity_type="membership",
        entity_id=invitation.id,
        description=f"Invited {normalized_email} as {normalized_role}",
    )
    return invitation


def resend_invitation(
    db: Session,
    organization: Organization,
    *,
    email: str,
    invited_by: UserProfile,
    role: Optional[str] = None,
) -> Tuple[OrganizationMembership, bool]:
    """Refresh the token of a pending invite, or create one.

    Returns:
        (invitation, created) where ``created`` is True for a new invitation
    """
    normalized_email = str(email or "").strip().lower()
    if not normalized_email:
        raise ValidationError("Email is required")

    existing = db.query(OrganizationMembership).filter(
        OrganizationMembership.organization_id == organization.id,
        func.lower(OrganizationMembership.email) == normalized_email,
        OrganizationMembership.status == MEMBER_PENDING,
        OrganizationMembership.user_id.is_(None),
    ).first()

    if existing:
        existing.invitation_token = new_invitation_token()
        existing.invitation_expiry = invitation_expiry()
        existing.invited_by = invited_by.id
        if role:
            existing.role = _normalize_role(role)
        db.flush()
        return existing, False

    return create_invitation(db, organization, email=normalized_email, invited_by=invited_by, role=role), True


def accept_invitation(db: Session, user: UserProfile, token: str) -> OrganizationMembership:
    """Claim a pending invitation for ``user``.

    Raises:
        NotFoundError: Token unknown, expired or already used
        ValidationError: Organization is at its member limit
        ConflictError: User already belongs to the organization
    """
    cleanup_expired_invitation(db, token)

    invitation = validate_invitation(db, token)
    if not invitation:
        db.commit()
        raise NotFoundError("Invitation not found or expired", code="INVITATION_INVALID")

    organization = invitation.organization
    already_member = db.query(OrganizationMembership).filter(
        OrganizationMembership.organization_id == organization.id,
        OrganizationMembership.user_id == user.id,
    ).first()
    if already_member:
        raise ConflictError("You are already a member of this organization")

    ensure_member_capacity(db, organization)

    invitation.user_id = user.id
    invitation.email = user.email
    invitation.status = MEMBER_ACTIVE
    invitation.invitation_token = None
    invitation.invitation_expiry = None
    invitation.last_accessed = datetime.utcnow()

    if user.is_business and not user.default_organization_id:
        user.default_organization_id = organization.id

    activity.record_activity(
        db,
        organization_id=organization.id,
        event_type=activity.EVENT_MEMBER_JOINED,
        user_id=user.id,
        entity_type="membership",
        entity_id=invitation.id,
        description=f"{user.name} joined the organization",
    )
    notify_organization(
        db,
        organization_id=organization.id,
        notification_type="ORG_MEMBER_JOINED",
        data={"memberName": user.name, "organizationName": organization.name},
        exclude_user_id=user.id,
        entity_type="organization",
        entity_id=organization.id,
    )
    db.commit()
    logger.info("User %s accepted invitation to organization %s", user.id, organization.id)
    return invitation
