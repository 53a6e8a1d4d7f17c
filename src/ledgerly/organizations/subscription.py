"""Organization subscription state transitions.

State is the tuple ``(is_subscribed, cancel_scheduled, subscription_end_date)``:

* inactive  -> activate -> active
* active    -> cancel   -> canceling (ends at ``subscription_end_date``)
* canceling -> resume   -> active
* canceling -> lapse    -> inactive (once the end date passes)

API transitions are owner-only; the caller passes an owner
:class:`OrgContext` obtained from ``require_org_owner``. Owners may only
activate from the API when ``self_service_activation`` is on; otherwise
operators run ``ledgerly activate-subscription`` after billing confirms
payment.
"""

from datetime import datetime, timedelta
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ledgerly import activity
from ledgerly.errors import ValidationError
from ledgerly.organizations.context import OrgContext
from ledgerly.organizations.models import ORG_ACTIVE, ROLE_OWNER, Organization
from ledgerly.settings import settings


logger = logging.getLogger(__name__)

STATUS_INACTIVE = "inactive"
STATUS_ACTIVE = "active"
STATUS_CANCELING = "canceling"


def subscription_status(organization: Organization) -> str:
    if not organization.is_subscribed:
        return STATUS_INACTIVE
    if organization.cancel_scheduled:
        return STATUS_CANCELING
    return STATUS_ACTIVE


def serialize_subscription(organization: Organization, role: Optional[str] = None) -> dict:
    payload = {
        "organization_id": str(organization.id),
        "status": subscription_status(organization),
        "is_subscribed": bool(organization.is_subscribed),
        "subscription_tier": organization.subscription_tier,
        "cancel_scheduled": bool(organization.cancel_scheduled),
        "subscription_end_date": (
            organization.subscription_end_date.isoformat() if organization.subscription_end_date else None
        ),
    }
    if role is not None:
        is_owner = role == ROLE_OWNER
        needs_activation = not organization.is_subscribed and is_owner
        payload["user_role"] = role
        payload["can_manage_subscription"] = is_owner
        payload["needs_activation"] = needs_activation
        payload["payment_message"] = None
        if needs_activation:
            payload["payment_message"] = (
                "Your organization requires activation. Complete checkout to access premium features."
            )
        elif not organization.is_subscribed:
            payload["payment_message"] = (
                "Your organization is not subscribed. Please contact the organization owner to activate the subscription."
            )
    return payload


def _record(db: Session, ctx: OrgContext, action: str) -> None:
    activity.record_activity(
        db,
        organization_id=ctx.organization.id,
        event_type=activity.EVENT_SUBSCRIPTION_CHANGED,
        user_id=ctx.user.id,
        entity_type="organization",
        entity_id=ctx.organization.id,
        description=f"Subscription {action}",
        details={"status": subscription_status(ctx.organization)},
    )


def activate_organization(db: Session, organization: Organization, tier: Optional[str] = None, user=None) -> Organization:
    """Mark the organization subscribed once billing has confirmed payment.

    ``user`` is the owner acting through the API; operator activations from
    the CLI leave it unset.
    """
    if organization.status != ORG_ACTIVE:
        raise ValidationError("Organization is not active")

    organization.is_subscribed = True
    organization.subscription_tier = tier or organization.subscription_tier or settings.default_subscription_tier
    organization.cancel_scheduled = False
    organization.subscription_end_date = None

    if user is not None:
        user.cancel_scheduled = False
        user.subscription_end_date = None

    activity.record_activity(
        db,
        organization_id=organization.id,
        event_type=activity.EVENT_SUBSCRIPTION_CHANGED,
        user_id=user.id if user is not None else None,
        entity_type="organization",
        entity_id=organization.id,
        description="Subscription activated",
        details={"status": subscription_status(organization)},
    )
    db.commit()
    logger.info("Organization %s subscription activated (tier=%s)", organization.id, organization.subscription_tier)
    return organization


def activate_subscription(db: Session, ctx: OrgContext, tier: Optional[str] = None) -> Organization:
    return activate_organization(db, ctx.organization, tier=tier, user=ctx.user)


def cancel_subscription(db: Session, ctx: OrgContext, now: Optional[datetime] = None) -> Organization:
    """Schedule cancellation at the end of the grace period."""
    organization = ctx.organization
    if not organization.is_subscribed:
        raise ValidationError("Organization does not have an active subscription")
    if organization.cancel_scheduled:
        raise ValidationError("Subscription cancellation is already scheduled")

    now = now or datetime.utcnow()
    end_date = organization.subscription_end_date
    if end_date is None or end_date <= now:
        end_date = now + timedelta(days=settings.subscription_grace_days)

    organization.cancel_scheduled = True
    organization.subscription_end_date = end_date
    ctx.user.cancel_scheduled = True
    ctx.user.subscription_end_date = end_date

    _record(db, ctx, "cancellation scheduled")
    db.commit()
    logger.info("Organization %s subscription cancellation scheduled for %s", organization.id, end_date.isoformat())
    return organization


def resume_subscription(db: Session, ctx: OrgContext) -> Organization:
    """Withdraw a scheduled cancellation."""
    organization = ctx.organization
    if not organization.cancel_scheduled:
        raise ValidationError("Subscription is not scheduled for cancellation")

    organization.cancel_scheduled = False
    organization.subscription_end_date = None
    ctx.user.cancel_scheduled = False
    ctx.user.subscription_end_date = None

    _record(db, ctx, "resumed")
    db.commit()
    logger.info("Organization %s subscription resumed", organization.id)
    return organization


def expire_lapsed_subscriptions(db: Session, now: Optional[datetime] = None) -> int:
    """Unsubscribe organizations whose scheduled cancellation date has passed."""
    now = now or datetime.utcnow()
    lapsed = db.query(Organization).filter(
        Organization.is_subscribed.is_(True),
        Organization.cancel_scheduled.is_(True),
        Organization.subscription_end_date <= now,
    ).all()
    for organization in lapsed:
        organization.is_subscribed = False
        organization.cancel_scheduled = False
        logger.info("Organization %s subscription lapsed", organization.id)
    db.commit()
    return len(lapsed)
