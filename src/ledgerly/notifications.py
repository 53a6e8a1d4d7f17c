"""In-app notifications built from a fixed template catalogue."""

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ledgerly.errors import NotFoundError, ValidationError
from ledgerly.metadata import NOTIFICATION_CHANNELS, Notification
from ledgerly.organizations.models import MEMBER_ACTIVE, OrganizationMembership


logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
_PLACEHOLDER = re.compile(r"\{(\w+)\}")


@dataclass(frozen=True)
class NotificationTemplate:
    title: str
    message: str
    priority: str = "MEDIUM"


TEMPLATES: Dict[str, NotificationTemplate] = {
    "INVOICE_CREATED": NotificationTemplate(
        "New Invoice Created", "Invoice #{invoiceNumber} has been created for {clientName}"
    ),
    "INVOICE_PAID": NotificationTemplate(
        "Invoice Paid", "Invoice #{invoiceNumber} has been paid by {clientName}", "HIGH"
    ),
    "INVOICE_OVERDUE": NotificationTemplate(
        "Invoice Overdue", "Invoice #{invoiceNumber} for {clientName} is overdue", "HIGH"
    ),
    "CONTRACT_CREATED": NotificationTemplate(
        "New Contract Created", "Contract \"{contractTitle}\" has been created for {clientName}"
    ),
    "CONTRACT_APPROVED": NotificationTemplate(
        "Contract Approved", "Contract \"{contractTitle}\" has been approved by {approverName}"
    ),
    "CONTRACT_REJECTED": NotificationTemplate(
        "Contract Rejected", "Contract \"{contractTitle}\" has been rejected by {approverName}", "HIGH"
    ),
    "CONTRACT_EXPIRING": NotificationTemplate(
        "Contract Expiring", "Contract \"{contractTitle}\" expires in {daysToExpiry} days", "HIGH"
    ),
    "EXPENSE_CREATED": NotificationTemplate(
        "New Expense Submitted", "Expense of ${amount} submitted for {category}"
    ),
    "EXPENSE_APPROVED": NotificationTemplate(
        "Expense Approved", "Your expense of ${amount} for {category} has been approved"
    ),
    "EXPENSE_REJECTED": NotificationTemplate(
        "Expense Rejected", "Your expense of ${amount} for {category} has been rejected", "HIGH"
    ),
    "CLIENT_CREATED": NotificationTemplate(
        "New Client Added", "{clientName} has been added as a new client", "LOW"
    ),
    "ORG_MEMBER_JOINED": NotificationTemplate(
        "New Team Member", "{memberName} has joined your organization"
    ),
    "ORG_MEMBER_LEFT": NotificationTemplate(
        "Team Member Left", "{memberName} has left your organization"
    ),
    "PAYMENT_RECEIVED": NotificationTemplate(
        "Payment Received", "Payment of ${amount} received from {clientName}", "HIGH"
    ),
}


def render_template(notification_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    """Render title, message and priority for a notification type.

    Placeholders without a value render as empty strings.

    Raises:
        ValidationError: Unknown notification type
    """
    template = TEMPLATES.get(notification_type)
    if template is None:
        raise ValidationError(f"Invalid notification type: {notification_type}", code="INVALID_NOTIFICATION_TYPE")

    values = data or {}

    def _fill(text: str) -> str:
        return _PLACEHOLDER.sub(lambda m: "" if values.get(m.group(1)) is None else str(values[m.group(1)]), text)

    return {
        "title": _fill(template.title),
        "message": _fill(template.message),
        "priority": template.priority,
    }


def create_notification(
    db: Session,
    *,
    user_id,
    notification_type: str,
    data: Optional[Dict[str, Any]] = None,
    organization_id=None,
    entity_type: Optional[str] = None,
    entity_id=None,
    action_url: Optional[str] = None,
    action_text: Optional[str] = None,
    channels: Optional[Iterable[str]] = None,
    expires_at: Optional[datetime] = None,
) -> Notification:
    """Add a rendered notification to the session (caller commits)."""
    rendered = render_template(notification_type, data)
    channel_list = list(channels or ["IN_APP"])
    invalid = [channel for channel in channel_list if channel not in NOTIFICATION_CHANNELS]
    if invalid:
        raise ValidationError(f"Invalid notification channels: {', '.join(invalid)}")

    notification = Notification(
        user_id=user_id,
        organization_id=organization_id,
        type=notification_type,
        title=rendered["title"],
        message=rendered["message"],
        priority=rendered["priority"],
        entity_type=entity_type,
        entity_id=entity_id,
        action_url=action_url,
        action_text=action_text,
        channels=channel_list,
        # Only in-app delivery exists; other channels stay queued in ``channels``.
        sent_channels=["IN_APP"] if "IN_APP" in channel_list else [],
        extra=dict(data or {}),
        expires_at=expires_at,
    )
    db.add(notification)
    db.flush()
    return notification


def notify_organization(
    db: Session,
    *,
    organization_id,
    notification_type: str,
    data: Optional[Dict[str, Any]] = None,
    exclude_user_id=None,
    roles: Optional[Iterable[str]] = None,
    **kwargs,
) -> List[Notification]:
    """Notify every ACTIVE member of an organization (optionally filtered by role)."""
    query = db.query(OrganizationMembership.user_id).filter(
        OrganizationMembership.organization_id == organization_id,
        OrganizationMembership.status == MEMBER_ACTIVE,
        OrganizationMembership.user_id.isnot(None),
    )
    if roles:
        query = query.filter(OrganizationMembership.role.in_(list(roles)))

    created = []
    for (member_id,) in query.all():
        if exclude_user_id is not None and member_id == exclude_user_id:
            continue
        created.append(
            create_notification(
                db,
                user_id=member_id,
                notification_type=notification_type,
                data=data,
                organization_id=organization_id,
                **kwargs,
            )
        )
    return created


def notify_owner_or_org(
    db: Session,
    *,
    user_id,
    organization_id,
    notification_type: str,
    data: Optional[Dict[str, Any]] = None,
    **kwargs,
) -> List[Notification]:
    """Notify the organization's members, or the user alone for individual accounts."""
    if organization_id is not None:
        return notify_organization(
            db,
            organization_id=organization_id,
            notification_type=notification_type,
            data=data,
            **kwargs,
        )
    return [
        create_notification(
            db,
            user_id=user_id,
            notification_type=notification_type,
            data=data,
            **kwargs,
        )
    ]


def _active_filter(query, now: datetime):
    return query.filter(or_(Notification.expires_at.is_(None), Notification.expires_at > now))


def list_notifications(
    db: Session,
    user_id,
    *,
    unread_only: bool = False,
    types: Optional[Iterable[str]] = None,
    organization_id=None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> List[Notification]:
    query = _active_filter(db.query(Notification).filter(Notification.user_id == user_id), datetime.utcnow())
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    type_list = [t for t in (types or []) if t]
    if type_list:
        query = query.filter(Notification.type.in_(type_list))
    if organization_id is not None:
        query = query.filter(Notification.organization_id == organization_id)
    return query.order_by(Notification.created_at.desc()).offset(offset).limit(limit).all()


def unread_count(db: Session, user_id) -> int:
    query = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    )
    return _active_filter(query, datetime.utcnow()).count()


def mark_as_read(db: Session, user_id, notification_id) -> Notification:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()
    if not notification:
        raise NotFoundError("Notification not found")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
    db.commit()
    return notification


def mark_all_as_read(db: Session, user_id) -> int:
    now = datetime.utcnow()
    count = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    ).update({"is_read": True, "read_at": now}, synchronize_session=False)
    db.commit()
    return count


def cleanup_expired_notifications(db: Session, now: Optional[datetime] = None, retention_days: int = 90) -> int:
    """Delete expired notifications and read notifications older than the retention window."""
    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=retention_days)
    deleted = db.query(Notification).filter(
        or_(
            Notification.expires_at <= now,
            (Notification.is_read.is_(True)) & (Notification.created_at < cutoff),
        )
    ).delete(synchronize_session=False)
    db.commit()
    logger.info("Cleaned up %s notifications", deleted)
    return deleted
