"""In-app notification inbox endpoints."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ledgerly import notifications
from ledgerly.auth.dependencies import get_current_user
from ledgerly.auth.models import UserProfile
from ledgerly.database import get_db
from ledgerly.errors import AuthorizationError, ValidationError
from ledgerly.metadata import Notification
from ledgerly.models.requests import NotificationCreateRequest
from ledgerly.organizations.context import load_org_context, parse_uuid, require_role
from ledgerly.organizations.models import ADMIN_ROLES, MEMBER_ACTIVE, OrganizationMembership


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": str(notification.id),
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "priority": notification.priority,
        "is_read": bool(notification.is_read),
        "read_at": notification.read_at.isoformat() if notification.read_at else None,
        "organization_id": str(notification.organization_id) if notification.organization_id else None,
        "entity_type": notification.entity_type,
        "entity_id": str(notification.entity_id) if notification.entity_id else None,
        "action_url": notification.action_url,
        "action_text": notification.action_text,
        "channels": notification.channels or [],
        "metadata": notification.extra or {},
        "expires_at": notification.expires_at.isoformat() if notification.expires_at else None,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


@router.get("", response_model=dict)
async def list_notifications(
    unread_only: bool = Query(False),
    types: Optional[List[str]] = Query(None),
    organization_id: Optional[str] = Query(None),
    limit: int = Query(notifications.DEFAULT_PAGE_SIZE, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = notifications.list_notifications(
        db,
        user.id,
        unread_only=unread_only,
        types=types,
        organization_id=parse_uuid(organization_id, "organization id") if organization_id else None,
        limit=limit,
        offset=offset,
    )
    return {
        "success": True,
        "data": [serialize_notification(n) for n in rows],
        "unread_count": notifications.unread_count(db, user.id),
    }


@router.get("/unread-count", response_model=dict)
async def get_unread_count(user: UserProfile = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"success": True, "data": {"count": notifications.unread_count(db, user.id)}}


@router.post("/mark-all-read", response_model=dict)
async def mark_all_read(user: UserProfile = Depends(get_current_user), db: Session = Depends(get_db)):
    count = notifications.mark_all_as_read(db, user.id)
    return {"success": True, "data": {"updated": count}}


@router.post("/{notification_id}/read", response_model=dict)
async def mark_read(
    notification_id: str,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = notifications.mark_as_read(db, user.id, parse_uuid(notification_id, "notification id"))
    return {"success": True, "data": serialize_notification(notification)}


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_notification(
    body: NotificationCreateRequest,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a notification for the caller, or for a member of an organization the caller administers."""
    recipient_id = body.user_id or user.id
    if body.organization_id is not None:
        ctx = load_org_context(db, user, body.organization_id)
        if recipient_id != user.id:
            require_role(ctx, ADMIN_ROLES, "Admin access required")
            is_member = db.query(OrganizationMembership).filter(
                OrganizationMembership.organization_id == ctx.organization.id,
                OrganizationMembership.user_id == recipient_id,
                OrganizationMembership.status == MEMBER_ACTIVE,
            ).first()
            if not is_member:
                raise ValidationError("Recipient is not a member of this organization")
    elif recipient_id != user.id:
        raise AuthorizationError("Notifications for other users require an organization")

    notification = notifications.create_notification(
        db,
        user_id=recipient_id,
        notification_type=body.type,
        data=body.data,
        organization_id=body.organization_id,
        entity_type=body.entity_type,
        entity_id=body.entity_id,
        action_url=body.action_url,
        action_text=body.action_text,
        channels=body.channels,
    )
    db.commit()
    db.refresh(notification)
    logger.info("Notification %s (%s) created for %s", notification.id, notification.type, recipient_id)
    return {"success": True, "data": serialize_notification(notification)}
