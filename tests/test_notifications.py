"""Tests for notification templates, inbox operations and cleanup."""

import asyncio
from datetime import datetime, timedelta
import uuid

import pytest
from sqlalchemy.orm import Session

from ledgerly import notifications
from ledgerly.auth.models import UserProfile
from ledgerly.errors import AuthorizationError, NotFoundError, ValidationError
from ledgerly.metadata import Notification
from ledgerly.models.requests import NotificationCreateRequest
from ledgerly.organizations import service
from ledgerly.organizations.models import MEMBER_ACTIVE, OrganizationMembership
from ledgerly.routers import notifications as notifications_router


def _create_user(test_db: Session, email: str, *, account_type: str = "individual") -> UserProfile:
    user = UserProfile(
        id=uuid.uuid4(),
        email=email,
        name=email.split("@")[0].title(),
        account_type=account_type,
        is_active=True,
    )
    test_db.add(user)
    test_db.commit()
    return user


def _add_member(test_db: Session, organization, user: UserProfile, role: str = "MEMBER") -> None:
    test_db.add(OrganizationMembership(
        organization_id=organization.id,
        user_id=user.id,
        email=user.email,
        role=role,
        status=MEMBER_ACTIVE,
    ))
    user.default_organization_id = organization.id
    test_db.commit()


def _list(test_db: Session, user: UserProfile, **filters) -> dict:
    params = {"unread_only": False, "types": None, "organization_id": None, "limit": 50, "offset": 0}
    params.update(filters)
    return asyncio.run(notifications_router.list_notifications(user=user, db=test_db, **params))


def test_render_template_fills_placeholders():
    rendered = notifications.render_template(
        "INVOICE_PAID", {"invoiceNumber": "INV-7", "clientName": "Acme"}
    )

    assert rendered == {
        "title": "Invoice Paid",
        "message": "Invoice #INV-7 has been paid by Acme",
        "priority": "HIGH",
    }


def test_render_template_blanks_missing_values():
    rendered = notifications.render_template("CLIENT_CREATED", {})

    assert rendered["message"] == " has been added as a new client"
    assert rendered["priority"] == "LOW"


def test_unknown_notification_type_rejected():
    with pytest.raises(ValidationError) as exc:
        notifications.render_template("SOMETHING_ELSE")
    assert exc.value.code == "INVALID_NOTIFICATION_TYPE"


def test_create_notification_channels(test_db: Session):
    user = _create_user(test_db, "channels@example.com")

    notification = notifications.create_notification(
        test_db,
        user_id=user.id,
        notification_type="PAYMENT_RECEIVED",
        data={"amount": "20.00", "clientName": "Acme"},
        channels=["IN_APP", "EMAIL"],
    )
    assert notification.channels == ["IN_APP", "EMAIL"]
    assert notification.sent_channels == ["IN_APP"]
    assert notification.message == "Payment of $20.00 received from Acme"

    with pytest.raises(ValidationError):
        notifications.create_notification(
            test_db,
            user_id=user.id,
            notification_type="PAYMENT_RECEIVED",
            channels=["PIGEON"],
        )


def test_inbox_read_flow(test_db: Session):
    user = _create_user(test_db, "inbox@example.com")
    first = notifications.create_notification(
        test_db, user_id=user.id, notification_type="CLIENT_CREATED", data={"clientName": "One"}
    )
    notifications.create_notification(
        test_db, user_id=user.id, notification_type="CLIENT_CREATED", data={"clientName": "Two"}
    )
    test_db.commit()

    listed = _list(test_db, user)
    assert len(listed["data"]) == 2
    assert listed["unread_count"] == 2

    read = asyncio.run(notifications_router.mark_read(notification_id=str(first.id), user=user, db=test_db))["data"]
    assert read["is_read"] is True
    assert read["read_at"] is not None

    unread = _list(test_db, user, unread_only=True)["data"]
    assert [n["message"] for n in unread] == ["Two has been added as a new client"]

    updated = asyncio.run(notifications_router.mark_all_read(user=user, db=test_db))["data"]
    assert updated == {"updated": 1}
    count = asyncio.run(notifications_router.get_unread_count(user=user, db=test_db))["data"]
    assert count == {"count": 0}


def test_mark_read_limited_to_recipient(test_db: Session):
    owner = _create_user(test_db, "mine@example.com")
    other = _create_user(test_db, "yours@example.com")
    notification = notifications.create_notification(
        test_db, user_id=owner.id, notification_type="CLIENT_CREATED", data={"clientName": "X"}
    )
    test_db.commit()

    with pytest.raises(NotFoundError):
        asyncio.run(notifications_router.mark_read(notification_id=str(notification.id), user=other, db=test_db))


def test_list_filters_by_type_and_hides_expired(test_db: Session):
    user = _create_user(test_db, "filters@example.com")
    notifications.create_notification(
        test_db, user_id=user.id, notification_type="INVOICE_OVERDUE", data={"invoiceNumber": "1", "clientName": "A"}
    )
    notifications.create_notification(
        test_db, user_id=user.id, notification_type="CLIENT_CREATED", data={"clientName": "B"}
    )
    notifications.create_notification(
        test_db,
        user_id=user.id,
        notification_type="CLIENT_CREATED",
        data={"clientName": "Old"},
        expires_at=datetime.utcnow() - timedelta(minutes=1),
    )
    test_db.commit()

    overdue = _list(test_db, user, types=["INVOICE_OVERDUE"])["data"]
    assert [n["type"] for n in overdue] == ["INVOICE_OVERDUE"]

    listed = _list(test_db, user)
    assert len(listed["data"]) == 2
    assert listed["unread_count"] == 2


def test_cleanup_expired_and_old_read_notifications(test_db: Session):
    user = _create_user(test_db, "cleanup@example.com")
    now = datetime(2026, 6, 1)
    expired = Notification(
        user_id=user.id, type="CLIENT_CREATED", title="t", message="m", expires_at=now - timedelta(days=1)
    )
    old_read = Notification(
        user_id=user.id, type="CLIENT_CREATED", title="t", message="m", is_read=True,
        created_at=now - timedelta(days=120),
    )
    old_unread = Notification(
        user_id=user.id, type="CLIENT_CREATED", title="t", message="m", is_read=False,
        created_at=now - timedelta(days=120),
    )
    recent_read = Notification(
        user_id=user.id, type="CLIENT_CREATED", title="t", message="m", is_read=True,
        created_at=now - timedelta(days=5),
    )
    test_db.add_all([expired, old_read, old_unread, recent_read])
    test_db.commit()
    kept_ids = {old_unread.id, recent_read.id}

    assert notifications.cleanup_expired_notifications(test_db, now=now) == 2
    assert {n.id for n in test_db.query(Notification).all()} == kept_ids


def test_notify_organization_skips_actor_and_filters_roles(test_db: Session):
    owner = _create_user(test_db, "chief@example.com", account_type="business")
    organization = service.create_organization(test_db, owner, name="Notify Org")
    admin = _create_user(test_db, "deputy@example.com", account_type="business")
    member = _create_user(test_db, "crew@example.com", account_type="business")
    _add_member(test_db, organization, admin, role="ADMIN")
    _add_member(test_db, organization, member)

    everyone = notifications.notify_organization(
        test_db,
        organization_id=organization.id,
        notification_type="CLIENT_CREATED",
        data={"clientName": "Acme"},
        exclude_user_id=owner.id,
    )
    assert {n.user_id for n in everyone} == {admin.id, member.id}

    managers = notifications.notify_organization(
        test_db,
        organization_id=organization.id,
        notification_type="CLIENT_CREATED",
        data={"clientName": "Acme"},
        roles=["OWNER", "ADMIN"],
    )
    assert {n.user_id for n in managers} == {owner.id, admin.id}


def test_create_notification_endpoint_permissions(test_db: Session):
    owner = _create_user(test_db, "boss@example.com", account_type="business")
    organization = service.create_organization(test_db, owner, name="Permission Org")
    member = _create_user(test_db, "worker@example.com", account_type="business")
    _add_member(test_db, organization, member)
    outsider = _create_user(test_db, "outsider@example.com")

    own = asyncio.run(notifications_router.create_notification(
        body=NotificationCreateRequest(type="CLIENT_CREATED", data={"clientName": "Self"}),
        user=outsider,
        db=test_db,
    ))["data"]
    assert own["message"] == "Self has been added as a new client"

    with pytest.raises(AuthorizationError):
        asyncio.run(notifications_router.create_notification(
            body=NotificationCreateRequest(type="CLIENT_CREATED", user_id=member.id),
            user=outsider,
            db=test_db,
        ))

    with pytest.raises(AuthorizationError):
        asyncio.run(notifications_router.create_notification(
            body=NotificationCreateRequest(type="CLIENT_CREATED", user_id=owner.id, organization_id=organization.id),
            user=member,
            db=test_db,
        ))

    with pytest.raises(ValidationError):
        asyncio.run(notifications_router.create_notification(
            body=NotificationCreateRequest(type="CLIENT_CREATED", user_id=outsider.id, organization_id=organization.id),
            user=owner,
            db=test_db,
        ))

    sent = asyncio.run(notifications_router.create_notification(
        body=NotificationCreateRequest(
            type="ORG_MEMBER_JOINED",
            data={"memberName": "Worker"},
            user_id=member.id,
            organization_id=organization.id,
        ),
        user=owner,
        db=test_db,
    ))["data"]
    assert sent["organization_id"] == str(organization.id)
    assert test_db.query(Notification).filter(Notification.user_id == member.id).count() == 1
