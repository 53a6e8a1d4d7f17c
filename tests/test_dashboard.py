"""Tests for the organization dashboard endpoints."""

import asyncio
from datetime import date
import uuid

from sqlalchemy.orm import Session

from ledgerly.auth.models import UserProfile
from ledgerly.metadata import Client, Contract, Invoice
from ledgerly.organizations import service
from ledgerly.organizations.context import load_org_context
from ledgerly.organizations.models import MEMBER_ACTIVE, MEMBER_PENDING, OrganizationMembership
from ledgerly.routers import dashboard


def _create_user(test_db: Session, email: str, name: str) -> UserProfile:
    user = UserProfile(id=uuid.uuid4(), email=email, name=name, account_type="business", is_active=True)
    test_db.add(user)
    test_db.commit()
    return user


def _setup_org(test_db: Session):
    owner = _create_user(test_db, "owner@dash.example.com", "Olive Owner")
    organization = service.create_organization(test_db, owner, name="Dash Org")
    member = _create_user(test_db, "member@dash.example.com", "Adam Member")
    test_db.add(OrganizationMembership(
        organization_id=organization.id,
        user_id=member.id,
        email=member.email,
        role="MEMBER",
        status=MEMBER_ACTIVE,
    ))
    test_db.add(OrganizationMembership(
        organization_id=organization.id,
        email="pending@dash.example.com",
        role="VIEWER",
        status=MEMBER_PENDING,
    ))
    member.default_organization_id = organization.id
    test_db.commit()
    return owner, member, organization


def test_dashboard_overview_counts(test_db: Session):
    owner, member, organization = _setup_org(test_db)
    client = Client(user_id=owner.id, organization_id=organization.id, name="Dash Client")
    test_db.add(client)
    test_db.flush()
    test_db.add_all([
        Invoice(user_id=owner.id, organization_id=organization.id, client_id=client.id, status="SENT", total_amount=10),
        Invoice(user_id=owner.id, organization_id=organization.id, client_id=client.id, status="PAID", total_amount=20),
        Contract(
            user_id=owner.id,
            organization_id=organization.id,
            client_id=client.id,
            title="Retainer",
            start_date=date(2026, 1, 1),
            status="ACTIVE",
        ),
    ])
    # Records outside the organization are not counted.
    test_db.add(Invoice(user_id=member.id, client_id=client.id, status="SENT", total_amount=5))
    test_db.commit()

    ctx = load_org_context(test_db, member, organization.id)
    data = asyncio.run(dashboard.dashboard_overview(ctx=ctx, db=test_db))["data"]

    assert data["total_invoices"] == 2
    assert data["pending_invoices"] == 1
    assert data["total_contracts"] == 1
    assert data["active_contracts"] == 1
    assert data["total_members"] == 2
    assert data["departments"] == []
    created = [a for a in data["recent_activities"] if a["type"] == "ORGANIZATION_CREATED"]
    assert created[0]["user"]["email"] == owner.email


def test_team_overview_orders_by_role(test_db: Session):
    owner, member, organization = _setup_org(test_db)

    ctx = load_org_context(test_db, owner, organization.id)
    data = asyncio.run(dashboard.team_overview(ctx=ctx, db=test_db))["data"]

    assert data["total"] == 2
    assert [m["name"] for m in data["members"]] == ["Olive Owner", "Adam Member"]
    assert data["members"][0]["role"] == "OWNER"
    assert data["members"][0]["activity_count"] >= 1
    assert data["members"][1]["activity_count"] == 0


def test_activity_feed_paginates(test_db: Session):
    owner, _, organization = _setup_org(test_db)
    service.update_organization(test_db, load_org_context(test_db, owner, organization.id), {"description": "Updated"})

    ctx = load_org_context(test_db, owner, organization.id)
    first = asyncio.run(dashboard.activity_feed(page=1, limit=1, ctx=ctx, db=test_db))["data"]

    total = first["pagination"]["total"]
    assert total >= 2
    assert first["pagination"]["pages"] == total
    assert len(first["activities"]) == 1

    beyond = asyncio.run(dashboard.activity_feed(page=total + 1, limit=1, ctx=ctx, db=test_db))["data"]
    assert beyond["activities"] == []
