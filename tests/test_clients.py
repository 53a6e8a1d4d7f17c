"""Tests for the client directory and record scoping."""

import asyncio
import uuid

import pytest
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ledgerly.auth.models import UserProfile
from ledgerly.errors import ConflictError, ValidationError
from ledgerly.metadata import Client, Invoice, Notification
from ledgerly.models.requests import ClientPayload
from ledgerly.organizations import service
from ledgerly.organizations.context import Scope, resolve_scope
from ledgerly.routers import clients as clients_router


def _create_user(test_db: Session, email: str, *, account_type: str = "individual") -> UserProfile:
    user = UserProfile(
        id=uuid.uuid4(),
        email=email,
        name=email.split("@")[0],
        account_type=account_type,
        is_active=True,
    )
    test_db.add(user)
    test_db.commit()
    return user


def _business_scope(test_db: Session, email: str = "biz@example.com") -> Scope:
    owner = _create_user(test_db, email, account_type="business")
    organization = service.create_organization(test_db, owner, name=f"Org {email}")
    return resolve_scope(test_db, owner, str(organization.id))


def _add_client(test_db: Session, scope: Scope, **fields):
    return asyncio.run(clients_router.add_client(body=ClientPayload(**fields), scope=scope, db=test_db))


def test_add_client_infers_type_and_notifies(test_db: Session):
    user = _create_user(test_db, "solo@example.com")
    scope = Scope(user=user)

    response = _add_client(test_db, scope, name=" Jane Doe ", email="Jane@Example.com")
    company = _add_client(test_db, scope, name="Initech", company_name="Initech LLC")

    assert response["data"]["name"] == "Jane Doe"
    assert response["data"]["email"] == "jane@example.com"
    assert response["data"]["type"] == "individual"
    assert response["data"]["organization_id"] is None
    assert company["data"]["type"] == "business"

    messages = [n.message for n in test_db.query(Notification).filter(Notification.user_id == user.id).all()]
    assert "Jane Doe has been added as a new client" in messages


def test_add_client_validates_fields(test_db: Session):
    scope = Scope(user=_create_user(test_db, "validate@example.com"))

    with pytest.raises(ValidationError) as exc:
        _add_client(test_db, scope, email="no-name@example.com")
    assert exc.value.code == "MISSING_FIELDS"

    with pytest.raises(ValidationError) as exc:
        _add_client(test_db, scope, name="Bad Email", email="not-an-email")
    assert exc.value.code == "INVALID_EMAIL"

    with pytest.raises(ValidationError):
        _add_client(test_db, scope, name="Bad Type", type="government")


def test_duplicate_client_name_or_email_rejected_within_scope(test_db: Session):
    scope = Scope(user=_create_user(test_db, "dupes@example.com"))
    other_scope = Scope(user=_create_user(test_db, "other@example.com"))
    _add_client(test_db, scope, name="Acme", email="billing@acme.test")

    with pytest.raises(ConflictError) as exc:
        _add_client(test_db, scope, name="ACME")
    assert exc.value.code == "DUPLICATE_CLIENT"
    with pytest.raises(ConflictError):
        _add_client(test_db, scope, name="Acme Two", email="BILLING@acme.test")

    # Another account may use the same client name.
    assert _add_client(test_db, other_scope, name="Acme")["success"] is True


def test_individual_and_business_records_are_isolated(test_db: Session):
    individual = Scope(user=_create_user(test_db, "indie@example.com"))
    business = _business_scope(test_db)
    _add_client(test_db, individual, name="Personal Client")
    created = _add_client(test_db, business, name="Company Client")

    individual_list = asyncio.run(clients_router.list_clients(scope=individual, db=test_db))
    business_list = asyncio.run(clients_router.list_clients(scope=business, db=test_db))

    assert [c["name"] for c in individual_list["data"]] == ["Personal Client"]
    assert [c["name"] for c in business_list["data"]] == ["Company Client"]
    assert business_list["data"][0]["organization_id"] == str(business.organization_id)

    with pytest.raises(HTTPException) as exc:
        asyncio.run(clients_router.get_client(client_id=created["data"]["id"], scope=individual, db=test_db))
    assert exc.value.status_code == 404


def test_business_scope_requires_organization_header(test_db: Session):
    owner = _create_user(test_db, "headerless@example.com", account_type="business")

    with pytest.raises(ValidationError) as exc:
        resolve_scope(test_db, owner, None)
    assert exc.value.code == "ORG_CONTEXT_REQUIRED"


def test_search_clients_matches_name_email_and_company(test_db: Session):
    scope = Scope(user=_create_user(test_db, "search@example.com"))
    _add_client(test_db, scope, name="Alpha", email="contact@globex.test")
    _add_client(test_db, scope, name="Beta", company_name="Globex Corp")
    _add_client(test_db, scope, name="Gamma")

    response = asyncio.run(clients_router.search_clients(q="globex", scope=scope, db=test_db))

    assert [c["name"] for c in response["data"]] == ["Alpha", "Beta"]
    with pytest.raises(ValidationError):
        asyncio.run(clients_router.search_clients(q="  ", scope=scope, db=test_db))


def test_update_client_checks_duplicates_excluding_itself(test_db: Session):
    scope = Scope(user=_create_user(test_db, "update@example.com"))
    first = _add_client(test_db, scope, name="First", email="first@example.com")
    _add_client(test_db, scope, name="Second")

    response = asyncio.run(clients_router.update_client(
        client_id=first["data"]["id"],
        body=ClientPayload(name="First", phone="555-0100"),
        scope=scope,
        db=test_db,
    ))
    assert response["data"]["phone"] == "555-0100"

    with pytest.raises(ConflictError):
        asyncio.run(clients_router.update_client(
            client_id=first["data"]["id"],
            body=ClientPayload(name="Second"),
            scope=scope,
            db=test_db,
        ))


def test_client_analytics_counts_types_and_paid_revenue(test_db: Session):
    user = _create_user(test_db, "analytics@example.com")
    scope = Scope(user=user)
    client = _add_client(test_db, scope, name="Payer", company_name="Payer Inc")
    _add_client(test_db, scope, name="Person")
    client_id = uuid.UUID(client["data"]["id"])
    test_db.add_all([
        Invoice(user_id=user.id, client_id=client_id, status="PAID", total_amount=150),
        Invoice(user_id=user.id, client_id=client_id, status="SENT", total_amount=99),
    ])
    test_db.commit()

    response = asyncio.run(clients_router.client_analytics(scope=scope, db=test_db))

    assert response["data"]["total_clients"] == 2
    assert response["data"]["total_revenue"] == 150.0
    assert response["data"]["by_type"] == {"individual": 1, "business": 1}

    invoices = asyncio.run(clients_router.client_invoices(client_id=str(client_id), scope=scope, db=test_db))
    assert len(invoices["data"]) == 2


def test_delete_client(test_db: Session):
    scope = Scope(user=_create_user(test_db, "delete@example.com"))
    created = _add_client(test_db, scope, name="Gone")

    asyncio.run(clients_router.delete_client(client_id=created["data"]["id"], scope=scope, db=test_db))

    assert test_db.query(Client).count() == 0
