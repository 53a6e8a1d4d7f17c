"""Tests for contract workflow, renewal and expiry processing."""

import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal
import uuid

import pytest
from sqlalchemy.orm import Session

from ledgerly import contracts
from ledgerly.auth.models import UserProfile
from ledgerly.errors import AuthorizationError, ExternalServiceError, ValidationError
from ledgerly.metadata import Client, Contract, Notification
from ledgerly.models.requests import ContractPayload, RenewalSettingsRequest, SendDocumentRequest, StatusChangeRequest
from ledgerly.organizations import service
from ledgerly.organizations.context import Scope, resolve_scope
from ledgerly.organizations.models import MEMBER_ACTIVE, OrganizationMembership
from ledgerly.routers import contracts as contracts_router


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


def _create_client(test_db: Session, user: UserProfile, organization_id=None) -> Client:
    client = Client(user_id=user.id, organization_id=organization_id, name="Stark Industries", email="legal@stark.test")
    test_db.add(client)
    test_db.commit()
    return client


def _create_contract(test_db: Session, scope: Scope, client: Client, **fields) -> dict:
    payload = {"client_id": client.id, "title": "Support Agreement", "start_date": date(2026, 1, 1), **fields}
    return asyncio.run(contracts_router.create_contract(body=ContractPayload(**payload), scope=scope, db=test_db))["data"]


def _team(test_db: Session):
    owner = _create_user(test_db, "manager@example.com", account_type="business")
    organization = service.create_organization(test_db, owner, name="Contract Team")
    member = _create_user(test_db, "author@example.com", account_type="business")
    test_db.add(OrganizationMembership(
        organization_id=organization.id,
        user_id=member.id,
        email=member.email,
        role="MEMBER",
        status=MEMBER_ACTIVE,
    ))
    member.default_organization_id = organization.id
    test_db.commit()
    return (
        resolve_scope(test_db, owner, str(organization.id)),
        resolve_scope(test_db, member, str(organization.id)),
    )


def test_create_contract_defaults(test_db: Session):
    user = _create_user(test_db, "solo@example.com")
    client = _create_client(test_db, user)

    contract = _create_contract(
        test_db,
        Scope(user=user),
        client,
        end_date=date(2026, 12, 31),
        value=Decimal("1200"),
        auto_renew=True,
    )

    assert contract["status"] == "DRAFT"
    assert contract["approval_status"] == "PENDING"
    assert contract["contract_type"] == "service_agreement"
    assert contract["billing_frequency"] == "one_time"
    assert contract["renewal_terms"] == {"duration": 365, "priceAdjustment": 0, "notificationDays": [30, 15, 7]}
    assert contract["next_renewal_date"] == "2026-12-31"
    assert contract["client"]["name"] == "Stark Industries"

    notification = test_db.query(Notification).filter(Notification.user_id == user.id).one()
    assert notification.message == 'Contract "Support Agreement" has been created for Stark Industries'


def test_create_contract_validation(test_db: Session):
    user = _create_user(test_db, "checks@example.com")
    client = _create_client(test_db, user)
    scope = Scope(user=user)

    with pytest.raises(ValidationError) as exc:
        asyncio.run(contracts_router.create_contract(
            body=ContractPayload(title="No client", start_date=date(2026, 1, 1)),
            scope=scope,
            db=test_db,
        ))
    assert exc.value.code == "MISSING_CLIENT"

    with pytest.raises(ValidationError):
        _create_contract(test_db, scope, client, end_date=date(2025, 12, 1))
    with pytest.raises(ValidationError):
        _create_contract(test_db, scope, client, contract_type="handshake")
    with pytest.raises(ValidationError):
        _create_contract(test_db, scope, client, renewal_terms={"duration": 0})
    with pytest.raises(ValidationError) as exc:
        _create_contract(test_db, scope, client, title="  ")
    assert exc.value.code == "MISSING_FIELDS"


def test_status_transitions(test_db: Session):
    user = _create_user(test_db, "flow@example.com")
    client = _create_client(test_db, user)
    scope = Scope(user=user)
    contract = _create_contract(test_db, scope, client)

    for target in ("pending_signature", "SIGNED", "ACTIVE"):
        updated = asyncio.run(contracts_router.change_contract_status(
            contract_id=contract["id"],
            body=StatusChangeRequest(status=target),
            scope=scope,
            db=test_db,
        ))["data"]
    assert updated["status"] == "ACTIVE"

    with pytest.raises(ValidationError) as exc:
        asyncio.run(contracts_router.change_contract_status(
            contract_id=contract["id"],
            body=StatusChangeRequest(status="DRAFT"),
            scope=scope,
            db=test_db,
        ))
    assert exc.value.code == "INVALID_STATUS_TRANSITION"

    cancelled = asyncio.run(contracts_router.cancel_contract(contract_id=contract["id"], scope=scope, db=test_db))
    assert cancelled["data"]["status"] == "CANCELLED"
    assert contracts.can_transition("CANCELLED", "ACTIVE") is False


def test_approval_requires_manager_and_notifies_author(test_db: Session):
    manager_scope, member_scope = _team(test_db)
    client = _create_client(test_db, member_scope.user, organization_id=member_scope.organization_id)
    contract = _create_contract(test_db, member_scope, client)

    with pytest.raises(AuthorizationError):
        asyncio.run(contracts_router.approve_contract(contract_id=contract["id"], scope=member_scope, db=test_db))

    approved = asyncio.run(contracts_router.approve_contract(
        contract_id=contract["id"], scope=manager_scope, db=test_db
    ))["data"]

    assert approved["approval_status"] == "APPROVED"
    assert approved["approved_by"] == str(manager_scope.user.id)
    notification = test_db.query(Notification).filter(
        Notification.user_id == member_scope.user.id,
        Notification.type == "CONTRACT_APPROVED",
    ).one()
    assert notification.message == 'Contract "Support Agreement" has been approved by Manager'


def test_individual_accounts_cannot_review_contracts(test_db: Session):
    user = _create_user(test_db, "reviewer@example.com")
    client = _create_client(test_db, user)
    scope = Scope(user=user)
    contract = _create_contract(test_db, scope, client)

    with pytest.raises(ValidationError):
        asyncio.run(contracts_router.reject_contract(contract_id=contract["id"], scope=scope, db=test_db))


def test_renew_applies_price_adjustment(test_db: Session):
    user = _create_user(test_db, "renew@example.com")
    client = _create_client(test_db, user)
    contract = Contract(
        user_id=user.id,
        client_id=client.id,
        title="Hosting",
        start_date=date(2025, 1, 1),
        end_date=date(2025, 12, 31),
        status="ACTIVE",
        value=Decimal("1000.00"),
        auto_renew=True,
        renewal_terms={"duration": 180, "priceAdjustment": 10, "notificationDays": [30]},
        renewal_history=[],
    )
    test_db.add(contract)
    test_db.commit()

    result = contracts.renew_contract(test_db, contract, user_id=user.id, today=date(2026, 1, 1))
    test_db.commit()
    renewed = result["contract"]

    assert result["message"] == "Contract renewed successfully. Price adjusted by 10%"
    assert renewed.value == Decimal("1100.00")
    assert renewed.start_date == date(2026, 1, 1)
    assert renewed.end_date == date(2026, 6, 30)
    assert renewed.status == "ACTIVE"
    assert renewed.next_renewal_date == date(2026, 6, 30)
    assert renewed.renewal_history[-1]["previousContractId"] == str(contract.id)
    assert contract.status == "EXPIRED"


def test_renew_cancelled_contract_fails(test_db: Session):
    user = _create_user(test_db, "nope@example.com")
    client = _create_client(test_db, user)
    scope = Scope(user=user)
    contract = _create_contract(test_db, scope, client)
    asyncio.run(contracts_router.cancel_contract(contract_id=contract["id"], scope=scope, db=test_db))

    with pytest.raises(ValidationError):
        asyncio.run(contracts_router.renew_contract(contract_id=contract["id"], scope=scope, db=test_db))


def test_renewal_settings_merge_terms(test_db: Session):
    user = _create_user(test_db, "settings@example.com")
    client = _create_client(test_db, user)
    scope = Scope(user=user)
    contract = _create_contract(test_db, scope, client, end_date=date(2026, 6, 30))

    updated = asyncio.run(contracts_router.update_renewal_settings(
        contract_id=contract["id"],
        body=RenewalSettingsRequest(auto_renew=True, renewal_terms={"priceAdjustment": 5}),
        scope=scope,
        db=test_db,
    ))["data"]

    assert updated["auto_renew"] is True
    assert updated["renewal_terms"]["priceAdjustment"] == 5
    assert updated["renewal_terms"]["duration"] == 365
    assert updated["next_renewal_date"] == "2026-06-30"

    with pytest.raises(ValidationError):
        asyncio.run(contracts_router.update_renewal_settings(
            contract_id=contract["id"],
            body=RenewalSettingsRequest(renewal_terms={"notificationDays": "weekly"}),
            scope=scope,
            db=test_db,
        ))


def test_check_expiring_contracts(test_db: Session):
    user = _create_user(test_db, "expiry@example.com")
    client = _create_client(test_db, user)
    now = datetime(2026, 6, 1, 0, 0)

    def _active(title, end_date, auto_renew=False):
        contract = Contract(
            user_id=user.id,
            client_id=client.id,
            title=title,
            start_date=date(2025, 6, 1),
            end_date=end_date,
            status="ACTIVE",
            value=Decimal("500"),
            auto_renew=auto_renew,
            renewal_history=[],
            notifications_sent=[],
        )
        test_db.add(contract)
        return contract

    reminder = _active("Reminder", date(2026, 6, 8))
    renewing = _active("Renewing", date(2026, 6, 1), auto_renew=True)
    lapsing = _active("Lapsing", date(2026, 5, 30))
    distant = _active("Distant", date(2026, 12, 1))
    test_db.commit()

    result = contracts.check_expiring_contracts(test_db, now=now)

    assert result["notified"] == [str(reminder.id)]
    assert len(result["renewed"]) == 1
    assert result["expired"] == [str(lapsing.id)]
    assert reminder.notifications_sent == [7]
    assert renewing.status == "EXPIRED"
    assert lapsing.status == "EXPIRED"
    assert distant.status == "ACTIVE"
    notification = test_db.query(Notification).filter(Notification.type == "CONTRACT_EXPIRING").one()
    assert notification.message == 'Contract "Reminder" expires in 7 days'

    again = contracts.check_expiring_contracts(test_db, now=now)
    assert again == {"notified": [], "renewed": [], "expired": []}


def test_send_contract_moves_draft_to_pending_signature(test_db: Session, monkeypatch):
    user = _create_user(test_db, "sender@example.com")
    client = _create_client(test_db, user)
    scope = Scope(user=user)
    contract = _create_contract(test_db, scope, client)
    calls = []

    def _fake_send(to_email, link, title, **kwargs):
        calls.append((to_email, link, title))
        return True

    monkeypatch.setattr("ledgerly.routers.contracts.send_contract_email", _fake_send)

    response = asyncio.run(contracts_router.send_contract(
        contract_id=contract["id"],
        body=SendDocumentRequest(),
        scope=scope,
        db=test_db,
    ))["data"]

    assert response["contract"]["status"] == "PENDING_SIGNATURE"
    assert response["contract"]["email_sent_to"] == "legal@stark.test"
    assert "/public/contract/" in response["public_url"]
    assert calls == [("legal@stark.test", response["public_url"], "Support Agreement")]


def test_send_contract_email_failure(test_db: Session, monkeypatch):
    user = _create_user(test_db, "unlucky@example.com")
    client = _create_client(test_db, user)
    scope = Scope(user=user)
    contract = _create_contract(test_db, scope, client)
    monkeypatch.setattr("ledgerly.routers.contracts.send_contract_email", lambda *args, **kwargs: False)

    with pytest.raises(ExternalServiceError):
        asyncio.run(contracts_router.send_contract(
            contract_id=contract["id"],
            body=SendDocumentRequest(),
            scope=scope,
            db=test_db,
        ))

    stored = test_db.query(Contract).filter(Contract.id == uuid.UUID(contract["id"])).one()
    assert stored.status == "DRAFT"
