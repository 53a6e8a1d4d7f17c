"""Tests for the maintenance job and server CLI commands."""

from datetime import date, datetime, timedelta
import uuid

import pytest
from click.testing import CliRunner
from sqlalchemy.orm import Session

from ledgerly.auth.models import UserProfile
from ledgerly.cli import cli
from ledgerly.cli.base import CliCommand
from ledgerly.metadata import Client, Invoice, Notification
from ledgerly.organizations import service
from ledgerly.organizations.models import MEMBER_PENDING, OrganizationMembership
from ledgerly.settings import settings


@pytest.fixture
def cli_db(test_db: Session, monkeypatch):
    """Route every command's session to the in-memory test database."""
    monkeypatch.setattr(CliCommand, "setup_db", lambda self: setattr(self, "db", test_db))
    monkeypatch.setattr(CliCommand, "cleanup_db", lambda self: None)
    return test_db


def _create_user(test_db: Session, email: str = "ops@example.com", account_type: str = "individual") -> UserProfile:
    user = UserProfile(id=uuid.uuid4(), email=email, name="Ops", account_type=account_type, is_active=True)
    test_db.add(user)
    test_db.commit()
    return user


def test_help_lists_commands():
    result = CliRunner().invoke(cli, ["--help"])

    assert result.exit_code == 0
    for name in (
        "cleanup-invitations",
        "check-expiring-contracts",
        "mark-overdue-invoices",
        "expire-subscriptions",
        "activate-subscription",
        "cleanup-notifications",
        "serve",
    ):
        assert name in result.output


def test_cleanup_invitations_command(cli_db: Session):
    owner = _create_user(cli_db, "owner@example.com", account_type="business")
    organization = service.create_organization(cli_db, owner, name="Ops Org")
    cli_db.add_all([
        OrganizationMembership(
            organization_id=organization.id,
            email="late@example.com",
            status=MEMBER_PENDING,
            invitation_token="expired-token",
            invitation_expiry=datetime.utcnow() - timedelta(days=1),
        ),
        OrganizationMembership(
            organization_id=organization.id,
            email="fresh@example.com",
            status=MEMBER_PENDING,
            invitation_token="fresh-token",
            invitation_expiry=datetime.utcnow() + timedelta(days=6),
        ),
    ])
    cli_db.commit()

    result = CliRunner().invoke(cli, ["cleanup-invitations", "--organization-id", str(organization.id)])

    assert result.exit_code == 0, result.output
    assert "Deleted 1 expired invitations" in result.output
    emails = {m.email for m in cli_db.query(OrganizationMembership).all()}
    assert "fresh@example.com" in emails
    assert "late@example.com" not in emails


def test_mark_overdue_invoices_command(cli_db: Session):
    user = _create_user(cli_db)
    client = Client(user_id=user.id, name="Late Payer")
    cli_db.add(client)
    cli_db.flush()
    cli_db.add(Invoice(
        user_id=user.id,
        client_id=client.id,
        status="SENT",
        total_amount=10,
        due_date=date.today() - timedelta(days=3),
    ))
    cli_db.commit()

    result = CliRunner().invoke(cli, ["mark-overdue-invoices"])

    assert result.exit_code == 0, result.output
    assert "Marked 1 invoices overdue" in result.output
    assert cli_db.query(Invoice).one().status == "OVERDUE"


def test_contract_and_subscription_jobs_report_counts(cli_db: Session):
    runner = CliRunner()

    contracts = runner.invoke(cli, ["check-expiring-contracts"])
    assert contracts.exit_code == 0, contracts.output
    assert "Contracts: 0 notified, 0 renewed, 0 expired" in contracts.output

    subscriptions = runner.invoke(cli, ["expire-subscriptions"])
    assert subscriptions.exit_code == 0, subscriptions.output
    assert "Expired 0 subscriptions" in subscriptions.output


def test_cleanup_notifications_command(cli_db: Session):
    user = _create_user(cli_db)
    cli_db.add_all([
        Notification(
            user_id=user.id, type="CLIENT_CREATED", title="t", message="m", is_read=True,
            created_at=datetime.utcnow() - timedelta(days=10),
        ),
        Notification(user_id=user.id, type="CLIENT_CREATED", title="t", message="m"),
    ])
    cli_db.commit()

    result = CliRunner().invoke(cli, ["cleanup-notifications", "--retention-days", "7"])

    assert result.exit_code == 0, result.output
    assert "Deleted 1 notifications" in result.output
    assert cli_db.query(Notification).count() == 1


def test_invalid_organization_id_fails(cli_db: Session):
    result = CliRunner().invoke(cli, ["cleanup-invitations", "--organization-id", "not-a-uuid"])

    assert result.exit_code != 0


def test_serve_passes_options_to_uvicorn(monkeypatch):
    calls = []
    monkeypatch.setattr("ledgerly.cli.commands.server.uvicorn.run", lambda app, **kwargs: calls.append((app, kwargs)))

    result = CliRunner().invoke(cli, ["serve", "--host", "127.0.0.1", "--port", "9000", "--no-reload"])

    assert result.exit_code == 0, result.output
    app, kwargs = calls[0]
    assert app == "ledgerly.api:app"
    assert kwargs["host"] == "127.0.0.1"
    assert kwargs["port"] == 9000
    assert kwargs["reload"] is False
    assert kwargs["workers"] == settings.api_workers


def test_activate_subscription_command(cli_db: Session):
    owner = _create_user(cli_db, "payer@example.com", account_type="business")
    organization = service.create_organization(cli_db, owner, name="Paid Org")

    result = CliRunner().invoke(cli, ["activate-subscription", str(organization.id), "--tier", "business-plus"])

    assert result.exit_code == 0, result.output
    assert "Activated Paid Org (business-plus)" in result.output
    cli_db.refresh(organization)
    assert organization.is_subscribed is True
    assert organization.subscription_tier == "business-plus"

    missing = CliRunner().invoke(cli, ["activate-subscription", str(uuid.uuid4())])
    assert missing.exit_code != 0
    assert "not found" in missing.output
