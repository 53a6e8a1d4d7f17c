"""Scheduled maintenance jobs (run from cron or a scheduler) and operator actions."""

from datetime import datetime

import click

from ledgerly.cli.base import CliCommand
from ledgerly.contracts import check_expiring_contracts
from ledgerly.invoices import mark_overdue_invoices
from ledgerly.notifications import cleanup_expired_notifications
from ledgerly.organizations.context import parse_uuid
from ledgerly.organizations.invitations import cleanup_expired_invitations
from ledgerly.organizations.models import Organization
from ledgerly.organizations.subscription import activate_organization, expire_lapsed_subscriptions
from ledgerly.settings import settings


@click.command(name='cleanup-invitations')
@click.option('--organization-id', default=None, help='Only clean up invitations for this organization')
def cleanup_invitations_command(organization_id):
    """Delete expired pending invitations."""
    deleted = CleanupInvitationsCommand(organization_id).run()
    click.echo(f"Deleted {deleted} expired invitations")


class CleanupInvitationsCommand(CliCommand):

    def __init__(self, organization_id=None):
        super().__init__()
        self.organization_id = organization_id

    def execute(self):
        organization_id = parse_uuid(self.organization_id, "organization id") if self.organization_id else None
        return cleanup_expired_invitations(self.db, organization_id=organization_id)


@click.command(name='check-expiring-contracts')
def check_expiring_contracts_command():
    """Send expiry reminders, then renew or expire contracts past their end date."""
    result = CheckExpiringContractsCommand().run()
    click.echo(
        f"Contracts: {len(result['notified'])} notified, "
        f"{len(result['renewed'])} renewed, {len(result['expired'])} expired"
    )


class CheckExpiringContractsCommand(CliCommand):

    def execute(self):
        return check_expiring_contracts(self.db, datetime.utcnow())


@click.command(name='mark-overdue-invoices')
def mark_overdue_invoices_command():
    """Mark SENT invoices past their due date as OVERDUE."""
    changed = MarkOverdueInvoicesCommand().run()
    click.echo(f"Marked {len(changed)} invoices overdue")


class MarkOverdueInvoicesCommand(CliCommand):

    def execute(self):
        return mark_overdue_invoices(self.db, datetime.utcnow())


@click.command(name='expire-subscriptions')
def expire_subscriptions_command():
    """Unsubscribe organizations whose scheduled cancellation has passed."""
    count = ExpireSubscriptionsCommand().run()
    click.echo(f"Expired {count} subscriptions")


class ExpireSubscriptionsCommand(CliCommand):

    def execute(self):
        return expire_lapsed_subscriptions(self.db, datetime.utcnow())


@click.command(name='cleanup-notifications')
@click.option('--retention-days', default=None, type=int,
              help='Delete read notifications older than this many days (default from settings)')
def cleanup_notifications_command(retention_days):
    """Delete expired notifications and old read notifications."""
    days = retention_days if retention_days is not None else settings.notification_retention_days
    deleted = CleanupNotificationsCommand(days).run()
    click.echo(f"Deleted {deleted} notifications")


class CleanupNotificationsCommand(CliCommand):

    def __init__(self, retention_days: int):
        super().__init__()
        self.retention_days = retention_days

    def execute(self):
        return cleanup_expired_notifications(self.db, datetime.utcnow(), retention_days=self.retention_days)


@click.command(name='activate-subscription')
@click.argument('organization_id')
@click.option('--tier', default=None, help='Subscription tier (default DEFAULT_SUBSCRIPTION_TIER)')
def activate_subscription_command(organization_id, tier):
    """Mark an organization subscribed after billing confirmed payment."""
    name, tier = ActivateSubscriptionCommand(organization_id, tier).run()
    click.echo(f"Activated {name} ({tier})")


class ActivateSubscriptionCommand(CliCommand):

    def __init__(self, organization_id, tier=None):
        super().__init__()
        self.organization_id = organization_id
        self.tier = tier

    def execute(self):
        organization_id = parse_uuid(self.organization_id, "organization id")
        organization = self.db.query(Organization).filter(Organization.id == organization_id).first()
        if organization is None:
            raise click.ClickException(f"Organization {organization_id} not found")
        activate_organization(self.db, organization, tier=self.tier)
        return organization.name, organization.subscription_tier
