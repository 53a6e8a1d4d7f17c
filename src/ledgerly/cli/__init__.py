"""Ledgerly CLI entry point with lazy command registration."""

from __future__ import annotations

import logging
import os

import click

_COMMANDS_REGISTERED = False


def _register_commands_once() -> None:
    global _COMMANDS_REGISTERED
    if _COMMANDS_REGISTERED:
        return

    from .commands import jobs, server

    cli.add_command(jobs.cleanup_invitations_command, name="cleanup-invitations")
    cli.add_command(jobs.check_expiring_contracts_command, name="check-expiring-contracts")
    cli.add_command(jobs.mark_overdue_invoices_command, name="mark-overdue-invoices")
    cli.add_command(jobs.expire_subscriptions_command, name="expire-subscriptions")
    cli.add_command(jobs.activate_subscription_command, name="activate-subscription")
    cli.add_command(jobs.cleanup_notifications_command, name="cleanup-notifications")
    cli.add_command(server.serve_command, name="serve")

    _COMMANDS_REGISTERED = True


class _LazyCLIGroup(click.Group):
    def list_commands(self, ctx):
        _register_commands_once()
        return super().list_commands(ctx)

    def get_command(self, ctx, cmd_name):
        _register_commands_once()
        return super().get_command(ctx, cmd_name)


@click.group(cls=_LazyCLIGroup)
def cli():
    """Ledgerly operator CLI: maintenance jobs and the API server."""
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    cli()
