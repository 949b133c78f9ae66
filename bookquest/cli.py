"""CLI commands for Flask application."""

import click
from flask.cli import with_appcontext


@click.command("expire-quests")
@with_appcontext
def expire_quests_command():
    """Expire or renew overdue quests."""
    from bookquest.clock import get_clock
    from bookquest.services import QuestLifecycle

    summary = QuestLifecycle(clock=get_clock()).expire_overdue()
    for result in summary["results"]:
        if result["action"] == "error":
            click.echo(f"  quest {result['quest_id']}: ERROR - {result['error']}")
        else:
            click.echo(f"  quest {result['quest_id']}: {result['action']}")

    click.echo(
        f"Done! {summary['expired']} expired, {summary['renewed']} renewed, "
        f"{summary['skipped']} in grace period, {summary['failed']} failed"
    )


@click.command("expiry-warnings")
@with_appcontext
def expiry_warnings_command():
    """Record and list due expiry warnings."""
    from bookquest.clock import get_clock
    from bookquest.services import QuestLifecycle

    warnings = QuestLifecycle(clock=get_clock()).due_expiry_warnings()
    for warning in warnings:
        click.echo(
            f"  quest {warning['quest_id']} (user {warning['user_id']}): "
            f"{warning['window']}, {warning['minutes_remaining']} min left"
        )
    click.echo(f"{len(warnings)} warnings due")


def register_commands(app):
    """Attach the maintenance commands to ``flask``."""
    app.cli.add_command(expire_quests_command)
    app.cli.add_command(expiry_warnings_command)
