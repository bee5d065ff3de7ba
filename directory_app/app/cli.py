from __future__ import annotations

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import InvitationError
from .models import User


@click.group("scheduler")
def scheduler_cli():
    """Scheduler related commands."""
    pass


@scheduler_cli.command("run")
@with_appcontext
def run_scheduler():
    """Run the dedicated scheduler process. Use in production as separate container or systemd service."""
    # Import lazily to avoid importing APScheduler at Flask startup when not needed
    from .scheduler import run

    current_app.logger.info("Starting scheduler via CLI")
    run()


@click.group("invitations")
def invitations_cli():
    """Invitation maintenance commands."""
    pass


@invitations_cli.command("expire")
@with_appcontext
def expire_invitations():
    """Mark pending invitations past their expiry as expired."""
    from .jobs import expire_stale_invitations

    count = expire_stale_invitations()
    click.echo(f"Expired {count} invitation(s)")


@invitations_cli.command("import-csv")
@click.argument("csv_file", type=click.File("r", encoding="utf-8"))
@click.option("--issuer", "issuer_email", required=True, help="Email of the account issuing the invitations.")
@click.option(
    "--organization-type", type=click.Choice(["company", "association"]), required=True, help="Target organization type."
)
@click.option("--organization-id", type=int, required=True, help="Target organization id.")
@with_appcontext
def import_csv(csv_file, issuer_email: str, organization_type: str, organization_id: int):
    """Bulk-issue invitations from CSV_FILE (columns: email, first_name, last_name, role, designation, department)."""
    from .invitations.service import InvitationService, parse_invitation_csv

    issuer = User.query.filter_by(email=issuer_email.strip().lower()).first()
    if issuer is None:
        raise click.ClickException(f"No account with email {issuer_email}")
    try:
        rows = parse_invitation_csv(csv_file.read())
        result = InvitationService().issue_bulk(issuer.id, organization_type, organization_id, rows)
    except InvitationError as exc:
        raise click.ClickException(str(exc.message)) from exc

    click.echo(f"Invited {result.success}, failed {result.failed}")
    for error in result.errors:
        click.echo(f"  {error}")
    if result.notification_failures:
        click.echo(f"{result.notification_failures} invitation email(s) could not be delivered")
