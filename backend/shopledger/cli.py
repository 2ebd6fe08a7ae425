# Overview: Flask CLI command group for schema bootstrap and the daily allocation run.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# - python -m flask ledger init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
# - python -m flask ledger reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask ledger due-allocations [--program A] [--as-of 2026-01-15T08:00]
#   List allocations due for hand-out.
# - python -m flask ledger due-credits [--as-of 2026-03-01T00:00]
#   List supplier credits past their due date.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import allocation_service, supplier_service
from .time_utils import parse_iso_datetime


@click.group('ledger')
def ledger_group():
    """Ledger bootstrap and inspection commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@ledger_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@ledger_group.command('due-allocations')
@click.option('--program', 'program_type', type=click.Choice(['A', 'B']), default=None, help='Filter by program')
@click.option('--as-of', 'as_of', default=None, help='Evaluate at this ISO-8601 instant (default: now)')
@with_appcontext
def due_allocations(program_type, as_of):
    """List allocations that are due (or never given)."""
    try:
        now = parse_iso_datetime(as_of)
    except ValueError:
        raise click.BadParameter("must be an ISO-8601 datetime", param_hint="--as-of")

    due = allocation_service.get_due_allocations(now=now, program_type=program_type)
    if not due:
        click.echo("No allocations due.")
        return

    click.echo(f"{'ID':<6} {'Customer':<28} {'Product':<28} {'Qty':>4}  {'State':<12} {'Overdue':>7}")
    click.echo("-" * 92)
    for allocation, status in due:
        click.echo(
            f"{allocation.id:<6} {allocation.customer.name[:28]:<28} {allocation.product.name[:28]:<28} "
            f"{allocation.quantity:>4}  {status.state:<12} {status.days_overdue:>7}"
        )
    click.echo(f"\n{len(due)} allocation(s) due.")


@ledger_group.command('due-credits')
@click.option('--as-of', 'as_of', default=None, help='Evaluate at this ISO-8601 instant (default: now)')
@with_appcontext
def due_credits(as_of):
    """List unpaid supplier credits past their due date."""
    try:
        now = parse_iso_datetime(as_of)
    except ValueError:
        raise click.BadParameter("must be an ISO-8601 datetime", param_hint="--as-of")

    credits = supplier_service.get_due_credits(now=now)
    if not credits:
        click.echo("No overdue supplier credits.")
        return

    for credit in credits:
        click.echo(
            f"[{credit['id']}] {credit['supplier_name']}: {credit['amount_cents']} cents "
            f"due {credit['due_date']} ({credit['days_overdue']} days overdue)"
        )
    click.echo(f"\nTotal overdue: {sum(c['amount_cents'] for c in credits)} cents (as of {credits[0]['as_of']})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
