# Overview: Flask CLI command groups for schema bootstrap and assignment roll-over.

# backend/stockroll/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "stockroll:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Assignment roll-over:
# - python -m flask assignments open-today --pairing-id 1 --actor-id 7
#   Create today's assignment for a store/operator pairing, or show the existing one.
# - python -m flask assignments create --pairing-id 1 --date 2026-03-02 --actor-id 7
#   Create an assignment for an explicit business date.
# - python -m flask assignments status 12 ASSIGNED --actor-id 7
#   Move an assignment along one lifecycle edge.
# - python -m flask assignments consolidate 12 --actor-id 7 [--skip-weekends]
#   Close an assignment and open the next business day's with carried balances.
# - python -m flask assignments balances 12
#   Show assigned vs current quantities per line.
# - python -m flask assignments history 12
#   Show the status audit trail, newest first.

import click
from flask.cli import with_appcontext

from .errors import AssignmentError
from .extensions import db
from .services.assignment_service import AssignmentService


def _fail(exc: AssignmentError):
    click.echo(f"FAIL {exc.code}: {exc.message}")
    raise click.exceptions.Exit(1)


def _echo_detail(detail):
    a = detail.assignment
    click.echo(
        f"Assignment {a.id}  pairing={a.store_assignment_id}  date={a.assignment_date.isoformat()}  "
        f"status={a.status}  auto={a.auto_assignment}"
    )
    click.echo(f"  {len(detail.tanks)} tank lines, {len(detail.items)} item lines")


@click.group('system')
def system_group():
    """Schema bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any missing tables (idempotent)."""
    db.create_all()
    click.echo("PASS Database schema ready.")


@system_group.command('reset-db')
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


@click.group('assignments')
def assignments_group():
    """Daily inventory assignment commands."""


@assignments_group.command('open-today')
@click.option('--pairing-id', type=int, required=True, help='Store assignment (pairing) ID')
@click.option('--actor-id', type=int, required=True, help='Acting user ID')
@with_appcontext
def open_today(pairing_id, actor_id):
    """Create today's assignment for a pairing, or return the existing one."""
    try:
        detail = AssignmentService.from_app().create_or_get_for_today(pairing_id, actor_id)
    except AssignmentError as e:
        _fail(e)
    click.echo("PASS Today's assignment:")
    _echo_detail(detail)


@assignments_group.command('create')
@click.option('--pairing-id', type=int, required=True, help='Store assignment (pairing) ID')
@click.option('--date', 'assignment_date', required=True, help='Business date, YYYY-MM-DD')
@click.option('--actor-id', type=int, required=True, help='Acting user ID')
@click.option('--notes', default=None, help='Free-text notes')
@with_appcontext
def create_assignment_cli(pairing_id, assignment_date, actor_id, notes):
    """Create an assignment for an explicit business date."""
    try:
        detail = AssignmentService.from_app().create_assignment(pairing_id, assignment_date, actor_id, notes)
    except AssignmentError as e:
        _fail(e)
    click.echo("PASS Created assignment:")
    _echo_detail(detail)


@assignments_group.command('status')
@click.argument('assignment_id', type=int)
@click.argument('new_status', type=click.Choice(['CREATED', 'ASSIGNED', 'CONSOLIDATED', 'VALIDATED', 'OBSERVED']))
@click.option('--actor-id', type=int, required=True, help='Acting user ID')
@with_appcontext
def update_status_cli(assignment_id, new_status, actor_id):
    """
    Move an assignment to NEW_STATUS.

    CONSOLIDATED from CREATED/ASSIGNED runs the full consolidation.
    """
    try:
        assignment = AssignmentService.from_app().update_status(assignment_id, new_status, actor_id)
    except AssignmentError as e:
        _fail(e)
    click.echo(f"PASS Assignment {assignment.id} is now {assignment.status}")


@assignments_group.command('consolidate')
@click.argument('assignment_id', type=int)
@click.option('--actor-id', type=int, required=True, help='Acting user ID')
@click.option('--skip-weekends/--no-skip-weekends', default=None, help='Skip Saturday/Sunday (default: SKIP_WEEKENDS config)')
@with_appcontext
def consolidate(assignment_id, actor_id, skip_weekends):
    """Close an assignment and open its successor with carried balances."""
    try:
        result = AssignmentService.from_app().consolidate_and_create_next(assignment_id, actor_id, skip_weekends)
    except AssignmentError as e:
        _fail(e)

    click.echo(f"PASS Consolidated assignment {result.closed.id}")
    if result.dates.is_stale:
        click.echo(
            f"WARN Stale recovery: {result.dates.source_date.isoformat()} was consolidated on "
            f"{result.dates.current_date.isoformat()}"
        )
    click.echo("Successor:")
    _echo_detail(result.successor)


@assignments_group.command('balances')
@click.argument('assignment_id', type=int)
@with_appcontext
def balances(assignment_id):
    """Show assigned vs current quantities per line."""
    try:
        rows = AssignmentService.from_app().current_balances(assignment_id)
    except AssignmentError as e:
        _fail(e)

    if not rows:
        click.echo("No lines found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'Line':<7} {'Type':<6} {'Catalog':<8} {'Assigned':<22} {'Current'}")
    click.echo("="*70)
    for row in rows:
        assigned = " ".join(f"{k}={v}" for k, v in row.assigned.items())
        current = " ".join(f"{k}={v}" for k, v in row.current.items())
        click.echo(f"{row.line_id:<7} {row.line_type:<6} {row.catalog_id:<8} {assigned:<22} {current}")
    click.echo("="*70 + "\n")


@assignments_group.command('history')
@click.argument('assignment_id', type=int)
@with_appcontext
def history(assignment_id):
    """Show the status audit trail, newest first."""
    try:
        entries = AssignmentService.from_app().status_history(assignment_id)
    except AssignmentError as e:
        _fail(e)

    click.echo("\n" + "="*90)
    click.echo(f"{'When':<22} {'From':<13} {'To':<13} {'Actor':<7} {'Reason'}")
    click.echo("="*90)
    for entry in entries:
        when = entry.changed_at.strftime("%Y-%m-%d %H:%M:%S") if entry.changed_at else "-"
        click.echo(
            f"{when:<22} {entry.from_status or '-':<13} {entry.to_status:<13} "
            f"{entry.changed_by:<7} {entry.reason or ''}"
        )
    click.echo("="*90 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(assignments_group)
