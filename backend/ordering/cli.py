# Overview: Flask CLI command groups for the daily purchasing cycle and maintenance.

# backend/ordering/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Cutoff window:
# - python -m flask cutoff status
# - python -m flask cutoff open --actor ops
# - python -m flask cutoff close --actor ops
# - python -m flask cutoff cycles --limit 10
#
# Purchasing:
# - python -m flask purchasing aggregate [--since 2025-10-20T00:00:00Z]
# - python -m flask purchasing generate --category daily-fresh --actor ops
# - python -m flask purchasing dispatch PO-251020-001 PO-251020-002 --actor ops
# - python -m flask purchasing resend-failed [--category daily-fresh] --actor ops
# - python -m flask purchasing close-cycle --actor ops [--category daily-fresh] [--no-dispatch]

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import OrderingError
from .services import (
    aggregation_service,
    cutoff_service,
    cycle_service,
    dispatch_service,
    purchase_order_service,
)
from .time_utils import parse_iso_datetime, to_utc_z


def _fail(exc: OrderingError):
    raise click.ClickException(f"{exc.code}: {exc.message}")


@click.group('system')
def system_group():
    """Database bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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


@click.group('cutoff')
def cutoff_group():
    """Daily cutoff window commands."""


@cutoff_group.command('status')
@with_appcontext
def cutoff_status():
    """Show the current cutoff window."""
    window = cutoff_service.current_window()
    label = "fallback" if window.is_fallback else f"cycle {window.cycle_id}"
    click.echo(f"{label}: {window.status}")
    click.echo(f"  opened_at: {to_utc_z(window.opened_at)}")
    click.echo(f"  closed_at: {to_utc_z(window.closed_at) or '-'}")
    if window.closed_by:
        click.echo(f"  closed_by: {window.closed_by}")


@cutoff_group.command('open')
@click.option('--actor', required=True, help='Actor id recorded on the cycle')
@with_appcontext
def cutoff_open(actor):
    """Start a new intake cycle."""
    try:
        window = cutoff_service.open_window(actor=actor)
    except OrderingError as exc:
        _fail(exc)
    click.echo(f"PASS Cycle {window.cycle_id} opened at {to_utc_z(window.opened_at)}")


@cutoff_group.command('close')
@click.option('--actor', required=True, help='Actor id recorded on the cycle')
@with_appcontext
def cutoff_close(actor):
    """Cut off regular intake for the open cycle."""
    try:
        window = cutoff_service.close_window(actor=actor)
    except OrderingError as exc:
        _fail(exc)
    click.echo(f"PASS Cycle {window.cycle_id} closed at {to_utc_z(window.closed_at)}")


@cutoff_group.command('cycles')
@click.option('--limit', type=int, default=10, show_default=True)
@with_appcontext
def cutoff_cycles(limit):
    """List recent cycles."""
    cycles = cutoff_service.list_cycles(limit=limit)
    if not cycles:
        click.echo("No cutoff cycles found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'Status':<8} {'Opened':<22} {'Closed':<22} {'Closed by'}")
    click.echo("="*80)
    for c in cycles:
        click.echo(
            f"{c.id:<6} {c.status:<8} {to_utc_z(c.opened_at):<22} "
            f"{to_utc_z(c.closed_at) or '-':<22} {c.closed_by or '-'}"
        )
    click.echo("="*80 + "\n")


@click.group('purchasing')
def purchasing_group():
    """Aggregation, purchase order generation and supplier dispatch."""


@purchasing_group.command('aggregate')
@click.option('--since', help='ISO-8601 reset point (default: current window opened_at)')
@with_appcontext
def purchasing_aggregate(since):
    """Print demand per category and supplier."""
    since_dt = None
    if since:
        since_dt = parse_iso_datetime(since)
        if since_dt is None:
            raise click.BadParameter("Invalid ISO-8601 datetime", param_hint="--since")

    result = aggregation_service.aggregate(since_dt)
    click.echo(f"Aggregation since {to_utc_z(result.since)}")
    for cat in result.categories:
        click.echo(f"\n[{cat.category}] orders={cat.total_orders} qty={cat.total_quantity} amount={cat.total_amount:,}")
        for s in cat.suppliers:
            marker = f" ({s.purchase_order_number})" if s.has_purchase_order else ""
            click.echo(
                f"  {s.supplier_name:<30} regular={s.placed_quantity:<6} additional={s.confirmed_quantity:<6} "
                f"amount={s.total_amount:,}{marker}"
            )
    if result.dropped:
        click.echo(f"\nWARN {len(result.dropped)} order line(s) skipped (unknown product, category or supplier)")


@purchasing_group.command('generate')
@click.option('--category', required=True)
@click.option('--actor', required=True)
@click.option('--supplier', 'suppliers', multiple=True, help='Restrict to supplier business id (repeatable)')
@with_appcontext
def purchasing_generate(category, actor, suppliers):
    """Generate purchase orders for a category's supplier buckets."""
    result = aggregation_service.aggregate(annotate=False)
    summary = purchase_order_service.generate_for_category(
        result, category, actor=actor, supplier_ids=list(suppliers) or None
    )
    for outcome in summary.outcomes:
        if outcome.success:
            click.echo(f"PASS {outcome.supplier_id}: {outcome.purchase_order_number}")
        else:
            click.echo(f"FAIL {outcome.supplier_id}: {outcome.error}")
    click.echo(f"{len(summary.created)} created, {len(summary.failed)} failed")


def _echo_dispatch(summary):
    for r in summary.results:
        status = {"sent": "PASS", "skipped": "SKIP"}.get(r.outcome, "FAIL")
        detail = f" - {r.error}" if r.error else ""
        click.echo(f"{status} {r.order_number}{detail}")
    click.echo(
        f"attempted={summary.attempted} succeeded={summary.succeeded} "
        f"failed={summary.failed} skipped={summary.skipped} not_found={summary.not_found}"
    )


@purchasing_group.command('dispatch')
@click.argument('order_numbers', nargs=-1, required=True)
@click.option('--actor', required=True)
@with_appcontext
def purchasing_dispatch(order_numbers, actor):
    """Notify suppliers of the given purchase orders."""
    _echo_dispatch(dispatch_service.dispatch_batch(order_numbers, actor=actor))


@purchasing_group.command('resend-failed')
@click.option('--category')
@click.option('--actor', required=True)
@with_appcontext
def purchasing_resend_failed(category, actor):
    """Retry notifications that failed and are still placed."""
    _echo_dispatch(dispatch_service.resend_failed(category=category, actor=actor))


@purchasing_group.command('close-cycle')
@click.option('--actor', required=True)
@click.option('--category', 'categories', multiple=True)
@click.option('--no-dispatch', is_flag=True, help='Generate orders without notifying suppliers')
@with_appcontext
def purchasing_close_cycle(actor, categories, no_dispatch):
    """Close the window, generate purchase orders and notify suppliers."""
    try:
        summary = cycle_service.close_cycle(
            actor=actor,
            categories=list(categories) or None,
            dispatch=not no_dispatch,
        )
    except OrderingError as exc:
        _fail(exc)
    click.echo(f"PASS Cycle {summary.window.cycle_id} closed; {len(summary.created_orders)} purchase orders created")
    if summary.dispatch:
        _echo_dispatch(summary.dispatch)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(cutoff_group)
    app.cli.add_command(purchasing_group)
