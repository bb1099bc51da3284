# Overview: Flask CLI command groups for bootstrap, stock inspection, and pipeline maintenance.

# backend/plantops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Factory bootstrap:
# - python -m flask factory init-db
#   Create all tables (idempotent) and seed default settings.
# - python -m flask factory seed [--no-stock]
#   Load the demo BOM, production routes and opening stock.
#
# Stock:
# - python -m flask stock adjust 7 PRODUCT 1 -- -5 --reason FULFILLMENT
#   Apply a signed delta through the ledger.
# - python -m flask stock show [--workstation 7]
# - python -m flask stock history 7 PRODUCT 1 --limit 20
# - python -m flask stock reconcile
#   Compare stock records with the ledger; exits 1 on mismatch.
# - python -m flask stock low [--workstation 7]
#
# Orders:
# - python -m flask orders replay-events
#   Retry pipeline events that were not consumed.
# - python -m flask orders audit 12
#
# Settings:
# - python -m flask settings get
# - python -m flask settings set LOT_SIZE_THRESHOLD 5

import click
from flask.cli import with_appcontext

from .errors import PlantOpsError
from .extensions import db
from .services import (
    audit_service,
    event_service,
    pipeline,
    seed_service,
    settings_service,
    stock_ledger,
    stock_store,
    threshold_service,
)
from .models import Order
from .validation import ValidationError


@click.group('factory')
def factory_group():
    """Database and master-data bootstrap."""


@factory_group.command('init-db')
@with_appcontext
def init_db():
    db.create_all()
    settings_service.ensure_defaults()
    click.echo("PASS Tables created")


@factory_group.command('seed')
@click.option('--no-stock', is_flag=True, help='Load BOM and routes only')
@with_appcontext
def seed(no_stock):
    db.create_all()
    seed_service.seed_all(with_stock=not no_stock)
    click.echo("PASS Factory seeded")


@click.group('stock')
def stock_group():
    """Stock ledger inspection and adjustments."""


@stock_group.command('adjust')
@click.argument('workstation_id', type=int)
@click.argument('item_type')
@click.argument('item_id', type=int)
@click.argument('delta', type=int)
@click.option('--reason', default=stock_ledger.REASON_ADJUSTMENT, show_default=True)
@click.option('--notes', default=None)
@with_appcontext
def adjust(workstation_id, item_type, item_id, delta, reason, notes):
    try:
        entry = stock_ledger.adjust(
            workstation_id=workstation_id,
            item_type=item_type.upper(),
            item_id=item_id,
            delta=delta,
            reason_code=reason.upper(),
            notes=notes,
        )
    except (PlantOpsError, ValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {entry.item_type} {entry.item_id} @ WS-{entry.workstation_id}: {entry.delta:+d} -> {entry.balance_after}")


@stock_group.command('show')
@click.option('--workstation', 'workstation_id', type=int, default=None)
@with_appcontext
def show(workstation_id):
    records = stock_store.list_records(workstation_id=workstation_id)
    if not records:
        click.echo("No stock records")
        return
    for r in records:
        click.echo(f"WS-{r.workstation_id:<2} {r.item_type:<8} {r.item_id:>5}  qty={r.quantity}")


@stock_group.command('history')
@click.argument('workstation_id', type=int)
@click.argument('item_type')
@click.argument('item_id', type=int)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def history(workstation_id, item_type, item_id, limit):
    entries = stock_ledger.history(
        workstation_id=workstation_id, item_type=item_type.upper(), item_id=item_id, limit=limit
    )
    for e in entries:
        click.echo(f"#{e.id:<6} {e.delta:+6d} -> {e.balance_after:<6} {e.reason_code:<20} {e.notes or ''}")


@stock_group.command('reconcile')
@click.option('--workstation', 'workstation_id', type=int, default=None)
@with_appcontext
def reconcile(workstation_id):
    mismatches = stock_ledger.reconcile(workstation_id=workstation_id)
    if not mismatches:
        click.echo("PASS Stock records match the ledger")
        return
    for m in mismatches:
        click.echo(
            f"FAIL WS-{m['workstation_id']} {m['item_type']} {m['item_id']}: "
            f"quantity={m['quantity']} ledger_sum={m['ledger_sum']} last_balance={m['last_balance_after']}"
        )
    raise click.exceptions.Exit(1)


@stock_group.command('low')
@click.option('--workstation', 'workstation_id', type=int, default=None)
@with_appcontext
def low(workstation_id):
    alerts = threshold_service.evaluate(workstation_id=workstation_id)
    if not alerts:
        click.echo("No low-stock alerts")
        return
    for a in alerts:
        click.echo(f"WARN WS-{a.workstation_id} {a.item_type} {a.item_id}: {a.quantity} < {a.threshold} (deficit {a.deficit})")


@click.group('orders')
def orders_group():
    """Order pipeline maintenance."""


@orders_group.command('replay-events')
@with_appcontext
def replay_events():
    consumed = event_service.replay_pending()
    remaining = len(event_service.pending_events())
    click.echo(f"PASS Consumed {consumed} event(s), {remaining} still pending")


@orders_group.command('audit')
@click.argument('order_id', type=int)
@with_appcontext
def audit(order_id):
    try:
        order = pipeline.get_order(Order, order_id)
    except PlantOpsError as e:
        raise click.ClickException(str(e))
    click.echo(f"{order.order_number} ({order.order_type}) status={order.status}")
    for row in audit_service.audit_trail(order_id):
        transition = f"{row.from_status or '-'} -> {row.to_status or '-'}"
        click.echo(f"  {row.created_at}  {row.event_type:<18} {transition:<32} {row.detail or ''}")


@click.group('settings')
def settings_group():
    """System settings."""


@settings_group.command('get')
@click.argument('key', required=False)
@with_appcontext
def get_setting(key):
    if key is None:
        for row in settings_service.list_settings():
            click.echo(f"{row.key} = {row.value}")
        return
    if key.upper() == settings_service.LOT_SIZE_THRESHOLD:
        click.echo(f"{settings_service.LOT_SIZE_THRESHOLD} = {settings_service.get_lot_size_threshold()}")
        return
    row = settings_service.get_setting(key)
    if row is None:
        raise click.ClickException(f"Setting {key} not found")
    click.echo(f"{row.key} = {row.value}")


@settings_group.command('set')
@click.argument('key')
@click.argument('value')
@with_appcontext
def set_setting(key, value):
    try:
        if key.upper() == settings_service.LOT_SIZE_THRESHOLD:
            settings_service.set_lot_size_threshold(value)
        else:
            settings_service.set_setting(key, value)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {key} = {value}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(factory_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(settings_group)
