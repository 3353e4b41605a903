# Overview: Flask CLI command groups for schema bootstrap and ledger maintenance.

# backend/erp/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Supplier ledger maintenance:
# - python -m flask ledger verify --supplier-id 3
#   Report entries whose stored running balance drifted (exit code 1 on drift).
#   Omit --supplier-id to check every supplier.
# - python -m flask ledger recompute --supplier-id 3
#   Rewrite stored running balances from insertion order.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Supplier
from .services.ledger_service import LedgerEngine


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Schema is up to date.")


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


@click.group('ledger')
def ledger_group():
    """Supplier ledger reconciliation commands."""


def _supplier_ids(supplier_id):
    if supplier_id is not None:
        if db.session.get(Supplier, supplier_id) is None:
            raise click.ClickException(f"Supplier {supplier_id} not found")
        return [supplier_id]
    return [row[0] for row in db.session.query(Supplier.id).order_by(Supplier.id).all()]


@ledger_group.command('verify')
@click.option('--supplier-id', type=int, help='Supplier ID (all suppliers if omitted)')
@with_appcontext
def verify_ledger(supplier_id):
    """Compare stored running balances with the fold over insertion order."""
    engine = LedgerEngine(db.session)
    drifting = 0

    for sid in _supplier_ids(supplier_id):
        drift = engine.verify_balances(sid)
        if not drift:
            click.echo(f"PASS supplier {sid}: consistent")
            continue

        drifting += 1
        current_app.logger.error("Supplier %s ledger drift detected on %d entries", sid, len(drift))
        click.echo(f"FAIL supplier {sid}: {len(drift)} drifting entr{'y' if len(drift) == 1 else 'ies'}")
        for item in drift:
            click.echo(
                f"  entry {item['entry_id']}: stored={item['stored_balance_cents']} "
                f"expected={item['expected_balance_cents']}"
            )

    if drifting:
        raise SystemExit(1)


@ledger_group.command('recompute')
@click.option('--supplier-id', type=int, help='Supplier ID (all suppliers if omitted)')
@with_appcontext
def recompute_ledger(supplier_id):
    """Rewrite stored running balances from insertion order."""
    engine = LedgerEngine(db.session)
    for sid in _supplier_ids(supplier_id):
        changed = engine.recompute_balances(sid)
        click.echo(f"PASS supplier {sid}: {changed} entr{'y' if changed == 1 else 'ies'} rewritten")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
