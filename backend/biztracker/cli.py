# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/biztracker/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema and bootstrap:
# - python -m flask db upgrade
#   Apply Alembic migrations (preferred for real databases).
# - python -m flask system init
#   Create any missing tables directly from the models (dev/test).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Add a handful of stock items so sales can be recorded.
#
# Debt ledger maintenance:
# - python -m flask debts backfill-customers
#   Link indebted buyers, their debts and payment history to customers (idempotent).
# - python -m flask debts audit
#   Check sale balances against debts; exits non-zero on violations.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Item
from .services import maintenance_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.confirm("This deletes ALL data. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


DEMO_ITEMS = [
    # name, category, price_cents, wholesale_price_cents, stock
    ("Rice (50kg bag)", "Groceries", 7_500_000, 6_800_000, 20),
    ("Palm oil (5L)", "Groceries", 950_000, 820_000, 30),
    ("Indomie (carton)", "Groceries", 1_100_000, 980_000, 40),
    ("Peak milk (tin)", "Beverages", 65_000, None, 100),
]


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Add demo stock items (skips names that already exist)."""
    created = 0
    for name, category, price, wholesale, stock in DEMO_ITEMS:
        if db.session.query(Item).filter_by(name=name).first():
            continue
        db.session.add(Item(
            name=name,
            category=category,
            price_cents=price,
            wholesale_price_cents=wholesale,
            stock=stock,
        ))
        created += 1
    db.session.commit()
    click.echo(f"PASS Created {created} demo items")


@click.group('debts')
def debts_group():
    """Debt ledger maintenance commands."""


@debts_group.command('backfill-customers')
@with_appcontext
def backfill_customers():
    """Link indebted buyers, debts and payment history to customers."""
    click.echo("START Backfilling customer links...")
    result = maintenance_service.backfill_customer_links()
    click.echo(f"PASS Created {result['customers_created']} customers from indebted buyers")
    click.echo(f"PASS Linked {result['sales_linked']} sales, {result['debts_linked']} debts, "
               f"{result['payments_linked']} payments")


@debts_group.command('audit')
@with_appcontext
def audit_debts():
    """Report sales whose balance disagrees with their debt."""
    problems = maintenance_service.audit_ledger()
    # Overpaid debts are permitted unless REJECT_DEBT_OVERPAYMENT is set
    warnings = [p for p in problems if p["problem"] == "overpaid"]
    failures = [p for p in problems if p["problem"] != "overpaid"]

    for problem in warnings:
        click.echo(f"WARN {problem}")
    if not failures:
        click.echo("PASS Ledger consistent")
        return

    for problem in failures:
        click.echo(f"FAIL {problem}")
    raise SystemExit(1)


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(debts_group)
