# Overview: Flask CLI command groups for bootstrap and maintenance.

# wareflow/cli.py
# Commands Legend:
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP=wareflow:create_app
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create two warehouses, a dealer, a salesman and a few stocked items.
#
# Registration codes:
# - python -m flask codes generate --role dealer [--warehouse-id 1]
#   Issue a single-use registration code (printed once).
# - python -m flask codes purge-expired
#   Delete registration codes past their expiry.

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import Warehouse
from .services import catalog_service, inventory_service, registration_service
from .services.scope_service import ROLE_OWNER, Actor
from .validation import ItemInput

# CLI runs with owner authority; actor id 0 marks console operations
CLI_ACTOR = Actor(role=ROLE_OWNER, id=0)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for sample data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create a small demo data set (skipped if warehouses already exist)."""
    if db.session.query(Warehouse.id).first() is not None:
        click.echo("SKIP Warehouses already exist; not seeding.")
        return

    north = catalog_service.create_warehouse(CLI_ACTOR, name="North Depot", username="north")
    south = catalog_service.create_warehouse(CLI_ACTOR, name="South Depot", username="south")
    dealer = catalog_service.create_dealer(
        CLI_ACTOR, name="Demo Dealer", mobile_number="9000000001",
        agency_name="Demo Agency", warehouse_id=north.id,
    )
    salesman = catalog_service.create_salesman(
        CLI_ACTOR, name="Demo Salesman", mobile_number="9000000002", warehouse_id=north.id,
    )

    for name, price_cents, stock in (
        ("Cement 50kg", 42000, 120),
        ("Steel Rod 12mm", 65000, 40),
        ("Roofing Sheet", 99000, 8),
    ):
        item = catalog_service.create_item(CLI_ACTOR, ItemInput(name=name, price_cents=price_cents))
        inventory_service.set_quantity(CLI_ACTOR, north.id, item.id, stock)

    click.echo(f"PASS Seeded warehouses {north.id}, {south.id}; dealer {dealer.id}; salesman {salesman.id}.")


@click.group('codes')
def codes_group():
    """Registration code management."""


@codes_group.command('generate')
@click.option('--role', required=True, type=click.Choice(registration_service.REGISTRABLE_ROLES))
@click.option('--warehouse-id', type=int, default=None, help='Home warehouse for dealers/salesmen')
@with_appcontext
def generate_code(role, warehouse_id):
    """Issue a single-use registration code."""
    try:
        code = registration_service.generate_registration_code(CLI_ACTOR, role, warehouse_id)
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Code {code.code} for {role} (expires {code.expires_at:%Y-%m-%d %H:%M} UTC)")


@codes_group.command('purge-expired')
@with_appcontext
def purge_expired():
    """Delete registration codes past their expiry."""
    removed = registration_service.purge_expired_codes()
    click.echo(f"PASS Removed {removed} expired code(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(codes_group)
