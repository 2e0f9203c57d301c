# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Set POSTGRES_URL (or DATABASE_URL) and JWT_SECRET.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@example.com --admin-password "Password123!"]
#   Idempotent bootstrap: creates tables, the main warehouse location, and optionally an admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role Admin]
#   List users with role, status and commission balance.
# - python -m flask users create-admin --email admin@example.com --password "Password123!"
#   Create an Admin account (prompts if options are omitted).
#
# Commissions:
# - python -m flask commissions payable
#   List Approved commissions waiting for payout, grouped by earner.
# - python -m flask commissions calculate <order_id>
#   Run commission calculation for one order (no-op if already recorded).
#
# Maintenance:
# - python -m flask maintenance purge-token-blacklist
#   Delete revoked-token rows whose tokens have expired anyway.

import click
from flask.cli import with_appcontext

from .errors import StorefrontError
from .extensions import db
from .models import User
from .models.catalog import LOCATION_WAREHOUSE
from .models.users import ROLE_ADMIN, VALID_ROLES
from .time_utils import format_cents
from .services import commission_service, product_service, token_service, user_service


DEFAULT_LOCATION_NAME = "Main Warehouse"


def _create_admin(email: str, password: str, name: str | None) -> User:
    existing = user_service.get_user_by_email(email)
    if existing:
        click.echo(f"PASS Using existing user: {existing.email} (ID: {existing.id}, Role: {existing.role})")
        return existing
    try:
        user = user_service.create_user(email, password, name=name, role=ROLE_ADMIN)
    except StorefrontError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")
    return user


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', help='Create an admin with this email')
@click.option('--admin-password', help='Password for the admin (required with --admin-email)')
@click.option('--admin-name', default='Administrator', show_default=True)
@with_appcontext
def init_system(admin_email, admin_password, admin_name):
    """
    Initialize the storefront database.

    Creates:
    - All tables (no-op for tables that already exist)
    - A "Main Warehouse" stock location if no warehouse exists
    - An Admin account when --admin-email is given

    Use migrations (flask db upgrade) instead of this on production databases.
    """
    click.echo("START Initializing storefront...")

    db.create_all()
    click.echo("PASS Tables created")

    location = product_service.get_default_location()
    if location is None:
        location = product_service.ensure_location(DEFAULT_LOCATION_NAME, LOCATION_WAREHOUSE)
        click.echo(f"PASS Created stock location: {location.name} (ID: {location.id})")
    else:
        click.echo(f"PASS Using existing stock location: {location.name} (ID: {location.id})")

    if admin_email:
        if not admin_password:
            raise click.UsageError("--admin-password is required with --admin-email")
        _create_admin(admin_email, admin_password, admin_name)

    click.echo("DONE Storefront initialized.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-admin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--name', default='Administrator', show_default=True, help='Display name')
@with_appcontext
def create_admin_cli(email, password, name):
    """Create an Admin account."""
    _create_admin(email, password, name)


@users_group.command('list')
@click.option('--role', type=click.Choice(sorted(VALID_ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List users with role, status and commission balance."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Email':<32} {'Role':<18} {'Status':<10} {'Referral':<10} {'Balance'}")
    click.echo("="*100)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.email:<32} {user.role:<18} {user.status:<10} "
            f"{user.referral_code or '-':<10} {format_cents(user.commission_balance_cents or 0)}"
        )
    click.echo("="*100 + "\n")


@click.group('commissions')
def commissions_group():
    """Commission inspection commands."""


@commissions_group.command('payable')
@with_appcontext
def payable_commissions_cli():
    """List Approved commissions awaiting payout, grouped by earner."""
    payable = commission_service.get_payable_commissions()
    if not payable:
        click.echo("No approved commissions awaiting payout.")
        return

    by_user: dict[str, list[dict]] = {}
    for row in payable:
        by_user.setdefault(row["user_email"], []).append(row)

    grand_total = 0
    for email, rows in by_user.items():
        total = sum(r["amount_cents"] for r in rows)
        grand_total += total
        ids = ", ".join(str(r["id"]) for r in rows)
        click.echo(f"{email:<32} {len(rows):>3} commissions  {format_cents(total):>10}  ids: {ids}")
    click.echo(f"\nTotal payable: {format_cents(grand_total)}")


@commissions_group.command('calculate')
@click.argument('order_id')
@with_appcontext
def calculate_commission_cli(order_id):
    """Calculate the commission for one order."""
    try:
        commission = commission_service.calculate_commission_for_order(order_id)
    except StorefrontError as e:
        raise click.ClickException(e.message)
    if commission is None:
        click.echo(f"No commission applies to order {order_id}.")
        return
    click.echo(
        f"PASS {commission.commission_type} commission {commission.id}: "
        f"{format_cents(commission.amount_cents)} for user {commission.user_id} ({commission.status})"
    )


@click.group('maintenance')
def maintenance_group():
    """Maintenance and cleanup commands."""


@maintenance_group.command('purge-token-blacklist')
@with_appcontext
def purge_token_blacklist_cli():
    """Delete revoked-token rows past their token expiry."""
    deleted = token_service.purge_expired_blacklist()
    click.echo(f"Deleted {deleted} expired token blacklist entries.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(commissions_group)
    app.cli.add_command(maintenance_group)
