# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--org "Org Name"]
#   Idempotent bootstrap: creates a default org, shop, and owner user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management:
# - python -m flask orgs list
# - python -m flask orgs create --name "Acme Corp" --code "ACME"
#
# Users:
# - python -m flask users list [--org-id 1]
# - python -m flask users create --org-id 1 --username owner --email owner@shop.local --password "Password123!"
#
# Ledger:
# - python -m flask ledger verify [--org-id 1]
#   Compare every item's current_stock with its ledger; exits 1 on drift.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, Shop, User
from .services.auth_service import PasswordValidationError, create_organization, create_user
from .services.ledger_service import find_ledger_drift
from .validation import ConflictError, NotFoundError, ValidationError

DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@with_appcontext
def init_system(org_name, org_code):
    """
    Initialize a usable system: organization, one shop and an owner account.

    Safe to re-run; existing rows are reused.
    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing shop ledger...")

    db.create_all()

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    shop = db.session.query(Shop).filter_by(org_id=org.id).order_by(Shop.id.asc()).first()
    if not shop:
        shop = Shop(org_id=org.id, name="Main Shop")
        db.session.add(shop)
        db.session.commit()
        click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id})")
    else:
        click.echo(f"PASS Using existing shop: {shop.name} (ID: {shop.id})")

    existing = db.session.query(User).filter_by(org_id=org.id, username="owner").first()
    if existing:
        click.echo("WARN  User 'owner' already exists in org, skipping...")
    else:
        create_user(username="owner", email="owner@shop.local", password=DEFAULT_PASSWORD, org_id=org.id)
        click.echo("PASS Created user: owner (owner@shop.local)")

    click.echo("\nDONE Initialized.")
    click.echo(f"   owner -> owner@shop.local / {DEFAULT_PASSWORD} (CHANGE IN PRODUCTION!)")


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


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id.asc()).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Shops'}")
    click.echo("="*72)

    for org in orgs:
        shop_count = db.session.query(Shop).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {shop_count}")

    click.echo("="*72 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    try:
        org = create_organization(name, code)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_user_cli(org_id, username, email, password):
    """Create a user in an organization."""
    try:
        user = create_user(username=username, email=email, password=password, org_id=org_id)
    except (PasswordValidationError, ConflictError, NotFoundError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) in org {org_id}")


@users_group.command('list')
@click.option('--org-id', type=int, help='Filter by organization ID')
@with_appcontext
def list_users(org_id):
    """List users with active status."""
    query = db.session.query(User)
    if org_id is not None:
        query = query.filter_by(org_id=org_id)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    for user in users:
        active_str = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} org={user.org_id} {active_str}")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection commands."""


@ledger_group.command('verify')
@click.option('--org-id', type=int, help='Limit the check to one organization')
@with_appcontext
def verify_ledger(org_id):
    """
    Check that every item's current_stock equals the sum of its ledger.

    Exits with status 1 when any item has drifted.
    """
    drift = find_ledger_drift(org_id)

    if not drift:
        click.echo("PASS Ledger consistent for all items.")
        return

    for result in drift:
        click.echo(
            f"FAIL item {result.item_id}: current_stock={result.current_stock} "
            f"ledger_sum={result.ledger_sum} last_balance_after={result.last_balance_after}"
        )
    click.echo(f"\n{len(drift)} item(s) out of balance.")
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
