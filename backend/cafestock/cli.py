# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/cafestock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, repairs tenant ids, seeds the default admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--tenant-id 1]
#   List users with role and tenant.
# - python -m flask users create --username owner --password "secret123"
#   Register a new tenant admin (with trial). Add --tenant-id N --role staff for a sub-user.
#
# Billing inspection:
# - python -m flask billing payments --tenant-id 1 [--status pending]
#   List the tenant's payment review queue.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import VALID_ROLES
from .services import auth_service, subscription_service, tenant_service
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the database and the default admin account.

    Creates:
    - All tables (if missing)
    - tenant_id for legacy users that have none
    - The bootstrap admin when no user exists yet

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing cafestock...")

    db.create_all()
    click.echo("PASS Schema ready")

    repaired = auth_service.backfill_tenant_ids()
    click.echo(f"PASS Tenant ids repaired: {repaired}")

    admin = auth_service.ensure_bootstrap_admin()
    if admin is None:
        click.echo("WARN  Users already exist, bootstrap admin skipped")
    else:
        click.echo(f"PASS Created admin: {admin.username} (tenant {admin.effective_tenant_id})")
        click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
        click.echo(
            f"   {current_app.config['BOOTSTRAP_ADMIN_USERNAME']} / "
            f"{current_app.config['BOOTSTRAP_ADMIN_PASSWORD']}"
        )

    click.echo("DONE")


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

    click.echo("PASS Database reset complete")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--tenant-id', type=int, help='Existing tenant; omit to register a new tenant admin')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), default='staff', help='Role for a sub-user')
@with_appcontext
def create_user_cli(username, password, tenant_id, role):
    """
    Create a user.

    Without --tenant-id a new tenant is registered and its trial starts.
    With --tenant-id the user joins that tenant with --role.
    """
    try:
        if tenant_id is None:
            user = auth_service.register_tenant_admin(username, password)
        else:
            owner = tenant_service.tenant_owner(tenant_id)
            if owner is None:
                click.echo(f"FAIL Tenant {tenant_id} not found")
                return
            user = auth_service.create_sub_user(owner, username, password, role)
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user: {user.username} (ID: {user.id}, tenant {user.effective_tenant_id}, role {user.role})")


@users_group.command('list')
@click.option('--tenant-id', type=int, help='Filter by tenant ID')
@with_appcontext
def list_users(tenant_id):
    """List all users with their roles."""
    if tenant_id:
        users = auth_service.list_tenant_users(tenant_id)
    else:
        users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Tenant':<8} {'Username':<30} {'Role'}")
    click.echo("="*70)
    for user in users:
        tenant = user.tenant_id if user.tenant_id is not None else "-"
        click.echo(f"{user.id:<5} {tenant!s:<8} {user.username:<30} {user.role}")
    click.echo("="*70 + "\n")


@click.group('billing')
def billing_group():
    """Billing inspection commands."""


@billing_group.command('payments')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--status', type=click.Choice(['pending', 'approved', 'rejected']), help='Filter by status')
@with_appcontext
def list_payments(tenant_id, status):
    """List a tenant's payments, newest first."""
    owner = tenant_service.tenant_owner(tenant_id)
    if owner is None:
        click.echo(f"FAIL Tenant {tenant_id} not found")
        return

    payments = subscription_service.list_tenant_payments(owner, status=status)
    if not payments:
        click.echo("No payments found.")
        return

    for p in payments:
        click.echo(
            f"{p.id:<5} {p.status:<9} {p.amount_cents / 100:>10.2f} "
            f"{p.reference or '-':<24} {'slip' if p.slip_path else ''}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(billing_group)
