# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/ordercrm/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to ordercrm (PowerShell: $env:FLASK_APP="ordercrm").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-username admin] [--admin-password "Password123!"]
#   Idempotent bootstrap: creates tables and a default admin account.
#   Seeds the default order-form fields on an empty table.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role client] [--all]
#   List users with role and active status.
# - python -m flask users create --username alice --password "Password123!" --role supplier
#   Create a user (prompts if options are omitted).
#
# Vendor inspection:
# - python -m flask vendors list [--all]
#   List vendors with login username and presence.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired or revoked sessions older than the retention window.
# - python -m flask maintenance cleanup-notifications [--retention-days 7]
#   Delete push-channel events older than the retention window.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Vendor, USER_ROLES
from .services.auth_service import (
    PasswordValidationError,
    UsernameValidationError,
    create_user,
)
from .services import field_config_service
from .services import notification_service
from .services import session_service
from .services import vendor_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', show_default=True, help='Default admin username')
@click.option('--admin-password', default='Password123!', help='Default admin password')
@with_appcontext
def init_system(admin_username, admin_password):
    """
    Create all tables and a default admin account.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing order CRM...")

    db.create_all()
    click.echo("PASS Tables ready")

    seeded = field_config_service.ensure_defaults_seeded()
    if seeded:
        click.echo(f"PASS Seeded {seeded} default field configs")

    existing = db.session.query(User).filter_by(username=admin_username).first()
    if existing:
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")
        return

    try:
        create_user(username=admin_username, password=admin_password, role="admin")
        db.session.commit()
    except (PasswordValidationError, UsernameValidationError, ValueError) as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create admin '{admin_username}': {str(e)}")
        return

    click.echo(f"PASS Created admin: {admin_username}")
    click.echo("\nSECURITY WARNING: change the default password in production!")


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


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--role', type=click.Choice(sorted(USER_ROLES)), help='Filter by role')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated users')
@with_appcontext
def list_users_cli(role, include_inactive):
    """List users with role and active status."""
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*60)
    click.echo(f"{'ID':<5} {'Username':<30} {'Role':<10} {'Active'}")
    click.echo("="*60)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<30} {user.role:<10} {active_str}")
    click.echo("="*60 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'supplier', 'client']), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, password, role):
    """
    Create a new user interactively.

    Vendor logins are created through the vendors API, which also creates
    the vendor record.
    """
    try:
        user = create_user(username=username, password=password, role=role)
        db.session.commit()
        click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")

    except PasswordValidationError as e:
        db.session.rollback()
        click.echo(f"FAIL Password validation failed: {str(e)}")
    except (UsernameValidationError, ValueError) as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {str(e)}")


@click.group('vendors')
def vendors_group():
    """Vendor inspection commands."""


@vendors_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated vendors')
@with_appcontext
def list_vendors_cli(include_inactive):
    """List vendors with login username and presence."""
    query = db.session.query(Vendor)
    if not include_inactive:
        query = query.filter(Vendor.is_active.is_(True))
    vendors = query.order_by(Vendor.name.asc()).all()

    if not vendors:
        click.echo("No vendors found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Username':<26} {'Active':<8} {'Online'}")
    click.echo("="*80)
    for vendor in vendors:
        active_str = "Yes" if vendor.is_active else "No"
        online_str = "Yes" if vendor_service.is_online(vendor) else "No"
        click.echo(f"{vendor.id:<5} {vendor.name[:30]:<30} {vendor.username:<26} {active_str:<8} {online_str}")
    click.echo("="*80 + "\n")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """Delete expired or revoked sessions older than the retention window."""
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


@maintenance_group.command('cleanup-notifications')
@click.option('--retention-days', type=int, default=None, help='Defaults to NOTIFICATION_RETENTION_DAYS')
@with_appcontext
def cleanup_notifications_cli(retention_days):
    """Delete push-channel events older than the retention window."""
    if retention_days is None:
        retention_days = current_app.config.get("NOTIFICATION_RETENTION_DAYS", 7)
    deleted = notification_service.cleanup_old_events(retention_days=retention_days)
    click.echo(f"Deleted {deleted} notification events older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(vendors_group)
    app.cli.add_command(maintenance_group)
