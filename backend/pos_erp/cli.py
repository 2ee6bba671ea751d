# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/pos_erp/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to pos_erp (PowerShell: $env:FLASK_APP="pos_erp").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: default users and warehouses.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username admin --email admin@pos.local --password "Password123!" --role admin
#   Create a user (prompts if options are omitted).
#
# Order locks:
# - python -m flask locks sweep
#   Delete expired order locks (run from an external timer, e.g. every minute).
# - python -m flask locks list
#   Show unexpired locks and their holders.
#
# Cash registers:
# - python -m flask registers list --status open
#   List recent cash registers with totals.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Warehouse
from .services.auth_service import create_user, PasswordValidationError
from .services import lock_service
from .services import register_service
from .time_utils import cents_to_str, to_utc_z

DEFAULT_WAREHOUSES = ("Bodega Principal", "Bodega 2")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the POS: default users and warehouses.

    Creates:
    - Users: admin, manager, cashier (password "Password123!")
    - Warehouses: Bodega Principal, Bodega 2

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing POS system...")

    click.echo("\nWAREHOUSES Creating warehouses...")
    for name in DEFAULT_WAREHOUSES:
        if db.session.query(Warehouse).filter_by(name=name).first():
            click.echo(f"WARN  Warehouse '{name}' already exists, skipping...")
            continue
        db.session.add(Warehouse(name=name, is_active=True))
        db.session.commit()
        click.echo(f"PASS Created warehouse: {name}")

    click.echo("\nUSERS Creating default users...")

    # Default password meets requirements:
    # - Minimum 8 characters
    # - Uppercase, lowercase, digit, special char
    default_password = "Password123!"

    default_users = [
        ("admin", "Administrador", "admin@pos.local", "admin"),
        ("manager", "Gerente", "manager@pos.local", "manager"),
        ("cashier", "Cajero", "cashier@pos.local", "cashier"),
    ]

    for username, name, email, role in default_users:
        try:
            if db.session.query(User).filter_by(username=username).first():
                click.echo(f"WARN  User '{username}' already exists, skipping...")
                continue

            create_user(username=username, password=default_password, name=name, role=role, email=email)
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")

        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for '{username}': {str(e)}")
        except ValueError as e:
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    click.echo("\n" + "="*60)
    click.echo("DONE POS System Initialized Successfully!")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo("   admin   -> admin@pos.local   / Password123!")
    click.echo("   manager -> manager@pos.local / Password123!")
    click.echo("   cashier -> cashier@pos.local / Password123!")
    click.echo("")


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
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', default=None, help='Display name (defaults to username)')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'manager', 'cashier']), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, name, email, password, role):
    """
    Create a new user interactively.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(username=username, password=password, name=name, role=role, email=email)
        click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
    except ValueError as e:
        click.echo(f"FAIL {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<25} {'Role':<10} {'Active'}")
    click.echo("="*90)

    for user in users:
        click.echo(f"{user.id:<5} {user.username:<20} {user.name:<25} {user.role:<10} {'yes' if user.is_active else 'no'}")


@click.group('locks')
def locks_group():
    """Advisory order lock maintenance."""


@locks_group.command('sweep')
@with_appcontext
def sweep_locks():
    """Delete expired order locks."""
    removed = lock_service.sweep_expired_locks()
    click.echo(f"PASS Removed {removed} expired lock(s)")


@locks_group.command('list')
@with_appcontext
def list_locks_cli():
    """Show unexpired order locks."""
    locks = lock_service.list_locks()
    if not locks:
        click.echo("No active locks.")
        return

    click.echo(f"{'Order':<15} {'Holder':<25} {'Session':<10} {'Expires'}")
    for lock in locks:
        click.echo(f"{lock.order_id:<15} {lock.user_name:<25} {lock.session_id:<10} {to_utc_z(lock.expires_at)}")


@click.group('registers')
def registers_group():
    """Cash register inspection."""


@registers_group.command('list')
@click.option('--status', type=click.Choice(['open', 'closed']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max rows')
@with_appcontext
def list_registers_cli(status, limit):
    """
    List recent cash registers.

    Example:
        flask registers list
        flask registers list --status open
    """
    registers = register_service.list_registers(status=status, limit=limit)

    if not registers:
        click.echo("No registers found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'User':<6} {'Status':<8} {'Opening':>10} {'Sales':>12} {'Cash':>12} {'Closing':>12} {'Opened'}")
    click.echo("="*100)

    for register in registers:
        closing = cents_to_str(register.closing_amount_cents) if register.closing_amount_cents is not None else "-"
        click.echo(
            f"{register.id:<5} {register.user_id:<6} {register.status:<8} "
            f"{cents_to_str(register.opening_amount_cents):>10} {cents_to_str(register.total_sales_cents):>12} "
            f"{cents_to_str(register.total_cash_cents):>12} {closing:>12} {to_utc_z(register.opened_at)}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(locks_group)
    app.cli.add_command(registers_group)
