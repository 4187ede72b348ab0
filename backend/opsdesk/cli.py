# Overview: Flask CLI command groups for store bootstrap and order maintenance.

# backend/opsdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to opsdesk (PowerShell: $env:FLASK_APP="opsdesk").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Create tables and report whether an admin key is set; idempotent.
# - python -m flask system set-admin-key --key "..."
#   Store the shared operator key (bcrypt hash unless --plain).
# - python -m flask system cleanup-sessions
#   Delete expired operator sessions.
#
# User inspection/bootstrap:
# - python -m flask users list [--type customer|staff]
#   List users with their allocations.
# - python -m flask users create --username alice --password secret1 --type customer
#   Create a user (prompts if options are omitted).
#
# Orders:
# - python -m flask orders list [--status Pending]
#   List orders, oldest first.
# - python -m flask orders sweep
#   Reject Pending orders older than ORDER_PENDING_TIMEOUT_SECONDS once.
# - python -m flask orders run-sweeper
#   Run the timeout sweep loop in the foreground until interrupted.

import click
from flask.cli import with_appcontext

from .extensions import db
from .live import records, sweeper
from .services import order_service, session_service, user_service
from .services.paths import ADMIN_KEY
from .time_utils import ms_to_utc_z
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create the records and session tables.

    Safe to run repeatedly; existing records are left untouched.
    """
    click.echo("START Initializing record store...")
    db.create_all()
    click.echo("PASS Tables ready")

    if records.get(ADMIN_KEY) is None:
        click.echo("WARN No admin key set. Run: flask system set-admin-key")
    else:
        click.echo("PASS Admin key present")
    click.echo("DONE")


@system_group.command('set-admin-key')
@click.option('--key', prompt=True, hide_input=True, confirmation_prompt=True, help='Shared operator key')
@click.option('--plain', is_flag=True, help='Store the key unhashed (legacy clients read it directly)')
@with_appcontext
def set_admin_key(key, plain):
    """Store the shared operator key."""
    if not key or not key.strip():
        raise click.ClickException("Admin key must not be empty")
    session_service.set_admin_key(records, key, hashed=not plain)
    click.echo("PASS Admin key updated" + (" (plain)" if plain else ""))


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete operator sessions past their expiry."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} expired session(s)")


@click.group('users')
def users_group():
    """User inspection and creation commands."""


@users_group.command('list')
@click.option('--type', 'user_type', type=click.Choice(['customer', 'staff']), help='Filter by user type')
@with_appcontext
def list_users(user_type):
    """List all users with their allocations."""
    users = user_service.list_users(records, user_type)

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<22} {'Username':<20} {'Type':<10} {'Machine':<15} {'Allocated'}")
    click.echo("=" * 100)

    for user in users:
        if user.get("userType") == "customer":
            allocated = user.get("allocatedStaffs", [])
        else:
            allocated = user.get("allocatedCustomers", [])
        click.echo(
            f"{user['id']:<22} {str(user.get('username', '')):<20} {str(user.get('userType', '')):<10} "
            f"{str(user.get('allocatedMachine', '')):<15} {', '.join(allocated) if allocated else 'none'}"
        )

    click.echo("=" * 100)
    click.echo(f"Total: {len(users)} users\n")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--type', 'user_type', prompt=True, type=click.Choice(['customer', 'staff']), help='User type')
@click.option('--machine', default='', help='Allocated machine')
@with_appcontext
def create_user_cmd(username, password, user_type, machine):
    """Create a customer or staff user."""
    try:
        user = user_service.create_user(
            records,
            username=username,
            password=password,
            user_type=user_type,
            allocated_machine=machine,
        )
    except (ValidationError, ConflictError) as exc:
        raise click.ClickException(str(exc))
    click.echo(f"PASS Created {user['userType']} {user['username']} (ID: {user['id']})")


@click.group('orders')
def orders_group():
    """Order inspection and lifecycle commands."""


@orders_group.command('list')
@click.option('--status', help='Filter by status (Pending, Accepted, Rejected)')
@with_appcontext
def list_orders(status):
    """List orders, oldest first."""
    orders = order_service.list_orders(records, status)
    if not orders:
        click.echo("No orders found.")
        return

    click.echo(f"{'ID':<22} {'Customer':<22} {'Status':<10} {'Created'}")
    for order in orders:
        click.echo(
            f"{order['id']:<22} {str(order.get('customerId', '')):<22} "
            f"{str(order.get('status', '')):<10} {ms_to_utc_z(order.get('createdAt')) or '-'}"
        )
    click.echo(f"Total: {len(orders)} orders")


@orders_group.command('sweep')
@with_appcontext
def sweep_orders():
    """Run one timeout sweep now."""
    result = sweeper.run_once()
    if result is None:
        raise click.ClickException("A sweep is already in progress")
    click.echo(
        f"PASS Scanned {result.scanned} orders, rejected {len(result.rejected_ids)}, "
        f"skipped {len(result.skipped_ids)} without createdAt"
    )


@orders_group.command('run-sweeper')
@with_appcontext
def run_sweeper():
    """Run the timeout sweep loop in the foreground (Ctrl+C to stop)."""
    click.echo(
        f"START Order sweeper every {sweeper.interval_seconds}s "
        f"(timeout {sweeper.timeout_seconds}s)"
    )
    try:
        sweeper.run_forever()
    except KeyboardInterrupt:
        sweeper.stop()
        click.echo("STOP Order sweeper stopped")


def register_commands(app):
    """Register all CLI command groups with the Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(orders_group)
