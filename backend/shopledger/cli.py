# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--manager-name "Store Manager" --manager-phone 9000000000]
#   Create tables and the first manager account (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list [--role CUSTOMER]
# - python -m flask users create --name "Asha" --phone 9000000001 --role MANAGER
# - python -m flask users deactivate 7
#
# Ledger:
# - python -m flask ledger reconcile [--fix]
#   Compare cached dues with the ledger; --fix rewrites the cache.
#
# Notifications (cron):
# - python -m flask notifications send-reminders [--message "..."]

import click
from flask.cli import with_appcontext

from .errors import ShopError
from .extensions import db
from .models import User
from .money import format_cents
from .permissions import Role, VALID_ROLES
from .services.auth_service import create_user
from .services.session_service import revoke_all_user_sessions
from .services import ledger_service
from .services import notification_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--manager-name', default='Store Manager', help='Name of the first manager')
@click.option('--manager-phone', default='9000000000', help='Login phone of the first manager')
@with_appcontext
def init_system(manager_name, manager_phone):
    """
    Create all tables and, if no manager exists yet, the first manager.

    Managers log in with the same phone + one-time code flow as customers.
    """
    click.echo("START Initializing shop ledger...")
    db.create_all()
    click.echo("PASS Tables ready")

    manager = db.session.query(User).filter_by(role=Role.MANAGER).first()
    if manager:
        click.echo(f"PASS Using existing manager: {manager.name} ({manager.phone})")
        return

    try:
        manager = create_user(name=manager_name, phone=manager_phone, role=Role.MANAGER)
    except ShopError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created manager: {manager.name} ({manager.phone}, ID: {manager.id})")


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
    """User inspection and bootstrap."""


@users_group.command('list')
@click.option('--role', type=click.Choice(VALID_ROLES), default=None)
@with_appcontext
def list_users(role):
    query = db.session.query(User).order_by(User.id.asc())
    if role:
        query = query.filter_by(role=role)
    users = query.all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(
            f"{user.id:>4}  {user.role:<8}  {user.phone:<16}  {user.name:<24}  "
            f"dues={format_cents(user.pending_dues_cents):>10}  {status}"
        )


@users_group.command('create')
@click.option('--name', prompt=True)
@click.option('--phone', prompt=True)
@click.option('--role', type=click.Choice(VALID_ROLES), default=Role.CUSTOMER, show_default=True)
@click.option('--email', default=None)
@with_appcontext
def create_user_cmd(name, phone, role, email):
    """Create a user. The only way to create a MANAGER."""
    try:
        user = create_user(name=name, phone=phone, role=role, email=email)
    except ShopError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created {user.role} {user.name} (ID: {user.id})")


@users_group.command('deactivate')
@click.argument('user_id', type=int)
@with_appcontext
def deactivate_user_cmd(user_id):
    """Block a user from logging in and end their open sessions."""
    user = db.session.get(User, user_id)
    if not user:
        raise click.ClickException(f"User {user_id} not found")
    user.is_active = False
    db.session.commit()
    revoked = revoke_all_user_sessions(user.id, reason="User deactivated")
    click.echo(f"PASS Deactivated {user.name} (ID: {user.id}); revoked {revoked} session(s)")


@click.group('ledger')
def ledger_group():
    """Ledger consistency checks."""


@ledger_group.command('reconcile')
@click.option('--fix', is_flag=True, help='Rewrite cached dues from the ledger')
@with_appcontext
def reconcile_cmd(fix):
    drift = ledger_service.reconcile(fix=fix)
    if not drift:
        click.echo("PASS Cached dues match the ledger for every user")
        return
    for row in drift:
        click.echo(
            f"DRIFT user {row['user_id']} ({row['name']}): cached={format_cents(row['cached_cents'])} "
            f"ledger={format_cents(row['ledger_cents'])} drift={format_cents(row['drift_cents'])}"
        )
    if fix:
        click.echo(f"FIXED {len(drift)} user(s)")
    else:
        click.echo(f"FAIL {len(drift)} user(s) drifted; rerun with --fix to repair")
        raise SystemExit(1)


@click.group('notifications')
def notifications_group():
    """Customer notifications."""


@notifications_group.command('send-reminders')
@click.option('--message', default=None, help='Broadcast this text to every debtor')
@with_appcontext
def send_reminders_cmd(message):
    summary = notification_service.send_due_reminders(message)
    click.echo(
        f"PASS {summary['reminders_sent']}/{summary['total_debtors']} debtors reminded"
    )
    for phone in summary["errors"]:
        click.echo(f"FAIL delivery to {phone}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(notifications_group)
