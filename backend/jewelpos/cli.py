# Overview: Flask CLI command groups for bootstrap, users and the reminder job.

# backend/jewelpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-username admin --admin-email admin@loja.local --admin-password "..."]
#   Idempotent bootstrap: creates tables and the first login user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username maria --email maria@loja.local --password "Password123!"
#   Create a login user (prompts if options are omitted).
# - python -m flask users list
#   List users with active/demo flags.
#
# WhatsApp reminders (schedule dispatch with cron/Task Scheduler, e.g. every 15 minutes):
# - python -m flask reminders dispatch [--force] [--date 2026-03-10]
#   Send today's reminder if settings allow it (send time reached, not yet sent today).
# - python -m flask reminders preview [--date 2026-03-10]
#   Print the message that would be sent, without sending.

import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services.auth_service import create_user, PasswordValidationError
from .services import notification_service
from .services.whatsapp_client import RelayError
from .validation import ConflictError, TransientIOError, ValidationError
from .time_utils import business_today, parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', help='Username of the first login user')
@click.option('--admin-email', default='admin@loja.local', help='Email of the first login user')
@click.option('--admin-password', default='Password123!', help='Password of the first login user')
@with_appcontext
def init_system(admin_username, admin_email, admin_password):
    """
    Create all tables and the first login user.

    SECURITY: change the default password immediately in production!
    """
    click.echo("START Initializing store database...")

    db.create_all()
    click.echo("PASS Tables created")

    existing = db.session.query(User).filter_by(username=admin_username).first()
    if existing:
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")
    else:
        try:
            create_user(username=admin_username, email=admin_email, password=admin_password)
            click.echo(f"PASS Created user: {admin_username} ({admin_email})")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for '{admin_username}': {str(e)}")
            sys.exit(1)

    click.echo("\n" + "=" * 60)
    click.echo("DONE Store initialized")
    click.echo("=" * 60)
    click.echo("   Password requirements: 8+ chars, uppercase, lowercase, digit, special char")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """Drop and recreate every table. Development only: all data is lost."""
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


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_user_cli(username, email, password):
    """Create a staff login. The password must pass the strength rules."""
    try:
        create_user(username=username, email=email, password=password)
        click.echo(f"PASS Created user: {username} ({email})")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        sys.exit(1)
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {str(e)}")
        sys.exit(1)


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found. Run 'python -m flask system init' first.")
        return

    click.echo(f"\n{'ID':<5} {'Username':<20} {'Email':<32} {'Active':<8} {'Demo':<6}")
    click.echo("-" * 75)
    for u in users:
        click.echo(f"{u.id:<5} {u.username:<20} {u.email:<32} {str(u.is_active):<8} {str(u.is_demo):<6}")


@click.group('reminders')
def reminders_group():
    """WhatsApp payment reminder job."""


def _resolve_date(value):
    if not value:
        return business_today()
    try:
        return parse_iso_date(value)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--date')


@reminders_group.command('dispatch')
@click.option('--force', is_flag=True, help='Ignore send time and the once-a-day check')
@click.option('--date', 'date_str', help='Business date to evaluate (YYYY-MM-DD), default today')
@with_appcontext
def dispatch_reminders_cli(force, date_str):
    """Send the daily reminder when the settings allow it. Safe to run repeatedly."""
    today = _resolve_date(date_str)
    try:
        result = notification_service.dispatch_reminders(today=today, force=force)
    except RelayError as e:
        click.echo(f"FAIL Relay rejected the message: HTTP {e.status_code}")
        sys.exit(1)
    except TransientIOError as e:
        click.echo(f"FAIL {str(e)}")
        sys.exit(1)

    if result.sent:
        click.echo(f"PASS Reminder sent: {result.installment_count} installments, {result.total_cents} cents")
    else:
        click.echo(f"SKIP {result.reason}")


@reminders_group.command('preview')
@click.option('--date', 'date_str', help='Business date to evaluate (YYYY-MM-DD), default today')
@with_appcontext
def preview_reminders_cli(date_str):
    """Print the reminder message without sending it."""
    today = _resolve_date(date_str)
    try:
        message = notification_service.build_reminder_preview(today)
    except ValidationError as e:
        click.echo(f"FAIL {str(e)}")
        sys.exit(1)

    if message is None:
        click.echo("Nothing due for the configured lead days.")
        return
    click.echo(message)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(reminders_group)
