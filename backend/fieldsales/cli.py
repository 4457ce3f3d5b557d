# Overview: Flask CLI command groups for bootstrap, sync reconciliation and ledger maintenance.

# backend/fieldsales/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Create all tables on the local cache and the remote store (idempotent).
#
# Users:
# - python -m flask users create --name "Ali" --role booker --max-discount-percent 5
#   Create a user document (prints the new id).
# - python -m flask users list [--role booker]
#
# Sync:
# - python -m flask sync status
#   Counts of synced / pending / failed cache rows.
# - python -m flask sync run [--include-failed]
#   Push pending rows to the remote store (and failed rows when asked).
#
# Ledger:
# - python -m flask ledger verify --shop-id shop-1
#   Replay a shop's ledger and report balance discrepancies.
# - python -m flask ledger summary --shop-id shop-1
#
# Discounts:
# - python -m flask discounts summary --booker-id <id> [--period 2024-11]
# - python -m flask discounts reset --booker-id <id> --period 2024-11
#   Salary deduction applied: removes the period from the booker's accumulator.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Role
from .services.discount_service import PeriodNotFound
from .services.entity_store import EntityNotFound
from .services.registry import get_services
from .validation import ValidationError, parse_discount_percent, to_money


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables on every bind."""
    db.create_all()
    click.echo("PASS Tables created on local cache and remote store")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User document commands."""


@users_group.command('create')
@click.option('--name', required=True, help='Display name')
@click.option('--role', type=click.Choice([r.value for r in Role]), required=True)
@click.option('--user-id', default=None, help='Explicit id (default: generated)')
@click.option('--max-discount-percent', default=None, help='Booker discount ceiling in percent')
@click.option('--max-discount-amount', default=None, help='Per-order discount amount ceiling')
@with_appcontext
def create_user_cmd(name, role, user_id, max_discount_percent, max_discount_amount):
    """Create a user document in the users collection."""
    doc = {"name": name.strip(), "role": role, "isActive": True}
    if user_id:
        doc["id"] = user_id
    try:
        if max_discount_percent is not None:
            doc["maxDiscountPercent"] = str(parse_discount_percent(max_discount_percent, "max-discount-percent"))
        if max_discount_amount is not None:
            doc["maxDiscountAmount"] = str(to_money(max_discount_amount, "max-discount-amount"))
    except ValidationError as e:
        raise click.ClickException(str(e))

    store = get_services().store
    if user_id and store.get("users", user_id) is not None:
        raise click.ClickException(f"User {user_id} already exists")
    user = store.create("users", doc)
    click.echo(f"PASS Created {role} {user['name']} (ID: {user['id']})")


@users_group.command('list')
@click.option('--role', type=click.Choice([r.value for r in Role]), default=None)
@with_appcontext
def list_users_cmd(role):
    store = get_services().store
    users = store.query_where("users", "role", "==", role) if role else store.all("users")
    if not users:
        click.echo("No users found")
        return
    for user in sorted(users, key=lambda u: u.get("name") or ""):
        click.echo(f"{user['id']}  {user.get('role', '?'):9s}  {user.get('name', '')}")


# =============================================================================
# SYNC
# =============================================================================

@click.group('sync')
def sync_group():
    """Local cache / remote store reconciliation."""


@sync_group.command('status')
@with_appcontext
def sync_status_cmd():
    counts = get_services().store.sync_summary()
    for status, count in counts.items():
        click.echo(f"{status:8s} {count}")


@sync_group.command('run')
@click.option('--include-failed', is_flag=True, default=False, help='Also retry rows marked failed')
@with_appcontext
def sync_run_cmd(include_failed):
    """Push pending rows to the remote store."""
    counts = get_services().store.sync_pending(include_failed=include_failed)
    click.echo(
        f"PASS synced={counts['synced']} pending={counts['pending']} failed={counts['failed']}"
    )


# =============================================================================
# LEDGER
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Credit ledger inspection."""


@ledger_group.command('verify')
@click.option('--shop-id', required=True)
@with_appcontext
def ledger_verify_cmd(shop_id):
    """Replay a shop's ledger; exits non-zero on discrepancies."""
    problems = get_services().ledger.verify_shop_ledger(shop_id)
    if not problems:
        click.echo(f"PASS Ledger for shop {shop_id} replays cleanly")
        return
    for p in problems:
        click.echo(
            f"FAIL seq {p['sequence']} {p['field']}: expected {p['expected']}, stored {p['actual']}"
        )
    raise SystemExit(1)


@ledger_group.command('summary')
@click.option('--shop-id', required=True)
@with_appcontext
def ledger_summary_cmd(shop_id):
    summary = get_services().ledger.shop_summary(shop_id)
    for key, value in summary.items():
        click.echo(f"{key}: {value}")


# =============================================================================
# DISCOUNTS
# =============================================================================

@click.group('discounts')
def discounts_group():
    """Unauthorized discount accounting."""


@discounts_group.command('summary')
@click.option('--booker-id', required=True)
@click.option('--period', default=None, help='YYYY-MM (default: current month)')
@with_appcontext
def discounts_summary_cmd(booker_id, period):
    try:
        summary = get_services().discounts.booker_discount_summary(booker_id, period)
    except EntityNotFound as e:
        raise click.ClickException(str(e))
    click.echo(f"Booker {summary['bookerName']} ({booker_id})")
    for key, amount in summary["periods"].items():
        click.echo(f"  {key}: {amount}")
    click.echo(f"  total: {summary['totalUnauthorizedDiscount']}")


@discounts_group.command('reset')
@click.option('--booker-id', required=True)
@click.option('--period', required=True, help='YYYY-MM')
@with_appcontext
def discounts_reset_cmd(booker_id, period):
    """Apply the salary deduction for one period."""
    try:
        account = get_services().discounts.reset_unauthorized_discount(booker_id, period)
    except (EntityNotFound, PeriodNotFound) as e:
        raise click.ClickException(str(e))
    click.echo(
        f"PASS Reset {period} for {booker_id}; remaining total {account.total_unauthorized_discount}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sync_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(discounts_group)
