# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/pettycash/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: roles, permissions, default users and categories.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system prune-notifications [--days 30]
#   Delete read notifications older than N days.
#
# Users:
# - python -m flask users list
# - python -m flask users create --username ana --email ana@pettycash.local --password "Password123!" --role requester
# - python -m flask users deactivate ana
#
# Permissions:
# - python -m flask perms list [--role cashier]
# - python -m flask perms grant requester EDIT_TRANSACTIONS
# - python -m flask perms revoke requester EDIT_TRANSACTIONS
# - python -m flask perms check ana APPROVE_TRANSACTIONS
#
# Categories and budgets:
# - python -m flask categories create "Office Supplies"
# - python -m flask categories list
# - python -m flask budgets create --category "Office Supplies" --amount 5000 --start 2025-01-01 --end 2025-03-31
# - python -m flask budgets alerts
#
# Ledger inspection:
# - python -m flask ledger balance [--as-of 2025-01-31]
# - python -m flask ledger history --start 2025-01-01 --end 2025-01-31
# - python -m flask ledger periods
# - python -m flask ledger summary --months 6

import click
from flask.cli import with_appcontext

from .errors import PettyCashError
from .extensions import db
from .models import Category, CashPeriod, Role, User
from .money import to_str
from .permissions import DEFAULT_ROLES, validate_permission_code
from .services.auth_service import create_user, deactivate_user, PasswordValidationError
from .services import balance_service, budget_service, notification_service, permission_service, session_service
from .time_utils import parse_iso_date


DEFAULT_CATEGORIES = [
    ("Office Supplies", "Stationery, printer paper, toner"),
    ("Transport", "Taxi, fuel, parking"),
    ("Meals", "Staff meals and refreshments"),
    ("Repairs", "Small repairs and maintenance"),
    ("Fund Top-up", "Replenishment of the petty cash fund"),
]

ROLE_NAMES = [name for name, _, _ in DEFAULT_ROLES]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize roles, permissions, default users and categories.

    Creates:
    - Roles: admin, accountant, cashier, requester
    - Users: admin, accountant, cashier, requester (@pettycash.local)
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing petty cash system...")

    click.echo("\nLIST Creating roles...")
    permission_service.create_default_roles()
    roles = db.session.query(Role).order_by(Role.id).all()
    click.echo(f"PASS Roles: {', '.join(r.name for r in roles)}")

    click.echo("\nSECURITY Initializing permissions...")
    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")

    click.echo("\nUSERS Creating default users...")
    default_password = "Password123!"

    for role_name in ROLE_NAMES:
        username = role_name
        email = f"{role_name}@pettycash.local"
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(username=username, email=email, password=default_password, roles=[role_name])
            click.echo(f"PASS Created user: {username} ({email}) with role '{role_name}'")
        except (PasswordValidationError, ValueError) as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    click.echo("\nCATEGORIES Creating default categories...")
    created = 0
    for name, description in DEFAULT_CATEGORIES:
        if not db.session.query(Category).filter_by(name=name).first():
            db.session.add(Category(name=name, description=description))
            created += 1
    db.session.commit()
    click.echo(f"PASS Created {created} categories")

    click.echo("\n" + "="*60)
    click.echo("DONE Petty cash system initialized")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    for role_name in ROLE_NAMES:
        click.echo(f"   {role_name:<10} -> {role_name}@pettycash.local / {default_password}")
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


@system_group.command('prune-notifications')
@click.option('--days', default=30, type=int, help='Delete read notifications older than this')
@with_appcontext
def prune_notifications(days):
    """Delete read notifications older than --days."""
    count = notification_service.delete_old_notifications(days_old=days)
    click.echo(f"PASS Deleted {count} read notifications older than {days} days")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', default=None, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLE_NAMES), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, name, password, role):
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
        create_user(username=username, email=email, password=password, name=name, roles=[role])
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except ValueError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Roles'}")
    click.echo("="*90)

    for user in users:
        roles_str = ", ".join(permission_service.get_user_role_names(user.id)) or "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {roles_str}")

    click.echo("="*90 + "\n")


@users_group.command('deactivate')
@click.argument('username')
@with_appcontext
def deactivate_user_cli(username):
    """Deactivate a user and revoke all of their sessions."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return

    deactivate_user(user.id)
    revoked = session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
    click.echo(f"PASS Deactivated '{username}' ({revoked} sessions revoked)")


# =============================================================================
# PERMISSIONS
# =============================================================================

@click.group('perms')
def perms_group():
    """Permission inspection and repair commands."""


@perms_group.command('list')
@click.option('--role', help='Filter by role name')
@with_appcontext
def list_permissions_cli(role):
    """List permissions, optionally for a single role."""
    from .models import Permission, RolePermission

    query = db.session.query(Permission)
    if role:
        role_obj = db.session.query(Role).filter_by(name=role).first()
        if not role_obj:
            click.echo(f"FAIL Role '{role}' not found")
            return
        query = query.join(RolePermission, RolePermission.permission_id == Permission.id).filter(
            RolePermission.role_id == role_obj.id
        )

    perms = query.order_by(Permission.category, Permission.code).all()
    click.echo(f"\n{'Code':<28} {'Name':<25} {'Category'}")
    click.echo("-"*70)
    for perm in perms:
        click.echo(f"{perm.code:<28} {perm.name:<25} {perm.category}")
    click.echo(f"\n Total: {len(perms)} permissions\n")


@perms_group.command('grant')
@click.argument('role_name')
@click.argument('permission_code')
@with_appcontext
def grant_permission_cli(role_name, permission_code):
    """Grant a permission to a role."""
    try:
        permission_service.grant_permission_to_role(role_name, permission_code)
        click.echo(f"PASS Granted '{permission_code}' to role '{role_name}'")
    except ValueError as e:
        click.echo(f"FAIL Error: {str(e)}")


@perms_group.command('revoke')
@click.argument('role_name')
@click.argument('permission_code')
@with_appcontext
def revoke_permission_cli(role_name, permission_code):
    """Revoke a permission from a role."""
    try:
        if permission_service.revoke_permission_from_role(role_name, permission_code):
            click.echo(f"PASS Revoked '{permission_code}' from role '{role_name}'")
        else:
            click.echo(f"WARN  Permission '{permission_code}' was not granted to '{role_name}'")
    except ValueError as e:
        click.echo(f"FAIL Error: {str(e)}")


@perms_group.command('check')
@click.argument('username')
@click.argument('permission_code')
@with_appcontext
def check_permission_cli(username, permission_code):
    """Check if a user has a specific permission."""
    if not validate_permission_code(permission_code):
        click.echo(f"FAIL Unknown permission code '{permission_code}'")
        return

    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return

    if permission_service.user_has_permission(user.id, permission_code):
        click.echo(f"PASS User '{username}' HAS permission '{permission_code}'")
    else:
        click.echo(f"FAIL User '{username}' DOES NOT HAVE permission '{permission_code}'")

    policy = permission_service.get_policy()
    click.echo(f"\nUser roles: {', '.join(permission_service.get_user_role_names(user.id))}")
    click.echo(f"Requires review: {'Yes' if policy.is_review_required(user) else 'No'}")


# =============================================================================
# CATEGORIES AND BUDGETS
# =============================================================================

@click.group('categories')
def categories_group():
    """Transaction category commands."""


@categories_group.command('create')
@click.argument('name')
@click.option('--description', default=None)
@with_appcontext
def create_category_cli(name, description):
    if db.session.query(Category).filter_by(name=name).first():
        click.echo(f"WARN  Category '{name}' already exists")
        return
    category = Category(name=name, description=description)
    db.session.add(category)
    db.session.commit()
    click.echo(f"PASS Created category: {name} (ID: {category.id})")


@categories_group.command('list')
@with_appcontext
def list_categories_cli():
    for category in db.session.query(Category).order_by(Category.name).all():
        active_str = "" if category.is_active else " (inactive)"
        click.echo(f"{category.id:<5} {category.name}{active_str}")


@click.group('budgets')
def budgets_group():
    """Category budget commands."""


@budgets_group.command('create')
@click.option('--category', 'category_name', required=True)
@click.option('--amount', required=True)
@click.option('--start', required=True, help='YYYY-MM-DD')
@click.option('--end', required=True, help='YYYY-MM-DD')
@click.option('--threshold', default="80", help='Alert threshold (percent)')
@with_appcontext
def create_budget_cli(category_name, amount, start, end, threshold):
    category = db.session.query(Category).filter_by(name=category_name).first()
    if not category:
        click.echo(f"FAIL Category '{category_name}' not found")
        return
    try:
        budget = budget_service.create_budget(
            category_id=category.id, amount=amount, start=start, end=end, alert_threshold=threshold,
        )
        click.echo(f"PASS Created budget {budget.id}: {category.name} {to_str(budget.amount)} ({start}..{end})")
    except PettyCashError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")


@budgets_group.command('alerts')
@click.option('--date', 'on', default=None, help='YYYY-MM-DD (default today)')
@with_appcontext
def budget_alerts_cli(on):
    alerts = budget_service.budget_alerts(parse_iso_date(on))
    if not alerts:
        click.echo("PASS No budget alerts")
        return
    for alert in alerts:
        click.echo(f"{alert['severity'].upper():<8} {alert['message']} ({alert['spent_amount']} / {alert['amount']})")


# =============================================================================
# LEDGER INSPECTION
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Read-only balance and period inspection."""


@ledger_group.command('balance')
@click.option('--as-of', default=None, help='YYYY-MM-DD (default today)')
@with_appcontext
def balance_cli(as_of):
    balance = balance_service.current_balance(parse_iso_date(as_of))
    click.echo(f"Balance: {to_str(balance)}")
    if balance_service.needs_low_balance_alert(balance):
        click.echo(f"WARN  Below low balance threshold ({to_str(balance_service.low_balance_threshold())})")


@ledger_group.command('history')
@click.option('--start', required=True, help='YYYY-MM-DD')
@click.option('--end', required=True, help='YYYY-MM-DD')
@with_appcontext
def history_cli(start, end):
    click.echo(f"{'Date':<12} {'In':>14} {'Out':>14} {'Balance':>16} {'Txns':>5}")
    click.echo("-"*65)
    for day in balance_service.balance_history(parse_iso_date(start), parse_iso_date(end)):
        click.echo(
            f"{day.date.isoformat():<12} {to_str(day.cash_in):>14} {to_str(day.cash_out):>14} "
            f"{to_str(day.running_balance):>16} {day.transaction_count:>5}"
        )


@ledger_group.command('periods')
@with_appcontext
def periods_cli():
    periods = (
        db.session.query(CashPeriod)
        .filter(CashPeriod.deleted_at.is_(None))
        .order_by(CashPeriod.period_start.desc())
        .all()
    )
    if not periods:
        click.echo("No cash periods found.")
        return
    for p in periods:
        discrepancy = f" discrepancy {to_str(p.discrepancy_amount)}" if p.has_discrepancy() else ""
        click.echo(
            f"{p.id:<5} {p.period_start} .. {p.period_end}  {p.status:<11} "
            f"open {to_str(p.opening_balance)} close {to_str(p.closing_balance) or '-'}{discrepancy}"
        )


@ledger_group.command('summary')
@click.option('--months', default=6, type=int)
@with_appcontext
def summary_cli(months):
    for row in balance_service.balance_summary(months):
        click.echo(
            f"{row['month']:<16} in {row['cash_in']:>12} out {row['cash_out']:>12} "
            f"close {row['closing_balance']:>14} [{row['status']}]"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(categories_group)
    app.cli.add_command(budgets_group)
    app.cli.add_command(ledger_group)
