# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/bistro/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, the shift pointer row and default users.
# - python -m flask system seed-demo
#   Demo catalog: suppliers, ingredients with opening stock, menu with recipes.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username alice --full-name "Alice A" --password "Password123!" --role WAITER
#   Create a user (prompts if options are omitted).
#
# Shift inspection:
# - python -m flask shifts status
#   Show the active shift, its roster and open orders.

import click
from flask.cli import with_appcontext

from .errors import BistroError
from .extensions import db
from .models import User, Supplier, Ingredient, MenuItem, Order
from .permissions import VALID_ROLES
from .services.auth_service import create_user, PasswordValidationError
from .services import catalog_service
from .services.shift_service import ensure_shift_state, get_active_shift


DEFAULT_PASSWORD = "Password123!"

DEFAULT_USERS = [
    ("admin", "System Administrator", "ADMIN"),
    ("manager", "Shift Manager", "MANAGER"),
    ("cashier", "Front Cashier", "CASHIER"),
    ("waiter", "Floor Waiter", "WAITER"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the back office: schema, shift pointer and default users.

    Users: admin, manager, cashier, waiter. All passwords default to "Password123!".

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing Bistro back office...")

    db.create_all()
    ensure_shift_state()
    click.echo("PASS Schema ready")

    for username, full_name, role in DEFAULT_USERS:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"SKIP User exists: {username}")
            continue
        create_user(username, full_name, DEFAULT_PASSWORD, role)
        click.echo(f"PASS Created user: {username} ({role})")

    click.echo("\nDONE Default credentials:")
    for username, _, role in DEFAULT_USERS:
        click.echo(f"   {username:<9} ({role:<7}) / {DEFAULT_PASSWORD}")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create demo suppliers, ingredients and menu items (idempotent)."""
    suppliers = [
        ("Main Food Supplier", "+1-555-0100"),
        ("Beverage Supplier", "+1-555-0200"),
    ]
    for name, phone in suppliers:
        if not db.session.query(Supplier).filter_by(name=name).first():
            catalog_service.create_supplier(name, phone)
            click.echo(f"PASS Supplier: {name}")

    ingredients = [
        ("Tomatoes", "kg", "2.50", "100"),
        ("Chicken", "kg", "8.00", "50"),
        ("Rice", "kg", "1.20", "200"),
    ]
    for name, unit, price, stock in ingredients:
        if not db.session.query(Ingredient).filter_by(name=name).first():
            catalog_service.create_ingredient(name, unit, current_price=price, in_stock=stock)
            click.echo(f"PASS Ingredient: {name} ({stock} {unit})")

    ids = {i.name: i.id for i in db.session.query(Ingredient).all()}
    menu = [
        ("Tomato Soup", "6.50", "Soups", [("Tomatoes", "0.300")]),
        ("Chicken with Rice", "12.90", "Mains", [("Chicken", "0.250"), ("Rice", "0.150")]),
    ]
    for name, price, category, recipe in menu:
        if db.session.query(MenuItem).filter_by(name=name).first():
            continue
        try:
            catalog_service.create_menu_item(
                name,
                price,
                category=category,
                recipe=[{"ingredient_id": ids[i], "quantity": q} for i, q in recipe],
            )
            click.echo(f"PASS Menu item: {name}")
        except (BistroError, KeyError) as e:
            click.echo(f"FAIL Menu item {name}: {e}")


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
    ensure_shift_state()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--full-name', prompt=True, help='Full name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(VALID_ROLES, case_sensitive=False), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, full_name, password, role):
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
        user = create_user(username, full_name, password, role.upper())
        click.echo(f"PASS Created user: {user.username} with role '{user.role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except BistroError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Full name':<30} {'Role':<10} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.full_name:<30} {user.role:<10} {active_str}")

    click.echo("="*80 + "\n")


@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('status')
@with_appcontext
def shift_status():
    """Show the active shift, its roster and open orders."""
    shift = get_active_shift()
    if not shift:
        click.echo("No active shift.")
        return

    click.echo(f"Shift {shift.id} started {shift.started_at} (manager: {shift.manager.username})")
    for member in shift.staff:
        click.echo(f"   {member.role_snapshot:<8} {member.user.username}")

    open_orders = db.session.query(Order).filter_by(shift_id=shift.id, status="OPEN").count()
    click.echo(f"Open orders: {open_orders}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(shifts_group)
