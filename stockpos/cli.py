# stockpos/cli.py
# Commands Legend:
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (or pass --app wsgi).
# - Use: flask <group> <command> [options]
#
# System bootstrap/repair:
# - flask system init [--email admin@stockpos.local --password "Password123!"]
#   Idempotent bootstrap: creates tables and the default admin user.
# - flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - flask users list
# - flask users create --email a@b.c --name "Cashier" --password "..." [--admin/--no-admin]
#
# Catalog:
# - flask catalog seed
#   Sample products (with opening IN movements) and default shop settings.
#
# Stock:
# - flask stock check
#   Compare every product's stock with its movement log; exit 1 on mismatch.
#
# Sessions:
# - flask sessions cleanup [--older-than-days 30]
#   Delete expired/revoked session tokens.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, User
from .services import products_service, session_service, settings_service, stock_service
from .services.auth_service import PasswordValidationError, create_user
from .validation import ConflictError


DEFAULT_ADMIN_EMAIL = "admin@stockpos.local"
DEFAULT_ADMIN_PASSWORD = "Password123!"

SAMPLE_PRODUCTS = [
    {
        "sku": "KV001",
        "name": "Vape Pod Starter Kit",
        "description": "Pod vape starter kit for beginners",
        "category": "Starter Kit",
        "buy_price": 150000,
        "selling_price": 200000,
        "stock": 25,
    },
    {
        "sku": "KV002",
        "name": "Liquid Tobacco 3mg",
        "description": "Tobacco flavour liquid, 3mg nicotine",
        "category": "Liquid",
        "buy_price": 75000,
        "selling_price": 100000,
        "stock": 50,
    },
    {
        "sku": "KV003",
        "name": "Coil Replacement Pack",
        "description": "Replacement coils (5 pcs)",
        "category": "Accessories",
        "buy_price": 50000,
        "selling_price": 75000,
        "stock": 8,
    },
    {
        "sku": "KV004",
        "name": "Vape Mod Box",
        "description": "200W box mod",
        "category": "Mod",
        "buy_price": 300000,
        "selling_price": 450000,
        "stock": 5,
    },
    {
        "sku": "KV005",
        "name": "Battery 18650",
        "description": "18650 battery 3000mAh",
        "category": "Battery",
        "buy_price": 75000,
        "selling_price": 100000,
        "stock": 3,
    },
]

DEFAULT_SETTINGS = {
    "store_name": "KawokVapeStore",
    "store_address": "Jl. Contoh No. 123, Jakarta",
    "store_phone": "+62 812-3456-7890",
    "currency": "IDR",
    "low_stock_threshold": "10",
}


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--email', default=DEFAULT_ADMIN_EMAIL, help='Admin email')
@click.option('--name', default='Administrator', help='Admin display name')
@click.option('--password', default=DEFAULT_ADMIN_PASSWORD, help='Admin password')
@with_appcontext
def init_system(email, name, password):
    """
    Create tables (if missing) and the default admin user.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing stockpos...")
    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if existing:
        click.echo(f"WARN  User '{existing.email}' already exists, skipping...")
    else:
        try:
            user = create_user(email=email, name=name, password=password, is_admin=True)
            click.echo(f"PASS Created admin user: {user.email} (ID: {user.id})")
        except PasswordValidationError as e:
            raise click.ClickException(f"Password validation failed: {e}")

    click.echo("DONE stockpos initialized.")


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

    click.echo("PASS Database reset complete. Run 'flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--admin/--no-admin', default=True, help='Grant admin flag')
@with_appcontext
def create_user_cli(email, name, password, admin):
    """Create a new user (password is hashed with bcrypt)."""
    try:
        user = create_user(email=email, name=name, password=password, is_admin=admin)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")
    except (ConflictError, ValueError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}, admin={user.is_admin})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<20} {'Admin':<7} {'Active'}")
    click.echo("=" * 80)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.email:<35} {user.name:<20} "
            f"{'Yes' if user.is_admin else 'No':<7} {'Yes' if user.is_active else 'No'}"
        )
    click.echo("=" * 80 + "\n")


@click.group('catalog')
def catalog_group():
    """Product catalog commands."""


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Load sample products and default shop settings (skips existing SKUs)."""
    created = 0
    for sample in SAMPLE_PRODUCTS:
        if db.session.query(Product.id).filter_by(sku=sample["sku"]).first():
            click.echo(f"WARN  Product {sample['sku']} already exists, skipping...")
            continue
        products_service.create_product(patch=dict(sample))
        created += 1
        click.echo(f"PASS Created product {sample['sku']} ({sample['name']}) stock={sample['stock']}")

    settings_service.update_settings(DEFAULT_SETTINGS)
    click.echo(f"PASS Seeded {created} products and {len(DEFAULT_SETTINGS)} settings")


@click.group('stock')
def stock_group():
    """Stock consistency commands."""


@stock_group.command('check')
@with_appcontext
def check_stock():
    """Reconcile every product's stock against its movement log."""
    rows = stock_service.reconcile_all()
    mismatches = [row for row in rows if not row["consistent"]]

    for row in mismatches:
        click.echo(
            f"FAIL Product {row['productId']} ({row['sku']}): "
            f"stock={row['stock']} movements={row['movementTotal']}"
        )

    if mismatches:
        raise click.ClickException(f"{len(mismatches)} of {len(rows)} products are inconsistent")

    click.echo(f"PASS {len(rows)} products consistent with their movement log")


@click.group('sessions')
def sessions_group():
    """Session token maintenance."""


@sessions_group.command('cleanup')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions(older_than_days):
    """Delete expired or revoked sessions older than the window."""
    deleted = session_service.cleanup_expired_sessions(older_than_days=older_than_days)
    click.echo(f"PASS Deleted {deleted} sessions")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(sessions_group)
