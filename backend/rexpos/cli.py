# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/rexpos/cli.py
# Commands Legend (run from the backend directory):
# - flask --app rexpos system init
#   Idempotent bootstrap: default roles, a default store and an admin user.
# - flask --app rexpos system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask --app rexpos stores list [--all]
#   List stores.
# - flask --app rexpos users list
#   List users with their role and active flag.
# - flask --app rexpos users create --email a@b.c --full-name "Ann" --password "Password123!" --role admin
#   Create a user (prompts if options are omitted).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Role, Store, User
from .services.auth_service import PasswordValidationError
from .services.role_service import create_default_roles
from .services.store_service import create_store
from .services.user_service import assign_store, create_user
from .validation import ValidationError

DEFAULT_ADMIN_EMAIL = "admin@rexpos.local"
DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--store-name', default='Main Store', help='Name of the default store')
@click.option('--store-code', default='MAIN', help='Code of the default store')
@with_appcontext
def init_system(store_name, store_code):
    """
    Create default roles, a default store and an admin user when missing.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing RexPOS...")
    db.create_all()

    roles = create_default_roles()
    db.session.commit()
    click.echo(f"PASS Roles: {', '.join(r.name for r in roles)}")

    store = db.session.query(Store).order_by(Store.id.asc()).first()
    if store is None:
        store = create_store({
            "name": store_name,
            "code": store_code,
            "address": "-",
            "phone": "-",
            "email": "store@rexpos.local",
        })
        click.echo(f"PASS Created store: {store.name} (ID: {store.id})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    admin = db.session.query(User).filter_by(email=DEFAULT_ADMIN_EMAIL).first()
    if admin is None:
        admin_role = db.session.query(Role).filter_by(name="admin").one()
        admin = create_user({
            "email": DEFAULT_ADMIN_EMAIL,
            "full_name": "Administrator",
            "password": DEFAULT_PASSWORD,
            "role_id": admin_role.id,
            "global_role": "ADMIN",
        })
        assign_store(admin.id, store.id, "OWNER")
        click.echo(f"PASS Created user: {admin.email} / {DEFAULT_PASSWORD}")
    else:
        click.echo(f"WARN  User '{admin.email}' already exists, skipping...")

    click.echo("DONE RexPOS initialized")


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


@click.group('stores')
def stores_group():
    """Store inspection commands."""


@stores_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include inactive stores')
@with_appcontext
def list_stores(show_all):
    """List stores."""
    query = db.session.query(Store)
    if not show_all:
        query = query.filter(Store.is_active.is_(True))
    stores = query.order_by(Store.id.asc()).all()

    if not stores:
        click.echo("No stores found.")
        return

    click.echo(f"{'ID':<5} {'Code':<12} {'Name':<30} {'Currency':<9} {'Active'}")
    for store in stores:
        active_str = "Yes" if store.is_active else "No"
        click.echo(f"{store.id:<5} {store.code:<12} {store.name:<30} {store.currency:<9} {active_str}")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    for user in users:
        role_name = user.role.name if user.role else "-"
        active_str = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:<5} {user.email:<35} {role_name:<10} {active_str}")


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', 'role_name', default='cashier', help='Role name (admin, manager, cashier)')
@click.option('--store-id', type=int, help='Grant access to this store')
@with_appcontext
def create_user_command(email, full_name, password, role_name, store_id):
    """Create a user."""
    role = db.session.query(Role).filter_by(name=role_name).first()
    if role is None:
        raise click.ClickException(f"Role '{role_name}' not found (run 'system init' first)")

    try:
        user = create_user({
            "email": email,
            "full_name": full_name,
            "password": password,
            "role_id": role.id,
            "global_role": "ADMIN" if role_name == "admin" else "USER",
        })
        if store_id is not None:
            assign_store(user.id, store_id, "MANAGER" if role_name == "manager" else "CASHIER")
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")
    except (ValidationError, LookupError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{role.name}'")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(users_group)
