# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Full idempotent bootstrap: permissions, roles, workflow statuses,
#   role transition graph and the admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username ops --email ops@example.com --password "Password123!" --role order_manager
#
# Permissions:
# - python -m flask perms list [--role warehouse] [--category ORDERS]
# - python -m flask perms grant warehouse action.orders.item.cancel
# - python -m flask perms revoke warehouse action.orders.item.cancel
#
# Categories:
# - python -m flask categories rebuild-levels
#   Recompute level/has_children for the whole tree from parent links.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import CmsUser, Role, UserRole, Permission, RolePermission
from .permissions import DEFAULT_ROLES
from .services.auth_service import create_user, create_default_roles, PasswordValidationError
from .services import permission_service
from .services import category_service


ROLE_KEYS = [role_key for role_key, _, _ in DEFAULT_ROLES]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-password', default='Password123!', help='Password for the default admin user')
@with_appcontext
def init_system(admin_password):
    """
    Initialize the back office: permissions, roles, workflow and admin user.

    Safe to run repeatedly; existing rows are kept.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing back office...")

    click.echo("\nSECURITY Initializing permissions and roles...")
    perm_count = permission_service.initialize_permissions()
    role_count = create_default_roles()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Created {perm_count} permissions, {role_count} roles, {assignment_count} role assignments")

    click.echo("\nWORKFLOW Seeding item workflow...")
    status_count = permission_service.initialize_workflow_statuses()
    transition_count = permission_service.assign_default_role_transitions()
    click.echo(f"PASS Created {status_count} statuses, {transition_count} role transitions")

    click.echo("\nUSERS Creating admin user...")
    existing = db.session.query(CmsUser).filter_by(username="admin").first()
    if existing:
        click.echo("WARN  User 'admin' already exists, skipping...")
    else:
        try:
            create_user("admin", "admin@backoffice.local", admin_password, "super_admin")
            click.echo("PASS Created user: admin (admin@backoffice.local) with role 'super_admin'")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for 'admin': {str(e)}")

    click.echo("\nDONE Back office initialized.")


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
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLE_KEYS), prompt=True, help='Primary role')
@with_appcontext
def create_user_cli(username, email, password, role):
    """
    Create a new CMS user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - Upper and lower case letters
    - At least one digit and one special character
    """
    try:
        create_user(username, email, password, role)
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(CmsUser).order_by(CmsUser.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Roles'}")
    click.echo("="*90)

    for user in users:
        rows = (
            db.session.query(Role.role_key, UserRole.is_primary)
            .join(UserRole, UserRole.role_id == Role.id)
            .filter(UserRole.user_id == user.id)
            .all()
        )
        roles_str = ", ".join(f"{key}*" if primary else key for key, primary in rows) or "none"
        active_str = "Yes" if user.is_active else "No"

        click.echo(f"{user.id:<5} {user.username:<20} {(user.email or ''):<30} {active_str:<8} {roles_str}")

    click.echo("="*90 + "\n")


@click.group('perms')
def perms_group():
    """Permission inspection and repair commands."""


@perms_group.command('list')
@click.option('--role', help='Filter by role key')
@click.option('--category', help='Filter by category')
@with_appcontext
def list_permissions_cli(role, category):
    """List permissions, optionally filtered by role or category."""
    query = db.session.query(Permission)

    if role:
        role_obj = db.session.query(Role).filter_by(role_key=role).first()
        if not role_obj:
            click.echo(f"FAIL Role '{role}' not found")
            return
        query = query.join(RolePermission, RolePermission.permission_id == Permission.id).filter(
            RolePermission.role_id == role_obj.id,
            RolePermission.allowed.is_(True),
        )
    if category:
        query = query.filter(Permission.category == category)

    perms = query.order_by(Permission.category, Permission.permission_key).all()

    click.echo(f"\n{'='*80}")
    click.echo(f"{'Key':<40} {'Name':<25} {'Category'}")
    click.echo("-"*80)
    for perm in perms:
        click.echo(f"{perm.permission_key:<40} {perm.name:<25} {perm.category}")
    click.echo(f"\n Total: {len(perms)} permissions\n")


@perms_group.command('grant')
@click.argument('role_key')
@click.argument('permission_key')
@with_appcontext
def grant_permission_cli(role_key, permission_key):
    """Grant a permission to a role."""
    try:
        permission_service.grant_permission_to_role(role_key, permission_key)
        click.echo(f"PASS Granted '{permission_key}' to role '{role_key}'")
    except ValueError as e:
        click.echo(f"FAIL Error: {str(e)}")


@perms_group.command('revoke')
@click.argument('role_key')
@click.argument('permission_key')
@with_appcontext
def revoke_permission_cli(role_key, permission_key):
    """Revoke a permission from a role."""
    try:
        revoked = permission_service.revoke_permission_from_role(role_key, permission_key)
        if revoked:
            click.echo(f"PASS Revoked '{permission_key}' from role '{role_key}'")
        else:
            click.echo(f"WARN  Permission '{permission_key}' was not granted to '{role_key}'")
    except ValueError as e:
        click.echo(f"FAIL Error: {str(e)}")


@click.group('categories')
def categories_group():
    """Category tree maintenance commands."""


@categories_group.command('rebuild-levels')
@with_appcontext
def rebuild_levels_cli():
    """Recompute level and has_children for every category."""
    result = category_service.rebuild_levels()
    click.echo(f"PASS Checked {result['total']} categories, updated {result['updated']}")
    if result["unreachable"]:
        click.echo(f"WARN  Categories in a parent cycle (left untouched): {result['unreachable']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(categories_group)
