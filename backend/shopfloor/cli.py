# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shopfloor/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--location "Front Shelf"]
#   Idempotent bootstrap: store settings (default admin PIN + setup deadline)
#   and a first storage location.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Employees:
# - python -m flask employees list [--all]
# - python -m flask employees create --name "Dana" --role staff
#   Prompts for the PIN (hidden, confirmed).
# - python -m flask employees deactivate <employee_id>
#   Deactivate and revoke every session of the employee.
#
# Permissions:
# - python -m flask perms list [--role staff]
# - python -m flask perms check staff CLOSE_ANY_TICKET
#
# PINs:
# - python -m flask pins hash
#   Print a bcrypt hash for a PIN (prompted, never echoed).
#
# Maintenance:
# - python -m flask maintenance sweep
#   Remove expired sessions and stale rate-limit rows now.
# - python -m flask maintenance cleanup-security-events --retention-days 90
# - python -m flask maintenance rate-limit-status <source_key>

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import StorageLocation
from .permissions import Permission, Role, get_permission_definition, has, permissions_for
from .services import employee_service, maintenance_service, rate_limit_service, settings_service
from .services.employee_service import EmployeeConflictError, EmployeeValidationError
from .services.pin_service import hash_pin
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--location', 'location_name', default='Front Shelf', help='Name of the first storage location')
@with_appcontext
def init_system(location_name):
    """
    Initialize the store: settings row and a first storage location.

    A fresh settings row carries the default admin PIN. It must be replaced
    through POST /api/v1/admin/setup before the setup deadline.
    """
    click.echo("START Initializing store...")

    settings = settings_service.get_settings()
    if settings.setup_complete:
        click.echo("PASS Store settings exist (setup complete)")
    else:
        click.echo(f"PASS Store settings ready; default admin PIN is '{settings_service.DEFAULT_ADMIN_PIN}'")
        click.echo(f"WARN Change it before {to_utc_z(settings.setup_deadline)}")

    if db.session.query(StorageLocation).count() == 0:
        try:
            location = settings_service.create_location({"name": location_name})
        except settings_service.SettingsError as exc:
            click.echo(f"FAIL {exc}")
            return
        click.echo(f"PASS Created storage location: {location.name} (ID: {location.location_id})")
    else:
        click.echo("PASS Storage locations already exist")

    click.echo("DONE Store initialized. Create employees with 'flask employees create'.")


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
    click.echo("CREATE Creating tables...")
    db.create_all()
    click.echo("PASS Database reset. Run 'flask system init' next.")


@click.group('employees')
def employees_group():
    """Employee management commands."""


@employees_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated employees')
@with_appcontext
def list_employees_cli(include_inactive):
    """List employees with role and active status."""
    employees = employee_service.list_employees(include_inactive=include_inactive)
    if not employees:
        click.echo("No employees found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<38} {'Name':<25} {'Role':<8} {'Active'}")
    click.echo("=" * 80)
    for employee in employees:
        active_str = "Yes" if employee.is_active else "No"
        click.echo(f"{employee.employee_id:<38} {employee.name:<25} {employee.role:<8} {active_str}")
    click.echo(f"\nTotal: {len(employees)} employees\n")


@employees_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--pin', prompt=True, hide_input=True, confirmation_prompt=True, help='PIN')
@click.option('--role', type=click.Choice([r.value for r in Role]), default=Role.STAFF.value, show_default=True)
@with_appcontext
def create_employee_cli(name, pin, role):
    """
    Create an active employee.

    The PIN must meet the store's minimum length, must not be a weak pattern
    (123456, 111111, ...) and must not match another active employee's PIN.
    """
    try:
        employee = employee_service.create_employee(name, pin, role)
    except (EmployeeValidationError, EmployeeConflictError) as exc:
        click.echo(f"FAIL {exc}")
        return
    click.echo(f"PASS Created employee {employee.name} ({employee.role}) ID: {employee.employee_id}")


@employees_group.command('deactivate')
@click.argument('employee_id')
@with_appcontext
def deactivate_employee_cli(employee_id):
    """Deactivate an employee and revoke all their sessions."""
    employee = employee_service.get_employee(employee_id)
    if employee is None:
        click.echo(f"FAIL Employee {employee_id} not found")
        return
    revoked = employee_service.deactivate_employee(employee, actor_kind="cli")
    click.echo(f"PASS Deactivated {employee.name}; revoked {revoked} sessions")


@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('list')
@click.option('--role', type=click.Choice([r.value for r in Role]), help='Filter by role')
@with_appcontext
def list_permissions_cli(role):
    """List permissions, optionally only those a role grants."""
    perms = sorted(permissions_for(role), key=lambda p: p.value) if role else list(Permission)

    click.echo(f"\n{'='*80}")
    click.echo(f"Permissions{' for role: ' + role.upper() if role else ''}")
    click.echo(f"{'='*80}\n")
    click.echo(f"{'Code':<22} {'Name':<22} {'Category'}")
    click.echo("-" * 80)
    for perm in perms:
        definition = get_permission_definition(perm.value)
        click.echo(f"{perm.value:<22} {definition['name']:<22} {definition['category']}")
    click.echo(f"\n Total: {len(perms)} permissions\n")


@perms_group.command('check')
@click.argument('role', type=click.Choice([r.value for r in Role]))
@click.argument('permission')
@with_appcontext
def check_permission_cli(role, permission):
    """Check whether a role grants a permission."""
    try:
        perm = Permission(permission.upper())
    except ValueError:
        click.echo(f"FAIL Unknown permission '{permission}'")
        return
    if has(role, perm):
        click.echo(f"PASS {role} has {perm.value}")
    else:
        click.echo(f"FAIL {role} does NOT have {perm.value}")


@click.group('pins')
def pins_group():
    """PIN utilities."""


@pins_group.command('hash')
@click.option('--pin', prompt=True, hide_input=True, confirmation_prompt=True, help='PIN to hash')
@with_appcontext
def hash_pin_cli(pin):
    """Print the bcrypt hash of a PIN (for seeding or recovery)."""
    click.echo(hash_pin(pin))


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('sweep')
@with_appcontext
def sweep_cli():
    """Remove expired sessions and stale rate-limit rows."""
    removed = maintenance_service.run_sweep()
    click.echo(
        f"Removed {removed['admin_sessions']} admin sessions, "
        f"{removed['employee_sessions']} employee sessions, "
        f"{removed['rate_limit_rows']} rate-limit rows."
    )


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    """
    Cleanup old security events.

    Default retention: 90 days.
    """
    deleted = maintenance_service.cleanup_security_events(retention_days=retention_days)
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


@maintenance_group.command('rate-limit-status')
@click.argument('source_key')
@with_appcontext
def rate_limit_status_cli(source_key):
    """Show limiter state for one source key (usually an IP address)."""
    status = rate_limit_service.get_status(source_key)
    for key, value in status.items():
        click.echo(f"{key:<22} {value}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(employees_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(pins_group)
    app.cli.add_command(maintenance_group)
