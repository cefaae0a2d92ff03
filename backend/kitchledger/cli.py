# Overview: Flask CLI command groups for tenant bootstrap, inspection, and maintenance.

# backend/kitchledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to kitchledger (PowerShell: $env:FLASK_APP="kitchledger").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
#   List all tenants with branch counts.
# - python -m flask tenants create --name "Bistro Group" --code "BISTRO"
#   Create a new tenant (restaurant account).
# - python -m flask tenants add-branch --tenant-id 1 --name "Downtown"
#   Add a branch to a tenant.
#
# Inventory inspection:
# - python -m flask inventory expiring --tenant-id 1 [--branch-id 2] [--days 3]
#   Print batches that expired or expire within the window.
# - python -m flask inventory low-stock --tenant-id 1 [--branch-id 2]
#   Print items at or below their configured minimum.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Tenant
from .services import inventory_service
from .services.permission_service import ROLE_RESTAURANT_ADMIN
from .services.tenant_service import TenantContext


@click.group('system')
def system_group():
    """System repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask tenants create' next.")


@click.group('tenants')
def tenants_group():
    """Tenant (restaurant account) management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Branches'}")
    click.echo("="*70)

    for tenant in tenants:
        branch_count = db.session.query(Branch).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<15} {active_str:<8} {branch_count}")

    click.echo("="*70 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_tenant_cli(name, code):
    """Create a new tenant."""
    existing = db.session.query(Tenant).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Tenant with code '{code}' already exists")
        return

    tenant = Tenant(name=name, code=code, is_active=True)
    db.session.add(tenant)
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")


@tenants_group.command('add-branch')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--name', required=True, help='Branch name (unique within tenant)')
@click.option('--address', help='Street address')
@with_appcontext
def add_branch_cli(tenant_id, name, address):
    """Add a branch to a tenant."""
    tenant = db.session.get(Tenant, tenant_id)
    if not tenant:
        click.echo(f"FAIL Tenant ID {tenant_id} not found")
        return

    existing = db.session.query(Branch).filter_by(tenant_id=tenant_id, name=name).first()
    if existing:
        click.echo(f"FAIL Branch '{name}' already exists in this tenant")
        return

    branch = Branch(tenant_id=tenant_id, name=name, address=address)
    db.session.add(branch)
    db.session.commit()

    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}) in tenant '{tenant.name}'")


@click.group('inventory')
def inventory_group():
    """Read-only inventory reports."""


def _admin_context(tenant_id: int) -> TenantContext:
    if not db.session.get(Tenant, tenant_id):
        raise click.ClickException(f"Tenant ID {tenant_id} not found")
    return TenantContext(tenant_id=tenant_id, role=ROLE_RESTAURANT_ADMIN)


@inventory_group.command('expiring')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--branch-id', type=int, help='Limit to one branch')
@click.option('--days', type=int, help='Warning window (defaults to EXPIRY_WARNING_DAYS)')
@with_appcontext
def expiring_cli(tenant_id, branch_id, days):
    """Print expired and soon-to-expire batches."""
    ctx = _admin_context(tenant_id)
    report = inventory_service.get_expiring_batches(ctx, branch_id=branch_id, days=days)

    for label, rows in (("EXPIRED", report["expired"]), ("EXPIRING", report["expiring"])):
        click.echo(f"\n{label} ({len(rows)})")
        for b in rows:
            click.echo(
                f"  #{b['id']:<6} {b['item_name']:<25} {b['quantity']:>10} {b['unit']:<6} "
                f"branch {b['branch_id']:<4} expires {b['expires_at']}"
            )


@inventory_group.command('low-stock')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--branch-id', type=int, help='Limit to one branch')
@with_appcontext
def low_stock_cli(tenant_id, branch_id):
    """Print items at or below their configured minimum."""
    ctx = _admin_context(tenant_id)
    rows = inventory_service.get_low_stock(ctx, branch_id)

    if not rows:
        click.echo("No items below minimum.")
        return

    for r in rows:
        click.echo(
            f"  branch {r['branch_id']:<4} {r['item_name']:<25} on hand {r['on_hand']:>10} "
            f"min {r['minimum']:>10} {r['unit']}"
        )


def register_commands(app):
    """Register all CLI command groups with the Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(inventory_group)
