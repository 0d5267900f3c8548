# Overview: Flask CLI command groups for bootstrap and stock inspection.

# backend/campus_store/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock inspection:
# - python -m flask stock report [--low 5]
#   List products with stock (sets show derived availability).
# - python -m flask audit pending
#   List audit logs waiting for review.
# - python -m flask transfers pending
#   List stock transfers waiting for completion.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product
from .services import audit_log_service, transfer_service
from .services.stock_ledger_service import set_availability


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (existing tables are left untouched)."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@click.group('stock')
def stock_group():
    """Central stock inspection commands."""


@stock_group.command('report')
@click.option('--low', type=int, default=None, help='Only show products with availability at or below N')
@with_appcontext
def stock_report(low):
    """List products with their stock or set availability."""
    products = db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()

    rows = []
    for product in products:
        available = set_availability(product) if product.is_set else product.stock
        if low is not None and available > low:
            continue
        rows.append((product, available))

    if not rows:
        click.echo("No products found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'Name':<40} {'Type':<8} {'Price':>10} {'Available':>10}")
    click.echo("="*80)
    for product, available in rows:
        kind = "set" if product.is_set else "item"
        price = f"{product.price_cents / 100:.2f}"
        click.echo(f"{product.id:<6} {product.name[:40]:<40} {kind:<8} {price:>10} {available:>10}")
    click.echo("="*80 + "\n")


@click.group('audit')
def audit_group():
    """Stock correction review commands."""


@audit_group.command('pending')
@with_appcontext
def audit_pending():
    """List audit logs waiting for approval."""
    logs = audit_log_service.list_audit_logs(audit_log_service.AUDIT_STATUS_PENDING)
    if not logs:
        click.echo("No pending audit logs.")
        return

    click.echo(f"\n{'ID':<6} {'Product':<30} {'Before':>8} {'After':>8} {'Created by':<20}")
    click.echo("-"*76)
    for log in logs:
        name = log.product.name if log.product else "(deleted product)"
        click.echo(f"{log.id:<6} {name[:30]:<30} {log.before_quantity:>8} {log.after_quantity:>8} {log.created_by or '-':<20}")
    click.echo("")


@click.group('transfers')
def transfers_group():
    """Branch stock transfer commands."""


@transfers_group.command('pending')
@with_appcontext
def transfers_pending():
    """List stock transfers waiting for completion."""
    transfers = transfer_service.list_transfers(status=transfer_service.TRANSFER_STATUS_PENDING)
    if not transfers:
        click.echo("No pending transfers.")
        return

    click.echo(f"\n{'ID':<6} {'Branch':<30} {'Items':>6} {'Units':>8} {'Deduct':<7}")
    click.echo("-"*62)
    for transfer in transfers:
        branch = transfer.to_branch.name if transfer.to_branch else f"#{transfer.to_branch_id}"
        units = sum(item.quantity for item in transfer.items)
        deduct = "yes" if transfer.deduct_from_central else "no"
        click.echo(f"{transfer.id:<6} {branch[:30]:<30} {len(transfer.items):>6} {units:>8} {deduct:<7}")
    click.echo("")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(audit_group)
    app.cli.add_command(transfers_group)
