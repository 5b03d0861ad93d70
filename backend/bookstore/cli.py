# Overview: Flask CLI command groups for bootstrap, inspection, and settlement maintenance.

# backend/bookstore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates all tables and the platform payee.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Seller inspection/bootstrap:
# - python -m flask sellers list [--all]
#   List sellers (use --all to include deactivated ones).
# - python -m flask sellers create --code "S-ANAND" --name "Anand Books" --email anand@example.com
#   Create a seller.
# - python -m flask sellers deactivate S-ANAND
#   Soft-delete a seller; their future settlements go to the platform payee.
#
# Settlement:
# - python -m flask payouts report --seller-id 3 [--year 2026]
#   Print a seller's monthly payout summary.
# - python -m flask payouts settle-pending [--dry-run]
#   Settle delivered orders that have no payout records yet.
# - python -m flask payouts commission [--rate 2.5]
#   Show or change the commission rate (percent).
#
# Fulfilment:
# - python -m flask orders queue processing [--limit 50]
#   List orders in a status, newest first (e.g. processing = to pack).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Order, PayoutRecord, Seller
from .statuses import OrderStatus
from .services import lifecycle_service, payout_service, reporting_service, settings_service
from .services.reporting_service import ReportError
from .validation import ValidationError, parse_percent_to_bps
from .time_utils import utcnow


def _rupees(cents: int) -> str:
    return f"{cents / 100:,.2f}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the order engine database.

    Creates:
    - All tables (no-op for existing ones)
    - The platform payee seller that receives payouts for items whose
      seller no longer exists
    """
    click.echo("START Initializing bookstore order engine...")

    db.create_all()
    click.echo("PASS Tables ready")

    code = current_app.config["PLATFORM_PAYEE_CODE"]
    payee = payout_service.ensure_platform_payee(code)
    db.session.commit()
    click.echo(f"PASS Platform payee: {payee.name} (ID: {payee.id}, Code: {payee.code})")

    rate_bps = settings_service.get_commission_rate_bps()
    click.echo(f"PASS Commission rate: {rate_bps / 100}%")


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


@click.group('sellers')
def sellers_group():
    """Seller inspection and bootstrap commands."""


@sellers_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated sellers')
@with_appcontext
def list_sellers(include_inactive):
    """List sellers with their payout counts."""
    query = db.session.query(Seller)
    if not include_inactive:
        query = query.filter(Seller.deleted_at.is_(None))
    sellers = query.order_by(Seller.id).all()

    if not sellers:
        click.echo("No sellers found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Code':<15} {'Name':<30} {'Active':<8} {'Payouts'}")
    click.echo("="*80)
    for seller in sellers:
        payout_count = db.session.query(PayoutRecord).filter_by(seller_id=seller.id).count()
        active_str = "Yes" if seller.is_active else "No"
        name = (seller.name or "-") + (" (platform)" if seller.is_platform else "")
        click.echo(f"{seller.id:<5} {seller.code:<15} {name:<30} {active_str:<8} {payout_count}")
    click.echo("="*80 + "\n")


@sellers_group.command('create')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--name', required=True, help='Display name')
@click.option('--email', default=None, help='Contact email')
@with_appcontext
def create_seller(code, name, email):
    """Create a seller."""
    if db.session.query(Seller).filter_by(code=code).first():
        click.echo(f"FAIL Seller with code '{code}' already exists")
        return

    seller = Seller(code=code, name=name, email=email, is_platform=False)
    db.session.add(seller)
    db.session.commit()
    click.echo(f"PASS Created seller: {seller.name} (ID: {seller.id}, Code: {seller.code})")


@sellers_group.command('deactivate')
@click.argument('code')
@with_appcontext
def deactivate_seller(code):
    """Soft-delete a seller. Existing payout records are kept."""
    seller = db.session.query(Seller).filter_by(code=code).first()
    if not seller:
        click.echo(f"FAIL Seller '{code}' not found")
        return
    if seller.is_platform:
        click.echo("FAIL The platform payee cannot be deactivated")
        return
    if seller.deleted_at is None:
        seller.deleted_at = utcnow()
        db.session.commit()
    click.echo(f"PASS Seller '{code}' deactivated")


@click.group('payouts')
def payouts_group():
    """Settlement inspection and repair commands."""


@payouts_group.command('report')
@click.option('--seller-id', type=int, required=True, help='Seller ID')
@click.option('--year', type=int, default=None, help='Calendar year')
@with_appcontext
def payouts_report(seller_id, year):
    """Print a seller's monthly payout summary."""
    try:
        summary = reporting_service.monthly_summary(seller_id, year=year)
    except ReportError as e:
        click.echo(f"FAIL {e}")
        return

    if not summary["rows"]:
        click.echo("No payouts found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Month':<10} {'Orders':<8} {'Items':>14} {'Commission':>12} {'Shipping':>12} {'Net':>14}")
    click.echo("="*80)
    for row in summary["rows"]:
        click.echo(
            f"{row['period']:<10} {row['orders_count']:<8} "
            f"{_rupees(row['items_total_cents']):>14} {_rupees(row['admin_commission_cents']):>12} "
            f"{_rupees(row['shipping_charge_cents']):>12} {_rupees(row['net_amount_cents']):>14}"
        )
    totals = summary["totals"]
    click.echo("-"*80)
    click.echo(
        f"{'TOTAL':<10} {totals['orders_count']:<8} "
        f"{_rupees(totals['items_total_cents']):>14} {_rupees(totals['admin_commission_cents']):>12} "
        f"{_rupees(totals['shipping_charge_cents']):>12} {_rupees(totals['net_amount_cents']):>14}"
    )
    for status, bucket in totals["by_status"].items():
        click.echo(f"   {status:<8} {bucket['count']:>4} payout(s)  {_rupees(bucket['net_amount_cents']):>14}")
    click.echo("="*80 + "\n")


@payouts_group.command('settle-pending')
@click.option('--dry-run', is_flag=True, help='Only list the orders that would be settled')
@with_appcontext
def settle_pending(dry_run):
    """Settle delivered orders that have no payout records yet."""
    settled_ids = db.session.query(PayoutRecord.order_id).distinct()
    orders = (
        db.session.query(Order)
        .filter(Order.status == OrderStatus.DELIVERED.value)
        .filter(Order.id.notin_(settled_ids))
        .order_by(Order.id)
        .all()
    )

    if not orders:
        click.echo("PASS Every delivered order is settled")
        return

    for order in orders:
        if dry_run:
            click.echo(f"WOULD SETTLE {order.order_number} (ID: {order.id})")
            continue
        result = payout_service.settle_delivery(order.id)
        click.echo(f"PASS Settled {order.order_number}: {len(result.payouts)} payout(s)")


@payouts_group.command('commission')
@click.option('--rate', default=None, help='New commission rate in percent, e.g. 2.5')
@with_appcontext
def commission(rate):
    """Show or change the commission rate."""
    if rate is not None:
        try:
            settings_service.set_commission_rate_bps(parse_percent_to_bps(rate, "rate"))
        except ValidationError as e:
            click.echo(f"FAIL {e}")
            return
    click.echo(f"Commission rate: {settings_service.get_commission_rate_bps() / 100}%")


@click.group('orders')
def orders_group():
    """Order fulfilment commands."""


@orders_group.command('queue')
@click.argument('status')
@click.option('--limit', type=int, default=50, help='Maximum orders to list')
@with_appcontext
def orders_queue(status, limit):
    """List orders in STATUS, newest first."""
    try:
        orders = lifecycle_service.get_orders_by_status(status, limit=limit)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    if not orders:
        click.echo(f"No {status.lower()} orders.")
        return

    for order in orders:
        tracking = order.tracking_number or "-"
        click.echo(
            f"{order.order_number:<12} {order.id:<6} {_rupees(order.total_cents):>12} "
            f"{order.payment_status:<10} {tracking}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sellers_group)
    app.cli.add_command(payouts_group)
    app.cli.add_command(orders_group)
