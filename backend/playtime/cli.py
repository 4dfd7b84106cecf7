# Overview: Flask CLI command groups for bootstrap, catalog, coupons and the cash drawer.

# backend/playtime/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent: creates tables and the default rate table.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask products list
# - python -m flask products create --name "Juice box" --price-cents 500 --stock 24 --min-stock 5
# - python -m flask products restock 3 12
#
# Coupons:
# - python -m flask coupons list
# - python -m flask coupons create --code WELCOME10 --type PERCENTAGE --value 10 [--usage-limit 100]
#
# Cash drawer:
# - python -m flask cash status

import click
from flask.cli import with_appcontext

from .extensions import db
from .models.coupons import VALID_DISCOUNT_TYPES
from .services import cash_drawer_service, coupon_service, products_service, settings_service
from .validation import ValidationError, ConflictError, enforce_rules_coupon, enforce_rules_product


def _money(cents: int | None) -> str:
    if cents is None:
        return "-"
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the venue: tables and default rate table.

    Safe to run repeatedly.
    """
    click.echo("START Initializing playtime...")
    db.create_all()
    settings = settings_service.get_settings()
    click.echo(
        "PASS Rates per child: first hour {}, additional hour {}, full afternoon {}".format(
            _money(settings.first_hour_rate_cents),
            _money(settings.additional_hour_rate_cents),
            _money(settings.full_afternoon_rate_cents),
        )
    )
    click.echo("DONE System ready.")


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


# =============================================================================
# PRODUCTS
# =============================================================================

@click.group('products')
def products_group():
    """Snack and toy catalog."""


@products_group.command('list')
@with_appcontext
def list_products_cli():
    products = products_service.list_products()
    if not products:
        click.echo("No products found.")
        return

    click.echo("\n" + "=" * 72)
    click.echo(f"{'ID':<5} {'Name':<30} {'Price':>10} {'Stock':>8} {'Min':>6} {'Low'}")
    click.echo("=" * 72)
    for p in products:
        low = "YES" if p.min_stock is not None and p.stock <= p.min_stock else ""
        min_stock = "-" if p.min_stock is None else str(p.min_stock)
        click.echo(f"{p.id:<5} {p.name[:30]:<30} {_money(p.price_cents):>10} {p.stock:>8} {min_stock:>6} {low}")
    click.echo("=" * 72 + "\n")


@products_group.command('create')
@click.option('--name', required=True, help='Product name')
@click.option('--price-cents', type=int, required=True, help='Unit price in cents')
@click.option('--stock', type=int, default=0, help='Initial stock')
@click.option('--min-stock', type=int, default=None, help='Low-stock threshold')
@with_appcontext
def create_product_cli(name, price_cents, stock, min_stock):
    patch = {"name": name.strip(), "price_cents": price_cents, "stock": stock, "min_stock": min_stock}
    try:
        enforce_rules_product(patch)
    except ValidationError as e:
        raise click.ClickException(str(e))
    product = products_service.create_product(patch=patch)
    click.echo(f"PASS Created product {product.id}: {product.name} ({_money(product.price_cents)}, stock {product.stock})")


@products_group.command('restock')
@click.argument('product_id', type=int)
@click.argument('quantity', type=int)
@with_appcontext
def restock_product_cli(product_id, quantity):
    try:
        product = products_service.restock(product_id, quantity)
    except (ValidationError, products_service.ProductError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {product.name}: stock now {product.stock}")


# =============================================================================
# COUPONS
# =============================================================================

@click.group('coupons')
def coupons_group():
    """Discount coupons."""


@coupons_group.command('list')
@with_appcontext
def list_coupons_cli():
    coupons = coupon_service.list_coupons()
    if not coupons:
        click.echo("No coupons found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Code':<16} {'Type':<12} {'Value':>8} {'Status':<9} {'Uses':>10} {'Valid until'}")
    click.echo("=" * 80)
    for c in coupons:
        uses = f"{c.uses}/{c.usage_limit}" if c.usage_limit else str(c.uses)
        valid_until = c.valid_until.strftime("%Y-%m-%d %H:%M") if c.valid_until else "-"
        click.echo(f"{c.id:<5} {c.code:<16} {c.discount_type:<12} {c.discount_value:>8} {c.status:<9} {uses:>10} {valid_until}")
    click.echo("=" * 80 + "\n")


@coupons_group.command('create')
@click.option('--code', required=True, help='Coupon code (case-insensitive)')
@click.option('--type', 'discount_type', type=click.Choice(sorted(VALID_DISCOUNT_TYPES), case_sensitive=False), required=True)
@click.option('--value', 'discount_value', type=int, required=True, help='Percent, cents, or minutes depending on type')
@click.option('--usage-limit', type=int, default=0, help='0 = unlimited')
@with_appcontext
def create_coupon_cli(code, discount_type, discount_value, usage_limit):
    patch = {
        "code": code.strip(),
        "discount_type": discount_type,
        "discount_value": discount_value,
        "usage_limit": usage_limit,
    }
    try:
        enforce_rules_coupon(patch)
        coupon = coupon_service.create_coupon(patch=patch)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created coupon {coupon.code} ({coupon.discount_type} {coupon.discount_value})")


# =============================================================================
# CASH DRAWER
# =============================================================================

@click.group('cash')
def cash_group():
    """Cash drawer inspection."""


@cash_group.command('status')
@with_appcontext
def cash_status_cli():
    """Show the open drawer's running totals."""
    drawer = cash_drawer_service.get_open_drawer()
    if drawer is None:
        click.echo("No cash drawer is open.")
        return

    summary = cash_drawer_service.drawer_summary(drawer)
    click.echo(f"Drawer {drawer.id} opened by {drawer.opened_by} at {drawer.opened_at:%Y-%m-%d %H:%M}")
    click.echo(f"  Opening balance: {_money(summary['opening_balance_cents'])}")
    click.echo(f"  Cash sales:      {_money(summary['cash_sales_cents'])}")
    click.echo(f"  Withdrawals:     {_money(summary['withdrawals_total_cents'])}")
    click.echo(f"  Expected cash:   {_money(summary['expected_cash_cents'])}")
    click.echo(f"  Sales recorded:  {summary['sale_count']}")
    for tender, amount in sorted(summary["tender_totals"].items()):
        click.echo(f"    {tender:<8} {_money(amount)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(coupons_group)
    app.cli.add_command(cash_group)
