# Overview: Flask CLI command groups for bootstrap, stock inspection and reports.

# Commands Legend (run from the backend directory):
# - flask --app retail_pos system init-db
#   Create all tables that do not exist yet.
# - flask --app retail_pos system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask --app retail_pos inventory low-stock [--limit 50]
#   List active products at or below their minimum stock level.
# - flask --app retail_pos reports daily-revenue [--date 2026-01-31]
# - flask --app retail_pos reports sales --start 2026-01-01 --end 2026-01-31 [--cost-basis snapshot]
# - flask --app retail_pos reports profit --start 2026-01-01 --end 2026-01-31

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import inventory_service, reporting_service
from .services.reporting_service import COST_BASES, ReportError
from .validation import ValidationError


@click.group('system')
def system_group():
    """Database bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_command():
    """Create all tables."""
    db.create_all()
    click.echo("Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm dropping every table.')
@with_appcontext
def reset_db_command(yes):
    """Drop and recreate all tables."""
    if not yes:
        raise click.UsageError("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("Database reset.")


@click.group('inventory')
def inventory_group():
    """Stock inspection commands."""


@inventory_group.command('low-stock')
@click.option('--limit', default=50, show_default=True, type=int)
@with_appcontext
def low_stock_command(limit):
    """List products at or below their minimum stock level."""
    products = inventory_service.low_stock_products(limit=limit)
    if not products:
        click.echo("No products below minimum stock.")
        return
    for product in products:
        click.echo(
            f"{product.sku:<20} {product.name:<40} on hand {product.stock_quantity:>6} "
            f"(min {product.min_stock_level})"
        )


@click.group('reports')
def reports_group():
    """Revenue and profit reports."""


@reports_group.command('daily-revenue')
@click.option('--date', 'date_str', default=None, help='YYYY-MM-DD, defaults to today.')
@with_appcontext
def daily_revenue_command(date_str):
    try:
        report = reporting_service.daily_revenue(date_str)
    except ValidationError as exc:
        raise click.BadParameter(str(exc), param_hint='--date')
    click.echo(f"{report['date']}: {report['revenue']}")


@reports_group.command('sales')
@click.option('--start', required=True, help='YYYY-MM-DD')
@click.option('--end', required=True, help='YYYY-MM-DD')
@click.option('--cost-basis', type=click.Choice(COST_BASES), default='current', show_default=True)
@with_appcontext
def sales_command(start, end, cost_basis):
    try:
        rows = reporting_service.sales_report(start, end, cost_basis=cost_basis)
    except (ValidationError, ReportError) as exc:
        raise click.UsageError(str(exc))
    if not rows:
        click.echo("No completed transactions in range.")
        return
    click.echo(f"{'date':<12}{'sales':>12}{'count':>8}{'discount':>12}{'profit':>12}")
    for row in rows:
        click.echo(
            f"{row['date']:<12}{row['total_sales']:>12}{row['total_transactions']:>8}"
            f"{row['total_discount']:>12}{row['total_profit']:>12}"
        )


@reports_group.command('profit')
@click.option('--start', required=True, help='YYYY-MM-DD')
@click.option('--end', required=True, help='YYYY-MM-DD')
@click.option('--cost-basis', type=click.Choice(COST_BASES), default='current', show_default=True)
@with_appcontext
def profit_command(start, end, cost_basis):
    try:
        report = reporting_service.profit_report(start, end, cost_basis=cost_basis)
    except (ValidationError, ReportError) as exc:
        raise click.UsageError(str(exc))
    click.echo(f"revenue {report['total_revenue']}")
    click.echo(f"cost    {report['total_cost']}")
    click.echo(f"profit  {report['total_profit']}")
    click.echo(f"margin  {report['profit_margin']}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(reports_group)
