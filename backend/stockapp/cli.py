# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockapp/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the fallback category.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Category inspection/repair:
# - python -m flask categories list
#   List categories with their product counts.
# - python -m flask categories delete 3
#   Delete a category; its products move to the fallback category.
#
# Maintenance:
# - python -m flask maintenance purge-sales --years 3
#   Delete sales (and their lines) older than the retention window.
# - python -m flask maintenance critical-stock [--threshold 10]
#   List products below the critical stock threshold.

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import func, select

from .extensions import db
from .models import Category, Product
from .services import category_service
from .services import maintenance_service
from .services import products_service
from .services.category_service import CategoryError
from .services.concurrency import PersistenceError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the store schema and the fallback category.

    Safe to run repeatedly.
    """
    click.echo("START Initializing store...")

    db.create_all()
    click.echo("PASS Tables created")

    fallback = category_service.ensure_fallback_category()
    current_app.extensions["category_cache"].invalidate()
    click.echo(f"PASS Fallback category: {fallback.name} (ID: {fallback.id})")

    click.echo("DONE Store initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("This will delete ALL data. Continue?", abort=True)

    db.drop_all()
    db.create_all()
    category_service.ensure_fallback_category()
    current_app.extensions["category_cache"].invalidate()
    click.echo("PASS Database reset")


@click.group('categories')
def categories_group():
    """Category inspection and repair."""


@categories_group.command('list')
@with_appcontext
def list_categories_cli():
    """List categories with product counts."""
    rows = db.session.execute(
        select(Category.id, Category.name, func.count(Product.id))
        .outerjoin(Product, Product.category_id == Category.id)
        .group_by(Category.id, Category.name)
        .order_by(Category.name.asc())
    ).all()

    fallback_name = category_service.fallback_category_name().lower()
    for category_id, name, product_count in rows:
        marker = " (fallback)" if name.lower() == fallback_name else ""
        click.echo(f"{category_id:>5}  {name}{marker}  products={product_count}")


@categories_group.command('delete')
@click.argument('category_id', type=int)
@with_appcontext
def delete_category_cli(category_id):
    """Delete a category, moving its products to the fallback category."""
    try:
        moved = category_service.delete_with_reassignment(category_id)
    except (CategoryError, PersistenceError) as e:
        raise click.ClickException(str(e))
    finally:
        current_app.extensions["category_cache"].invalidate()

    click.echo(f"Deleted category {category_id}; moved {moved} product(s) to the fallback category.")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('purge-sales')
@click.option('--years', type=int, default=None, help='Retention in years (default: SALES_RETENTION_YEARS)')
@with_appcontext
def purge_sales_cli(years):
    """
    Purge old sales.

    Default retention: 3 years.
    """
    try:
        deleted = maintenance_service.purge_sales_older_than(years)
    except (ValueError, PersistenceError) as e:
        raise click.ClickException(str(e))
    click.echo(f"Deleted {deleted} sale(s) older than the retention window.")


@maintenance_group.command('critical-stock')
@click.option('--threshold', type=int, default=None)
@with_appcontext
def critical_stock_cli(threshold):
    """List products below the critical stock threshold."""
    items = products_service.list_critical_products(threshold)
    if not items:
        click.echo("No products below the critical threshold.")
        return
    for item in items:
        click.echo(f"{item['barcode']:<20} {item['name']:<40} stock={item['stock']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(categories_group)
    app.cli.add_command(maintenance_group)
