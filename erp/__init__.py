import click
from flask import Flask, jsonify
from flask_caching import Cache
from flask_sqlalchemy import SQLAlchemy
from config import config

db = SQLAlchemy()
cache = Cache()


def create_app(config_name='default'):
    """Application factory — creates and configures the Flask app."""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # ── Logging ───────────────────────────────────────────────────
    from erp.utils.logging import setup_logging
    setup_logging(app)

    # ── Extensions ────────────────────────────────────────────────
    db.init_app(app)
    cache.init_app(app)

    # ── Blueprints ────────────────────────────────────────────────
    from erp.catalog import catalog as catalog_blueprint
    app.register_blueprint(catalog_blueprint, url_prefix='/catalog')

    from erp.sales import sales as sales_blueprint
    app.register_blueprint(sales_blueprint, url_prefix='/sales')

    # ── Error Handlers ────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(e):
        app.logger.error(f"Unhandled server error: {e}")
        return jsonify({'error': 'Server error'}), 500

    # ── CLI Commands ──────────────────────────────────────────────
    register_commands(app)

    return app


def register_commands(app):
    """Register custom Flask CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables."""
        db.create_all()
        click.echo('✅  Database tables created.')

    @app.cli.command('seed-demo')
    def seed_demo():
        """Populate database with a demo catalog, warehouse and customer."""
        from decimal import Decimal
        from erp.catalog.models import (
            Customer, Packaging, Product, ProductVariation,
            Warehouse, WarehouseStock,
        )

        click.echo("🌱 Seeding demo data...")
        db.create_all()

        if Warehouse.query.count() > 0:
            click.echo('ℹ️   Demo data already present.')
            return

        main = Warehouse(name='Main Warehouse', location='Dhaka')
        customer = Customer(name='Walk-in Customer', phone='0000000000')
        box = Packaging(title='Standard Box', type='simple', price=Decimal('0'), stock=500)
        db.session.add_all([main, customer, box])

        tea = Product(name='Green Tea 100g', type='simple',
                      price=Decimal('120.00'), buying_price=Decimal('80.00'), stock=40)
        shirt = Product(name='Cotton Shirt', type='variation')
        db.session.add_all([tea, shirt])
        db.session.flush()

        db.session.add_all([
            ProductVariation(product_id=shirt.id, sku='SHIRT-M',
                             price=Decimal('650.00'), buying_price=Decimal('400.00'), stock=12),
            ProductVariation(product_id=shirt.id, sku='SHIRT-L',
                             price=Decimal('700.00'), buying_price=Decimal('420.00'), stock=8),
            WarehouseStock(warehouse_id=main.id, product_id=tea.id, quantity=25),
        ])
        db.session.commit()
        click.echo("✅ Demo seed complete.")

    return app
