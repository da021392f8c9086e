"""
Pytest fixtures for store backend tests.

Provides test database setup, catalogue factories, and test client.
"""
from decimal import Decimal

import pytest

from stockapp import create_app
from stockapp.extensions import db
from stockapp.models import Category, Product
from stockapp.services.category_service import ensure_fallback_category


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MAINTENANCE_ENABLED': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions["category_cache"].invalidate()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def fallback_category(db_session):
    """The always-present fallback category."""
    return ensure_fallback_category()


@pytest.fixture(scope='function')
def make_category(db_session):
    def _make(name):
        category = Category(name=name)
        db_session.add(category)
        db_session.commit()
        return category
    return _make


@pytest.fixture(scope='function')
def make_product(db_session, fallback_category):
    """Factory: make_product("8690000000001", stock=5, price="10.00")."""
    def _make(barcode, *, name=None, stock=0, price="10.00", category=None):
        product = Product(
            barcode=barcode,
            name=name or f"Product {barcode}",
            stock=stock,
            price=Decimal(price),
            category_id=(category or fallback_category).id,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make
