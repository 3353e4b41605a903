"""
Pytest fixtures for the trading core backend tests.

Provides test database setup, master data fixtures, and test client.
"""

import pytest
from erp import create_app
from erp.config import TestConfig
from erp.extensions import db
from erp.models import Company, Supplier, Customer, Product, PurchaseExpenseCategory


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def company_a(db_session):
    company = Company(name="Company A - Tiles", code="TILES", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    company = Company(name="Company B - Ceramics", code="CERAM", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Main Supplier", phone="091-000-0001")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def freight_supplier(db_session):
    supplier = Supplier(name="Freight Forwarder", phone="091-000-0002")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Omar Builders", phone="092-555-0101")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def product_x(db_session):
    product = Product(sku="TILE-60x60", name="Floor tile 60x60")
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_y(db_session):
    product = Product(sku="TILE-30x60", name="Wall tile 30x60")
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def freight_category(db_session):
    category = PurchaseExpenseCategory(name="Freight", description="Sea and land freight")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def customs_category(db_session):
    category = PurchaseExpenseCategory(name="Customs")
    db_session.add(category)
    db_session.commit()
    return category
