"""
Pytest fixtures for campus store backend tests.

Provides the in-memory application, a per-test clean database, a test
client and small factories for products, students and branches.
"""

import pytest
from sqlalchemy import text
from campus_store import create_app
from campus_store.extensions import db
from campus_store.models import Product, ProductSetItem, ProductYear, Student, TransferBranch


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_ATTEMPTS': 1,
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
def runner(app):
    """Create CLI runner."""
    return app.test_cli_runner()


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
def foreign_keys(db_session):
    """Enforce SQLite foreign keys, as Postgres and MySQL do."""
    db_session.execute(text('PRAGMA foreign_keys=ON'))
    yield
    db_session.rollback()
    db_session.execute(text('PRAGMA foreign_keys=OFF'))


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: simple product with the given stock and price."""
    def _make(name="Notebook", stock=10, price_cents=2500, for_course="", years=()):
        product = Product(name=name, stock=stock, price_cents=price_cents, for_course=for_course)
        for year in years:
            product.year_rows.append(ProductYear(year=year))
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_set(db_session):
    """Factory: set product from [(component, quantity), ...]."""
    def _make(name, components, price_cents=10000):
        product = Product(name=name, stock=0, price_cents=price_cents, is_set=True)
        for position, (component, quantity) in enumerate(components):
            product.set_items.append(ProductSetItem(
                component_product_id=component.id,
                quantity=quantity,
                position=position,
            ))
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def student(db_session):
    """Create a student with an empty item map."""
    student = Student(
        name="Maria Santos",
        student_code="2026-0001",
        course="BSN",
        year=1,
        branch="Main",
        items={},
        paid=False,
    )
    db_session.add(student)
    db_session.commit()
    return student


@pytest.fixture(scope='function')
def branch(db_session):
    """Create an active transfer branch."""
    branch = TransferBranch(name="North Campus", location="Building B", description="", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch
