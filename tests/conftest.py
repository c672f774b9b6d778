import os

import pytest
from decimal import Decimal

from config import TestingConfig
from pos import create_app
from pos.database import Base, create_all, get_session
from pos.models import AppSettings, AppUser, Product


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """
    Create application instance.

    Uses TEST_DATABASE_URL when set (a scratch PostgreSQL database, for
    the row-locking tests), otherwise a throwaway SQLite file.
    """
    database_url = os.getenv('TEST_DATABASE_URL')
    if not database_url:
        database_url = f"sqlite:///{tmp_path_factory.mktemp('db') / 'pos-test.db'}"

    class Config(TestingConfig):
        SQLALCHEMY_DATABASE_URI = database_url

    app = create_app(Config)
    with app.app_context():
        create_all()
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session; every table is emptied after the test."""
    session = get_session()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.remove()


def make_user(session, username, name, password, role='employee'):
    user = AppUser(username=username, name=name, role=role, is_active=True)
    user.set_password(password)
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def cashier(session):
    """Active employee account (password: secret123)."""
    return make_user(session, 'ana', 'Ana Cruz', 'secret123')


@pytest.fixture(scope='function')
def admin(session):
    """Active admin account (password: admin123)."""
    return make_user(session, 'boss', 'Bea Santos', 'admin123', role='admin')


@pytest.fixture(scope='function')
def store_settings(session):
    settings = AppSettings(
        store_name='Sari-Sari Central',
        store_address='12 Rizal St, Quezon City',
        store_phone='0917 000 0000',
        store_email='hello@sarisari.test',
        receipt_footer='Salamat po!',
        default_low_stock_threshold=5
    )
    session.add(settings)
    session.commit()
    return settings


def make_product(session, name, price, stock, category='General', brand=None, is_active=True):
    product = Product(
        name=name,
        price=Decimal(price),
        stock=stock,
        category=category,
        brand=brand,
        is_active=is_active,
        min_stock_threshold=5
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def products(session):
    """Three products: p1 (100.00, stock 3), p2 (50.00, stock 10), p3 (out of stock)."""
    return {
        'p1': make_product(session, 'Rice 5kg', '100.00', 3, category='Groceries', brand='Dinorado'),
        'p2': make_product(session, 'Cooking Oil 1L', '50.00', 10, category='Groceries', brand='Minola'),
        'p3': make_product(session, 'Batteries AA', '55.00', 0, category='Hardware', brand='Eveready'),
    }


def log_in(client, user):
    # session_transaction tears down the app context, detaching the user
    user_id = user.id
    with client.session_transaction() as sess:
        sess['user_id'] = user_id
    return client


@pytest.fixture(scope='function')
def authenticated_client(client, cashier):
    """Client logged in as the cashier."""
    return log_in(client, cashier)


@pytest.fixture(scope='function')
def admin_client(app, admin):
    """Separate client logged in as the admin."""
    return log_in(app.test_client(), admin)
