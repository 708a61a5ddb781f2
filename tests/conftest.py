import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from salesorder import create_app
from salesorder import database
from salesorder.database import get_session
from salesorder.models import UserRole
from salesorder.models.records import Actor, PriceList
from salesorder.services.product_service import create_product
from salesorder.services.visit_service import create_visit

# Fixed clock: 2025-05-29 10:00 in Jakarta
NOW = datetime(2025, 5, 29, 3, 0, tzinfo=timezone.utc)


@pytest.fixture(scope='function')
def app():
    """Create application instance with a fresh in-memory database."""
    app = create_app('config.TestConfig')
    with app.app_context():
        yield app
    database.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def now():
    return NOW


# =====================================================
# ACTORS
# =====================================================

@pytest.fixture
def admin():
    return Actor(id='admin-1', role=UserRole.ADMIN, name='Admin Pusat')


@pytest.fixture
def sales():
    return Actor(id='sales-1', role=UserRole.SALES, name='Budi')


@pytest.fixture
def other_sales():
    return Actor(id='sales-2', role=UserRole.SALES, name='Sari')


@pytest.fixture
def manager():
    return Actor(id='manager-1', role=UserRole.MANAGER, name='Manajer')


@pytest.fixture
def basic_user():
    return Actor(id='basic-1', role=UserRole.BASIC)


# =====================================================
# PRICING DATA
# =====================================================

@pytest.fixture
def price_list():
    """Grosir 8.000 / Semi grosir 9.000 / Retail 10.000 / Modern 11.000."""
    return PriceList(
        grosir_price=Decimal('8000.00'),
        semi_grosir_price=Decimal('9000.00'),
        retail_price=Decimal('10000.00'),
        modern_price=Decimal('11000.00'),
    )


@pytest.fixture
def price_lists(price_list):
    """Price lists keyed by product id for the engine tests."""
    return {
        'prod-1': price_list,
        'prod-2': PriceList(
            grosir_price=Decimal('4000.00'),
            semi_grosir_price=Decimal('4500.00'),
            retail_price=Decimal('5000.00'),
            modern_price=Decimal('5500.00'),
        ),
    }


# =====================================================
# PERSISTED DATA
# =====================================================

@pytest.fixture
def product(session, admin, price_list):
    """Persisted product with the standard price list."""
    return create_product(session, admin, 'Biskuit Kelapa', price_list, code='BK-001')


@pytest.fixture
def second_product(session, admin):
    return create_product(session, admin, 'Permen Mint', PriceList(
        grosir_price=Decimal('4000'),
        semi_grosir_price=Decimal('4500'),
        retail_price=Decimal('5000'),
        modern_price=Decimal('5500'),
    ), code='PM-001')


@pytest.fixture
def visit(session, sales):
    """Visit logged by the sales fixture 30 minutes after check-in."""
    return create_visit(
        session, sales, store_id='store-1',
        check_in_time=NOW - timedelta(minutes=30), is_stock_checked=True, now=NOW
    )
