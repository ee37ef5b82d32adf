import pytest
from decimal import Decimal

from atelier import create_app
from atelier.database import create_all, drop_all, get_session
from atelier.middleware import issue_token
from atelier.models import Category, Customer, Location, Product


@pytest.fixture(scope='function')
def app():
    """Create application instance with a fresh in-memory database."""
    app = create_app('config.TestConfig')
    with app.app_context():
        create_all()
        yield app
        get_session().remove()
        drop_all()


@pytest.fixture(scope='function')
def session(app):
    """
    Database session for testing.

    This is the scoped session proxy: after a test client request closes the
    underlying session, the next call opens a new one.
    """
    session = get_session()
    yield session
    session.rollback()


def _auth_headers(app, role):
    token = issue_token(f'{role.lower()}-tester', role, app.config['SECRET_KEY'])
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def client(app):
    """Anonymous test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def user_headers(app):
    return _auth_headers(app, 'USER')


@pytest.fixture(scope='function')
def admin_headers(app):
    return _auth_headers(app, 'ADMIN')


@pytest.fixture(scope='function')
def category(session):
    category = Category(name='Ceramics')
    session.add(category)
    session.commit()
    return category


@pytest.fixture(scope='function')
def location(session):
    location = Location(name='Main Shop', is_active=True)
    session.add(location)
    session.commit()
    return location


@pytest.fixture(scope='function')
def inactive_location(session):
    location = Location(name='Old Market Stall', is_active=False)
    session.add(location)
    session.commit()
    return location


@pytest.fixture(scope='function')
def customer(session):
    customer = Customer(first_name='Ana', last_name='Lopez', email='ana@example.com')
    session.add(customer)
    session.commit()
    return customer


def make_product(session, code, retail, wholesale, stock=10, low_stock_alert=2, category=None):
    product = Product(
        code=code,
        description=f'Product {code}',
        category_id=category.id if category else None,
        final_selling_price_retail=Decimal(retail),
        final_selling_price_wholesale=Decimal(wholesale),
        stock=stock,
        low_stock_alert=low_stock_alert
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def mug(session, category):
    """Retail 25.00 / wholesale 18.00, stock 10."""
    return make_product(session, 'MUG-01', '25.00', '18.00', stock=10, category=category)


@pytest.fixture(scope='function')
def bowl(session, category):
    """Retail 40.00 / wholesale 30.00, stock 5."""
    return make_product(session, 'BOWL-01', '40.00', '30.00', stock=5, category=category)


@pytest.fixture(scope='function')
def vase(session, category):
    """Retail 60.00 / wholesale 45.00, stock 1."""
    return make_product(session, 'VASE-01', '60.00', '45.00', stock=1, low_stock_alert=1, category=category)


@pytest.fixture(scope='function')
def gift_wrap(session, category):
    """Made to order: stock is not tracked."""
    return make_product(session, 'WRAP-01', '3.50', '2.00', stock=None, category=category)
