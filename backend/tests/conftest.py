"""
Pytest fixtures for bookstore order engine tests.

Provides test database setup, actors, sellers, an order factory and the
test client.
"""

import pytest
from bookstore import create_app
from bookstore.extensions import db
from bookstore.actors import Actor
from bookstore.models import Customer, Seller
from bookstore.services import checkout_service, lifecycle_service
from bookstore.services.checkout_service import CartLine


# Outside the local (West Bengal) range, so shipping is the standard ₹100
STANDARD_PINCODE = "560001"
LOCAL_PINCODE = "700019"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'COMMISSION_RATE_BPS': 250,
        'SHIPPING_ALLOCATION_POLICY': 'proportional',
        'PLATFORM_PAYEE_CODE': 'admin',
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def admin():
    return Actor(id=1, role="admin")


@pytest.fixture(scope='function')
def customer(db_session):
    """Customer 100, mirrored locally."""
    db_session.add(Customer(id=100, name="Riya Sen", email="riya@example.com"))
    db_session.commit()
    return Actor(id=100, role="customer")


@pytest.fixture(scope='function')
def other_customer(db_session):
    db_session.add(Customer(id=200, name="Arjun Das", email="arjun@example.com"))
    db_session.commit()
    return Actor(id=200, role="customer")


@pytest.fixture(scope='function')
def seller_x(db_session):
    seller = Seller(code="S-X", name="College Street Books", email="x@example.com")
    db_session.add(seller)
    db_session.commit()
    return seller


@pytest.fixture(scope='function')
def seller_y(db_session):
    seller = Seller(code="S-Y", name="Boi Para", email="y@example.com")
    db_session.add(seller)
    db_session.commit()
    return seller


@pytest.fixture(scope='function')
def make_order(db_session, customer):
    """
    Factory: place an order for `customer`.

    lines: list of (seller_id, unit_price_cents, quantity)
    """
    def _make(lines, *, pincode=STANDARD_PINCODE, actor=None, coupon_discount_cents=0, payment_status="paid"):
        cart = [
            CartLine(
                book_id=idx + 1,
                seller_id=seller_id,
                unit_price_cents=price,
                quantity=qty,
                title=f"Book {idx + 1}",
            )
            for idx, (seller_id, price, qty) in enumerate(lines)
        ]
        return checkout_service.place_order(
            actor or customer,
            cart,
            pincode=pincode,
            coupon_discount_cents=coupon_discount_cents,
            payment_status=payment_status,
        )

    return _make


@pytest.fixture(scope='function')
def advance(admin):
    """Helper: walk an order forward through the given statuses as admin."""
    def _advance(order_id, *statuses, tracking_number="DTDC-0001"):
        result = None
        for status in statuses:
            result = lifecycle_service.transition(
                order_id,
                status,
                admin,
                tracking_number=tracking_number if status in ("shipped", "delivered") else None,
            )
        return result

    return _advance


def actor_headers(actor: Actor) -> dict:
    """Helper to create the upstream identity headers for an actor."""
    return {'X-Actor-Id': str(actor.id), 'X-Actor-Role': actor.role}
