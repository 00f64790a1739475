"""
Pytest fixtures for cafestock backend tests.

Provides test database setup, a frozen clock, tenant fixtures and test client.
"""

from datetime import datetime, timedelta

import pytest

from cafestock import create_app
from cafestock.extensions import db
from cafestock.services import auth_service, session_service
from cafestock.services.products_service import create_product
from cafestock.time_utils import set_clock


PASSWORD = "Password123"
T0 = datetime(2026, 1, 5, 9, 0, 0)


class FrozenClock:
    """Mutable 'now' handed to time_utils.set_clock()."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'FREE_MODE': False,
        'SLIP_UPLOAD_DIR': str(tmp_path_factory.mktemp('slips')),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def clock():
    """Pin utcnow() for the duration of a test."""
    frozen = FrozenClock(T0)
    set_clock(frozen)
    yield frozen
    set_clock(None)


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def owner_a(db_session):
    """Self-registered admin; owns tenant A."""
    return auth_service.register_tenant_admin("owner_a", PASSWORD, PASSWORD)


@pytest.fixture(scope='function')
def owner_b(db_session):
    """Self-registered admin; owns tenant B."""
    return auth_service.register_tenant_admin("owner_b", PASSWORD, PASSWORD)


@pytest.fixture(scope='function')
def staff_a(db_session, owner_a):
    """Staff sub-user inside tenant A."""
    return auth_service.create_sub_user(owner_a, "staff_a", PASSWORD, "staff")


@pytest.fixture(scope='function')
def milk(db_session, owner_a):
    """Product "Milk" in tenant A."""
    return create_product(
        tenant_id=owner_a.id,
        patch={"sku": "MILK-1L", "name": "Milk", "unit": "L", "min_qty": 5.0},
    )


@pytest.fixture(scope='function')
def beans_b(db_session, owner_b):
    """Product in tenant B."""
    return create_product(
        tenant_id=owner_b.id,
        patch={"sku": "BEANS", "name": "Coffee Beans", "unit": "kg", "min_qty": 1.0},
    )


@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Factory: bearer headers for a user, issued at the current clock."""
    def _make(user) -> dict:
        _session, token = session_service.create_session(user)
        return {'Authorization': f'Bearer {token}'}
    return _make
