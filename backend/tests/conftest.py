"""
Pytest fixtures for the petty cash backend tests.

Provides test database setup, a pinned clock, seeded roles/users and a test client.
"""

from datetime import datetime

import pytest
from pettycash import create_app
from pettycash.extensions import db, CLOCK_EXTENSION
from pettycash.models import User, Role, UserRole, Category
from pettycash.services import permission_service
from pettycash.services import session_service
from pettycash.services import transaction_service
from pettycash.time_utils import FixedClock


# Every test runs "at" this instant unless it moves the clock itself
NOW = datetime(2025, 1, 31, 12, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def clock(app):
    """Pinned clock, reset for every test."""
    fixed = FixedClock(NOW)
    app.extensions[CLOCK_EXTENSION] = fixed
    return fixed


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app, clock):
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
def setup_roles(db_session):
    """Setup default roles and permissions."""
    permission_service.create_default_roles()
    permission_service.initialize_permissions()
    permission_service.assign_default_role_permissions()
    db_session.commit()


def make_user(db_session, username: str, role_name: str | None, password_hash: str = "x") -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        name=username.title(),
        password_hash=password_hash,
    )
    db_session.add(user)
    db_session.commit()

    if role_name:
        role = db_session.query(Role).filter_by(name=role_name).first()
        db_session.add(UserRole(user_id=user.id, role_id=role.id))
        db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session, setup_roles):
    return make_user(db_session, "admin", "admin")


@pytest.fixture(scope='function')
def accountant(db_session, setup_roles):
    return make_user(db_session, "accountant", "accountant")


@pytest.fixture(scope='function')
def cashier(db_session, setup_roles):
    return make_user(db_session, "cashier", "cashier")


@pytest.fixture(scope='function')
def requester(db_session, setup_roles):
    return make_user(db_session, "requester", "requester")


@pytest.fixture(scope='function')
def outsider(db_session, setup_roles):
    """Active user without any role."""
    return make_user(db_session, "outsider", None)


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Office Supplies", description="Stationery and small items")
    db_session.add(cat)
    db_session.commit()
    return cat


def record(owner, direction="out", amount="100.00", on="2025-01-15", **kwargs):
    """Create a transaction through the service with sensible defaults."""
    return transaction_service.create_transaction(
        owner=owner,
        direction=direction,
        amount=amount,
        description=kwargs.pop("description", f"{direction} {amount}"),
        transaction_date=on,
        **kwargs,
    )


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user: User) -> dict:
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture(scope='function')
def accountant_headers(accountant):
    return headers_for(accountant)


@pytest.fixture(scope='function')
def cashier_headers(cashier):
    return headers_for(cashier)


@pytest.fixture(scope='function')
def requester_headers(requester):
    return headers_for(requester)
