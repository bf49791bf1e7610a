"""
Pytest fixtures for stockchain backend tests.

Provides test database setup, actors for each chain, stock seeding helpers,
and test client.
"""

from datetime import datetime, timedelta

import pytest
from stockchain import create_app
from stockchain.chains import (
    ROLE_DIRECT_REP,
    ROLE_DISTRIBUTOR,
    ROLE_DISTRIBUTOR_REP,
    ROLE_DS_MANAGER,
    ROLE_HEAD_OF_OPERATIONS,
)
from stockchain.extensions import db
from stockchain.identity import Actor
from stockchain.services import stock_ledger_service
from stockchain.services.pricing import EntryPricing


BASE_TIME = datetime(2026, 1, 1, 9, 0, 0)


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
        db.session.expunge_all()

        app.config['DISPATCH_STOCK_POLICY'] = 'clamp'

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def head_office():
    return Actor(id="ho-1", name="Hana Office", role=ROLE_HEAD_OF_OPERATIONS)


@pytest.fixture
def distributor():
    return Actor(id="dist-1", name="North Distribution", role=ROLE_DISTRIBUTOR)


@pytest.fixture
def other_distributor():
    return Actor(id="dist-2", name="South Distribution", role=ROLE_DISTRIBUTOR)


@pytest.fixture
def dist_rep():
    return Actor(
        id="rep-1",
        name="Ravi Rep",
        role=ROLE_DISTRIBUTOR_REP,
        distributor_id="dist-1",
        distributor_name="North Distribution",
    )


@pytest.fixture
def showroom_manager():
    return Actor(id="ds-1", name="Dana Showroom", role=ROLE_DS_MANAGER)


@pytest.fixture
def direct_rep():
    return Actor(id="dr-1", name="Dev Direct", role=ROLE_DIRECT_REP)


@pytest.fixture
def seed_stock(db_session):
    """
    Add a batch straight to a ledger.

    seed_stock(chain, owner, product_id, quantity, unit_price=None, minutes=0)
    minutes offsets received_at from BASE_TIME so FIFO order is explicit.
    """
    def _seed(chain, owner, product_id, quantity, unit_price=None, minutes=0, product_name=None):
        pricing = EntryPricing(unit_price=unit_price, final_price=unit_price) if unit_price is not None else None
        return stock_ledger_service.add_entry(
            chain=chain,
            owner=owner,
            product_id=product_id,
            product_name=product_name or product_id.replace("_", " ").title(),
            quantity=quantity,
            request_id=None,
            source="request-claim",
            pricing=pricing,
            received_at=BASE_TIME + timedelta(minutes=minutes),
        )
    return _seed


def actor_headers(actor: Actor) -> dict:
    headers = {
        "X-Actor-Id": actor.id,
        "X-Actor-Name": actor.name,
        "X-Actor-Role": actor.role,
    }
    if actor.distributor_id:
        headers["X-Distributor-Id"] = actor.distributor_id
    if actor.distributor_name:
        headers["X-Distributor-Name"] = actor.distributor_name
    return headers


@pytest.fixture
def headers_for():
    """Identity headers for an actor, as the identity provider would send them."""
    return actor_headers
