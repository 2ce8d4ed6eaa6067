"""
Pytest fixtures for stockhub backend tests.

Provides an in-memory database for both binds, a fresh in-memory mirror per
test, store/product factories and the test client.
"""

from datetime import date

import pytest
from stockhub import create_app
from stockhub.actor import Actor
from stockhub.extensions import db
from stockhub.models import MirrorDocument, Product, Store
from stockhub.services.mirror_service import EXTENSION_KEY, InMemoryMirrorStore, MirrorStore


class FailingMirrorStore(MirrorStore):
    """Mirror that is down: every call raises."""

    def __init__(self):
        self.calls = 0

    def _fail(self):
        self.calls += 1
        raise ConnectionError("mirror unavailable")

    def upsert_doc(self, collection, doc_id, payload):
        self._fail()

    def read_doc(self, collection, doc_id):
        self._fail()

    def list_docs(self, collection):
        self._fail()


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_BINDS': {'mirror': 'sqlite:///:memory:'},
        'MIRROR_BACKEND': 'memory',
        'INVENTORY_CACHE_FILES': [],
        'EXPIRY_ALERT_DAYS': 30,
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
        with db.engines['mirror'].begin() as conn:
            conn.execute(MirrorDocument.__table__.delete())

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(autouse=True)
def mirror(app):
    """Fresh in-memory mirror for every test."""
    previous = app.extensions[EXTENSION_KEY]
    store = InMemoryMirrorStore()
    app.extensions[EXTENSION_KEY] = store
    yield store
    app.extensions[EXTENSION_KEY] = previous


@pytest.fixture(scope='function')
def broken_mirror(app):
    """Swap in a mirror that fails every call."""
    previous = app.extensions[EXTENSION_KEY]
    store = FailingMirrorStore()
    app.extensions[EXTENSION_KEY] = store
    yield store
    app.extensions[EXTENSION_KEY] = previous


@pytest.fixture(scope='function')
def actor():
    return Actor(user_id=7, username="tester")


@pytest.fixture(scope='function')
def make_store(db_session):
    def _make(name="Main Store", *, id=None, has_pos=False, active=True):
        store = Store(id=id, name=name, has_pos=has_pos, active=active)
        db_session.add(store)
        db_session.commit()
        return store
    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    def _make(sku, *, name=None, quantity=0, store=None, reorder_level=0,
              expiry_date: date | None = None, active=True):
        product = Product(
            sku=sku,
            name=name or f"Product {sku}",
            quantity=quantity,
            reorder_level=reorder_level,
            store_id=store.id if store is not None else None,
            expiry_date=expiry_date,
            active=active,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def store6(make_store):
    """Store id=6 "Main Store" without POS."""
    return make_store("Main Store", id=6)


def actor_headers(user_id: int = 7, username: str = "tester") -> dict:
    """Headers the upstream gateway sets for an authenticated user."""
    return {'X-User-Id': str(user_id), 'X-Username': username}
