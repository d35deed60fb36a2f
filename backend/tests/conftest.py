"""
Pytest fixtures for stockroll backend tests.

Provides the test app and database, a small store catalog with one
store/operator pairing, and a date resolver pinned to a fixed business day.
"""

from datetime import date
from types import SimpleNamespace

import pytest

from stockroll import create_app
from stockroll.config import Config
from stockroll.extensions import db
from stockroll.models import (
    InventoryItem,
    Store,
    StoreAssignment,
    StoreItemCatalog,
    StoreTankCatalog,
    TankType,
)
from stockroll.services.assignment_service import AssignmentService
from stockroll.services.date_service import BusinessDateResolver
from stockroll.services.status_service import STATUS_ASSIGNED
from stockroll.services.uow import UnitOfWork

# Wednesday
TODAY = date(2026, 3, 4)
ACTOR_ID = 7


class TestConfig(Config):
    __test__ = False

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SKIP_WEEKENDS = False
    LEDGER_RETRY_BACKOFF = 0.0
    LOG_LEVEL = "DEBUG"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


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
def date_resolver():
    """Business calendar frozen on TODAY."""
    return BusinessDateResolver("America/Bogota", today_provider=lambda: TODAY)


@pytest.fixture(scope='function')
def catalog(db_session):
    """
    One store carrying two tank types and one item.

    A third tank type is in the store catalog but inactive, and a second
    item exists but is not carried by the store.
    """
    store = Store(name="Depot North", code="N1")
    tank_10 = TankType(name="10 kg", weight_kg=10, purchase_price_cents=3500, sell_price_cents=4200)
    tank_45 = TankType(name="45 kg", weight_kg=45, purchase_price_cents=15000, sell_price_cents=17900)
    tank_old = TankType(name="5 kg (retired)", weight_kg=5, purchase_price_cents=1000, sell_price_cents=1500, is_active=False)
    regulator = InventoryItem(name="Regulator", purchase_price_cents=800, sell_price_cents=1200)
    hose = InventoryItem(name="Hose", purchase_price_cents=300, sell_price_cents=500)
    db_session.add_all([store, tank_10, tank_45, tank_old, regulator, hose])
    db_session.flush()

    db_session.add_all([
        StoreTankCatalog(store_id=store.id, tank_type_id=tank_10.id),
        StoreTankCatalog(store_id=store.id, tank_type_id=tank_45.id),
        StoreTankCatalog(store_id=store.id, tank_type_id=tank_old.id),
        StoreItemCatalog(store_id=store.id, inventory_item_id=regulator.id),
    ])
    db_session.commit()

    return SimpleNamespace(
        store=store,
        tank_10=tank_10,
        tank_45=tank_45,
        tank_old=tank_old,
        regulator=regulator,
        hose=hose,
    )


@pytest.fixture(scope='function')
def pairing(db_session, catalog):
    """Operator ACTOR_ID working the catalog store."""
    pairing = StoreAssignment(store_id=catalog.store.id, operator_id=ACTOR_ID)
    db_session.add(pairing)
    db_session.commit()
    return pairing


@pytest.fixture(scope='function')
def other_pairing(db_session, catalog):
    """A second operator on the same store."""
    pairing = StoreAssignment(store_id=catalog.store.id, operator_id=ACTOR_ID + 1)
    db_session.add(pairing)
    db_session.commit()
    return pairing


@pytest.fixture(scope='function')
def service(db_session, date_resolver):
    return AssignmentService(db_session, date_resolver=date_resolver, retry_backoff=0.0)


@pytest.fixture(scope='function')
def make_assignment(db_session, service, pairing):
    """
    Build an assignment with explicit starting quantities.

    tanks: {tank_type_id: (full, empty)}, items: {inventory_item_id: quantity}
    """
    def _make(assignment_date=TODAY, *, tanks=None, items=None, assigned=False, pairing_id=None, set_current=True):
        repo = service.repository
        pid = pairing_id or pairing.id
        with UnitOfWork(db_session):
            assignment = repo.create(pid, assignment_date, ACTOR_ID)
            service.status_service.record_creation(assignment, ACTOR_ID)
            for tank_type_id, (full, empty) in (tanks or {}).items():
                repo.create_tank_line(
                    assignment.id, tank_type_id,
                    purchase_price_cents=3500, sell_price_cents=4200,
                    full_tanks=full, empty_tanks=empty,
                )
            for item_id, quantity in (items or {}).items():
                repo.create_item_line(
                    assignment.id, item_id,
                    purchase_price_cents=800, sell_price_cents=1200,
                    quantity=quantity,
                )
            if assigned:
                service.status_service.transition(assignment, STATUS_ASSIGNED, ACTOR_ID)
            if set_current:
                repo.set_current_pointer(pid, assignment.id, ACTOR_ID)
            assignment_id = assignment.id
        return repo.get_detail(assignment_id)

    return _make
