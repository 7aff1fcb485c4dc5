"""Pytest configuration and fixtures."""

import os

# Point the application engine at an in-memory database before settings load
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("REDIS_URL", None)

import pytest
from typing import Callable, Generator

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockcount.core.draft_store import MemoryDraftStore
from stockcount.db.base import Base
from stockcount.db.session import create_db_engine, get_db
from stockcount.main import app
# Import all models to ensure they're registered with Base.metadata
from stockcount.models import *
from stockcount.models.location import Location
from stockcount.models.product import Product
from stockcount.models.stock import StockOnHand
from stockcount.services.reconciliation_service import ReconciliationConfig, ReconciliationService
from stockcount.services.scheduling import ManualScheduler

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_db_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiting during tests to avoid flaky failures
    from stockcount.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def test_location(db_session: Session) -> Location:
    """Create a test location."""
    location = Location(name="Main Store", code="MAIN", active=True)
    db_session.add(location)
    db_session.commit()
    db_session.refresh(location)
    return location


@pytest.fixture
def other_location(db_session: Session) -> Location:
    """Create a second location."""
    location = Location(name="Back Room", code="BACK", active=True)
    db_session.add(location)
    db_session.commit()
    db_session.refresh(location)
    return location


@pytest.fixture
def carton_product(db_session: Session) -> Product:
    """Product packed 12 units per carton."""
    product = Product(
        reference="P-0001",
        name="Sparkling Water 50cl",
        barcode="5410000000017",
        units_per_carton=12,
        min_stock=24,
        active=True,
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def unit_product(db_session: Session) -> Product:
    """Product without carton packaging."""
    product = Product(
        reference="P-0002",
        name="Chocolate Bar",
        barcode="5410000000024",
        units_per_carton=1,
        active=True,
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def set_stock(db_session: Session) -> Callable[[Product, Location, int], StockOnHand]:
    """Set theoretical stock for a product at a location."""
    def _set(product: Product, location: Location, qty: int) -> StockOnHand:
        stock = (
            db_session.query(StockOnHand)
            .filter(StockOnHand.product_id == product.id, StockOnHand.location_id == location.id)
            .first()
        )
        if stock:
            stock.qty = qty
        else:
            stock = StockOnHand(product_id=product.id, location_id=location.id, qty=qty)
            db_session.add(stock)
        db_session.commit()
        db_session.refresh(stock)
        return stock

    return _set


@pytest.fixture
def scheduler() -> ManualScheduler:
    """Deterministic scheduler for debounced saves."""
    return ManualScheduler()


@pytest.fixture
def draft_store() -> MemoryDraftStore:
    """In-memory draft store."""
    return MemoryDraftStore(ttl_seconds=24 * 3600)


@pytest.fixture
def service(db_session: Session) -> ReconciliationService:
    """Reconciliation service with default behaviour switches."""
    return ReconciliationService(
        db_session,
        config=ReconciliationConfig(rebaseline_on_edit=False, reject_stale_baseline=False),
    )
