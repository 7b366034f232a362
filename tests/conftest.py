"""
Pytest configuration and fixtures

Every test gets a fresh in-memory SQLite database. The environment is set
before the package is imported so the module-level engine never points at
PostgreSQL.
"""
import os

os.environ["DATABASE_URI"] = "sqlite://"
os.environ["DEBUG"] = "false"
os.environ["OUTBOX_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from plantflow.core import Base, get_db
import plantflow.models  # noqa: F401  (registers all tables)
from plantflow.models import Customer
from plantflow.schemas import (
    PurchaseOrderCreate, PurchaseOrderItemCreate, SalesOrderCreate, SalesOrderItemCreate,
)
from plantflow.services import PurchaseOrderService, SalesOrderService
from plantflow.services import notification_service


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory):
    """API client whose requests share the test database"""
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def default_notifier():
    """Tests that swap the notifier get the logging one back afterwards"""
    yield
    notification_service.set_notifier(notification_service.LoggingNotifier())


@pytest.fixture
def customer(db):
    customer = Customer(
        company_code="ACME",
        company_name="Acme Fabrication",
        phone="+91 98000 00000",
        email="stores@acme.example",
        shipping_address="Plot 12, Industrial Area",
        billing_address="Plot 12, Industrial Area",
    )
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture
def make_po(db):
    """Factory: purchase order with one line per (item_code, quantity)"""
    def _make(*lines, warehouse=None):
        lines = lines or (("RM-PLATE-10", 100),)
        return PurchaseOrderService.create_purchase_order(db, PurchaseOrderCreate(
            vendor_name="Steel Traders",
            items=[
                PurchaseOrderItemCreate(item_code=code, quantity=qty, warehouse=warehouse)
                for code, qty in lines
            ],
        ))
    return _make


@pytest.fixture
def make_order(db):
    """Factory: sales order with the given item codes (quantity 2 unless listed in `quantities`)"""
    def _make(*item_codes, customer_id=None, material_available=False, quantities=None):
        quantities = quantities or {}
        item_codes = item_codes or ("FG-PANEL-01",)
        return SalesOrderService.create_sales_order(db, SalesOrderCreate(
            customer_id=customer_id,
            project_name="Control Panel Line",
            material_available=material_available,
            items=[
                SalesOrderItemCreate(item_code=code, quantity=quantities.get(code, 2)) for code in item_codes
            ],
        ))
    return _make
