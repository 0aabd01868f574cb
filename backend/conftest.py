from __future__ import annotations

import os
import sys
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"

import stockdb  # noqa: E402,F401
from stockdb.database import Base  # noqa: E402
from stockdb.apps.accounts.models import AccountRole, Actor  # noqa: E402
from stockdb.apps.inventory import models as inventory_models  # noqa: E402
from stockdb.apps.warehouses import models as warehouse_models  # noqa: E402


def _make_engine():
    # One shared connection so TestClient worker threads see the same database.
    return create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture()
def db_engine():
    engine = _make_engine()
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def admin() -> Actor:
    return Actor(user_id="admin-1", role=AccountRole.ADMIN)


@pytest.fixture()
def staff() -> Actor:
    return Actor(user_id="staff-1", role=AccountRole.STAFF)


@pytest.fixture()
def other_staff() -> Actor:
    return Actor(user_id="staff-2", role=AccountRole.STAFF)


@pytest.fixture()
def viewer() -> Actor:
    return Actor(user_id="viewer-1", role=AccountRole.VIEWER)


@pytest.fixture()
def make_warehouse(db_session):
    def _create(code: str = "WH-1", name: str = "Main warehouse") -> warehouse_models.Warehouse:
        warehouse = warehouse_models.Warehouse(code=code, name=name, is_active=True)
        db_session.add(warehouse)
        db_session.commit()
        return warehouse

    return _create


@pytest.fixture()
def make_zone(db_session):
    def _create(
        warehouse: warehouse_models.Warehouse,
        code: str = "Z1",
        zone_type: warehouse_models.ZoneTypeEnum = warehouse_models.ZoneTypeEnum.STORAGE,
    ) -> warehouse_models.WarehouseZone:
        zone = warehouse_models.WarehouseZone(
            warehouse_id=warehouse.id,
            code=code,
            name=f"Zone {code}",
            zone_type=zone_type,
            is_active=True,
        )
        db_session.add(zone)
        db_session.commit()
        return zone

    return _create


@pytest.fixture()
def make_product(db_session):
    def _create(sku: str = "SKU-1", unit_price: str = "10.00", name: str = "Widget") -> inventory_models.Product:
        product = inventory_models.Product(sku=sku, name=name, unit_price=Decimal(unit_price))
        product.inventory = inventory_models.InventoryRecord(quantity=0)
        db_session.add(product)
        db_session.commit()
        return product

    return _create
