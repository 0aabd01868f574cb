from __future__ import annotations

import logging
from datetime import date

import pytest

from stockdb.apps.batches import models as batch_models
from stockdb.apps.batches import schemas as batch_schemas
from stockdb.apps.batches import services as batch_services
from stockdb.apps.inventory import schemas as inventory_schemas
from stockdb.apps.inventory import services as inventory_services
from stockdb.errors import NotFoundError, ValidationError


def _create_batch(db, actor, product, warehouse, number, quantity, received, expiry=None, zone=None):
    return batch_services.create_batch(
        db,
        actor=actor,
        payload=batch_schemas.BatchCreateRequest(
            product_id=product.id,
            warehouse_id=warehouse.id,
            zone_id=zone.id if zone else None,
            quantity=quantity,
            batch_number=number,
            received_date=received,
            expiry_date=expiry,
        ),
    )


def _consume(db, actor, product, warehouse, quantity, zone=None):
    return batch_services.consume(
        db,
        actor=actor,
        product_id=product.id,
        warehouse_id=warehouse.id,
        zone_id=zone.id if zone else None,
        quantity=quantity,
    )


def test_create_batch_goes_through_the_ledger(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()

    batch = _create_batch(db_session, staff, product, warehouse, "B-1", 8, date(2024, 1, 1))

    assert batch.quantity_remaining == 8
    levels = inventory_services.get_stock_levels(db_session, product_id=product.id)
    assert levels.total_quantity == 8
    assert levels.locations[0].quantity == 8


def test_consume_is_fifo_and_depletes(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    second = _create_batch(db_session, staff, product, warehouse, "B2", 10, date(2024, 1, 2))
    first = _create_batch(db_session, staff, product, warehouse, "B1", 5, date(2024, 1, 1))

    applied = _consume(db_session, staff, product, warehouse, 7)

    assert [(batch.id, taken) for batch, taken in applied] == [(first.id, 5), (second.id, 2)]
    assert first.quantity_remaining == 0
    assert first.quantity_sold == 5
    assert first.status == batch_models.BatchStatusEnum.DEPLETED
    assert second.quantity_remaining == 8
    assert second.quantity_sold == 2
    assert second.status == batch_models.BatchStatusEnum.ACTIVE


def test_same_day_batches_fall_back_to_creation_order(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    older = _create_batch(db_session, staff, product, warehouse, "ZZ", 3, date(2024, 3, 1))
    _create_batch(db_session, staff, product, warehouse, "AA", 3, date(2024, 3, 1))

    applied = _consume(db_session, staff, product, warehouse, 2)

    assert [batch.id for batch, _ in applied] == [older.id]


def test_consume_only_touches_its_scope(db_session, staff, make_product, make_warehouse, make_zone):
    product = make_product()
    warehouse = make_warehouse()
    zone = make_zone(warehouse)
    zoned = _create_batch(db_session, staff, product, warehouse, "Z", 4, date(2024, 1, 1), zone=zone)
    loose = _create_batch(db_session, staff, product, warehouse, "W", 4, date(2024, 1, 2))

    applied = _consume(db_session, staff, product, warehouse, 3)

    assert [batch.id for batch, _ in applied] == [loose.id]
    assert zoned.quantity_remaining == 4


def test_shortfall_is_left_unallocated(db_session, staff, make_product, make_warehouse, caplog):
    product = make_product()
    warehouse = make_warehouse()
    inventory_services.receive_stock(
        db_session,
        actor=staff,
        payload=inventory_schemas.StockReceiveRequest(product_id=product.id, quantity=10, warehouse_id=warehouse.id),
    )
    batch = _create_batch(db_session, staff, product, warehouse, "B", 3, date(2024, 1, 1))

    with caplog.at_level(logging.WARNING, logger="stockdb.apps.batches.services"):
        result = inventory_services.sell_stock(
            db_session,
            actor=staff,
            payload=inventory_schemas.StockSellRequest(product_id=product.id, quantity=5, warehouse_id=warehouse.id),
        )

    assert [(a.batch_id, a.quantity_taken) for a in result.allocations] == [(batch.id, 3)]
    assert batch.status == batch_models.BatchStatusEnum.DEPLETED
    assert result.location.quantity == 8
    assert "short of requested quantity" in caplog.text


def test_depleted_batches_are_never_reused(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    _create_batch(db_session, staff, product, warehouse, "B", 2, date(2024, 1, 1))
    _consume(db_session, staff, product, warehouse, 2)

    assert _consume(db_session, staff, product, warehouse, 1) == []


def test_consume_rejects_non_positive_quantity(db_session, staff, make_product, make_warehouse):
    with pytest.raises(ValidationError):
        _consume(db_session, staff, make_product(), make_warehouse(), 0)


def test_get_fifo_batch(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    _create_batch(db_session, staff, product, warehouse, "NEW", 1, date(2024, 5, 1))
    old = _create_batch(db_session, staff, product, warehouse, "OLD", 1, date(2024, 4, 1))

    assert batch_services.get_fifo_batch(db_session, product_id=product.id).id == old.id
    _consume(db_session, staff, product, warehouse, 1)
    assert batch_services.get_fifo_batch(db_session, product_id=product.id).batch_number == "NEW"


def test_list_expiring_batches_window(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    today = date(2024, 6, 1)
    _create_batch(db_session, staff, product, warehouse, "SOON", 1, date(2024, 5, 1), expiry=date(2024, 6, 10))
    _create_batch(db_session, staff, product, warehouse, "LATER", 1, date(2024, 5, 1), expiry=date(2024, 9, 1))
    _create_batch(db_session, staff, product, warehouse, "NONE", 1, date(2024, 5, 1))

    expiring = batch_services.list_expiring_batches(db_session, days_ahead=30, today=today)

    assert [b.batch_number for b in expiring] == ["SOON"]


def test_get_batches_by_number(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    _create_batch(db_session, staff, product, warehouse, "LOT-9", 1, date(2024, 1, 1))

    assert len(batch_services.get_batches_by_number(db_session, batch_number="LOT-9")) == 1
    with pytest.raises(NotFoundError):
        batch_services.get_batches_by_number(db_session, batch_number="missing")
