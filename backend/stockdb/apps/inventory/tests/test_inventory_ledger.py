from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import event
from sqlalchemy.dialects import postgresql

from stockdb.apps.audit import models as audit_models
from stockdb.apps.batches import models as batch_models
from stockdb.apps.batches.schemas import BatchInfo
from stockdb.apps.inventory import models as inventory_models
from stockdb.apps.inventory import schemas as inventory_schemas
from stockdb.apps.inventory import services as inventory_services
from stockdb.errors import (
    AuthorizationError,
    InsufficientStockError,
    LocationMismatchError,
    NotFoundError,
    ValidationError,
)


def _receive(db, actor, product, quantity, warehouse=None, zone=None, batch=None):
    return inventory_services.receive_stock(
        db,
        actor=actor,
        payload=inventory_schemas.StockReceiveRequest(
            product_id=product.id,
            quantity=quantity,
            warehouse_id=warehouse.id if warehouse else None,
            zone_id=zone.id if zone else None,
            batch=batch,
        ),
    )


def _sell(db, actor, product, quantity, warehouse=None, zone=None):
    return inventory_services.sell_stock(
        db,
        actor=actor,
        payload=inventory_schemas.StockSellRequest(
            product_id=product.id,
            quantity=quantity,
            warehouse_id=warehouse.id if warehouse else None,
            zone_id=zone.id if zone else None,
        ),
    )


def _levels(db, product):
    return inventory_services.get_stock_levels(db, product_id=product.id)


def test_receive_aggregate_only_updates_record_and_movement_log(db_session, staff, make_product):
    product = make_product()

    result = _receive(db_session, staff, product, 12)

    assert result.total_quantity == 12
    assert result.location is None
    movement = db_session.get(inventory_models.InventoryMovement, result.movement_id)
    assert movement.movement_type == inventory_models.MovementTypeEnum.RECEIVE
    assert movement.quantity == 12
    assert movement.resulting_quantity == 12
    assert movement.actor_user_id == staff.user_id


def test_receive_into_location_upserts_and_keeps_totals_equal(
    db_session, staff, make_product, make_warehouse, make_zone
):
    product = make_product()
    warehouse = make_warehouse()
    zone = make_zone(warehouse)

    _receive(db_session, staff, product, 10, warehouse, zone)
    result = _receive(db_session, staff, product, 5, warehouse, zone)
    _receive(db_session, staff, product, 3, warehouse)

    assert result.location.quantity == 15
    levels = _levels(db_session, product)
    assert levels.total_quantity == 18
    assert levels.location_quantity == 18
    assert len(levels.locations) == 2


def test_receive_with_batch_opens_batch(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()

    result = _receive(
        db_session,
        staff,
        product,
        20,
        warehouse,
        batch=BatchInfo(batch_number="B-001", received_date=date(2024, 1, 5), expiry_date=date(2024, 6, 1)),
    )

    batch = db_session.get(batch_models.Batch, result.batch_id)
    assert batch.quantity_received == 20
    assert batch.quantity_remaining == 20
    assert batch.quantity_sold == 0
    assert batch.status == batch_models.BatchStatusEnum.ACTIVE


@pytest.mark.parametrize("quantity", [0, -4])
def test_receive_rejects_non_positive_quantity(db_session, staff, make_product, quantity):
    product = make_product()
    with pytest.raises(ValidationError):
        _receive(db_session, staff, product, quantity)
    assert _levels(db_session, product).total_quantity == 0


def test_receive_scoping_failures_leave_no_trace(db_session, staff, make_product, make_warehouse, make_zone):
    product = make_product()
    warehouse = make_warehouse()
    zone = make_zone(warehouse)

    with pytest.raises(NotFoundError):
        inventory_services.receive_stock(
            db_session,
            actor=staff,
            payload=inventory_schemas.StockReceiveRequest(product_id=999, quantity=1),
        )
    with pytest.raises(LocationMismatchError):
        _receive(db_session, staff, product, 5, zone=zone)
    with pytest.raises(LocationMismatchError):
        _receive(db_session, staff, product, 5, batch=BatchInfo(batch_number="B-X"))
    with pytest.raises(ValidationError):
        _receive(
            db_session,
            staff,
            product,
            5,
            warehouse,
            batch=BatchInfo(batch_number="B-X", received_date=date(2024, 2, 1), expiry_date=date(2024, 1, 1)),
        )

    assert _levels(db_session, product).total_quantity == 0
    assert db_session.query(inventory_models.LocationStock).count() == 0
    assert db_session.query(inventory_models.InventoryMovement).count() == 0


def test_duplicate_batch_number_in_scope_is_rejected(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    _receive(db_session, staff, product, 5, warehouse, batch=BatchInfo(batch_number="B-1"))

    with pytest.raises(ValidationError):
        _receive(db_session, staff, product, 5, warehouse, batch=BatchInfo(batch_number="B-1"))
    assert _levels(db_session, product).total_quantity == 5


def test_aggregate_only_change_on_location_tracked_product_rejected(
    db_session, staff, make_product, make_warehouse
):
    product = make_product()
    warehouse = make_warehouse()
    _receive(db_session, staff, product, 5, warehouse)

    with pytest.raises(LocationMismatchError):
        _receive(db_session, staff, product, 1)
    with pytest.raises(LocationMismatchError):
        _sell(db_session, staff, product, 1)
    assert _levels(db_session, product).total_quantity == 5


def test_sell_aggregate_only(db_session, staff, make_product):
    product = make_product()
    _receive(db_session, staff, product, 10)

    result = _sell(db_session, staff, product, 4)

    assert result.total_quantity == 6
    assert result.allocations == []


def test_sell_insufficient_reports_available_and_changes_nothing(
    db_session, staff, make_product, make_warehouse
):
    product = make_product()
    warehouse = make_warehouse()
    _receive(db_session, staff, product, 3, warehouse)

    with pytest.raises(InsufficientStockError) as excinfo:
        _sell(db_session, staff, product, 5, warehouse)

    assert excinfo.value.available == 3
    assert excinfo.value.requested == 5
    levels = _levels(db_session, product)
    assert levels.total_quantity == 3
    assert levels.locations[0].quantity == 3


def test_sell_respects_reservations(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    _receive(db_session, staff, product, 10, warehouse)
    inventory_services.reserve_stock(
        db_session,
        actor=staff,
        payload=inventory_schemas.ReservationRequest(product_id=product.id, warehouse_id=warehouse.id, quantity=7),
    )

    with pytest.raises(InsufficientStockError) as excinfo:
        _sell(db_session, staff, product, 4, warehouse)
    assert excinfo.value.available == 3

    result = _sell(db_session, staff, product, 3, warehouse)
    assert result.location.quantity == 7
    assert result.location.available_quantity == 0


@pytest.fixture()
def locked_tables(db_session):
    """Tables read with SELECT ... FOR UPDATE, as PostgreSQL would receive them."""
    tables = []

    def _capture(orm_execute_state):
        if not orm_execute_state.is_select:
            return
        sql = str(orm_execute_state.statement.compile(dialect=postgresql.dialect()))
        if "FOR UPDATE" in sql:
            tables.extend(
                name for name in ("inventory_records", "location_stock", "batches") if f"FROM {name}" in sql
            )

    event.listen(db_session, "do_orm_execute", _capture)
    try:
        yield tables
    finally:
        event.remove(db_session, "do_orm_execute", _capture)


def test_sell_checks_availability_under_row_locks(db_session, staff, make_product, make_warehouse, locked_tables):
    product = make_product()
    warehouse = make_warehouse()
    _receive(db_session, staff, product, 5, warehouse)
    del locked_tables[:]

    _sell(db_session, staff, product, 4, warehouse)
    assert {"inventory_records", "location_stock"} <= set(locked_tables)

    del locked_tables[:]
    with pytest.raises(InsufficientStockError):
        _sell(db_session, staff, product, 2, warehouse)
    assert {"inventory_records", "location_stock"} <= set(locked_tables)


def test_aggregate_sell_locks_the_inventory_record(db_session, staff, make_product, locked_tables):
    product = make_product()
    _receive(db_session, staff, product, 3)
    del locked_tables[:]

    _sell(db_session, staff, product, 1)

    assert "inventory_records" in locked_tables


def test_location_sell_draws_batches_fifo(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    _receive(db_session, staff, product, 10, warehouse, batch=BatchInfo(batch_number="LATE", received_date=date(2024, 1, 2)))
    _receive(db_session, staff, product, 5, warehouse, batch=BatchInfo(batch_number="EARLY", received_date=date(2024, 1, 1)))

    result = _sell(db_session, staff, product, 7, warehouse)

    assert [(a.batch_number, a.quantity_taken) for a in result.allocations] == [("EARLY", 5), ("LATE", 2)]
    assert result.total_quantity == 8
    assert result.location.quantity == 8


def test_transfer_conserves_quantities(db_session, staff, make_product, make_warehouse, make_zone):
    product = make_product()
    source_wh = make_warehouse(code="WH-A")
    dest_wh = make_warehouse(code="WH-B")
    dest_zone = make_zone(dest_wh)
    _receive(db_session, staff, product, 10, source_wh)

    result = inventory_services.transfer_stock(
        db_session,
        actor=staff,
        payload=inventory_schemas.StockTransferRequest(
            product_id=product.id,
            quantity=4,
            from_location=inventory_schemas.LocationRef(warehouse_id=source_wh.id),
            to_location=inventory_schemas.LocationRef(warehouse_id=dest_wh.id, zone_id=dest_zone.id),
        ),
    )

    assert result.source.quantity == 6
    assert result.destination.quantity == 4
    assert result.total_quantity == 10
    levels = _levels(db_session, product)
    assert levels.total_quantity == levels.location_quantity == 10


def test_transfer_failures(db_session, staff, make_product, make_warehouse):
    product = make_product()
    source_wh = make_warehouse(code="WH-A")
    dest_wh = make_warehouse(code="WH-B")
    _receive(db_session, staff, product, 2, source_wh)

    def transfer(quantity, source, dest):
        return inventory_services.transfer_stock(
            db_session,
            actor=staff,
            payload=inventory_schemas.StockTransferRequest(
                product_id=product.id,
                quantity=quantity,
                from_location=inventory_schemas.LocationRef(warehouse_id=source.id),
                to_location=inventory_schemas.LocationRef(warehouse_id=dest.id),
            ),
        )

    with pytest.raises(InsufficientStockError) as excinfo:
        transfer(3, source_wh, dest_wh)
    assert excinfo.value.available == 2
    with pytest.raises(InsufficientStockError):
        transfer(1, dest_wh, source_wh)
    with pytest.raises(ValidationError):
        transfer(1, source_wh, source_wh)

    levels = _levels(db_session, product)
    assert [(loc.warehouse_id, loc.quantity) for loc in levels.locations] == [(source_wh.id, 2)]


def test_adjust_location_stock_never_goes_negative(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    _receive(db_session, staff, product, 5, warehouse)

    def adjust(delta, reason="count correction"):
        return inventory_services.adjust_location_stock(
            db_session,
            actor=staff,
            payload=inventory_schemas.StockAdjustRequest(
                product_id=product.id,
                warehouse_id=warehouse.id,
                quantity_delta=delta,
                reason=reason,
            ),
        )

    with pytest.raises(InsufficientStockError):
        adjust(-6)
    with pytest.raises(ValidationError):
        adjust(2, reason=" ")

    result = adjust(-2)
    assert result.location.quantity == 3
    assert result.total_quantity == 3
    movement = db_session.get(inventory_models.InventoryMovement, result.movement_id)
    assert movement.movement_type == inventory_models.MovementTypeEnum.ADJUSTMENT
    assert movement.quantity == -2


def test_release_bounded_by_reserved(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    _receive(db_session, staff, product, 5, warehouse)
    request = inventory_schemas.ReservationRequest(product_id=product.id, warehouse_id=warehouse.id, quantity=2)

    inventory_services.reserve_stock(db_session, actor=staff, payload=request)
    with pytest.raises(ValidationError):
        inventory_services.release_reservation(
            db_session,
            actor=staff,
            payload=request.model_copy(update={"quantity": 3}),
        )
    location = inventory_services.release_reservation(db_session, actor=staff, payload=request)
    assert location.reserved_quantity == 0


def test_update_bin_location_requires_existing_stock(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    payload = inventory_schemas.BinLocationUpdate(
        product_id=product.id, warehouse_id=warehouse.id, aisle="A", shelf="3", bin="07"
    )

    with pytest.raises(NotFoundError):
        inventory_services.update_bin_location(db_session, actor=staff, payload=payload)

    _receive(db_session, staff, product, 1, warehouse)
    location = inventory_services.update_bin_location(db_session, actor=staff, payload=payload)
    assert (location.aisle, location.shelf, location.bin) == ("A", "3", "07")


def test_stock_alerts_levels(db_session, staff, make_product):
    low = make_product(sku="LOW")
    critical = make_product(sku="CRIT")
    plenty = make_product(sku="PLENTY")
    _receive(db_session, staff, low, 4)
    _receive(db_session, staff, critical, 1)
    _receive(db_session, staff, plenty, 50)

    alerts = inventory_services.list_stock_alerts(db_session)

    assert [(a.sku, a.level) for a in alerts] == [("CRIT", "critical"), ("LOW", "low")]


def test_viewer_cannot_mutate_stock(db_session, viewer, make_product):
    product = make_product()
    with pytest.raises(AuthorizationError):
        _receive(db_session, viewer, product, 1)


def test_ledger_writes_are_audited(db_session, staff, make_product):
    product = make_product()
    _receive(db_session, staff, product, 3)
    _sell(db_session, staff, product, 1)

    actions = [
        e.action
        for e in db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.entity_type == "product")
        .order_by(audit_models.AuditEvent.id.asc())
    ]
    assert actions == ["receive_stock", "sell_stock"]


def test_list_movements_newest_first(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    _receive(db_session, staff, product, 3, warehouse)
    _sell(db_session, staff, product, 1, warehouse)

    movements = inventory_services.list_movements(db_session, warehouse_id=warehouse.id)

    assert [m.movement_type for m in movements] == [
        inventory_models.MovementTypeEnum.SALE,
        inventory_models.MovementTypeEnum.RECEIVE,
    ]
