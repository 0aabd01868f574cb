from __future__ import annotations

import pytest

from stockdb.apps.audit import models as audit_models
from stockdb.apps.inventory import models as inventory_models
from stockdb.apps.inventory import schemas as inventory_schemas
from stockdb.apps.inventory import services as inventory_services
from stockdb.apps.stock_audit import models, schemas, services
from stockdb.apps.workflow import TransitionError
from stockdb.errors import (
    AuthorizationError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


def _stock(db, actor, product, warehouse, quantity, zone=None):
    inventory_services.receive_stock(
        db,
        actor=actor,
        payload=inventory_schemas.StockReceiveRequest(
            product_id=product.id,
            quantity=quantity,
            warehouse_id=warehouse.id,
            zone_id=zone.id if zone else None,
        ),
    )


def _open_audit(db, actor, warehouse, zone=None):
    return services.create_audit(
        db,
        actor=actor,
        payload=schemas.AuditCreate(
            warehouse_id=warehouse.id,
            zone_id=zone.id if zone else None,
            audit_type=models.AuditTypeEnum.CYCLE,
        ),
    )


def _count(db, actor, audit, item, quantity):
    return services.record_count(
        db,
        actor=actor,
        audit_id=audit.id,
        payload=schemas.CountRecord(worksheet_item_id=item.id, counted_quantity=quantity),
    )


@pytest.fixture()
def stocked(db_session, staff, make_product, make_warehouse):
    product = make_product()
    warehouse = make_warehouse()
    _stock(db_session, staff, product, warehouse, 100)
    return product, warehouse


def test_create_snapshots_every_location_in_scope(
    db_session, staff, make_product, make_warehouse, make_zone
):
    warehouse = make_warehouse()
    zone = make_zone(warehouse)
    first = make_product(sku="A")
    second = make_product(sku="B")
    _stock(db_session, staff, first, warehouse, 7)
    _stock(db_session, staff, second, warehouse, 3, zone)
    inventory_services.sell_stock(
        db_session,
        actor=staff,
        payload=inventory_schemas.StockSellRequest(
            product_id=second.id, quantity=3, warehouse_id=warehouse.id, zone_id=zone.id
        ),
    )

    whole = _open_audit(db_session, staff, warehouse)
    zoned = _open_audit(db_session, staff, warehouse, zone)

    assert whole.status == models.AuditStatusEnum.IN_PROGRESS
    assert sorted((i.product_id, i.system_quantity) for i in whole.items) == [(first.id, 7), (second.id, 0)]
    assert [(i.product_id, i.system_quantity) for i in zoned.items] == [(second.id, 0)]


@pytest.mark.parametrize(
    "counted, expect_discrepancy",
    [(89, True), (90, False), (91, False), (100, False), (110, False), (111, True)],
)
def test_discrepancy_threshold_is_exclusive_ten_percent(
    db_session, staff, stocked, counted, expect_discrepancy
):
    product, warehouse = stocked
    audit = _open_audit(db_session, staff, warehouse)

    result = _count(db_session, staff, audit, audit.items[0], counted)

    assert result.item.variance == counted - 100
    assert result.is_major_discrepancy is expect_discrepancy
    assert (len(services.list_discrepancies(db_session, audit_id=audit.id)) == 1) is expect_discrepancy


def test_zero_system_quantity_with_any_count_is_a_discrepancy():
    assert services.is_major_variance(0, 1)
    assert not services.is_major_variance(0, 0)


def test_recount_refreshes_or_clears_pending_discrepancy(db_session, staff, stocked):
    _, warehouse = stocked
    audit = _open_audit(db_session, staff, warehouse)
    item = audit.items[0]

    first = _count(db_session, staff, audit, item, 80)
    second = _count(db_session, staff, audit, item, 70)
    assert first.discrepancy_id == second.discrepancy_id
    discrepancy = db_session.get(models.Discrepancy, second.discrepancy_id)
    assert discrepancy.variance == -30

    cleared = _count(db_session, staff, audit, item, 95)
    assert cleared.discrepancy_id is None
    assert services.list_discrepancies(db_session, audit_id=audit.id) == []


def test_count_validation(db_session, staff, stocked):
    _, warehouse = stocked
    audit = _open_audit(db_session, staff, warehouse)

    with pytest.raises(ValidationError):
        _count(db_session, staff, audit, audit.items[0], -1)
    with pytest.raises(NotFoundError):
        services.record_count(
            db_session,
            actor=staff,
            audit_id=audit.id,
            payload=schemas.CountRecord(worksheet_item_id=9999, counted_quantity=1),
        )


def test_adjust_resolution_corrects_ledger(db_session, staff, stocked):
    product, warehouse = stocked
    audit = _open_audit(db_session, staff, warehouse)
    result = _count(db_session, staff, audit, audit.items[0], 80)

    with pytest.raises(ValidationError):
        services.resolve_discrepancy(
            db_session,
            actor=staff,
            audit_id=audit.id,
            discrepancy_id=result.discrepancy_id,
            payload=schemas.DiscrepancyResolve(resolution=models.DiscrepancyResolutionEnum.ADJUST),
        )

    discrepancy = services.resolve_discrepancy(
        db_session,
        actor=staff,
        audit_id=audit.id,
        discrepancy_id=result.discrepancy_id,
        payload=schemas.DiscrepancyResolve(
            resolution=models.DiscrepancyResolutionEnum.ADJUST,
            adjustment_reason="Damaged units written off",
        ),
    )

    assert discrepancy.status == models.DiscrepancyStatusEnum.RESOLVED
    assert discrepancy.adjustment_reason == "Damaged units written off"
    levels = inventory_services.get_stock_levels(db_session, product_id=product.id)
    assert levels.total_quantity == 80
    assert levels.locations[0].quantity == 80
    movement = inventory_services.list_movements(db_session, product_id=product.id, limit=1)[0]
    assert movement.movement_type == inventory_models.MovementTypeEnum.ADJUSTMENT
    assert movement.reference == f"AUDIT-{audit.id}"


def test_accept_system_leaves_ledger_alone(db_session, staff, stocked):
    product, warehouse = stocked
    audit = _open_audit(db_session, staff, warehouse)
    result = _count(db_session, staff, audit, audit.items[0], 50)

    discrepancy = services.resolve_discrepancy(
        db_session,
        actor=staff,
        audit_id=audit.id,
        discrepancy_id=result.discrepancy_id,
        payload=schemas.DiscrepancyResolve(resolution=models.DiscrepancyResolutionEnum.ACCEPT_SYSTEM),
    )

    assert discrepancy.resolution == models.DiscrepancyResolutionEnum.ACCEPT_SYSTEM
    assert inventory_services.get_stock_levels(db_session, product_id=product.id).total_quantity == 100

    with pytest.raises(InvalidStateError):
        services.resolve_discrepancy(
            db_session,
            actor=staff,
            audit_id=audit.id,
            discrepancy_id=result.discrepancy_id,
            payload=schemas.DiscrepancyResolve(resolution=models.DiscrepancyResolutionEnum.ACCEPT_SYSTEM),
        )
    with pytest.raises(InvalidStateError):
        _count(db_session, staff, audit, audit.items[0], 60)


def test_failed_adjustment_rolls_back_resolution(db_session, staff, stocked):
    product, warehouse = stocked
    audit = _open_audit(db_session, staff, warehouse)
    result = _count(db_session, staff, audit, audit.items[0], 40)
    # stock leaves the location after the count, so the -60 correction no longer fits
    inventory_services.sell_stock(
        db_session,
        actor=staff,
        payload=inventory_schemas.StockSellRequest(product_id=product.id, quantity=50, warehouse_id=warehouse.id),
    )

    with pytest.raises(InsufficientStockError):
        services.resolve_discrepancy(
            db_session,
            actor=staff,
            audit_id=audit.id,
            discrepancy_id=result.discrepancy_id,
            payload=schemas.DiscrepancyResolve(
                resolution=models.DiscrepancyResolutionEnum.ADJUST,
                adjustment_reason="recount",
            ),
        )

    discrepancy = db_session.get(models.Discrepancy, result.discrepancy_id)
    assert discrepancy.status == models.DiscrepancyStatusEnum.PENDING
    assert (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.entity_type == "audit_discrepancy")
        .count()
        == 0
    )


def test_complete_requires_all_counted_and_nothing_pending(
    db_session, staff, make_product, make_warehouse
):
    warehouse = make_warehouse()
    first = make_product(sku="A")
    second = make_product(sku="B")
    _stock(db_session, staff, first, warehouse, 100)
    _stock(db_session, staff, second, warehouse, 100)
    audit = _open_audit(db_session, staff, warehouse)
    item_a, item_b = audit.items

    result = _count(db_session, staff, audit, item_a, 50)
    with pytest.raises(InvalidStateError) as excinfo:
        services.complete_audit(db_session, actor=staff, audit_id=audit.id)
    assert isinstance(excinfo.value, TransitionError)
    assert {d["field"] for d in excinfo.value.detail} == {"worksheet", "discrepancies"}

    _count(db_session, staff, audit, item_b, 100)
    with pytest.raises(InvalidStateError):
        services.complete_audit(db_session, actor=staff, audit_id=audit.id)

    services.resolve_discrepancy(
        db_session,
        actor=staff,
        audit_id=audit.id,
        discrepancy_id=result.discrepancy_id,
        payload=schemas.DiscrepancyResolve(resolution=models.DiscrepancyResolutionEnum.ACCEPT_SYSTEM),
    )
    completed = services.complete_audit(db_session, actor=staff, audit_id=audit.id)

    assert completed.status == models.AuditStatusEnum.PENDING_APPROVAL
    assert completed.submitted_by_user_id == staff.user_id


def test_counts_rejected_once_submitted(db_session, staff, stocked):
    _, warehouse = stocked
    audit = _open_audit(db_session, staff, warehouse)
    _count(db_session, staff, audit, audit.items[0], 100)
    services.complete_audit(db_session, actor=staff, audit_id=audit.id)

    with pytest.raises(InvalidStateError):
        _count(db_session, staff, audit, audit.items[0], 99)
    with pytest.raises(InvalidStateError):
        services.complete_audit(db_session, actor=staff, audit_id=audit.id)


def test_approve_is_admin_only_and_stamps_locations(db_session, staff, admin, stocked):
    product, warehouse = stocked
    audit = _open_audit(db_session, staff, warehouse)
    _count(db_session, staff, audit, audit.items[0], 100)

    with pytest.raises(InvalidStateError):
        services.approve_audit(db_session, actor=admin, audit_id=audit.id)

    services.complete_audit(db_session, actor=staff, audit_id=audit.id)
    with pytest.raises(AuthorizationError):
        services.approve_audit(db_session, actor=staff, audit_id=audit.id)

    approved = services.approve_audit(
        db_session,
        actor=admin,
        audit_id=audit.id,
        payload=schemas.AuditApprove(approval_notes="Signed off"),
    )

    assert approved.status == models.AuditStatusEnum.COMPLETED
    assert approved.approved_by_user_id == admin.user_id
    location = db_session.get(inventory_models.LocationStock, audit.items[0].location_stock_id)
    assert location.last_audit_date is not None

    with pytest.raises(InvalidStateError):
        services.approve_audit(db_session, actor=admin, audit_id=audit.id)


def test_summary_reports_progress(db_session, staff, make_product, make_warehouse):
    warehouse = make_warehouse()
    for sku in ("A", "B", "C", "D"):
        _stock(db_session, staff, make_product(sku=sku), warehouse, 10)
    audit = _open_audit(db_session, staff, warehouse)
    _count(db_session, staff, audit, audit.items[0], 10)
    _count(db_session, staff, audit, audit.items[1], 5)
    _count(db_session, staff, audit, audit.items[2], 10)

    summary = services.get_audit_summary(db_session, audit_id=audit.id)

    assert summary.total_items == 4
    assert summary.counted_items == 3
    assert summary.variance_items == 1
    assert summary.major_discrepancies == 1
    assert summary.pending_discrepancies == 1
    assert summary.percent_complete == 75.0
    assert [a.id for a in services.list_audits(db_session, status=models.AuditStatusEnum.IN_PROGRESS)] == [audit.id]
