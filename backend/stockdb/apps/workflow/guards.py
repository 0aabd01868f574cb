from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy.orm import Session

GuardResult = List[Dict[str, str]]


def _get_value(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def guard_audit_submission(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    """Every worksheet item counted and no discrepancy left pending."""
    from stockdb.apps.stock_audit import models as audit_models

    audit_id = _get_value(after_obj, "audit_id") or _get_value(after_obj, "id")
    if not audit_id:
        return [{"field": "audit_id", "reason": "audit identifier required"}]

    missing = []
    uncounted = (
        db.query(audit_models.WorksheetItem)
        .filter(
            audit_models.WorksheetItem.audit_id == audit_id,
            audit_models.WorksheetItem.counted_quantity.is_(None),
        )
        .count()
    )
    if uncounted:
        total = (
            db.query(audit_models.WorksheetItem)
            .filter(audit_models.WorksheetItem.audit_id == audit_id)
            .count()
        )
        missing.append(
            {
                "field": "worksheet",
                "reason": f"only {total - uncounted} of {total} items counted",
            }
        )

    pending = (
        db.query(audit_models.Discrepancy)
        .filter(
            audit_models.Discrepancy.audit_id == audit_id,
            audit_models.Discrepancy.status == audit_models.DiscrepancyStatusEnum.PENDING,
        )
        .count()
    )
    if pending:
        missing.append({"field": "discrepancies", "reason": f"{pending} unresolved discrepancies"})
    return missing


def guard_audit_approval(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    missing = []
    if not _get_value(after_obj, "approved_by_user_id"):
        missing.append({"field": "approved_by_user_id", "reason": "approver required"})
    if not _get_value(after_obj, "approved_at"):
        missing.append({"field": "approved_at", "reason": "approval timestamp required"})
    return missing


def guard_discrepancy_resolution(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    from stockdb.apps.stock_audit import models as audit_models

    resolution = _get_value(after_obj, "resolution")
    if not resolution:
        return [{"field": "resolution", "reason": "resolution required"}]
    if resolution == audit_models.DiscrepancyResolutionEnum.ADJUST.value:
        if not (_get_value(after_obj, "adjustment_reason") or "").strip():
            return [{"field": "adjustment_reason", "reason": "reason required for adjustment"}]
    return []


def guard_custody_dispatch(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    to_custodian = _get_value(after_obj, "to_custodian_id")
    from_custodian = _get_value(after_obj, "from_custodian_id")

    missing = []
    if not to_custodian:
        missing.append({"field": "to_custodian_id", "reason": "destination custodian required"})
    elif to_custodian == from_custodian:
        missing.append({"field": "to_custodian_id", "reason": "item is already with this custodian"})
    if not _get_value(after_obj, "authorized_by_user_id"):
        missing.append({"field": "authorized_by_user_id", "reason": "authoriser required"})
    return missing


def guard_custody_receipt(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    missing = []
    if not _get_value(after_obj, "transfer_id"):
        missing.append({"field": "transfer_id", "reason": "custody transfer required"})
    if not _get_value(after_obj, "acknowledged_at"):
        missing.append({"field": "acknowledged_at", "reason": "acknowledgment timestamp required"})
    return missing


def guard_approval_decision(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    if not _get_value(after_obj, "decided_by_user_id"):
        return [{"field": "decided_by_user_id", "reason": "administrator decision required"}]
    return []
