from __future__ import annotations

from .guards import (
    guard_approval_decision,
    guard_audit_approval,
    guard_audit_submission,
    guard_custody_dispatch,
    guard_custody_receipt,
    guard_discrepancy_resolution,
)

# Edges not listed here do not exist. Terminal states map to {}.
WORKFLOWS = {
    "stock_audit": {
        "transitions": {
            "in_progress": {
                "pending_approval": [guard_audit_submission],
            },
            "pending_approval": {
                "completed": [guard_audit_approval],
            },
            "completed": {},
        }
    },
    "audit_discrepancy": {
        "transitions": {
            "pending": {"resolved": [guard_discrepancy_resolution]},
            "resolved": {},
        }
    },
    "custody_item": {
        "transitions": {
            "in_storage": {"in_transit": [guard_custody_dispatch]},
            "assigned": {"in_transit": [guard_custody_dispatch]},
            "in_transit": {
                "in_storage": [guard_custody_receipt],
                "assigned": [guard_custody_receipt],
            },
        }
    },
    "custody_approval": {
        "transitions": {
            "pending": {
                "approved": [guard_approval_decision],
                "rejected": [guard_approval_decision],
            },
            "approved": {},
            "rejected": {},
        }
    },
}
