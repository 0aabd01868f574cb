# backend/stockdb/errors.py
"""
Typed failures raised by the inventory engine.

Services raise these and never HTTP errors; the API layer in
`stockdb.main` maps each class to a status code. Any of these leaving a
service call means the surrounding unit of work was rolled back.
"""

from __future__ import annotations

from typing import Any, Optional


class InventoryError(Exception):
    """Base class for every engine failure."""

    code = "inventory_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.context:
            payload["context"] = self.context
        return payload


class ValidationError(InventoryError):
    """Malformed or missing input, e.g. a non-positive quantity."""

    code = "validation_error"


class NotFoundError(InventoryError):
    """Unknown product, location, audit, item or approval request."""

    code = "not_found"


class InsufficientStockError(InventoryError):
    """Requested quantity exceeds what is available."""

    code = "insufficient_stock"

    def __init__(
        self,
        message: str,
        *,
        available: int,
        requested: Optional[int] = None,
        **context: Any,
    ) -> None:
        super().__init__(message, available=available, requested=requested, **context)
        self.available = available
        self.requested = requested


class InvalidStateError(InventoryError):
    """Entity is not in the state the operation requires."""

    code = "invalid_state"


class AuthorizationError(InventoryError):
    """Actor lacks the role or custody relationship required."""

    code = "forbidden"


class LocationMismatchError(InventoryError):
    """Zone given without warehouse, or otherwise inconsistent scoping."""

    code = "location_mismatch"
