"""
Ledger Manager.

Owns products, the aggregate InventoryRecord, per-location stock and the
movement log. Every mutation keeps the aggregate equal to the sum of
location rows for location-tracked products.
"""

from . import models  # noqa: F401
