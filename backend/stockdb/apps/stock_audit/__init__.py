"""
Physical stock audits: worksheet snapshots, counts, discrepancies and
their reconciliation back into the ledger.
"""

from . import models  # noqa: F401
