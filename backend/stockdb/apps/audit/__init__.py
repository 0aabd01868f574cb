"""
Audit log module.

Append-only record of who changed what across the ledger, stock audits
and custody workflows.
"""

from . import models  # noqa: F401
