"""
Location master: warehouses and the zones inside them.
"""

from . import models  # noqa: F401
