"""
Chain of custody for high-value items, with admin approval above a
configurable value threshold.
"""

from . import models  # noqa: F401
