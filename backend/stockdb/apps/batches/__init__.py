"""
Batch Allocator: lot tracking and FIFO consumption.
"""

from . import models  # noqa: F401
