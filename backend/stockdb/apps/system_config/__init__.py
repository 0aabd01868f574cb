"""
Runtime-tunable settings.

Key/value rows override the environment defaults for the custody
thresholds.
"""

from . import models  # noqa: F401
