"""
Accounts module.

Only the acting-user identity lives here; user management belongs to
the calling application.
"""

from .models import AccountRole, Actor  # noqa: F401
