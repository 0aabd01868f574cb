from __future__ import annotations

import enum
from dataclasses import dataclass


class AccountRole(str, enum.Enum):
    """Roles the engine distinguishes when authorising writes."""

    ADMIN = "ADMIN"      # approves audits, custody requests, thresholds
    STAFF = "STAFF"      # day-to-day stock and custody operations
    VIEWER = "VIEWER"    # read-only


@dataclass(frozen=True)
class Actor:
    """
    Identity attached to every write.

    Supplied by the calling layer after authentication; the engine
    trusts it as given.
    """

    user_id: str
    role: AccountRole

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN

    @property
    def can_write(self) -> bool:
        return self.role in (AccountRole.ADMIN, AccountRole.STAFF)

    def as_dict(self) -> dict:
        return {"user_id": self.user_id, "role": self.role.value}
