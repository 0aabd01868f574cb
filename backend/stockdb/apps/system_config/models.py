from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from stockdb.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SystemConfig(Base):
    __tablename__ = "system_config"

    key = Column(String(64), primary_key=True)
    value = Column(String(255), nullable=False)
    description = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
    updated_by_user_id = Column(String(36), nullable=True)

    def __repr__(self) -> str:
        return f"<SystemConfig {self.key}={self.value}>"
