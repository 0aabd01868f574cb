from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class ThresholdsRead(BaseModel):
    high_value_threshold: Decimal
    high_value_approval_threshold: Decimal


class ThresholdsUpdate(BaseModel):
    high_value_threshold: Optional[Decimal] = Field(default=None, ge=0)
    high_value_approval_threshold: Optional[Decimal] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _require_one(self) -> "ThresholdsUpdate":
        if self.high_value_threshold is None and self.high_value_approval_threshold is None:
            raise ValueError("Provide at least one threshold to update.")
        return self
