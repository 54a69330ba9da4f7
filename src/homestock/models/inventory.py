"""Inventory item models."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class InventoryItem(BaseModel):
    """Item currently stocked by a household."""

    id: int
    household_id: int
    category_id: Optional[int] = Field(default=None)
    name: str
    quantity: float = Field(ge=0)
    unit: str
    min_stock: Optional[float] = Field(default=None)
    expiration_date: Optional[date] = Field(default=None)
    notes: Optional[str] = Field(default=None)
    last_updated_by: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(frozen=True)

    @property
    def is_low_stock(self) -> bool:
        return self.min_stock is not None and self.quantity < self.min_stock


__all__ = ["InventoryItem"]
