"""Shopping list models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from homestock.state import EntryState


class ShoppingListEntry(BaseModel):
    """Single entry on the household shopping list."""

    id: int
    household_id: int
    name: str
    quantity: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = Field(default=None)
    category_id: Optional[int] = Field(default=None)
    linked_inventory_item_id: Optional[int] = Field(default=None)
    is_bought: bool = Field(default=False)
    is_added_to_inventory: bool = Field(default=False)
    is_processing: bool = Field(default=False)
    processing_started_at: Optional[datetime] = Field(default=None)
    state: EntryState
    added_by: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(frozen=True)


class ReconcileOutcome(str, Enum):
    """Result of a single reconciliation attempt."""

    MISSING = "missing"
    NOT_READY = "not_ready"
    ALREADY_PROCESSING = "already_processing"
    INCREMENTED = "incremented"
    CREATED = "created"

    @property
    def merged(self) -> bool:
        return self in (ReconcileOutcome.INCREMENTED, ReconcileOutcome.CREATED)


class ReconcileResult(BaseModel):
    entry_id: int
    outcome: ReconcileOutcome
    inventory_item_id: Optional[int] = Field(default=None)

    model_config = ConfigDict(frozen=True)


class EntryChange(BaseModel):
    """Outcome of a shopping list mutation that may have triggered a merge."""

    entry: Optional[ShoppingListEntry] = Field(default=None)
    reconciliation: Optional[ReconcileResult] = Field(default=None)

    model_config = ConfigDict(frozen=True)


__all__ = ["ShoppingListEntry", "ReconcileOutcome", "ReconcileResult", "EntryChange"]
