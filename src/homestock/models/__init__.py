"""Pydantic models defining shared data contracts."""

from homestock.models.household import Category, Household, HouseholdInvite, HouseholdMember
from homestock.models.inventory import InventoryItem
from homestock.models.shopping import EntryChange, ReconcileOutcome, ReconcileResult, ShoppingListEntry

__all__ = [
    "Category",
    "EntryChange",
    "Household",
    "HouseholdInvite",
    "HouseholdMember",
    "InventoryItem",
    "ReconcileOutcome",
    "ReconcileResult",
    "ShoppingListEntry",
]
