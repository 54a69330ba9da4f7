"""Shopping list persistence helpers and entry lifecycle."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, not_, select
from sqlalchemy.orm import Session

from homestock.errors import NotFound, ValidationError
from homestock.models.shopping import EntryChange, ShoppingListEntry
from homestock.reconcile.engine import ReconciliationEngine, entry_state
from homestock.state import EntryEvent, flag_events, flags_for, transition

from .households import authorize_household, household_id_for_user, require_caller, require_household_id
from .inventory import check_quantity
from .models import InventoryItemORM, ShoppingListEntryORM
from .repository import session_scope

logger = logging.getLogger(__name__)

_UNSET = object()
_SETTING_EVENTS = (EntryEvent.MARK_BOUGHT, EntryEvent.MARK_ADDED)


def _to_model(row: ShoppingListEntryORM) -> ShoppingListEntry:
    return ShoppingListEntry.model_validate(
        {
            "id": row.id,
            "household_id": row.household_id,
            "name": row.name,
            "quantity": row.quantity,
            "unit": row.unit,
            "category_id": row.category_id,
            "linked_inventory_item_id": row.linked_inventory_item_id,
            "is_bought": row.is_bought,
            "is_added_to_inventory": row.is_added_to_inventory,
            "is_processing": row.is_processing,
            "processing_started_at": row.processing_started_at,
            "state": entry_state(row),
            "added_by": row.added_by,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }
    )


def _clean_name(name: object) -> str:
    cleaned = str(name or "").strip()
    if not cleaned:
        raise ValidationError("name is required")
    return cleaned


def _clean_unit(unit: Optional[str]) -> Optional[str]:
    return unit.strip() if unit and unit.strip() else None


def _insert_entry(
    session: Session,
    *,
    household_id: int,
    added_by: str,
    name: str,
    quantity: Optional[float],
    unit: Optional[str],
    category_id: Optional[int],
    linked_inventory_item_id: Optional[int],
) -> ShoppingListEntryORM:
    row = ShoppingListEntryORM(
        household_id=household_id,
        name=_clean_name(name),
        quantity=check_quantity(quantity),
        unit=_clean_unit(unit),
        category_id=category_id,
        linked_inventory_item_id=linked_inventory_item_id,
        is_bought=False,
        is_added_to_inventory=False,
        is_processing=False,
        added_by=added_by,
    )
    session.add(row)
    session.flush()
    session.refresh(row)
    logger.debug(
        "Created shopping list entry %s",
        row.id,
        extra={"entry_id": row.id, "household_id": household_id},
    )
    return row


def _apply_flags(
    reconciler: ReconciliationEngine,
    row: ShoppingListEntryORM,
    *,
    is_bought: Optional[bool] = None,
    is_added_to_inventory: Optional[bool] = None,
) -> bool:
    """Move the entry through the flag events; claim it when it becomes ready.

    Returns ``True`` when the processing guard was taken in this transaction.
    """

    events = flag_events(is_bought=is_bought, is_added_to_inventory=is_added_to_inventory)
    if not events:
        return False

    state = entry_state(row)
    if reconciler.guard_is_stale(row):
        # The guard holder died; let the patch go through instead of a 409.
        state = transition(state, EntryEvent.RELEASE)
        row.is_processing = False
        row.processing_started_at = None
    for event in events:
        state = transition(state, event)
    row.is_bought, row.is_added_to_inventory, _ = flags_for(state)

    if any(event in _SETTING_EVENTS for event in events):
        return reconciler.try_claim(row)
    return False


def _mutate(
    entry_id: int,
    caller: Optional[str],
    reconciler: Optional[ReconciliationEngine],
    **fields: object,
) -> EntryChange:
    reconciler = reconciler or ReconciliationEngine.from_settings()
    claimed_at: Optional[datetime] = None

    with session_scope() as session:
        row = session.get(ShoppingListEntryORM, entry_id)
        if row is None:
            raise NotFound(f"Shopping list item {entry_id} not found")
        actor = authorize_household(session, caller, row.household_id)

        if "name" in fields:
            row.name = _clean_name(fields["name"])
        if "quantity" in fields:
            row.quantity = check_quantity(fields["quantity"])  # type: ignore[arg-type]
        if "unit" in fields:
            row.unit = _clean_unit(fields["unit"])  # type: ignore[arg-type]
        if "category_id" in fields:
            row.category_id = fields["category_id"]  # type: ignore[assignment]

        claimed = _apply_flags(
            reconciler,
            row,
            is_bought=fields.get("is_bought"),  # type: ignore[arg-type]
            is_added_to_inventory=fields.get("is_added_to_inventory"),  # type: ignore[arg-type]
        )
        session.flush()
        if claimed:
            claimed_at = row.processing_started_at
        else:
            session.refresh(row)
            entry = _to_model(row)

    if not claimed:
        return EntryChange(entry=entry)

    result = reconciler.complete(entry_id, actor=actor, claimed_at=claimed_at)
    remaining = None if result.outcome.merged else get_shopping_entry(entry_id, caller)
    return EntryChange(entry=remaining, reconciliation=result)


def list_shopping_entries(caller: Optional[str]) -> List[ShoppingListEntry]:
    """Return the household's open entries; entries awaiting their merge are hidden."""

    with session_scope() as session:
        household_id = household_id_for_user(session, require_caller(caller))
        if household_id is None:
            return []
        rows = (
            session.execute(
                select(ShoppingListEntryORM)
                .where(
                    ShoppingListEntryORM.household_id == household_id,
                    not_(
                        and_(
                            ShoppingListEntryORM.is_bought.is_(True),
                            ShoppingListEntryORM.is_added_to_inventory.is_(True),
                        )
                    ),
                )
                .order_by(
                    ShoppingListEntryORM.is_bought.asc(),
                    ShoppingListEntryORM.id.asc(),
                )
            )
            .scalars()
            .all()
        )
        return [_to_model(row) for row in rows]


def get_shopping_entry(entry_id: int, caller: Optional[str]) -> Optional[ShoppingListEntry]:
    with session_scope() as session:
        row = session.get(ShoppingListEntryORM, entry_id)
        if row is None:
            return None
        authorize_household(session, caller, row.household_id)
        return _to_model(row)


def create_shopping_entry(
    caller: Optional[str],
    *,
    name: str,
    quantity: Optional[float] = None,
    unit: Optional[str] = None,
    category_id: Optional[int] = None,
    linked_inventory_item_id: Optional[int] = None,
) -> ShoppingListEntry:
    with session_scope() as session:
        user_id, household_id = require_household_id(session, caller)
        row = _insert_entry(
            session,
            household_id=household_id,
            added_by=user_id,
            name=name,
            quantity=quantity,
            unit=unit,
            category_id=category_id,
            linked_inventory_item_id=linked_inventory_item_id,
        )
        return _to_model(row)


def update_shopping_entry(
    entry_id: int,
    caller: Optional[str],
    *,
    name: str | object = _UNSET,
    quantity: float | None | object = _UNSET,
    unit: str | None | object = _UNSET,
    category_id: int | None | object = _UNSET,
    is_bought: bool | object = _UNSET,
    is_added_to_inventory: bool | object = _UNSET,
    reconciler: Optional[ReconciliationEngine] = None,
) -> EntryChange:
    """Patch an entry; setting a flag that completes the pair triggers the merge."""

    fields = {
        key: value
        for key, value in (
            ("name", name),
            ("quantity", quantity),
            ("unit", unit),
            ("category_id", category_id),
            ("is_bought", is_bought),
            ("is_added_to_inventory", is_added_to_inventory),
        )
        if value is not _UNSET
    }
    for flag in ("is_bought", "is_added_to_inventory"):
        if flag in fields and fields[flag] is not None:
            fields[flag] = bool(fields[flag])
    return _mutate(entry_id, caller, reconciler, **fields)


def mark_bought(
    entry_id: int,
    caller: Optional[str],
    *,
    reconciler: Optional[ReconciliationEngine] = None,
) -> EntryChange:
    return _mutate(entry_id, caller, reconciler, is_bought=True)


def mark_added_to_inventory(
    entry_id: int,
    caller: Optional[str],
    *,
    reconciler: Optional[ReconciliationEngine] = None,
) -> EntryChange:
    return _mutate(entry_id, caller, reconciler, is_added_to_inventory=True)


def delete_shopping_entry(entry_id: int, caller: Optional[str]) -> None:
    with session_scope() as session:
        row = session.get(ShoppingListEntryORM, entry_id)
        if row is None:
            raise NotFound(f"Shopping list item {entry_id} not found")
        authorize_household(session, caller, row.household_id)
        session.delete(row)


def add_low_stock_item_to_shopping_list(inventory_item_id: int, caller: Optional[str]) -> ShoppingListEntry:
    """Create an entry that restocks ``inventory_item_id`` up to its minimum stock."""

    with session_scope() as session:
        item = session.get(InventoryItemORM, inventory_item_id)
        if item is None:
            raise NotFound(f"Inventory item {inventory_item_id} not found")
        user_id = authorize_household(session, caller, item.household_id)

        if item.min_stock is not None:
            quantity = max(0.0, item.min_stock - item.quantity)
        else:
            quantity = 1.0

        row = _insert_entry(
            session,
            household_id=item.household_id,
            added_by=user_id,
            name=item.name,
            quantity=quantity,
            unit=item.unit,
            category_id=item.category_id,
            linked_inventory_item_id=item.id,
        )
        logger.info(
            "Queued restock of inventory item %s (%s %s)",
            item.id,
            quantity,
            item.unit,
            extra={"entry_id": row.id, "household_id": item.household_id},
        )
        return _to_model(row)


__all__ = [
    "list_shopping_entries",
    "get_shopping_entry",
    "create_shopping_entry",
    "update_shopping_entry",
    "mark_bought",
    "mark_added_to_inventory",
    "delete_shopping_entry",
    "add_low_stock_item_to_shopping_list",
]
