"""Inventory data access helpers."""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from homestock.errors import NotFound, ValidationError
from homestock.models.inventory import InventoryItem

from .households import authorize_household, household_id_for_user, require_caller, require_household_id
from .models import InventoryItemORM
from .repository import session_scope

_UNSET = object()


def check_quantity(value: Optional[float], field: str = "quantity") -> Optional[float]:
    """Reject negative or non-finite quantities; ``None`` passes through."""

    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a number") from exc
    if not math.isfinite(number) or number < 0:
        raise ValidationError(f"{field} must be a non-negative number")
    return number


def _check_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("name is required")
    return cleaned


def _to_model(row: InventoryItemORM) -> InventoryItem:
    return InventoryItem.model_validate(
        {
            "id": row.id,
            "household_id": row.household_id,
            "category_id": row.category_id,
            "name": row.name,
            "quantity": row.quantity,
            "unit": row.unit,
            "min_stock": row.min_stock,
            "expiration_date": row.expiration_date,
            "notes": row.notes,
            "last_updated_by": row.last_updated_by,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }
    )


def insert_item(
    session: Session,
    *,
    household_id: int,
    name: str,
    quantity: float,
    unit: str,
    last_updated_by: str,
    category_id: Optional[int] = None,
    min_stock: Optional[float] = None,
    expiration_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> InventoryItemORM:
    """Insert an item inside an open session and return the flushed row."""

    row = InventoryItemORM(
        household_id=household_id,
        category_id=category_id,
        name=_check_name(name),
        quantity=check_quantity(quantity),
        unit=unit,
        min_stock=check_quantity(min_stock, "min_stock"),
        expiration_date=expiration_date,
        notes=notes,
        last_updated_by=last_updated_by,
    )
    session.add(row)
    session.flush()
    session.refresh(row)
    return row


def list_inventory(
    caller: Optional[str],
    category_id: Optional[int] = None,
    *,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[InventoryItem]:
    """Return the caller's household inventory, newest first, one page at a time."""

    with session_scope() as session:
        household_id = household_id_for_user(session, require_caller(caller))
        if household_id is None:
            return []
        query = select(InventoryItemORM).where(InventoryItemORM.household_id == household_id)
        if category_id is not None:
            query = query.where(InventoryItemORM.category_id == category_id)
        query = query.order_by(InventoryItemORM.id.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        rows = session.execute(query).scalars().all()
        return [_to_model(row) for row in rows]


def get_inventory_item(item_id: int, caller: Optional[str]) -> Optional[InventoryItem]:
    with session_scope() as session:
        row = session.get(InventoryItemORM, item_id)
        if row is None:
            return None
        if household_id_for_user(session, require_caller(caller)) != row.household_id:
            return None
        return _to_model(row)


def create_inventory_item(
    caller: Optional[str],
    *,
    name: str,
    quantity: float,
    unit: str,
    category_id: Optional[int] = None,
    min_stock: Optional[float] = None,
    expiration_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> InventoryItem:
    with session_scope() as session:
        user_id, household_id = require_household_id(session, caller)
        row = insert_item(
            session,
            household_id=household_id,
            name=name,
            quantity=quantity,
            unit=unit,
            category_id=category_id,
            min_stock=min_stock,
            expiration_date=expiration_date,
            notes=notes,
            last_updated_by=user_id,
        )
        return _to_model(row)


def update_inventory_item(
    item_id: int,
    caller: Optional[str],
    *,
    name: Optional[str] = None,
    quantity: Optional[float] = None,
    unit: Optional[str] = None,
    category_id: Optional[int] | object = _UNSET,
    min_stock: Optional[float] | object = _UNSET,
    expiration_date: Optional[date] | object = _UNSET,
    notes: Optional[str] | object = _UNSET,
) -> InventoryItem:
    with session_scope() as session:
        row = session.get(InventoryItemORM, item_id)
        if row is None:
            raise NotFound(f"Inventory item {item_id} not found")
        user_id = authorize_household(session, caller, row.household_id)

        if name is not None:
            row.name = _check_name(name)
        if quantity is not None:
            row.quantity = check_quantity(quantity)  # type: ignore[assignment]
        if unit is not None:
            row.unit = unit
        if category_id is not _UNSET:
            row.category_id = category_id  # type: ignore[assignment]
        if min_stock is not _UNSET:
            row.min_stock = check_quantity(min_stock, "min_stock")  # type: ignore[arg-type]
        if expiration_date is not _UNSET:
            row.expiration_date = expiration_date  # type: ignore[assignment]
        if notes is not _UNSET:
            row.notes = notes  # type: ignore[assignment]
        row.last_updated_by = user_id

        session.flush()
        session.refresh(row)
        return _to_model(row)


def delete_inventory_item(item_id: int, caller: Optional[str]) -> None:
    with session_scope() as session:
        row = session.get(InventoryItemORM, item_id)
        if row is None:
            raise NotFound(f"Inventory item {item_id} not found")
        authorize_household(session, caller, row.household_id)
        session.delete(row)


def list_low_stock(caller: Optional[str]) -> List[InventoryItem]:
    """Items whose quantity is below their minimum stock threshold."""

    return [item for item in list_inventory(caller) if item.is_low_stock]


def list_expiring_soon(
    caller: Optional[str],
    days: int = 7,
    *,
    today: Optional[date] = None,
) -> List[InventoryItem]:
    """Items expiring within ``days`` from today, soonest first."""

    start = today or date.today()
    end = start + timedelta(days=days)
    with session_scope() as session:
        household_id = household_id_for_user(session, require_caller(caller))
        if household_id is None:
            return []
        rows = (
            session.execute(
                select(InventoryItemORM)
                .where(
                    InventoryItemORM.household_id == household_id,
                    InventoryItemORM.expiration_date.is_not(None),
                    InventoryItemORM.expiration_date >= start,
                    InventoryItemORM.expiration_date <= end,
                )
                .order_by(InventoryItemORM.expiration_date.asc())
            )
            .scalars()
            .all()
        )
        return [_to_model(row) for row in rows]


__all__ = [
    "check_quantity",
    "insert_item",
    "list_inventory",
    "get_inventory_item",
    "create_inventory_item",
    "update_inventory_item",
    "delete_inventory_item",
    "list_low_stock",
    "list_expiring_soon",
]
