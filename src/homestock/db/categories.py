"""Category persistence helpers."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select

from homestock.errors import NotFound, ValidationError
from homestock.models.household import Category

from .households import authorize_household, household_id_for_user, require_caller, require_household_id
from .models import CategoryORM
from .repository import session_scope

_UNSET = object()

DEFAULT_CATEGORIES = [
    {"name": "Pantry", "icon": "🍞", "color": "#f59e0b"},
    {"name": "Fridge", "icon": "🧊", "color": "#3b82f6"},
    {"name": "Freezer", "icon": "❄️", "color": "#60a5fa"},
    {"name": "Bathroom", "icon": "🚿", "color": "#8b5cf6"},
    {"name": "Cleaning Supplies", "icon": "🧹", "color": "#10b981"},
    {"name": "Other", "icon": "📦", "color": "#6b7280"},
]


def _to_model(row: CategoryORM) -> Category:
    return Category.model_validate(
        {
            "id": row.id,
            "household_id": row.household_id,
            "name": row.name,
            "icon": row.icon,
            "color": row.color,
        }
    )


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Category name is required")
    return cleaned


def list_categories(caller: Optional[str]) -> List[Category]:
    with session_scope() as session:
        household_id = household_id_for_user(session, require_caller(caller))
        if household_id is None:
            return []
        rows = (
            session.execute(
                select(CategoryORM)
                .where(CategoryORM.household_id == household_id)
                .order_by(CategoryORM.id.asc())
            )
            .scalars()
            .all()
        )
        return [_to_model(row) for row in rows]


def create_category(
    caller: Optional[str],
    *,
    name: str,
    icon: Optional[str] = None,
    color: Optional[str] = None,
) -> Category:
    cleaned = _clean_name(name)
    with session_scope() as session:
        _, household_id = require_household_id(session, caller)
        row = CategoryORM(household_id=household_id, name=cleaned, icon=icon, color=color)
        session.add(row)
        session.flush()
        return _to_model(row)


def update_category(
    category_id: int,
    caller: Optional[str],
    *,
    name: str | object = _UNSET,
    icon: Optional[str] | object = _UNSET,
    color: Optional[str] | object = _UNSET,
) -> Category:
    with session_scope() as session:
        row = session.get(CategoryORM, category_id)
        if row is None:
            raise NotFound(f"Category {category_id} not found")
        authorize_household(session, caller, row.household_id)

        if name is not _UNSET:
            row.name = _clean_name(str(name))
        if icon is not _UNSET:
            row.icon = icon  # type: ignore[assignment]
        if color is not _UNSET:
            row.color = color  # type: ignore[assignment]

        session.flush()
        return _to_model(row)


def delete_category(category_id: int, caller: Optional[str]) -> None:
    """Delete a category; items keep their now-dangling ``category_id``."""

    with session_scope() as session:
        row = session.get(CategoryORM, category_id)
        if row is None:
            raise NotFound(f"Category {category_id} not found")
        authorize_household(session, caller, row.household_id)
        session.delete(row)


def seed_default_categories(caller: Optional[str]) -> List[Category]:
    """Insert the default categories when the household has none yet."""

    with session_scope() as session:
        _, household_id = require_household_id(session, caller)
        exists = session.execute(
            select(CategoryORM.id).where(CategoryORM.household_id == household_id).limit(1)
        ).first()
        if not exists:
            for record in DEFAULT_CATEGORIES:
                session.add(CategoryORM(household_id=household_id, **record))
            session.flush()

        rows = (
            session.execute(
                select(CategoryORM)
                .where(CategoryORM.household_id == household_id)
                .order_by(CategoryORM.id.asc())
            )
            .scalars()
            .all()
        )
        return [_to_model(row) for row in rows]


__all__ = [
    "DEFAULT_CATEGORIES",
    "list_categories",
    "create_category",
    "update_category",
    "delete_category",
    "seed_default_categories",
]
