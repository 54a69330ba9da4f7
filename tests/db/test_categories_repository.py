"""Unit tests for category persistence helpers."""

from __future__ import annotations

import pytest

from homestock.db.categories import (
    DEFAULT_CATEGORIES,
    create_category,
    delete_category,
    list_categories,
    seed_default_categories,
    update_category,
)
from homestock.errors import NotAuthorized, NotFound, ValidationError


def test_category_crud(household):
    spices = create_category("alice", name="Spices", icon="🌶️", color="#ff0000")

    renamed = update_category(spices.id, "bob", name="Spice Rack", color=None)
    assert renamed.name == "Spice Rack"
    assert renamed.color is None
    assert renamed.icon == "🌶️"

    assert [category.name for category in list_categories("alice")] == ["Spice Rack"]

    delete_category(spices.id, "alice")
    assert list_categories("alice") == []
    with pytest.raises(NotFound):
        delete_category(spices.id, "alice")


def test_category_validation_and_access(household, other_household):
    with pytest.raises(ValidationError):
        create_category("alice", name=" ")

    pantry = create_category("alice", name="Pantry")
    with pytest.raises(NotAuthorized):
        update_category(pantry.id, "mallory", name="Mine")
    assert list_categories("mallory") == []


def test_seed_defaults_once(household):
    seeded = seed_default_categories("alice")
    assert [category.name for category in seeded] == [record["name"] for record in DEFAULT_CATEGORIES]

    again = seed_default_categories("bob")
    assert [category.id for category in again] == [category.id for category in seeded]
