"""Tests for the shopping list to inventory reconciliation engine."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Optional

import pytest

from homestock.db.inventory import create_inventory_item, delete_inventory_item, list_inventory
from homestock.db.models import ShoppingListEntryORM
from homestock.db.repository import session_scope, utcnow
from homestock.db.shopping_list import (
    create_shopping_entry,
    get_shopping_entry,
    mark_added_to_inventory,
    mark_bought,
    update_shopping_entry,
)
from homestock.errors import InvalidTransition, NotAuthorized, StoreError, Unauthenticated
from homestock.models.shopping import ReconcileOutcome
from homestock.reconcile import ReconciliationEngine
from homestock.state import EntryState


def _force_flags(
    entry_id: int,
    *,
    bought: bool = True,
    added: bool = True,
    processing_started_at: Optional[datetime] = None,
) -> None:
    """Write flags directly, bypassing the engine's trigger."""

    with session_scope() as session:
        row = session.get(ShoppingListEntryORM, entry_id)
        row.is_bought = bought
        row.is_added_to_inventory = added
        row.is_processing = processing_started_at is not None
        row.processing_started_at = processing_started_at


def _entry_row(entry_id: int) -> Optional[ShoppingListEntryORM]:
    with session_scope() as session:
        return session.get(ShoppingListEntryORM, entry_id)


def test_unlinked_entry_creates_item_with_defaults(household):
    entry = create_shopping_entry("alice", name="dish soap")

    first = mark_bought(entry.id, "alice")
    assert first.reconciliation is None
    assert first.entry.state is EntryState.BOUGHT

    change = mark_added_to_inventory(entry.id, "bob")
    assert change.entry is None
    assert change.reconciliation.outcome is ReconcileOutcome.CREATED

    items = list_inventory("alice")
    assert len(items) == 1
    assert items[0].id == change.reconciliation.inventory_item_id
    assert items[0].name == "dish soap"
    assert items[0].quantity == 1.0
    assert items[0].unit == "piece"
    assert items[0].last_updated_by == "bob"
    assert _entry_row(entry.id) is None


def test_linked_entry_increments_existing_item(household):
    milk = create_inventory_item("alice", name="milk", quantity=3, unit="l", min_stock=4)
    entry = create_shopping_entry("alice", name="milk", quantity=2, unit="l", linked_inventory_item_id=milk.id)

    mark_bought(entry.id, "alice")
    change = mark_added_to_inventory(entry.id, "alice")

    assert change.reconciliation.outcome is ReconcileOutcome.INCREMENTED
    assert change.reconciliation.inventory_item_id == milk.id
    items = list_inventory("alice")
    assert len(items) == 1
    assert items[0].quantity == pytest.approx(5.0)
    assert _entry_row(entry.id) is None


@pytest.mark.parametrize("first, second", [(mark_bought, mark_added_to_inventory), (mark_added_to_inventory, mark_bought)])
def test_flag_order_does_not_matter(household, first, second):
    entry = create_shopping_entry("alice", name="rice", quantity=2, unit="kg")

    assert first(entry.id, "alice").reconciliation is None
    change = second(entry.id, "alice")

    assert change.reconciliation.outcome is ReconcileOutcome.CREATED
    assert [(item.name, item.quantity, item.unit) for item in list_inventory("alice")] == [("rice", 2.0, "kg")]


def test_update_setting_both_flags_reconciles_once(household):
    entry = create_shopping_entry("alice", name="apples", quantity=6)

    change = update_shopping_entry(entry.id, "alice", is_bought=True, is_added_to_inventory=True)

    assert change.reconciliation.outcome is ReconcileOutcome.CREATED
    assert len(list_inventory("alice")) == 1


def test_clearing_a_flag_never_triggers(household):
    entry = create_shopping_entry("alice", name="tea")
    _force_flags(entry.id, bought=True, added=False)

    change = update_shopping_entry(entry.id, "alice", is_bought=False, is_added_to_inventory=True)

    assert change.reconciliation is None
    assert change.entry.state is EntryState.MARKED_FOR_INVENTORY
    assert list_inventory("alice") == []


def test_missing_linked_item_falls_back_to_creation(household):
    flour = create_inventory_item("alice", name="flour", quantity=1, unit="kg")
    entry = create_shopping_entry("alice", name="flour", quantity=2, unit="kg", linked_inventory_item_id=flour.id)
    delete_inventory_item(flour.id, "alice")

    mark_bought(entry.id, "alice")
    change = mark_added_to_inventory(entry.id, "alice")

    assert change.reconciliation.outcome is ReconcileOutcome.CREATED
    items = list_inventory("alice")
    assert len(items) == 1
    assert items[0].id != flour.id
    assert items[0].quantity == 2.0


def test_deleted_link_never_lands_on_a_newer_item(household):
    flour = create_inventory_item("alice", name="flour", quantity=1, unit="kg")
    entry = create_shopping_entry("alice", name="flour", quantity=2, unit="kg", linked_inventory_item_id=flour.id)
    delete_inventory_item(flour.id, "alice")
    batteries = create_inventory_item("alice", name="batteries", quantity=4, unit="piece")

    assert batteries.id != flour.id

    mark_bought(entry.id, "alice")
    change = mark_added_to_inventory(entry.id, "alice")

    assert change.reconciliation.outcome is ReconcileOutcome.CREATED
    by_name = {item.name: item for item in list_inventory("alice")}
    assert by_name["batteries"].quantity == 4.0
    assert by_name["flour"].quantity == 2.0
    assert by_name["flour"].id not in (flour.id, batteries.id)


def test_reconcile_not_ready_is_a_no_op(household):
    entry = create_shopping_entry("alice", name="butter")
    mark_bought(entry.id, "alice")

    result = ReconciliationEngine().reconcile(entry.id, "alice")

    assert result.outcome is ReconcileOutcome.NOT_READY
    assert get_shopping_entry(entry.id, "alice").state is EntryState.BOUGHT
    assert list_inventory("alice") == []


def test_reconcile_missing_entry_reports_missing(household):
    result = ReconciliationEngine().reconcile(4242, "alice")
    assert result.outcome is ReconcileOutcome.MISSING


def test_redundant_reconcile_after_merge(household):
    entry = create_shopping_entry("alice", name="beans")
    mark_bought(entry.id, "alice")
    mark_added_to_inventory(entry.id, "alice")

    result = ReconciliationEngine().reconcile(entry.id, "alice")

    assert result.outcome is ReconcileOutcome.MISSING
    assert len(list_inventory("alice")) == 1


def test_reconcile_requires_same_household(household, other_household):
    entry = create_shopping_entry("alice", name="jam")
    _force_flags(entry.id)
    engine = ReconciliationEngine()

    with pytest.raises(NotAuthorized):
        engine.reconcile(entry.id, "mallory")
    with pytest.raises(Unauthenticated):
        engine.reconcile(entry.id, None)

    assert engine.reconcile(entry.id, "bob").outcome is ReconcileOutcome.CREATED


def test_fresh_guard_is_respected(household):
    entry = create_shopping_entry("alice", name="oats")
    _force_flags(entry.id, processing_started_at=utcnow() - timedelta(seconds=10))

    result = ReconciliationEngine().reconcile(entry.id, "alice")

    assert result.outcome is ReconcileOutcome.ALREADY_PROCESSING
    assert _entry_row(entry.id) is not None
    assert list_inventory("alice") == []


def test_stale_guard_is_reclaimed(household):
    entry = create_shopping_entry("alice", name="oats", quantity=3, unit="bag")
    _force_flags(entry.id, processing_started_at=utcnow() - timedelta(minutes=30))

    result = ReconciliationEngine(processing_timeout=timedelta(minutes=5)).reconcile(entry.id, "alice")

    assert result.outcome is ReconcileOutcome.CREATED
    assert _entry_row(entry.id) is None


def test_complete_with_superseded_claim_does_nothing(household):
    entry = create_shopping_entry("alice", name="salt")
    started = utcnow()
    _force_flags(entry.id, processing_started_at=started)

    result = ReconciliationEngine().complete(entry.id, actor="alice", claimed_at=started - timedelta(seconds=1))

    assert result.outcome is ReconcileOutcome.ALREADY_PROCESSING
    assert _entry_row(entry.id).is_processing is True


def test_clearing_a_flag_during_processing_is_rejected(household):
    entry = create_shopping_entry("alice", name="pepper")
    _force_flags(entry.id, processing_started_at=utcnow())

    with pytest.raises(InvalidTransition):
        update_shopping_entry(entry.id, "alice", is_bought=False)

    row = _entry_row(entry.id)
    assert row.is_bought is True
    assert row.is_processing is True


def test_clearing_a_flag_resets_a_stale_guard(household):
    entry = create_shopping_entry("alice", name="rice")
    _force_flags(entry.id, processing_started_at=utcnow() - timedelta(hours=2))

    change = update_shopping_entry(entry.id, "alice", is_bought=False)

    assert change.reconciliation is None
    assert change.entry.state is EntryState.MARKED_FOR_INVENTORY
    assert change.entry.is_processing is False
    assert change.entry.processing_started_at is None

    assert ReconciliationEngine().sweep(limit=10) == []
    assert list_inventory("alice") == []
    assert _entry_row(entry.id) is not None


def test_setting_a_flag_on_a_stale_guard_reclaims_and_merges(household):
    entry = create_shopping_entry("alice", name="barley")
    _force_flags(entry.id, processing_started_at=utcnow() - timedelta(hours=2))

    change = mark_bought(entry.id, "bob")

    assert change.reconciliation.outcome is ReconcileOutcome.CREATED
    assert [item.name for item in list_inventory("alice")] == ["barley"]


def test_failed_merge_releases_guard_and_retry_succeeds(household, monkeypatch):
    entry = create_shopping_entry("alice", name="coffee", quantity=2, unit="bag")
    mark_bought(entry.id, "alice")

    def _boom(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr("homestock.reconcile.engine.insert_item", _boom)
    with pytest.raises(StoreError):
        mark_added_to_inventory(entry.id, "alice")

    row = _entry_row(entry.id)
    assert row is not None
    assert row.is_bought is True
    assert row.is_added_to_inventory is True
    assert row.is_processing is False
    assert row.processing_started_at is None
    assert list_inventory("alice") == []

    monkeypatch.undo()
    result = ReconciliationEngine().reconcile(entry.id, "alice")

    assert result.outcome is ReconcileOutcome.CREATED
    assert [(item.name, item.quantity) for item in list_inventory("alice")] == [("coffee", 2.0)]
    assert _entry_row(entry.id) is None


def test_concurrent_reconcile_merges_once(household):
    eggs = create_inventory_item("alice", name="eggs", quantity=3, unit="piece")
    entry = create_shopping_entry("alice", name="eggs", quantity=12, linked_inventory_item_id=eggs.id)
    _force_flags(entry.id)

    engine = ReconciliationEngine()
    barrier = threading.Barrier(8)
    outcomes: list[ReconcileOutcome] = []
    errors: list[BaseException] = []
    lock = threading.Lock()

    def _worker(user_id: str) -> None:
        barrier.wait()
        try:
            result = engine.reconcile(entry.id, user_id)
        except BaseException as exc:  # pragma: no cover - surfaced below
            with lock:
                errors.append(exc)
            return
        with lock:
            outcomes.append(result.outcome)

    threads = [threading.Thread(target=_worker, args=("alice" if i % 2 else "bob",)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    assert len(outcomes) == 8
    assert sum(1 for outcome in outcomes if outcome.merged) == 1
    assert set(outcomes) <= {
        ReconcileOutcome.INCREMENTED,
        ReconcileOutcome.ALREADY_PROCESSING,
        ReconcileOutcome.MISSING,
    }
    items = list_inventory("alice")
    assert len(items) == 1
    assert items[0].quantity == 15.0


def test_sweep_reconciles_left_behind_entries(household):
    ready = create_shopping_entry("bob", name="pasta", quantity=2, unit="box")
    stale = create_shopping_entry("alice", name="lentils")
    fresh = create_shopping_entry("alice", name="cheese")
    pending = create_shopping_entry("alice", name="bread")
    _force_flags(ready.id)
    _force_flags(stale.id, processing_started_at=utcnow() - timedelta(hours=1))
    _force_flags(fresh.id, processing_started_at=utcnow())

    results = ReconciliationEngine().sweep(limit=10)

    assert sorted(result.entry_id for result in results) == sorted([ready.id, stale.id])
    assert all(result.outcome is ReconcileOutcome.CREATED for result in results)
    by_name = {item.name: item for item in list_inventory("alice")}
    assert set(by_name) == {"pasta", "lentils"}
    assert by_name["pasta"].last_updated_by == "bob"
    assert _entry_row(fresh.id) is not None
    assert _entry_row(pending.id) is not None


def test_sweep_respects_limit(household):
    for name in ("a", "b", "c"):
        entry = create_shopping_entry("alice", name=name)
        _force_flags(entry.id)

    engine = ReconciliationEngine()
    assert len(engine.sweep(limit=2)) == 2
    assert len(engine.sweep(limit=2)) == 1
    assert engine.sweep(limit=2) == []
