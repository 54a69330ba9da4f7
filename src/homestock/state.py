"""Explicit state machine for shopping list entries.

An entry carries two user-controlled flags (``is_bought`` and
``is_added_to_inventory``) plus the ``is_processing`` guard owned by the
reconciliation engine. Every combination maps onto one :class:`EntryState`;
the readiness and claim decisions are made here and nowhere else.

::

    PENDING ──bought──▶ BOUGHT ──added──▶ READY_FOR_INVENTORY ──claim──▶ PROCESSING ──complete──▶ DONE
       │                                        ▲      ▲                      │
       └──added──▶ MARKED_FOR_INVENTORY ─bought─┘      └──────release─────────┘
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from homestock.errors import InvalidTransition


class EntryState(str, Enum):
    PENDING = "pending"
    BOUGHT = "bought"
    MARKED_FOR_INVENTORY = "marked_for_inventory"
    READY_FOR_INVENTORY = "ready_for_inventory"
    PROCESSING = "processing"
    DONE = "done"


class EntryEvent(str, Enum):
    MARK_BOUGHT = "mark_bought"
    UNMARK_BOUGHT = "unmark_bought"
    MARK_ADDED = "mark_added"
    UNMARK_ADDED = "unmark_added"
    CLAIM = "claim"
    COMPLETE = "complete"
    RELEASE = "release"


_FLAG_STATES = {
    (False, False): EntryState.PENDING,
    (True, False): EntryState.BOUGHT,
    (False, True): EntryState.MARKED_FOR_INVENTORY,
    (True, True): EntryState.READY_FOR_INVENTORY,
}

_TRANSITIONS: dict[tuple[EntryState, EntryEvent], EntryState] = {
    (EntryState.PENDING, EntryEvent.MARK_BOUGHT): EntryState.BOUGHT,
    (EntryState.PENDING, EntryEvent.MARK_ADDED): EntryState.MARKED_FOR_INVENTORY,
    (EntryState.BOUGHT, EntryEvent.MARK_ADDED): EntryState.READY_FOR_INVENTORY,
    (EntryState.BOUGHT, EntryEvent.UNMARK_BOUGHT): EntryState.PENDING,
    (EntryState.MARKED_FOR_INVENTORY, EntryEvent.MARK_BOUGHT): EntryState.READY_FOR_INVENTORY,
    (EntryState.MARKED_FOR_INVENTORY, EntryEvent.UNMARK_ADDED): EntryState.PENDING,
    (EntryState.READY_FOR_INVENTORY, EntryEvent.UNMARK_BOUGHT): EntryState.MARKED_FOR_INVENTORY,
    (EntryState.READY_FOR_INVENTORY, EntryEvent.UNMARK_ADDED): EntryState.BOUGHT,
    (EntryState.READY_FOR_INVENTORY, EntryEvent.CLAIM): EntryState.PROCESSING,
    (EntryState.PROCESSING, EntryEvent.COMPLETE): EntryState.DONE,
    (EntryState.PROCESSING, EntryEvent.RELEASE): EntryState.READY_FOR_INVENTORY,
}

# Setting a flag to the value it already holds leaves the state unchanged.
_IDEMPOTENT = {
    EntryEvent.MARK_BOUGHT: {EntryState.BOUGHT, EntryState.READY_FOR_INVENTORY, EntryState.PROCESSING},
    EntryEvent.MARK_ADDED: {
        EntryState.MARKED_FOR_INVENTORY,
        EntryState.READY_FOR_INVENTORY,
        EntryState.PROCESSING,
    },
    EntryEvent.UNMARK_BOUGHT: {EntryState.PENDING, EntryState.MARKED_FOR_INVENTORY},
    EntryEvent.UNMARK_ADDED: {EntryState.PENDING, EntryState.BOUGHT},
}


def derive_state(is_bought: bool, is_added_to_inventory: bool, is_processing: bool) -> EntryState:
    """Map the persisted flags onto a single state."""

    if is_processing:
        if not (is_bought and is_added_to_inventory):
            # Guard left behind after a flag was cleared mid-merge; treat by flags.
            return _FLAG_STATES[(bool(is_bought), bool(is_added_to_inventory))]
        return EntryState.PROCESSING
    return _FLAG_STATES[(bool(is_bought), bool(is_added_to_inventory))]


def transition(state: EntryState, event: EntryEvent) -> EntryState:
    """Return the state reached from ``state`` on ``event``.

    Raises :class:`InvalidTransition` for moves the machine does not define,
    such as claiming an entry that is not ready or clearing a flag while a
    merge is in flight.
    """

    if state in _IDEMPOTENT.get(event, ()):
        return state
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(f"Cannot apply {event.value} to an entry in state {state.value}") from None


def flags_for(state: EntryState) -> tuple[bool, bool, bool]:
    """Return ``(is_bought, is_added_to_inventory, is_processing)`` for a live state."""

    if state is EntryState.DONE:
        raise InvalidTransition("A completed entry has no persisted flags")
    if state is EntryState.PROCESSING:
        return True, True, True
    for flags, candidate in _FLAG_STATES.items():
        if candidate is state:
            return flags[0], flags[1], False
    raise InvalidTransition(f"Unknown state {state!r}")  # pragma: no cover


def flag_events(
    *,
    is_bought: Optional[bool] = None,
    is_added_to_inventory: Optional[bool] = None,
) -> list[EntryEvent]:
    """Translate a flag patch into events, bought first."""

    events: list[EntryEvent] = []
    if is_bought is not None:
        events.append(EntryEvent.MARK_BOUGHT if is_bought else EntryEvent.UNMARK_BOUGHT)
    if is_added_to_inventory is not None:
        events.append(EntryEvent.MARK_ADDED if is_added_to_inventory else EntryEvent.UNMARK_ADDED)
    return events


def is_ready(state: EntryState) -> bool:
    return state is EntryState.READY_FOR_INVENTORY


def is_stale(
    state: EntryState,
    processing_started_at: Optional[datetime],
    *,
    now: datetime,
    timeout: timedelta,
) -> bool:
    """True when a processing guard is old enough to be reclaimed."""

    if state is not EntryState.PROCESSING:
        return False
    if processing_started_at is None:
        return True
    return now - processing_started_at >= timeout


def is_claimable(
    state: EntryState,
    processing_started_at: Optional[datetime],
    *,
    now: datetime,
    timeout: timedelta,
) -> bool:
    """True when a reconciliation may take the processing guard now."""

    return is_ready(state) or is_stale(state, processing_started_at, now=now, timeout=timeout)


__all__ = [
    "EntryState",
    "EntryEvent",
    "derive_state",
    "transition",
    "flags_for",
    "flag_events",
    "is_ready",
    "is_stale",
    "is_claimable",
]
