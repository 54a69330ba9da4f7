"""Fold completed shopping list entries into inventory exactly once.

A reconciliation runs in two serialized transactions:

1. *claim*: the entry is loaded, authorized and, if ready, its processing
   guard is written and committed so any concurrent attempt sees it;
2. *complete*: the merge into inventory and the deletion of the entry commit
   together, or not at all.

If the second transaction fails the guard is released in a third one, so the
entry is left ready and a retry can proceed. A guard older than the
configured timeout (left behind by a dead process) may be reclaimed.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from homestock import metrics
from homestock.config import get_settings
from homestock.db.households import authorize_household
from homestock.db.inventory import insert_item
from homestock.db.models import InventoryItemORM, ShoppingListEntryORM
from homestock.db.repository import session_scope, utcnow
from homestock.errors import HomestockError, StoreError
from homestock.models.shopping import ReconcileOutcome, ReconcileResult
from homestock.state import (
    EntryEvent,
    EntryState,
    derive_state,
    is_claimable,
    is_stale,
    transition,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]

DEFAULT_QUANTITY = 1.0


def entry_state(row: ShoppingListEntryORM) -> EntryState:
    return derive_state(row.is_bought, row.is_added_to_inventory, row.is_processing)


class ReconciliationEngine:
    """Claim, merge and delete ready shopping list entries."""

    def __init__(
        self,
        *,
        session_factory: SessionFactory = session_scope,
        clock: Callable[[], datetime] = utcnow,
        processing_timeout: timedelta = timedelta(minutes=5),
        default_unit: str = "piece",
    ) -> None:
        self._session_scope = session_factory
        self._clock = clock
        self._timeout = processing_timeout
        self._default_unit = default_unit

    @classmethod
    def from_settings(cls) -> "ReconciliationEngine":
        settings = get_settings()
        return cls(
            processing_timeout=timedelta(seconds=settings.processing_timeout_seconds),
            default_unit=settings.default_unit,
        )

    def try_claim(self, row: ShoppingListEntryORM) -> bool:
        """Take the processing guard on ``row`` inside the caller's transaction.

        Returns ``False`` when the entry is not ready or another reconciliation
        holds a fresh guard.
        """

        state = entry_state(row)
        now = self._clock()
        if not is_claimable(state, row.processing_started_at, now=now, timeout=self._timeout):
            return False

        if state is EntryState.PROCESSING:
            logger.warning(
                "Reclaiming stale processing guard on entry %s (started %s)",
                row.id,
                row.processing_started_at,
                extra={"entry_id": row.id, "household_id": row.household_id},
            )
        else:
            transition(state, EntryEvent.CLAIM)

        row.is_processing = True
        row.processing_started_at = now
        return True

    def guard_is_stale(self, row: ShoppingListEntryORM) -> bool:
        """True when ``row`` holds a processing guard past the timeout."""

        return is_stale(entry_state(row), row.processing_started_at, now=self._clock(), timeout=self._timeout)

    def reconcile(self, entry_id: int, caller: Optional[str]) -> ReconcileResult:
        """Merge the entry into inventory if both flags are set; safe to call redundantly."""

        with self._session_scope() as session:
            row = session.get(ShoppingListEntryORM, entry_id)
            if row is None:
                return self._skipped(entry_id, ReconcileOutcome.MISSING)

            actor = authorize_household(session, caller, row.household_id)
            state = entry_state(row)
            if state not in (EntryState.READY_FOR_INVENTORY, EntryState.PROCESSING):
                return self._skipped(entry_id, ReconcileOutcome.NOT_READY)
            if not self.try_claim(row):
                return self._skipped(entry_id, ReconcileOutcome.ALREADY_PROCESSING)
            claimed_at = row.processing_started_at

        return self.complete(entry_id, actor=actor, claimed_at=claimed_at)

    def complete(self, entry_id: int, *, actor: str, claimed_at: Optional[datetime]) -> ReconcileResult:
        """Merge and delete an entry previously claimed at ``claimed_at``."""

        try:
            with self._session_scope() as session:
                row = session.get(ShoppingListEntryORM, entry_id)
                if row is None:
                    return self._skipped(entry_id, ReconcileOutcome.MISSING)
                if not row.is_processing or row.processing_started_at != claimed_at:
                    # Reclaimed after our guard went stale; the new holder finishes.
                    return self._skipped(entry_id, ReconcileOutcome.ALREADY_PROCESSING)

                if entry_state(row) is not EntryState.PROCESSING:
                    # A flag was cleared before the merge started.
                    row.is_processing = False
                    row.processing_started_at = None
                    return self._skipped(entry_id, ReconcileOutcome.NOT_READY)

                transition(EntryState.PROCESSING, EntryEvent.COMPLETE)
                outcome, item_id = self._merge(session, row, actor)
                household_id = row.household_id
                session.delete(row)
        except Exception as exc:
            metrics.RECONCILIATION_FAILURES.inc()
            logger.error(
                "Reconciliation of entry %s failed: %s",
                entry_id,
                exc,
                extra={"entry_id": entry_id},
            )
            self._release(entry_id, claimed_at)
            if isinstance(exc, HomestockError):
                raise
            raise StoreError(f"Reconciliation of entry {entry_id} failed: {exc}") from exc

        metrics.RECONCILIATIONS.labels(outcome=outcome.value).inc()
        logger.info(
            "Reconciled entry %s into inventory item %s (%s)",
            entry_id,
            item_id,
            outcome.value,
            extra={"entry_id": entry_id, "household_id": household_id, "user_id": actor},
        )
        return ReconcileResult(entry_id=entry_id, outcome=outcome, inventory_item_id=item_id)

    def sweep(self, limit: int = 50) -> List[ReconcileResult]:
        """Reconcile entries left ready or stuck with a stale guard."""

        now = self._clock()
        stale_before = now - self._timeout
        claims: List[Tuple[int, str, Optional[datetime]]] = []
        with self._session_scope() as session:
            rows = (
                session.execute(
                    select(ShoppingListEntryORM)
                    .where(
                        ShoppingListEntryORM.is_bought.is_(True),
                        ShoppingListEntryORM.is_added_to_inventory.is_(True),
                        or_(
                            ShoppingListEntryORM.is_processing.is_(False),
                            ShoppingListEntryORM.processing_started_at.is_(None),
                            and_(
                                ShoppingListEntryORM.is_processing.is_(True),
                                ShoppingListEntryORM.processing_started_at <= stale_before,
                            ),
                        ),
                    )
                    .order_by(ShoppingListEntryORM.id.asc())
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            for row in rows:
                if self.try_claim(row):
                    claims.append((row.id, row.added_by, row.processing_started_at))

        results: List[ReconcileResult] = []
        for entry_id, actor, claimed_at in claims:
            try:
                results.append(self.complete(entry_id, actor=actor, claimed_at=claimed_at))
            except HomestockError:
                logger.warning("Sweep left entry %s for a later pass", entry_id, extra={"entry_id": entry_id})
        if results:
            logger.info("Sweep reconciled %s entr(ies)", len(results))
        return results

    def _merge(
        self,
        session: Session,
        row: ShoppingListEntryORM,
        actor: str,
    ) -> Tuple[ReconcileOutcome, int]:
        quantity = row.quantity if row.quantity is not None else DEFAULT_QUANTITY

        if row.linked_inventory_item_id is not None:
            item = session.get(InventoryItemORM, row.linked_inventory_item_id)
            if item is not None and item.household_id == row.household_id:
                item.quantity = item.quantity + quantity
                item.last_updated_by = actor
                session.flush()
                return ReconcileOutcome.INCREMENTED, item.id
            logger.info(
                "Linked inventory item %s is gone; creating a new item for entry %s",
                row.linked_inventory_item_id,
                row.id,
                extra={"entry_id": row.id, "household_id": row.household_id},
            )

        item = insert_item(
            session,
            household_id=row.household_id,
            name=row.name,
            quantity=quantity,
            unit=row.unit or self._default_unit,
            category_id=row.category_id,
            last_updated_by=actor,
        )
        return ReconcileOutcome.CREATED, item.id

    def _release(self, entry_id: int, claimed_at: Optional[datetime]) -> None:
        try:
            with self._session_scope() as session:
                row = session.get(ShoppingListEntryORM, entry_id)
                if row is not None and row.is_processing and row.processing_started_at == claimed_at:
                    row.is_processing = False
                    row.processing_started_at = None
        except Exception:
            logger.exception(
                "Unable to release processing guard on entry %s; it will go stale",
                entry_id,
                extra={"entry_id": entry_id},
            )

    @staticmethod
    def _skipped(entry_id: int, outcome: ReconcileOutcome) -> ReconcileResult:
        metrics.RECONCILIATIONS.labels(outcome=outcome.value).inc()
        logger.debug("Reconcile entry %s: %s", entry_id, outcome.value, extra={"entry_id": entry_id})
        return ReconcileResult(entry_id=entry_id, outcome=outcome)


def reconcile(entry_id: int, caller: Optional[str]) -> ReconcileResult:
    """Reconcile with an engine configured from application settings."""

    return ReconciliationEngine.from_settings().reconcile(entry_id, caller)


__all__ = ["DEFAULT_QUANTITY", "ReconciliationEngine", "entry_state", "reconcile"]
