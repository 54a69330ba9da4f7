"""Background sweep that reconciles entries missed by event-triggered runs."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from homestock import metrics

from .engine import ReconciliationEngine

logger = logging.getLogger(__name__)


class ReconciliationSweeper:
    """Periodically reconcile ready entries and entries with a stale guard."""

    def __init__(
        self,
        *,
        engine: Optional[ReconciliationEngine] = None,
        poll_interval: float = 60.0,
        batch_size: int = 50,
    ) -> None:
        self._engine = engine or ReconciliationEngine.from_settings()
        self._poll_interval = poll_interval
        self._batch_size = batch_size
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Spawn the sweep loop in a daemon thread."""

        if self._thread and self._thread.is_alive():
            logger.debug("Reconciliation sweeper already running")
            return
        logger.info(
            "Starting reconciliation sweeper poll_interval=%s batch_size=%s",
            self._poll_interval,
            self._batch_size,
        )
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="reconcile-sweeper",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        if not self._thread:
            return
        logger.info("Stopping reconciliation sweeper")
        self._stop_event.set()
        self._thread.join(timeout=self._poll_interval + 1)
        self._thread = None

    def poll_once(self) -> int:
        """Run one sweep pass and return the number of entries merged."""

        metrics.SWEEP_RUNS.inc()
        try:
            results = self._engine.sweep(limit=self._batch_size)
        except Exception:  # pragma: no cover - next pass retries
            logger.exception("Reconciliation sweep failed")
            return 0
        return sum(1 for result in results if result.outcome.merged)

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            merged = self.poll_once()
            if merged < self._batch_size:
                if self._stop_event.wait(self._poll_interval):
                    break


__all__ = ["ReconciliationSweeper"]
