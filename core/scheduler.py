"""
Periodic export scheduler.

Runs a synchronous export (plus the optional upload) every configured
interval in a daemon thread. The settings are re-read before every run, so
enabling/disabling the schedule or changing the interval takes effect
without a restart.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from core.models import ExportResult
from core.settings import SyncConfig

logger = logging.getLogger(__name__)

FIRST_RUN_DELAY = 300  # seconds after start


class ExportScheduler:
    def __init__(
        self,
        run_export: Callable[[], ExportResult],
        config_provider: Callable[[], SyncConfig],
        first_run_delay: float = FIRST_RUN_DELAY,
    ) -> None:
        self.run_export = run_export
        self.config_provider = config_provider
        self.first_run_delay = first_run_delay
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> Optional[ExportResult]:
        """One scheduler tick: export if the schedule is enabled."""
        config = self.config_provider()
        if not config.schedule_enabled:
            logger.debug("Scheduled export is disabled; nothing to do.")
            return None
        logger.info("Scheduled export (%s) starting", config.schedule)
        result = self.run_export()
        logger.info("Scheduled export finished: %s", result.message)
        return result

    def _loop(self) -> None:
        delay = self.first_run_delay
        while not self._stop.wait(delay):
            try:
                self.run_once()
            except Exception:
                logger.exception("Scheduled export failed")
            try:
                delay = self.config_provider().schedule_interval
            except Exception:
                logger.exception("Could not read schedule; retrying in 60s")
                delay = 60

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="nalda-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scheduler thread started (first run in %ss)", self.first_run_delay)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
