from __future__ import annotations

import threading
import time
from dataclasses import replace
from typing import Callable, Dict, Optional, Tuple

from core.models import ProgressRecord

PROGRESS_TTL = 3600  # seconds


class ProgressStore:
    """
    Keyed progress records with per-key expiry, plus the single active-run
    pointer.

    Records are merged on write, never replaced wholesale. Claiming the
    active-run pointer and writing the run's first record happen in one
    critical section, so two concurrent starts cannot both succeed.
    """

    def __init__(self, ttl: float = PROGRESS_TTL, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self.clock = clock
        self._lock = threading.RLock()
        self._records: Dict[str, Tuple[ProgressRecord, float]] = {}
        self._active_run_id: Optional[str] = None

    # -- record access -------------------------------------------------

    def _live(self, run_id: str) -> Optional[ProgressRecord]:
        entry = self._records.get(run_id)
        if entry is None:
            return None
        record, expires_at = entry
        if self.clock() >= expires_at:
            del self._records[run_id]
            return None
        return record

    def get(self, run_id: str) -> Optional[ProgressRecord]:
        with self._lock:
            return self._live(run_id)

    def set(self, run_id: str, record: ProgressRecord) -> ProgressRecord:
        with self._lock:
            self._records[run_id] = (record, self.clock() + self.ttl)
            return record

    def merge(self, run_id: str, **changes) -> ProgressRecord:
        """Update the given fields of a record (creating it if missing) and renew its expiry."""
        with self._lock:
            current = self._live(run_id) or ProgressRecord()
            return self.set(run_id, replace(current, **changes))

    def delete(self, run_id: str) -> None:
        with self._lock:
            self._records.pop(run_id, None)

    def purge_expired(self) -> int:
        with self._lock:
            now = self.clock()
            expired = [k for k, (_, exp) in self._records.items() if now >= exp]
            for key in expired:
                del self._records[key]
            return len(expired)

    # -- active-run pointer ---------------------------------------------

    def claim_active(self, run_id: str, initial: ProgressRecord) -> Optional[str]:
        """
        Make `run_id` the active run and store its first record, unless an
        unresolved run already holds the pointer. Returns that run's id when
        rejected, None when claimed. Expired records are dropped first.
        """
        with self._lock:
            self.purge_expired()
            current = self._active_run_id
            if current is not None:
                record = self._live(current)
                if record is not None and record.is_active:
                    return current
            self._active_run_id = run_id
            self.set(run_id, initial)
            return None

    def release_active(self, run_id: str) -> None:
        """Clear the pointer if it still names `run_id`."""
        with self._lock:
            if self._active_run_id == run_id:
                self._active_run_id = None

    def active(self) -> Optional[Tuple[str, ProgressRecord]]:
        """The active run and its record; clears a pointer whose record is gone or terminal."""
        with self._lock:
            run_id = self._active_run_id
            if run_id is None:
                return None
            record = self._live(run_id)
            if record is None or not record.is_active:
                self._active_run_id = None
                return None
            return run_id, record
