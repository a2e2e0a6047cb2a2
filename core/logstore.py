from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.models import ExportResult

logger = logging.getLogger(__name__)

MAX_LOG_ENTRIES = 20
LOG_FILENAME = "export-log.json"


class LogStore:
    """
    Append-only export history capped at MAX_LOG_ENTRIES (oldest evicted).

    Persisted as JSON when `path` is given, otherwise kept in memory.
    """

    def __init__(self, path: Optional[Path] = None, max_entries: int = MAX_LOG_ENTRIES) -> None:
        self.path = Path(path) if path is not None else None
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._entries: List[Dict[str, Any]] = self._read()

    def _read(self) -> List[Dict[str, Any]]:
        if self.path is None or not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read export log %s: %s", self.path, e)
            return []
        return data if isinstance(data, list) else []

    def _write(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".export-log-", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._entries, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            logger.warning("Could not save export log: %s", e)

    def append(self, result: ExportResult) -> None:
        with self._lock:
            self._entries.append(result.to_dict())
            del self._entries[:-self.max_entries]
            self._write()

    def get_logs(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(e) for e in self._entries]

    def clear_logs(self) -> None:
        with self._lock:
            self._entries = []
            self._write()

    @property
    def last_export(self) -> Optional[str]:
        """Timestamp of the newest successful run."""
        with self._lock:
            for entry in reversed(self._entries):
                if entry.get("success"):
                    return entry.get("timestamp")
        return None
