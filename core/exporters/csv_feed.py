from __future__ import annotations

import csv
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from core.errors import ExportSystemError
from core.rows import CSV_HEADERS

logger = logging.getLogger(__name__)

FEED_FILENAME = "nalda-products.csv"


def feed_path(export_dir: Path) -> Path:
    return Path(export_dir) / FEED_FILENAME


class CsvFeedWriter:
    """
    Writes the feed to a private temp file next to the published one and
    swaps it in with os.replace on commit, so readers only ever see a
    complete file. The header row is written on open.

    Usable as a context manager: commits on a clean exit, discards on error.
    """

    def __init__(self, export_dir: Path, filename: str = FEED_FILENAME) -> None:
        self.export_dir = Path(export_dir)
        self.final_path = self.export_dir / filename
        self.rows_written = 0
        self._tmp_path: Optional[Path] = None
        self._fh = None
        self._writer = None

    def open(self) -> "CsvFeedWriter":
        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=self.final_path.stem + "-", suffix=".tmp", dir=self.export_dir
            )
            self._tmp_path = Path(tmp_name)
            # utf-8-sig writes the byte-order mark the marketplace expects.
            self._fh = os.fdopen(fd, "w", newline="", encoding="utf-8-sig")
        except OSError as exc:
            raise ExportSystemError(f"Failed to create CSV file: {exc}") from exc
        self._writer = csv.writer(self._fh, lineterminator="\n")
        self._writer.writerow(CSV_HEADERS)
        return self

    def write_row(self, row: Sequence[Any]) -> None:
        if self._writer is None:
            raise ExportSystemError("CSV feed is not open")
        self._writer.writerow(row)
        self.rows_written += 1

    def commit(self) -> Path:
        if self._fh is None or self._tmp_path is None:
            raise ExportSystemError("CSV feed is not open")
        try:
            self._fh.close()
            self._fh = None
            os.chmod(self._tmp_path, 0o644)
            os.replace(self._tmp_path, self.final_path)
        except OSError as exc:
            self.discard()
            raise ExportSystemError(f"Failed to publish CSV file: {exc}") from exc
        self._tmp_path = None
        logger.info("Wrote %d feed rows to %s", self.rows_written, self.final_path)
        return self.final_path

    def discard(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
        if self._tmp_path is not None:
            try:
                self._tmp_path.unlink()
            except FileNotFoundError:
                pass
            self._tmp_path = None

    def __enter__(self) -> "CsvFeedWriter":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.discard()


def csv_exists(export_dir: Path) -> bool:
    return feed_path(export_dir).is_file()


def csv_info(export_dir: Path) -> Optional[Dict[str, Any]]:
    """Path, size, modification time and data-row count of the published feed."""
    path = feed_path(export_dir)
    if not path.is_file():
        return None
    stat = path.stat()
    with path.open("r", encoding="utf-8-sig", newline="") as fh:
        records = sum(1 for _ in csv.reader(fh))
    return {
        "path": str(path),
        "size": stat.st_size,
        "modified": datetime.fromtimestamp(stat.st_mtime).isoformat(timespec="seconds"),
        "rows": max(0, records - 1),
    }
