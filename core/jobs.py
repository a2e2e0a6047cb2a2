from __future__ import annotations

import logging
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from core.errors import ExportSystemError, NotFoundError
from core.exporters.csv_feed import CsvFeedWriter
from core.models import STATUS_COMPLETE, STATUS_ERROR, STATUS_RUNNING, ProgressRecord
from core.processing import BATCH_SIZE, ExportEngine, ExportTally
from core.progress import ProgressStore
from core.settings import SyncConfig

logger = logging.getLogger(__name__)

# Percent checkpoints; the batch loop interpolates between START and END.
PERCENT_COUNTING = 5
PERCENT_PREPARING = 10
PERCENT_START = 15
PERCENT_END = 95
PERCENT_FINALIZING = 98
PERCENT_DONE = 100


def batch_percent(processed: int, total: int) -> int:
    if total <= 0:
        return PERCENT_END
    value = PERCENT_START + (processed / total) * (PERCENT_END - PERCENT_START)
    return int(value + 0.5)


def new_run_id() -> str:
    return f"export_{uuid.uuid4().hex}"


@dataclass
class StartOutcome:
    """`started` is False when another run is active; `run_id` then names that run."""

    run_id: str
    started: bool


class ExportJobRunner:
    """
    Progressive export: start_run() claims the active-run pointer, records
    the initial progress and hands the run to a background worker; clients
    poll get_progress() until the status is complete or error.
    """

    def __init__(
        self,
        engine: ExportEngine,
        store: ProgressStore,
        config_provider: Callable[[], SyncConfig],
        executor: Optional[ThreadPoolExecutor] = None,
        batch_size: int = BATCH_SIZE,
    ) -> None:
        self.engine = engine
        self.store = store
        self.config_provider = config_provider
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="nalda-export")
        self.batch_size = batch_size
        self._futures: Dict[str, Future] = {}

    def start_run(self) -> StartOutcome:
        config = self.config_provider()
        run_id = new_run_id()
        initial = ProgressRecord(
            status=STATUS_RUNNING,
            step="init",
            percent=0,
            message="Starting export...",
        )
        existing = self.store.claim_active(run_id, initial)
        if existing is not None:
            logger.info("Export start rejected; run %s is still active.", existing)
            return StartOutcome(run_id=existing, started=False)

        logger.info("Export run %s started", run_id)
        future = self.executor.submit(self._run, run_id, config)
        self._futures[run_id] = future
        future.add_done_callback(lambda _f, key=run_id: self._futures.pop(key, None))
        return StartOutcome(run_id=run_id, started=True)

    def get_progress(self, run_id: str) -> ProgressRecord:
        record = self.store.get(run_id)
        if record is None:
            raise NotFoundError("Progress not found")
        return record

    def get_active_run(self) -> Optional[Tuple[str, ProgressRecord]]:
        return self.store.active()

    def wait(self, run_id: str, timeout: Optional[float] = None) -> ProgressRecord:
        """Block until the run's worker returns (CLI and tests)."""
        future = self._futures.get(run_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.get_progress(run_id)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _update(self, run_id: str, **changes) -> None:
        self.store.merge(run_id, **changes)

    def _fail(self, run_id: str, message: str) -> None:
        logger.error("Export run %s failed: %s", run_id, message)
        self._update(run_id, status=STATUS_ERROR, message=message)
        self.engine.fail(message)

    def _run(self, run_id: str, config: SyncConfig) -> None:
        try:
            self._execute(run_id, config)
        except Exception as exc:
            logger.exception("Export run %s crashed", run_id)
            self._fail(run_id, f"Export failed: {exc}")
        finally:
            self.store.release_active(run_id)

    def _execute(self, run_id: str, config: SyncConfig) -> None:
        self._update(
            run_id,
            status=STATUS_RUNNING,
            step="counting",
            percent=PERCENT_COUNTING,
            message="Counting products...",
        )
        product_ids = self.engine.catalog.list_product_ids()
        total = len(product_ids)
        if total == 0:
            self._fail(run_id, "No products found to export.")
            return

        self._update(
            run_id,
            step="preparing",
            percent=PERCENT_PREPARING,
            message=f"Found {total} products. Preparing export...",
            total=total,
        )

        writer = CsvFeedWriter(config.export_dir)
        try:
            writer.open()
        except ExportSystemError as exc:
            logger.error("Export run %s: %s", run_id, exc)
            self._fail(run_id, "Failed to create CSV file.")
            return

        tally = ExportTally()
        try:
            for processed in self.engine.export_batches(
                product_ids, config.settings, writer, tally, self.batch_size
            ):
                self._update(
                    run_id,
                    step="exporting",
                    percent=batch_percent(processed, total),
                    message=f"Exporting products ({processed}/{total})...",
                    exported=tally.exported,
                    skipped=tally.skipped,
                    total=total,
                )
                logger.info("Export run %s: %d/%d products processed", run_id, processed, total)

            self._update(
                run_id,
                step="finalizing",
                percent=PERCENT_FINALIZING,
                message="Finalizing export...",
            )
            feed = writer.commit()
        except BaseException:
            writer.discard()
            raise

        if config.credentials.enabled:
            self._update(run_id, step="uploading", message="Uploading feed...")
        result = self.engine.finish(config, feed, tally)

        self._update(
            run_id,
            status=STATUS_COMPLETE,
            step="done",
            percent=PERCENT_DONE,
            message=result.message,
            exported=result.exported,
            skipped=result.skipped,
            total=total,
        )
        logger.info("Export run %s complete", run_id)
