from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from core.catalog import Catalog
from core.exporters.base import RowSink
from core.exporters.csv_feed import CsvFeedWriter
from core.logstore import LogStore
from core.models import SKIP_PRODUCT_NOT_FOUND, ExportResult, ExportSettings, Skip, UploadOutcome
from core.rows import build_row
from core.settings import SyncConfig
from core.upload import UploadDispatcher

BATCH_SIZE = 25


@dataclass
class ExportTally:
    """Running counts for one export run."""

    exported: int = 0
    skip_reasons: Counter = field(default_factory=Counter)

    @property
    def skipped(self) -> int:
        return sum(self.skip_reasons.values())

    def skip(self, reason: str) -> None:
        self.skip_reasons[reason] += 1

    def summary(self) -> str:
        return f"CSV export completed. Exported: {self.exported} products, Skipped: {self.skipped}"


class ExportEngine:
    """
    Turns the catalog into the Nalda feed.

    Row building is shared; `run_export` drives it eagerly in one call,
    `export_batches` drives it in fixed-size batches for the progressive
    job runner.
    """

    def __init__(
        self,
        catalog: Catalog,
        log_store: LogStore,
        dispatcher: Optional[UploadDispatcher] = None,
    ) -> None:
        self.catalog = catalog
        self.log_store = log_store
        self.dispatcher = dispatcher
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Shared per-product step
    # ------------------------------------------------------------------

    def _emit(self, outcome, sink: RowSink, tally: ExportTally) -> None:
        if isinstance(outcome, Skip):
            tally.skip(outcome.reason)
        else:
            sink.write_row(outcome)
            tally.exported += 1

    def export_product(
        self,
        product_id: int,
        settings: ExportSettings,
        sink: RowSink,
        tally: ExportTally,
    ) -> None:
        """Write one row per sellable unit of a catalog entry."""
        product = self.catalog.get_product(product_id)
        if product is None:
            self.logger.warning("Product %s could not be loaded; skipping.", product_id)
            tally.skip(SKIP_PRODUCT_NOT_FOUND)
            return

        if not product.is_variable:
            self._emit(build_row(product, settings), sink, tally)
            return

        for variation_id in self.catalog.list_variation_ids(product):
            variation = self.catalog.get_variation(variation_id, product)
            if variation is None:
                self.logger.warning(
                    "Variation %s of product %s could not be loaded; skipping.",
                    variation_id,
                    product_id,
                )
                tally.skip(SKIP_PRODUCT_NOT_FOUND)
                continue
            self._emit(build_row(variation, settings, parent=product), sink, tally)

    def export_batches(
        self,
        product_ids: Sequence[int],
        settings: ExportSettings,
        sink: RowSink,
        tally: ExportTally,
        batch_size: int = BATCH_SIZE,
    ) -> Iterator[int]:
        """Export in batches, yielding the number of catalog entries processed so far."""
        processed = 0
        for start in range(0, len(product_ids), batch_size):
            for product_id in product_ids[start:start + batch_size]:
                self.export_product(product_id, settings, sink, tally)
                processed += 1
            yield processed

    # ------------------------------------------------------------------
    # Completion: upload + log
    # ------------------------------------------------------------------

    def finish(self, config: SyncConfig, feed: Path, tally: ExportTally) -> ExportResult:
        upload: Optional[UploadOutcome] = None
        if self.dispatcher is not None:
            upload = self.dispatcher.upload(feed, config.credentials)
            if not upload.attempted:
                upload = None

        result = ExportResult(
            success=True,
            message=tally.summary(),
            exported=tally.exported,
            skipped=tally.skipped,
            skip_reasons=dict(tally.skip_reasons),
            upload=upload,
        )
        self.log_store.append(result)
        self.logger.info(
            "%s (reasons=%s)", result.message, result.skip_reasons or "none"
        )
        return result

    def fail(self, message: str) -> ExportResult:
        result = ExportResult(success=False, message=message, errors=[message])
        self.log_store.append(result)
        return result

    # ------------------------------------------------------------------
    # Synchronous mode
    # ------------------------------------------------------------------

    def run_export(self, config: SyncConfig) -> ExportResult:
        """Export the whole catalog in one blocking call; never raises."""
        settings = config.settings
        tally = ExportTally()
        self.logger.info("Synchronous export started (dir=%s)", config.export_dir)
        try:
            product_ids: List[int] = self.catalog.list_product_ids()
            with CsvFeedWriter(config.export_dir) as writer:
                for product_id in product_ids:
                    self.export_product(product_id, settings, writer, tally)
        except Exception as exc:
            self.logger.exception("Synchronous export failed")
            return self.fail(str(exc) or type(exc).__name__)
        return self.finish(config, writer.final_path, tally)
