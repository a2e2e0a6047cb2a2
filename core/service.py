from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from core.catalog import Catalog
from core.exporters.csv_feed import csv_exists, csv_info, feed_path
from core.errors import NotFoundError
from core.jobs import ExportJobRunner
from core.logstore import LOG_FILENAME, LogStore
from core.models import ExportResult, TestOutcome, UploadCredentials
from core.processing import ExportEngine
from core.progress import ProgressStore
from core.settings import SyncConfig, load_config
from core.upload import UploadDispatcher

logger = logging.getLogger(__name__)


class NaldaSyncService:
    """Wires catalog, stores, dispatcher and runners behind the trigger operations."""

    def __init__(
        self,
        catalog: Catalog,
        config_provider: Callable[[], SyncConfig] = load_config,
        log_store: Optional[LogStore] = None,
        progress_store: Optional[ProgressStore] = None,
        dispatcher: Optional[UploadDispatcher] = None,
    ) -> None:
        self.config_provider = config_provider
        config = config_provider()
        self.log_store = log_store or LogStore(config.export_dir / LOG_FILENAME)
        self.progress_store = progress_store or ProgressStore()
        self.dispatcher = dispatcher or UploadDispatcher()
        self.engine = ExportEngine(catalog, self.log_store, self.dispatcher)
        self.jobs = ExportJobRunner(self.engine, self.progress_store, config_provider)

    def run_export_now(self) -> ExportResult:
        return self.engine.run_export(self.config_provider())

    def test_connection(self, credentials: UploadCredentials) -> TestOutcome:
        return self.dispatcher.test_connection(credentials)

    def get_logs(self) -> List[Dict[str, Any]]:
        return self.log_store.get_logs()

    def clear_logs(self) -> None:
        self.log_store.clear_logs()
        logger.info("Export logs cleared")

    def csv_path(self) -> Path:
        export_dir = self.config_provider().export_dir
        if not csv_exists(export_dir):
            raise NotFoundError("CSV file not found. Please generate the export first.")
        return feed_path(export_dir)

    def csv_info(self) -> Optional[Dict[str, Any]]:
        info = csv_info(self.config_provider().export_dir)
        if info is not None:
            info["last_export"] = self.log_store.last_export
        return info

    def shutdown(self) -> None:
        self.jobs.shutdown(wait=True)
