"""Tests for the synchronous export engine and the CSV feed writer."""

import csv
from dataclasses import replace
from unittest.mock import MagicMock, patch

import paramiko
import pytest

from core.catalog import MemoryCatalog
from core.errors import ExportSystemError
from core.exporters.csv_feed import FEED_FILENAME, CsvFeedWriter, csv_info
from core.logstore import LogStore
from core.models import (
    SKIP_NO_GTIN,
    SKIP_NO_PRICE,
    SKIP_PRODUCT_NOT_FOUND,
    ExportSettings,
    UploadCredentials,
    UploadOutcome,
)
from core.processing import ExportEngine, ExportTally
from core.rows import CSV_HEADERS
from core.settings import SyncConfig
from core.upload import UploadDispatcher

SFTP_CREDENTIALS = UploadCredentials(
    enabled=True,
    protocol="sftp",
    host="sftp.nalda.example",
    port=22,
    username="shop",
    password="secret",
    remote_path="/feeds",
)


def read_feed(path):
    with open(path, "r", encoding="utf-8-sig", newline="") as fh:
        return list(csv.reader(fh))


class TestCsvFeedWriter:
    def test_header_and_bom(self, tmp_path):
        with CsvFeedWriter(tmp_path) as writer:
            writer.write_row(["x"] * len(CSV_HEADERS))
        raw = (tmp_path / FEED_FILENAME).read_bytes()
        assert raw.startswith(b"\xef\xbb\xbf")
        assert read_feed(tmp_path / FEED_FILENAME)[0] == CSV_HEADERS
        assert writer.rows_written == 1

    def test_error_keeps_previous_feed(self, tmp_path):
        with CsvFeedWriter(tmp_path) as writer:
            writer.write_row(["old"] * len(CSV_HEADERS))

        with pytest.raises(RuntimeError):
            with CsvFeedWriter(tmp_path) as writer:
                writer.write_row(["new"] * len(CSV_HEADERS))
                raise RuntimeError("catalog went away")

        rows = read_feed(tmp_path / FEED_FILENAME)
        assert rows[1][0] == "old"
        assert sorted(p.name for p in tmp_path.iterdir()) == [FEED_FILENAME]

    def test_uncreatable_directory(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(ExportSystemError, match="Failed to create CSV file"):
            CsvFeedWriter(blocker / "exports").open()

    def test_csv_info(self, tmp_path):
        assert csv_info(tmp_path) is None
        with CsvFeedWriter(tmp_path) as writer:
            writer.write_row(["multi\nline"] + [""] * (len(CSV_HEADERS) - 1))
            writer.write_row(["plain"] + [""] * (len(CSV_HEADERS) - 1))
        info = csv_info(tmp_path)
        assert info["rows"] == 2
        assert info["size"] > 0
        assert info["path"].endswith(FEED_FILENAME)


class TestExportTally:
    def test_summary(self):
        tally = ExportTally(exported=3)
        tally.skip(SKIP_NO_GTIN)
        tally.skip(SKIP_NO_GTIN)
        tally.skip(SKIP_NO_PRICE)
        assert tally.skipped == 3
        assert tally.summary() == "CSV export completed. Exported: 3 products, Skipped: 3"


class TestRunExport:
    def test_variable_and_simple_products(self, engine, config):
        """One variable product with two variations plus one simple product -> 3 data rows."""
        result = engine.run_export(config)

        assert result.success is True
        assert result.exported == 3
        assert result.skipped == 0
        assert result.upload is None
        assert result.message == "CSV export completed. Exported: 3 products, Skipped: 0"

        rows = read_feed(config.export_dir / FEED_FILENAME)
        assert rows[0] == CSV_HEADERS
        assert len(rows) == 4
        titles = [r[CSV_HEADERS.index("title")] for r in rows[1:]]
        assert titles == ["Trail Runner - Red, 42", "Trail Runner - Blue, 43", "Running Socks"]
        blue = rows[2]
        assert blue[CSV_HEADERS.index("price")] == "89.50"
        assert blue[CSV_HEADERS.index("stock")] == "999"
        assert blue[CSV_HEADERS.index("main_image_url")] == "https://shop.example/img/runner-blue.jpg"
        socks = rows[3]
        assert socks[CSV_HEADERS.index("gtin")] == "76123450000"
        assert socks[CSV_HEADERS.index("brand")] == "SockCo"

    def test_feed_starts_with_bom(self, engine, config):
        engine.run_export(config)
        assert (config.export_dir / FEED_FILENAME).read_bytes()[:3] == b"\xef\xbb\xbf"

    def test_reruns_are_byte_identical(self, engine, config):
        engine.run_export(config)
        first = (config.export_dir / FEED_FILENAME).read_bytes()
        engine.run_export(config)
        assert (config.export_dir / FEED_FILENAME).read_bytes() == first

    def test_no_temp_files_left(self, engine, config):
        engine.run_export(config)
        assert [p.name for p in config.export_dir.iterdir()] == [FEED_FILENAME]

    def test_skip_reasons(self, config, log_store, make_product):
        products = [
            make_product(1),
            make_product(2, price=""),
            make_product(3, meta={}, sku="ABC123"),
        ]
        catalog = MemoryCatalog(products, product_ids=[1, 2, 3, 99])
        result = ExportEngine(catalog, log_store).run_export(config)

        assert result.success is True
        assert result.exported == 1
        assert result.skipped == 3
        assert result.skip_reasons == {
            SKIP_NO_PRICE: 1,
            SKIP_NO_GTIN: 1,
            SKIP_PRODUCT_NOT_FOUND: 1,
        }

    def test_missing_variation_counts_as_not_found(self, config, log_store, shoe_products):
        runner = shoe_products[0]
        runner.variation_ids = [11, 12, 13]
        result = ExportEngine(MemoryCatalog(shoe_products), log_store).run_export(config)
        assert result.exported == 3
        assert result.skip_reasons == {SKIP_PRODUCT_NOT_FOUND: 1}

    def test_empty_catalog_writes_header_only(self, config, log_store):
        result = ExportEngine(MemoryCatalog([]), log_store).run_export(config)
        assert result.success is True
        assert result.exported == 0
        assert read_feed(config.export_dir / FEED_FILENAME) == [CSV_HEADERS]

    def test_result_is_logged(self, engine, config, log_store):
        engine.run_export(config)
        logs = log_store.get_logs()
        assert len(logs) == 1
        assert logs[0]["success"] is True
        assert logs[0]["exported"] == 3

    def test_unwritable_directory_fails_without_raising(self, engine, log_store, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        config = SyncConfig(settings=ExportSettings(), export_dir=blocker)

        result = engine.run_export(config)

        assert result.success is False
        assert "Failed to create CSV file" in result.message
        assert result.errors == [result.message]
        assert log_store.get_logs()[0]["success"] is False

    def test_catalog_failure_keeps_previous_feed(self, engine, config):
        engine.run_export(config)
        before = (config.export_dir / FEED_FILENAME).read_bytes()

        engine.catalog = MagicMock()
        engine.catalog.list_product_ids.return_value = [10]
        engine.catalog.get_product.side_effect = RuntimeError("database gone")
        result = engine.run_export(config)

        assert result.success is False
        assert result.message == "database gone"
        assert (config.export_dir / FEED_FILENAME).read_bytes() == before

    def test_upload_outcome_attached(self, shoe_catalog, log_store, config):
        dispatcher = MagicMock()
        dispatcher.upload.return_value = UploadOutcome(attempted=True, success=False, error="nope")
        result = ExportEngine(shoe_catalog, log_store, dispatcher).run_export(config)

        assert result.success is True
        assert result.upload == UploadOutcome(attempted=True, success=False, error="nope")
        dispatcher.upload.assert_called_once_with(config.export_dir / FEED_FILENAME, config.credentials)

    def test_unattempted_upload_omitted(self, shoe_catalog, log_store, config):
        dispatcher = MagicMock()
        dispatcher.upload.return_value = UploadOutcome(attempted=False)
        result = ExportEngine(shoe_catalog, log_store, dispatcher).run_export(config)
        assert result.upload is None

    def test_dropped_sftp_connection_keeps_export(self, shoe_catalog, log_store, config):
        sftp_config = replace(config, credentials=SFTP_CREDENTIALS)
        with patch("paramiko.SSHClient") as client_cls:
            sftp = client_cls.return_value.open_sftp.return_value
            sftp.put.side_effect = paramiko.SSHException("Server connection dropped")
            result = ExportEngine(shoe_catalog, log_store, UploadDispatcher()).run_export(sftp_config)

        assert result.success is True
        assert result.exported == 3
        assert result.upload.success is False
        assert result.upload.error == "SFTP transfer failed: Server connection dropped"
        assert (config.export_dir / FEED_FILENAME).is_file()
        assert log_store.get_logs()[0]["upload"]["success"] is False


class TestExportBatches:
    def test_yields_processed_counts(self, tmp_path, make_product):
        products = [make_product(i) for i in range(1, 61)]
        engine = ExportEngine(MemoryCatalog(products), LogStore())
        tally = ExportTally()
        with CsvFeedWriter(tmp_path) as writer:
            counts = list(
                engine.export_batches([p.product_id for p in products], ExportSettings(), writer, tally, 25)
            )
        assert counts == [25, 50, 60]
        assert tally.exported == 60
        assert writer.rows_written == 60
