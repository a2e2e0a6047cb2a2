#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
nalda_sync.py

Command-line entry point for the Nalda marketplace feed exporter.

    nalda_sync.py export [--progressive]     write the feed (and upload it)
    nalda_sync.py serve                      HTTP trigger surface + scheduler
    nalda_sync.py test-connection            check the FTP/SFTP settings
    nalda_sync.py logs | clear-logs | info   export history / feed file

The catalog comes from WooCommerce (WOOCOMMERCE_URL / _KEY / _SECRET) unless
--catalog points at a CSV/XLSX spreadsheet.
"""

import argparse
import json
import logging
import sys
import time
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from core.catalog import Catalog, load_catalog_file
from core.clients.woocommerce import WooCommerceCatalog, WooCommerceClient
from core.errors import NaldaSyncError
from core.exporters.csv_feed import csv_info
from core.logstore import LOG_FILENAME, LogStore
from core.models import STATUS_COMPLETE
from core.scheduler import ExportScheduler
from core.service import NaldaSyncService
from core.settings import apply_env_overrides, load_config, load_settings
from core.upload import UploadDispatcher
from ns_logging import setup_logging

POLL_INTERVAL = 1.0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export the shop catalog as a Nalda marketplace CSV feed.")
    parser.add_argument("--settings", type=str, default=None, help="Settings JSON file")
    parser.add_argument("--catalog", type=str, default=None, help="Catalog spreadsheet (CSV or XLSX)")
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument("--log-dir", type=str, default=None, help="Directory for run log files")

    sub = parser.add_subparsers(dest="command", required=True)

    export = sub.add_parser("export", help="Write the feed now (uploads when FTP is enabled)")
    export.add_argument(
        "--progressive",
        action="store_true",
        help="Run through the background job runner and print progress",
    )

    serve = sub.add_parser("serve", help="Run the HTTP trigger surface and the scheduler")
    serve.add_argument("--host", type=str, default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--no-scheduler", action="store_true", help="Do not start scheduled exports")

    sub.add_parser("test-connection", help="Check FTP/SFTP credentials and remote path")
    sub.add_parser("logs", help="Print the export history")
    sub.add_parser("clear-logs", help="Delete the export history")
    sub.add_parser("info", help="Print details of the current feed file")
    return parser.parse_args(argv)


def build_catalog(args: argparse.Namespace, raw: Dict[str, Any]) -> Catalog:
    if args.catalog:
        path = Path(args.catalog)
        if not path.exists():
            raise NaldaSyncError(f"Catalog file does not exist: {path}")
        return load_catalog_file(path)

    url = raw.get("woocommerce_url")
    key = raw.get("woocommerce_key")
    secret = raw.get("woocommerce_secret")
    if not (url and key and secret):
        raise NaldaSyncError(
            "No catalog source: pass --catalog or set WOOCOMMERCE_URL, WOOCOMMERCE_KEY and WOOCOMMERCE_SECRET."
        )
    return WooCommerceCatalog(WooCommerceClient(url, key, secret))


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def run_progressive(service: NaldaSyncService) -> int:
    outcome = service.jobs.start_run()
    if not outcome.started:
        logging.error("An export is already in progress (run %s).", outcome.run_id)
        return 1
    last_percent = -1
    while True:
        record = service.jobs.get_progress(outcome.run_id)
        if record.percent != last_percent:
            print(f"[{record.percent:3d}%] {record.message}", flush=True)
            last_percent = record.percent
        if not record.is_active:
            break
        time.sleep(POLL_INTERVAL)
    record = service.jobs.wait(outcome.run_id)
    print_json(record.to_dict())
    return 0 if record.status == STATUS_COMPLETE else 1


def serve(service: NaldaSyncService, args: argparse.Namespace) -> int:
    import uvicorn

    from core.api import create_app

    scheduler = None
    if not args.no_scheduler:
        scheduler = ExportScheduler(service.run_export_now, service.config_provider)
        scheduler.start()
    try:
        uvicorn.run(create_app(service), host=args.host, port=args.port)
    finally:
        if scheduler is not None:
            scheduler.stop(timeout=5)
        service.shutdown()
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    if argv is None:
        argv = sys.argv[1:]

    load_dotenv()
    args = parse_args(argv)
    setup_logging(level=getattr(logging, args.log_level), log_root=args.log_dir)

    settings_path = Path(args.settings).expanduser() if args.settings else None
    config_provider = partial(load_config, settings_path)

    try:
        config = config_provider()
        if args.command == "test-connection":
            outcome = UploadDispatcher().test_connection(config.credentials)
            print(outcome.message)
            sys.exit(0 if outcome.success else 1)

        if args.command in ("logs", "clear-logs", "info"):
            log_store = LogStore(config.export_dir / LOG_FILENAME)
            if args.command == "logs":
                print_json(log_store.get_logs())
            elif args.command == "clear-logs":
                log_store.clear_logs()
                print("Export logs cleared.")
            else:
                info = csv_info(config.export_dir)
                if info is None:
                    print("CSV file not found. Please generate the export first.")
                    sys.exit(1)
                info["last_export"] = log_store.last_export
                print_json(info)
            sys.exit(0)

        raw = apply_env_overrides(load_settings(settings_path))
        service = NaldaSyncService(build_catalog(args, raw), config_provider=config_provider)

        if args.command == "serve":
            sys.exit(serve(service, args))

        if args.progressive:
            code = run_progressive(service)
        else:
            result = service.run_export_now()
            print_json(result.to_dict())
            code = 0 if result.success else 1
        service.shutdown()
        sys.exit(code)
    except NaldaSyncError as e:
        logging.error("%s", e)
        sys.exit(1)
    except Exception as e:
        logging.exception("Fatal error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
