#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ns_logging.py
===============================================================================
Central logging helper for the Nalda marketplace feed exporter.

- Sets up a single file-based logger under:
      ~/.nalda_sync/logs/run_YYYYMMDD_HHMMSS.txt

- Intended to be called ONCE at program startup (from nalda_sync.py).

Other modules (core.processing, core.upload, core.jobs, etc.) just use the
standard Python logging API:

    import logging
    logger = logging.getLogger(__name__)
    logger.info("something...")

No module should call logging.basicConfig; this module owns that.
===============================================================================
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Optional

DEFAULT_LOG_ROOT = "~/.nalda_sync/logs"


def setup_logging(level: int = logging.DEBUG, log_root: Optional[str] = None) -> str:
    """
    Configure global logging, *replacing* any existing handlers.

    Returns:
        The path to the log file being used.
    """
    root_logger = logging.getLogger()

    for h in list(root_logger.handlers):
        root_logger.removeHandler(h)

    if not log_root:
        log_root = os.getenv("NALDA_SYNC_LOG_DIR") or os.path.expanduser(DEFAULT_LOG_ROOT)

    os.makedirs(log_root, exist_ok=True)

    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(log_root, f"run_{ts}.txt")

    # File handler: capture everything at the requested level
    file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s")
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(max(level, logging.INFO))
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))

    root_logger.setLevel(level)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # paramiko is chatty at DEBUG (transport negotiation); keep it to warnings.
    logging.getLogger("paramiko").setLevel(logging.WARNING)

    root_logger.info("Logging initialized. Log file: %s", log_file)
    return log_file
