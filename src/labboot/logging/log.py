# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/labboot/logging/log.py

from __future__ import annotations

import logging
from pathlib import Path
from datetime import datetime, timezone
import uuid

LOGGER_NAME = "labboot"
FALLBACK_LOG_DIR = Path.home() / ".labboot" / "logs"

# libraries that are chatty at DEBUG and would drown the run trace
NOISY = ("paramiko", "pymysql")

FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"


def _open_log_file(log_dir: Path, run_id: str) -> logging.FileHandler:
    log_dir.mkdir(parents=True, exist_ok=True)
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return logging.FileHandler(log_dir / f"{LOGGER_NAME}-{ts}-{run_id}.log")


def init_logging(
    log_dir: Path | None = None,
    *,
    verbose: bool = False,
) -> tuple[logging.Logger, str, Path]:
    """
    Set up the "labboot" logger for one bootstrap run.

    The run trace (DEBUG) goes to <log_dir>/labboot-<ts>-<run_id>.log; the
    console gets INFO, or DEBUG with --debug. When *log_dir* is not writable
    (a manual re-run as a regular user against /var/log) the trace lands in
    ~/.labboot/logs instead.

    Returns (logger, run_id, log_path); the run_id is shared with the
    orchestrator so log lines, events and the marker correlate.
    """
    run_id = str(uuid.uuid4())

    try:
        fh = _open_log_file(log_dir or FALLBACK_LOG_DIR, run_id)
    except PermissionError:
        fh = _open_log_file(FALLBACK_LOG_DIR, run_id)
    log_path = Path(fh.baseFilename)

    formatter = logging.Formatter(FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)

    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(formatter)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.addHandler(fh)
    logger.addHandler(ch)
    logger.propagate = False

    for name in NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("labboot run %s, trace in %s", run_id, log_path)
    return logger, run_id, log_path
