# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/meshlab/logging/log.py

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

LOG_DIR_ENV = "MESHLAB_LOG_DIR"

FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
CONSOLE_FORMAT = "%(levelname)-7s %(message)s"


def log_dir() -> Path:
    """`$MESHLAB_LOG_DIR`, else `~/.meshlab/logs`."""
    override = os.environ.get(LOG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".meshlab" / "logs"


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "meshlab",
    verbose: bool = False,
    run_id: str | None = None,
) -> tuple[logging.Logger, str, Path]:
    """
    Configure the `meshlab` logger for one run.

    The per-run file always gets the full DEBUG trace, which includes every
    kubectl / helm argv and its output. The console only shows warnings
    unless --debug is passed, since the ConsoleObserver already prints the
    operator-facing progress lines.

    Returns (logger, run_id, log_path); the run_id is shared with the
    event observers so the log file and the .jsonl stream correlate.
    """
    run_id = run_id or str(uuid.uuid4())
    base_dir = base_dir or log_dir()
    base_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.propagate = False

    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.WARNING)
    ch.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.debug("=== meshlab run %s ===", run_id)
    logger.debug("log_file=%s", log_path)

    return logger, run_id, log_path
