"""Operational logging for package manifest runs."""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime

LOGGER_NAME = "manifestpack"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def generate_run_id() -> str:
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{timestamp}_{uuid.uuid4().hex[:8]}"


def setup_operational_logger(
    log_dir: str | None,
    run_id: str,
    *,
    level: int | str = logging.INFO,
) -> tuple[logging.Logger, str | None]:
    """
    Configure the `manifestpack` logger for one run.

    Console output goes to stderr so stdout stays free for stream mode. When
    `log_dir` is given, a DEBUG-level UTF-8 file `<run_id>_oplog.log` is
    written there as well. Returns (logger, log_file_path or None).
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    log_file: str | None = None
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, f"{run_id}_oplog.log")
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False

    logger.debug("Operational logging initialized for run %s", run_id)
    if log_file:
        logger.debug("Operational log file: %s", log_file)
    return logger, log_file
