"""Run logger construction."""

from __future__ import annotations

import logging

from .io_utils import RunPaths

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_FILENAME = "formschema.log"


def build_logger(run_paths: RunPaths, verbose: bool = False) -> logging.Logger:
    """Console plus per-run file logger; the file always records debug."""
    logger = logging.getLogger(f"formschema.run.{run_paths.run_id}")
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    if logger.handlers:
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%H:%M:%S")

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    file_handler = logging.FileHandler(
        run_paths.base_dir / LOG_FILENAME, encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    return logger


__all__ = ["build_logger", "LOG_FORMAT", "LOG_FILENAME"]
