# desktop_shell/core/logs.py
"""
Desktop Shell – logging setup
=============================

• `init_logging()`   – console + `logs/run.log` for the whole process
• `get_logger(name)` – per-entity logger, also written to `logs/<name>.log`,
                       every line prefixed with `[name]`
• `clone(log, sub)`  – sub-entity logger that shares the entity's file
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from desktop_shell.core import config

ROOT_LOGGER = "desktop_shell"
_FORMAT = "%(asctime)s %(levelname)s: %(message)s"


class _EntityFilter(logging.Filter):
    """Prefix every message with `[entity]` (only once, even when propagated)."""

    def __init__(self, entity: str) -> None:
        super().__init__()
        self.entity = entity

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "entity", None):
            record.entity = self.entity
            record.msg = f"[{self.entity}] {record.msg}"
        return True


def _log_dir() -> Path:
    config.LOG_DIR.mkdir(parents=True, exist_ok=True)
    return config.LOG_DIR


def _has_file_handler(logger: logging.Logger, path: Path) -> bool:
    return any(
        isinstance(h, logging.FileHandler) and Path(h.baseFilename) == path
        for h in logger.handlers
    )


def init_logging(level: int = logging.DEBUG) -> logging.Logger:
    """Attach console & run.log handlers to the package root logger."""
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)

    formatter = logging.Formatter(_FORMAT)
    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(formatter)
        root.addHandler(console)

    run_log = _log_dir() / "run.log"
    if not _has_file_handler(root, run_log):
        fh = logging.FileHandler(run_log, encoding="utf-8")
        fh.setFormatter(formatter)
        root.addHandler(fh)
    return root


def get_logger(entity: Optional[str] = None, *, to_file: bool = True) -> logging.Logger:
    """Return the logger for an entity (the package root logger when None)."""
    if not entity:
        return logging.getLogger(ROOT_LOGGER)

    logger = logging.getLogger(f"{ROOT_LOGGER}.{entity}")
    if not any(isinstance(f, _EntityFilter) for f in logger.filters):
        logger.addFilter(_EntityFilter(entity))

    if to_file:
        path = _log_dir() / f"{entity}.log"
        if not _has_file_handler(logger, path):
            fh = logging.FileHandler(path, encoding="utf-8")
            fh.setFormatter(logging.Formatter(_FORMAT))
            logger.addHandler(fh)
    return logger


def clone(logger: logging.Logger, sub_entity: str) -> logging.Logger:
    """Child logger tagged `[sub_entity]`; its records reach the parent's file."""
    child = logger.getChild(sub_entity)
    if not any(isinstance(f, _EntityFilter) for f in child.filters):
        child.addFilter(_EntityFilter(sub_entity))
    return child
