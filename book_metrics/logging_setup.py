"""Logging configuration for book generation runs."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from rich.logging import RichHandler

from .config import resolve_path

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
# Company builds run on pooled threads ("books_N"); keep the thread in file logs.
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"
DEFAULT_LOG_PATH = "logs/book_metrics.log"

# HTTP internals log every pooled connection at DEBUG.
NOISY_LOGGERS = ("urllib3",)


def _console_handler(console_cfg: Dict[str, Any]) -> logging.Handler:
    level = console_cfg.get("level", "INFO")
    if console_cfg.get("rich_format", False):
        handler: logging.Handler = RichHandler(level=level, rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        return handler
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(
    file_cfg: Dict[str, Any], *, base_dir: Optional[Path], run_label: Optional[str]
) -> logging.Handler:
    raw_path = str(file_cfg.get("path", DEFAULT_LOG_PATH))
    # ``{run}`` in the path is replaced by the run's period, e.g. logs/books_{run}.log
    raw_path = raw_path.replace("{run}", run_label or "all")
    file_path = resolve_path(raw_path, base=base_dir)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(file_path, mode="a", encoding="utf-8")
    handler.setLevel(file_cfg.get("level", "DEBUG"))
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def configure_logging(
    config: Dict[str, Any], *, base_dir: Path | None = None, run_label: Optional[str] = None
) -> None:
    """Install the console and file sinks described by the ``logging`` section.

    ``logging.libraries_level`` caps third-party HTTP loggers (WARNING by default)
    so store paging stays readable at DEBUG.
    """
    root = logging.getLogger()
    logging.captureWarnings(True)
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    logging_config = config.get("logging", {})
    console_cfg = logging_config.get("console", {})
    file_cfg = logging_config.get("file", {})

    if console_cfg.get("enabled", True):
        root.addHandler(_console_handler(console_cfg))
    if file_cfg.get("enabled", True):
        root.addHandler(_file_handler(file_cfg, base_dir=base_dir, run_label=run_label))

    libraries_level = logging_config.get("libraries_level", "WARNING")
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(libraries_level)
