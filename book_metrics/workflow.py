"""Higher level workflows used by the command line entry point."""
from __future__ import annotations

import json
import logging
import signal
import sys
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .assembler import BatchResult, SnapshotAssembler
from .config import ConfigError, EngineSettings, load_config, resolve_path
from .logging_setup import configure_logging
from .rest_store import RestStoreClient
from .snapshots import save_snapshot_json

LOGGER = logging.getLogger(__name__)


def _current_utc_timestamp() -> str:
    """Return a compact UTC timestamp for summary filenames."""

    return datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")


@dataclass
class BookOptions:
    config_path: Optional[str]
    month: int
    year: int
    company_ids: Optional[List[str]] = None
    output_directory: Optional[str] = None
    max_workers: Optional[int] = None
    disable_console: bool = False
    simple_console: bool = False
    console_level: Optional[str] = None
    show_console_log: bool = False


@dataclass
class BookRunSummary:
    """What a :func:`generate_books` run wrote to disk."""

    output_directory: Path
    summary_path: Path
    written: Dict[str, Path] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return bool(self.skipped)


class _BatchProgress:
    """Single-line console status for a book batch: companies done, failures, ETA."""

    _BAR_WIDTH = 24

    def __init__(self, period_label: str, enabled: bool) -> None:
        self.period_label = period_label
        self.enabled = enabled
        self.started = time.monotonic()
        self.processed = 0
        self.total = 0
        self.failed = 0

    def render(self) -> str:
        elapsed = max(time.monotonic() - self.started, 0.0)
        line = f"Books {self.period_label}"
        if self.total:
            filled = min(self.processed * self._BAR_WIDTH // self.total, self._BAR_WIDTH)
            line += f" [{'=' * filled}{' ' * (self._BAR_WIDTH - filled)}]"
        line += f" {self.processed}/{self.total} companies"
        if self.failed:
            line += f", {self.failed} failed"
        pending = self.total - self.processed
        if self.processed and pending > 0:
            line += f", ~{elapsed / self.processed * pending:.0f}s left"
        return line

    def update(self, processed: int, total: int, failed: int = 0) -> None:
        self.processed, self.total, self.failed = processed, total, failed
        if self.enabled:
            sys.stdout.write("\r" + self.render())
            sys.stdout.flush()

    def done(self) -> None:
        if self.enabled:
            sys.stdout.write("\r" + self.render() + f" in {time.monotonic() - self.started:.1f}s\n")
            sys.stdout.flush()


def _prepare_logging(config: dict, options: BookOptions, *, base_dir: Path) -> None:
    logging_config = config.setdefault("logging", {})
    console_cfg = logging_config.setdefault("console", {})
    if options.disable_console:
        console_cfg["enabled"] = False
    if options.simple_console:
        console_cfg["rich_format"] = False
    if options.console_level:
        console_cfg["level"] = options.console_level
    configure_logging(config, base_dir=base_dir, run_label=f"{options.year:04d}-{options.month:02d}")


def _create_store(config: dict) -> RestStoreClient:
    store_cfg = config.get("store", {})
    base_url = store_cfg.get("base_url")
    if not base_url:
        raise ConfigError("Configuration missing store.base_url")
    api_key = store_cfg.get("api_key")
    if not api_key:
        raise ConfigError("Configuration missing store.api_key")
    return RestStoreClient(
        base_url=base_url,
        api_key=api_key,
        tables=store_cfg.get("tables"),
        verify_ssl=store_cfg.get("verify_ssl", True),
        timeout=int(store_cfg.get("timeout", 30)),
        page_size=int(store_cfg.get("page_size", 1000)),
        rate_limit_per_minute=store_cfg.get("rate_limit_per_minute"),
    )


def snapshot_filename(company_id: str, month: int, year: int) -> str:
    safe_id = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in str(company_id))
    return f"{safe_id}_{year:04d}_{month:02d}.json"


def _write_summary(
    path: Path, options: BookOptions, batch: BatchResult, written: Dict[str, Path]
) -> Path:
    payload: Dict[str, Any] = {
        "month": options.month,
        "year": options.year,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "written": {company_id: str(file_path) for company_id, file_path in written.items()},
        "partial": sorted(
            company_id for company_id, snapshot in batch.snapshots.items() if snapshot.is_partial
        ),
        "failures": dict(batch.failures),
        "skipped": list(batch.skipped),
        "cancelled": batch.cancelled,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def generate_books(options: BookOptions, *, base_dir: Optional[Path] = None) -> BookRunSummary:
    base_dir = base_dir or Path.cwd()
    config = load_config(options.config_path)
    _prepare_logging(config, options, base_dir=base_dir)

    settings = EngineSettings.from_config(config)
    store = _create_store(config)
    company_ids = options.company_ids or store.list_company_ids()
    LOGGER.info(
        "Generating book metrics for %s company(ies), period %02d/%s",
        len(company_ids),
        options.month,
        options.year,
    )

    output_cfg = config.get("output", {})
    output_directory = resolve_path(
        options.output_directory or output_cfg.get("directory", "books"), base=base_dir
    )
    output_directory.mkdir(parents=True, exist_ok=True)

    assembler = SnapshotAssembler(
        tickets=store, companies=store, hours=store.hours(), settings=settings
    )
    cancel_event = threading.Event()

    def _cancel(signum, frame) -> None:  # pragma: no cover - exercised manually
        LOGGER.warning("Cancellation requested; companies not yet started will be skipped")
        cancel_event.set()

    handler_installed = threading.current_thread() is threading.main_thread()
    if handler_installed:
        previous_handler = signal.signal(signal.SIGINT, _cancel)

    progress = _BatchProgress(f"{options.month:02d}/{options.year}", not options.show_console_log)
    try:
        batch = assembler.build_many(
            company_ids,
            options.month,
            options.year,
            max_workers=options.max_workers,
            cancel_event=cancel_event,
            progress_callback=progress.update,
        )
    finally:
        progress.done()
        if handler_installed:
            signal.signal(signal.SIGINT, previous_handler or signal.default_int_handler)

    written: Dict[str, Path] = {}
    for company_id, snapshot in batch.snapshots.items():
        path = output_directory / snapshot_filename(company_id, options.month, options.year)
        written[company_id] = save_snapshot_json(snapshot, path)
        LOGGER.info("Book metrics for %s written to %s", company_id, path)

    summary_path = _write_summary(
        output_directory / f"batch_summary_{_current_utc_timestamp()}.json",
        options,
        batch,
        written,
    )
    LOGGER.info("Batch summary written to %s", summary_path)
    return BookRunSummary(
        output_directory=output_directory,
        summary_path=summary_path,
        written=written,
        failures=dict(batch.failures),
        skipped=list(batch.skipped),
    )
