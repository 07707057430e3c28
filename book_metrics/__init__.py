"""Service metrics engine behind the monthly client books."""

from .config import EngineSettings, load_config, resolve_path
from .logging_setup import configure_logging
from .periods import PeriodWindow
from .filters import TicketFilter, TicketFilterBuilder
from .repository import InMemoryTicketStore, NotFoundError, RepositoryError
from .rest_store import RestStoreClient
from .assembler import BatchResult, SnapshotAssembler
from .snapshots import BookMetricsSnapshot, save_snapshot_json

__all__ = [
    "EngineSettings",
    "load_config",
    "resolve_path",
    "configure_logging",
    "PeriodWindow",
    "TicketFilter",
    "TicketFilterBuilder",
    "InMemoryTicketStore",
    "NotFoundError",
    "RepositoryError",
    "RestStoreClient",
    "BatchResult",
    "SnapshotAssembler",
    "BookMetricsSnapshot",
    "save_snapshot_json",
]
