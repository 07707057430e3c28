"""Frozen value objects that make up a book metrics snapshot."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Generic, Iterable, Optional, Tuple, TypeVar

from .records import TicketRecord

T = TypeVar("T")


class DataSource(str, Enum):
    LIVE = "live"
    FALLBACK = "fallback"


class SLAStatus(str, Enum):
    ON_TIME = "no_prazo"
    BREACHED = "vencido"


@dataclass(frozen=True)
class TypeSplit:
    incident: int = 0
    request: int = 0
    total: int = 0

    @classmethod
    def from_records(cls, records: Iterable[TicketRecord]) -> "TypeSplit":
        incident = 0
        request = 0
        for record in records:
            if record.is_incident:
                incident += 1
            else:
                request += 1
        return cls(incident=incident, request=request, total=incident + request)


@dataclass(frozen=True)
class TrendPoint:
    label: str
    month: int
    year: int
    opened: int
    closed: int


@dataclass(frozen=True)
class GroupBreakdown:
    group: str
    opened: int
    closed: int
    total: int
    percentage: int


@dataclass(frozen=True)
class CauseBreakdown:
    cause: str
    incident: int
    request: int
    opened: int
    closed: int
    total: int


@dataclass(frozen=True)
class VolumetrySnapshot:
    opened: TypeSplit = field(default_factory=TypeSplit)
    closed: TypeSplit = field(default_factory=TypeSplit)
    trend: Tuple[TrendPoint, ...] = ()
    groups: Tuple[GroupBreakdown, ...] = ()
    causes: Tuple[CauseBreakdown, ...] = ()
    union_total: int = 0
    resolution_rate: int = 0
    data_source: DataSource = DataSource.LIVE


@dataclass(frozen=True)
class SLAHistoryPoint:
    label: str
    month: int
    year: int
    percentage: int
    status: SLAStatus
    eligible: bool


@dataclass(frozen=True)
class BreachedTicket:
    ticket_id: str
    type: str
    opened_at: str
    solved_at: str
    group: str


@dataclass(frozen=True)
class SLASnapshot:
    percentage: int = 0
    target_percentage: float = 0.0
    status: SLAStatus = SLAStatus.ON_TIME
    eligible: bool = False
    not_eligible_message: Optional[str] = None
    closed: int = 0
    incidents_closed: int = 0
    eligible_incidents: int = 0
    breaches: int = 0
    eligible_breaches: int = 0
    non_eligible_breaches: int = 0
    non_eligible_message: Optional[str] = None
    history: Tuple[SLAHistoryPoint, ...] = ()
    variance: Optional[float] = None
    breached_tickets: Tuple[BreachedTicket, ...] = ()
    data_source: DataSource = DataSource.LIVE


@dataclass(frozen=True)
class AgingBand:
    label: str
    min_days: int
    max_days: Optional[int]
    incident: int = 0
    request: int = 0
    total: int = 0


@dataclass(frozen=True)
class BacklogGroup:
    group: str
    incident: int
    request: int
    total: int
    percentage: int


@dataclass(frozen=True)
class BacklogSnapshot:
    total: int = 0
    incident: int = 0
    request: int = 0
    aging: Tuple[AgingBand, ...] = ()
    groups: Tuple[BacklogGroup, ...] = ()
    causes: Tuple[CauseBreakdown, ...] = ()
    data_source: DataSource = DataSource.LIVE


@dataclass(frozen=True)
class ConsumptionPoint:
    label: str
    month: int
    year: int
    hours: float
    formatted: str


@dataclass(frozen=True)
class ConsumptionCause:
    cause: str
    quantity: int
    hours: float
    percentage: int


@dataclass(frozen=True)
class ConsumptionSnapshot:
    total_hours: float = 0.0
    incident_hours: float = 0.0
    request_hours: float = 0.0
    baseline_hours: float = 0.0
    consumed_percentage: int = 0
    total_formatted: str = "00:00:00"
    incident_formatted: str = "--"
    request_formatted: str = "00:00:00"
    baseline_formatted: str = "00:00:00"
    history: Tuple[ConsumptionPoint, ...] = ()
    causes: Tuple[ConsumptionCause, ...] = ()
    record_count: int = 0
    malformed_records: int = 0
    data_source: DataSource = DataSource.LIVE


@dataclass(frozen=True)
class CoverSummary:
    company_name: str
    short_name: Optional[str]
    contract_type: Optional[str]
    period_label: str
    month: int
    year: int
    generated_at: str
    opened_total: int
    closed_total: int
    sla_percentage: int
    backlog_total: int


@dataclass(frozen=True)
class SectionResult(Generic[T]):
    """Outcome of one aggregator: its snapshot plus whether it is live data."""

    name: str
    value: T
    data_source: DataSource = DataSource.LIVE
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.data_source is DataSource.LIVE

    @classmethod
    def live(cls, name: str, value: T) -> "SectionResult[T]":
        return cls(name=name, value=value)

    @classmethod
    def fallback(cls, name: str, value: T, error: str) -> "SectionResult[T]":
        return cls(name=name, value=value, data_source=DataSource.FALLBACK, error=error)


@dataclass(frozen=True)
class SectionStatus:
    name: str
    data_source: DataSource
    error: Optional[str] = None


@dataclass(frozen=True)
class BookMetricsSnapshot:
    """Everything a book needs, computed once for (company, month, year)."""

    company_id: str
    month: int
    year: int
    generated_at: datetime
    cover: CoverSummary
    volumetry: VolumetrySnapshot
    sla: SLASnapshot
    backlog: BacklogSnapshot
    consumption: ConsumptionSnapshot
    sections: Tuple[SectionStatus, ...] = ()

    @property
    def key(self) -> Tuple[str, int, int]:
        return (self.company_id, self.month, self.year)

    @property
    def is_partial(self) -> bool:
        return any(section.data_source is DataSource.FALLBACK for section in self.sections)

    def to_dict(self) -> Dict[str, Any]:
        return _normalise_for_json(asdict(self))


def _normalise_for_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _normalise_for_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalise_for_json(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    return value


def save_snapshot_json(snapshot: BookMetricsSnapshot, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8"
    )
    return output_path
