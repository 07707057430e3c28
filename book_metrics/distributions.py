"""Group and cause breakdowns shared by the volumetry and backlog sections."""
from __future__ import annotations

import math
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .records import TicketRecord
from .snapshots import BacklogGroup, CauseBreakdown, GroupBreakdown

NO_GROUP_LABEL = "Sem Grupo"
NO_RESOLUTION_LABEL = "Sem Código de Resolução"


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (12.5 -> 13)."""
    return int(math.floor(value + 0.5))


def percentage(part: int, whole: int) -> int:
    """Rounded integer percentage; 0 when ``whole`` is 0."""
    if whole <= 0:
        return 0
    return round_half_up(part / whole * 100)


def group_label(record: TicketRecord) -> str:
    return record.group_name or NO_GROUP_LABEL


def cause_label(record: TicketRecord) -> str:
    return record.resolution_code or NO_RESOLUTION_LABEL


def dedupe(*record_sets: Iterable[TicketRecord]) -> List[TicketRecord]:
    """Union of record sets keyed by ticket id, first occurrence wins."""
    seen: Dict[str, TicketRecord] = {}
    for records in record_sets:
        for record in records:
            seen.setdefault(record.id, record)
    return list(seen.values())


def _ordered(counter: Counter, labels: Iterable[str]) -> List[str]:
    # Largest first, label as tie-breaker so output is deterministic.
    return sorted(set(labels), key=lambda label: (-counter[label], label))


def group_breakdown(
    union: Sequence[TicketRecord],
    opened_ids: Iterable[str],
    closed_ids: Iterable[str],
) -> Tuple[GroupBreakdown, ...]:
    opened = set(opened_ids)
    closed = set(closed_ids)
    totals: Counter = Counter()
    opened_counts: Counter = Counter()
    closed_counts: Counter = Counter()
    for record in union:
        label = group_label(record)
        totals[label] += 1
        if record.id in opened:
            opened_counts[label] += 1
        if record.id in closed:
            closed_counts[label] += 1
    grand_total = len(union)
    return tuple(
        GroupBreakdown(
            group=label,
            opened=opened_counts[label],
            closed=closed_counts[label],
            total=totals[label],
            percentage=percentage(totals[label], grand_total),
        )
        for label in _ordered(totals, totals)
    )


def cause_breakdown(
    records: Sequence[TicketRecord],
    opened_ids: Optional[Iterable[str]] = None,
    closed_ids: Optional[Iterable[str]] = None,
) -> Tuple[CauseBreakdown, ...]:
    """Group by resolution code with incident/request and opened/closed counts.

    For the backlog (no period sets) every ticket counts as opened.
    """
    opened = set(opened_ids) if opened_ids is not None else {record.id for record in records}
    closed = set(closed_ids) if closed_ids is not None else set()
    totals: Counter = Counter()
    incidents: Counter = Counter()
    opened_counts: Counter = Counter()
    closed_counts: Counter = Counter()
    for record in records:
        label = cause_label(record)
        totals[label] += 1
        if record.is_incident:
            incidents[label] += 1
        if record.id in opened:
            opened_counts[label] += 1
        if record.id in closed:
            closed_counts[label] += 1
    return tuple(
        CauseBreakdown(
            cause=label,
            incident=incidents[label],
            request=totals[label] - incidents[label],
            opened=opened_counts[label],
            closed=closed_counts[label],
            total=totals[label],
        )
        for label in _ordered(totals, totals)
    )


def backlog_groups(records: Sequence[TicketRecord]) -> Tuple[BacklogGroup, ...]:
    totals: Counter = Counter()
    incidents: Counter = Counter()
    for record in records:
        label = group_label(record)
        totals[label] += 1
        if record.is_incident:
            incidents[label] += 1
    grand_total = len(records)
    return tuple(
        BacklogGroup(
            group=label,
            incident=incidents[label],
            request=totals[label] - incidents[label],
            total=totals[label],
            percentage=percentage(totals[label], grand_total),
        )
        for label in _ordered(totals, totals)
    )
