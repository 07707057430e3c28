"""Currently open tickets, aged into fixed day bands."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from .config import EngineSettings
from .distributions import backlog_groups, cause_breakdown
from .filters import TicketFilterBuilder
from .periods import PeriodWindow, as_utc
from .records import CompanyProfile, TicketRecord
from .repository import TicketRepository
from .sections import SectionAggregator
from .snapshots import AgingBand, BacklogSnapshot


@dataclass(frozen=True)
class AgingRule:
    label: str
    min_days: int
    max_days: Optional[int]
    max_inclusive: bool

    def contains(self, days: int) -> bool:
        if days < self.min_days:
            return False
        if self.max_days is None:
            return True
        return days <= self.max_days if self.max_inclusive else days < self.max_days


# Evaluated in this order; the first matching band wins.
AGING_RULES: Tuple[AgingRule, ...] = (
    AgingRule("ACIMA DE 60 DIAS", 61, None, False),
    AgingRule("30 A 60 DIAS", 30, 60, True),
    AgingRule("15 A 30 DIAS", 15, 30, False),
    AgingRule("05 A 15 DIAS", 5, 15, False),
    AgingRule("ATÉ 5 DIAS", 0, 5, False),
)


def age_in_days(opened_at: datetime, now: datetime) -> int:
    days = math.floor((as_utc(now) - as_utc(opened_at)).total_seconds() / 86400)
    return max(days, 0)


def classify_age(days: int) -> AgingRule:
    for rule in AGING_RULES:
        if rule.contains(days):
            return rule
    raise ValueError(f"No aging band covers {days} days")


def aging_distribution(records: Sequence[TicketRecord], now: datetime) -> Tuple[AgingBand, ...]:
    """Count tickets per band; every band is emitted, empty ones with zeros."""
    counts = {rule.label: [0, 0] for rule in AGING_RULES}
    for record in records:
        rule = classify_age(age_in_days(record.opened_at, now))
        counts[rule.label][0 if record.is_incident else 1] += 1
    return tuple(
        AgingBand(
            label=rule.label,
            min_days=rule.min_days,
            max_days=rule.max_days,
            incident=counts[rule.label][0],
            request=counts[rule.label][1],
            total=sum(counts[rule.label]),
        )
        for rule in AGING_RULES
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BacklogAggregator(SectionAggregator[BacklogSnapshot]):
    """Builds the backlog section from a status query, independent of the period windows."""

    name = "backlog"

    def __init__(
        self,
        repository: TicketRepository,
        *,
        filter_builder: Optional[TicketFilterBuilder] = None,
        settings: Optional[EngineSettings] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(filter_builder=filter_builder, settings=settings, logger=logger)
        self.repository = repository
        self.clock = clock

    def compute(self, company: CompanyProfile, period: PeriodWindow) -> BacklogSnapshot:
        records: List[TicketRecord] = self.repository.query_backlog(
            self.filter_builder.backlog(company)
        )
        incident = sum(1 for record in records if record.is_incident)
        snapshot = BacklogSnapshot(
            total=len(records),
            incident=incident,
            request=len(records) - incident,
            aging=aging_distribution(records, self.clock()),
            groups=backlog_groups(records),
            causes=cause_breakdown(records),
        )
        self.logger.info(
            "Backlog for %s: %s open tickets (%s incidents)", company.id, snapshot.total, incident
        )
        return snapshot

    def empty(self, company: CompanyProfile, period: PeriodWindow) -> BacklogSnapshot:
        return BacklogSnapshot(aging=aging_distribution((), self.clock()))
