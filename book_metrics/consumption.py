"""Billable-hour consumption against the company's monthly baseline."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from .config import EngineSettings
from .distributions import percentage, round_half_up
from .periods import PeriodWindow
from .records import CompanyProfile, HourRecord, MalformedRecordError, format_hours, parse_hours
from .repository import HourRecordRepository
from .sections import SectionAggregator
from .snapshots import ConsumptionCause, ConsumptionPoint, ConsumptionSnapshot

NO_CAUSE_LABEL = "Outros"
NO_INCIDENT_HOURS = "--"


class ConsumptionAggregator(SectionAggregator[ConsumptionSnapshot]):
    """Sums billable hours for the period and the months before it."""

    name = "consumption"

    def __init__(
        self,
        repository: HourRecordRepository,
        *,
        settings: Optional[EngineSettings] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        # Hour records are not ticket-shaped, so no ticket filter is involved.
        super().__init__(settings=settings, logger=logger)
        self.repository = repository

    def hours_of(self, record: HourRecord) -> Tuple[float, bool]:
        """Return ``(hours, malformed)``; malformed values count as zero hours."""
        try:
            return parse_hours(record.hours_total), False
        except MalformedRecordError as exc:
            self.logger.warning("Skipping hours of record %s: %s", record.id, exc)
            return 0.0, True

    def compute(self, company: CompanyProfile, period: PeriodWindow) -> ConsumptionSnapshot:
        periods = period.range_back(self.settings.consumption_months)
        records = self.repository.query_range(company.id, periods[0], periods[-1])

        monthly: Dict[Tuple[int, int], float] = defaultdict(float)
        current: List[Tuple[HourRecord, float]] = []
        malformed = 0
        for record in records:
            hours, bad = self.hours_of(record)
            monthly[record.period_key] += hours
            if record.period_key == (period.year, period.month):
                current.append((record, hours))
                malformed += int(bad)

        total = sum(hours for _, hours in current)
        incident = sum(hours for record, hours in current if record.is_incident)
        request = total - incident
        baseline = company.baseline_hours

        history = tuple(
            ConsumptionPoint(
                label=month.short_label,
                month=month.month,
                year=month.year,
                hours=round(monthly[(month.year, month.month)], 2),
                formatted=format_hours(monthly[(month.year, month.month)]),
            )
            for month in periods
        )
        snapshot = ConsumptionSnapshot(
            total_hours=round(total, 2),
            incident_hours=round(incident, 2),
            request_hours=round(request, 2),
            baseline_hours=round(baseline, 2),
            consumed_percentage=round_half_up(total / baseline * 100) if baseline > 0 else 0,
            total_formatted=format_hours(total),
            incident_formatted=format_hours(incident) if incident > 0 else NO_INCIDENT_HOURS,
            request_formatted=format_hours(request),
            baseline_formatted=format_hours(baseline),
            history=history,
            causes=self.causes(current),
            record_count=len(current),
            malformed_records=malformed,
        )
        self.logger.info(
            "Consumption for %s (%s): %s of %s baseline hours (%s%%), %s malformed record(s)",
            company.id,
            period,
            snapshot.total_formatted,
            snapshot.baseline_formatted,
            snapshot.consumed_percentage,
            malformed,
        )
        return snapshot

    @staticmethod
    def causes(entries: Sequence[Tuple[HourRecord, float]]) -> Tuple[ConsumptionCause, ...]:
        quantities: Dict[str, int] = defaultdict(int)
        hours: Dict[str, float] = defaultdict(float)
        for record, value in entries:
            label = record.billing_type or NO_CAUSE_LABEL
            quantities[label] += 1
            hours[label] += value
        total = len(entries)
        ordered = sorted(quantities, key=lambda label: (-quantities[label], label))
        return tuple(
            ConsumptionCause(
                cause=label,
                quantity=quantities[label],
                hours=round(hours[label], 2),
                percentage=percentage(quantities[label], total),
            )
            for label in ordered
        )

    def empty(self, company: CompanyProfile, period: PeriodWindow) -> ConsumptionSnapshot:
        history = tuple(
            ConsumptionPoint(
                label=month.short_label, month=month.month, year=month.year, hours=0.0, formatted="00:00:00"
            )
            for month in period.range_back(self.settings.consumption_months)
        )
        return ConsumptionSnapshot(
            baseline_hours=round(company.baseline_hours, 2),
            baseline_formatted=format_hours(company.baseline_hours),
            history=history,
        )
