"""Opened/closed ticket volumes, breakdowns and the 6-month trend."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .config import EngineSettings
from .distributions import cause_breakdown, dedupe, group_breakdown, percentage
from .filters import TicketFilter, TicketFilterBuilder
from .periods import DateWindow, PeriodWindow
from .records import CompanyProfile, TicketRecord
from .repository import TicketRepository
from .sections import SectionAggregator
from .snapshots import TrendPoint, TypeSplit, VolumetrySnapshot


def bucket_by_window(
    records: Sequence[TicketRecord],
    periods: Sequence[PeriodWindow],
    *,
    date_field: str,
    closed: bool,
) -> Dict[PeriodWindow, List[TicketRecord]]:
    """Assign each record to the month whose single-period window contains it.

    ``closed`` selects the solve-date window (``[start, next_start)``) instead
    of the open-date window (``[start, end]``); records outside every window
    are dropped.
    """
    buckets: Dict[PeriodWindow, List[TicketRecord]] = {period: [] for period in periods}
    windows = [
        (period, period.closed_window() if closed else period.opened_window())
        for period in periods
    ]
    for record in dedupe(records):
        moment = getattr(record, date_field)
        for period, window in windows:
            if window.contains(moment):
                buckets[period].append(record)
                break
    return buckets


class VolumetryAggregator(SectionAggregator[VolumetrySnapshot]):
    """Counts opened and closed tickets for a period and the months before it."""

    name = "volumetry"

    def __init__(
        self,
        repository: TicketRepository,
        *,
        filter_builder: Optional[TicketFilterBuilder] = None,
        settings: Optional[EngineSettings] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(filter_builder=filter_builder, settings=settings, logger=logger)
        self.repository = repository

    def fetch(
        self, base: TicketFilter, periods: Sequence[PeriodWindow]
    ) -> Tuple[Dict[PeriodWindow, List[TicketRecord]], Dict[PeriodWindow, List[TicketRecord]]]:
        """Two range queries over ``periods``, bucketed into per-month sets."""
        first, last = periods[0], periods[-1]
        opened_range = DateWindow.spanning(first.opened_window(), last.opened_window())
        closed_range = DateWindow.spanning(first.closed_window(), last.closed_window())
        opened = self.repository.query(base, "opened_at", opened_range)
        closed = self.repository.query(base, "solved_at", closed_range)
        self.logger.debug(
            "Volumetry range %s..%s returned %s opened and %s closed tickets",
            first,
            last,
            len(opened),
            len(closed),
        )
        return (
            bucket_by_window(opened, periods, date_field="opened_at", closed=False),
            bucket_by_window(closed, periods, date_field="solved_at", closed=True),
        )

    def compute(self, company: CompanyProfile, period: PeriodWindow) -> VolumetrySnapshot:
        base = self.filter_builder.base(company)
        periods = period.range_back(self.settings.trend_months)
        opened_by_month, closed_by_month = self.fetch(base, periods)

        opened = opened_by_month[period]
        closed = closed_by_month[period]
        union = dedupe(opened, closed)
        opened_ids = [record.id for record in opened]
        closed_ids = [record.id for record in closed]

        trend = tuple(
            TrendPoint(
                label=month.short_label,
                month=month.month,
                year=month.year,
                opened=len(opened_by_month[month]),
                closed=len(closed_by_month[month]),
            )
            for month in periods
        )
        snapshot = VolumetrySnapshot(
            opened=TypeSplit.from_records(opened),
            closed=TypeSplit.from_records(closed),
            trend=trend,
            groups=group_breakdown(union, opened_ids, closed_ids),
            causes=cause_breakdown(union, opened_ids, closed_ids),
            union_total=len(union),
            resolution_rate=percentage(len(closed), len(union)),
        )
        self.logger.info(
            "Volumetry for %s (%s): %s opened, %s closed, resolution rate %s%%",
            company.id,
            period,
            snapshot.opened.total,
            snapshot.closed.total,
            snapshot.resolution_rate,
        )
        return snapshot

    def empty(self, company: CompanyProfile, period: PeriodWindow) -> VolumetrySnapshot:
        trend = tuple(
            TrendPoint(label=month.short_label, month=month.month, year=month.year, opened=0, closed=0)
            for month in period.range_back(self.settings.trend_months)
        )
        return VolumetrySnapshot(trend=trend)
