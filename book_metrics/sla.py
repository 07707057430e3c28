"""SLA compliance for a period and its rolling history.

The SLA percentage is ``(closed incidents - breaches) / closed incidents``.
Closed incidents are windowed by solve date, breaches by open date. A period
is only assessable ("elegível") when enough closed incidents carry one of the
consulting resolution codes; otherwise the status is reported as on time and
a message explains why the percentage is not judged.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .config import EngineSettings
from .distributions import round_half_up
from .filters import SLA_ELIGIBLE_RESOLUTION_CODES, TicketFilter, TicketFilterBuilder
from .periods import DateWindow, PeriodWindow
from .records import INCIDENT_TYPE, CompanyProfile, TicketRecord
from .repository import TicketRepository
from .sections import SectionAggregator
from .snapshots import BreachedTicket, SLAHistoryPoint, SLASnapshot, SLAStatus
from .volumetry import bucket_by_window

DATE_DISPLAY_FORMAT = "%d/%m/%Y"
PENDING_LABEL = "Pendente"
NO_GROUP_LABEL = "N/A"
REQUEST_LABEL = "Requisição"


@dataclass(frozen=True)
class SLAAssessment:
    """SLA figures for one month, before presentation."""

    closed: int
    incidents_closed: int
    eligible_incidents: int
    breaches: int
    eligible_breaches: int
    non_eligible_breaches: int
    percentage: int
    eligible: bool
    status: SLAStatus


def sla_percentage(incidents_closed: int, breaches: int) -> int:
    """Compliance percentage in ``[0, 100]``; 100 when nothing was closed."""
    if incidents_closed <= 0:
        return 100
    value = round_half_up((incidents_closed - breaches) / incidents_closed * 100)
    return max(0, min(100, value))


def assess(
    base: TicketFilter,
    closed: Sequence[TicketRecord],
    breaches: Sequence[TicketRecord],
    company: CompanyProfile,
    *,
    eligible_codes: frozenset = SLA_ELIGIBLE_RESOLUTION_CODES,
) -> SLAAssessment:
    incident_filter = base.with_type(INCIDENT_TYPE)
    incidents = incident_filter.apply(closed)
    eligible_incidents = incident_filter.with_resolution_codes(eligible_codes).apply(incidents)
    breach_filter = base.with_sla_breached(True)
    breached = breach_filter.apply(breaches)
    eligible_breaches = breach_filter.with_resolution_codes(eligible_codes).apply(breached)

    percentage = sla_percentage(len(incidents), len(eligible_breaches))
    eligible = len(eligible_incidents) >= company.minimum_incident_threshold
    if eligible and percentage < company.sla_target_percent:
        status = SLAStatus.BREACHED
    else:
        status = SLAStatus.ON_TIME
    return SLAAssessment(
        closed=len(closed),
        incidents_closed=len(incidents),
        eligible_incidents=len(eligible_incidents),
        breaches=len(breached),
        eligible_breaches=len(eligible_breaches),
        non_eligible_breaches=len(breached) - len(eligible_breaches),
        percentage=percentage,
        eligible=eligible,
        status=status,
    )


def month_variance(history: Sequence[SLAHistoryPoint]) -> Optional[float]:
    if len(history) < 2:
        return None
    return round(float(history[-1].percentage - history[-2].percentage), 1)


def breached_sample(breaches: Sequence[TicketRecord], limit: int) -> Tuple[BreachedTicket, ...]:
    ordered = sorted(breaches, key=lambda record: (record.opened_at, record.id))
    return tuple(
        BreachedTicket(
            ticket_id=record.id,
            type=INCIDENT_TYPE if record.is_incident else REQUEST_LABEL,
            opened_at=record.opened_at.strftime(DATE_DISPLAY_FORMAT),
            solved_at=(
                record.solved_at.strftime(DATE_DISPLAY_FORMAT) if record.solved_at else PENDING_LABEL
            ),
            group=record.group_name or NO_GROUP_LABEL,
        )
        for record in ordered[:limit]
    )


class SLAAggregator(SectionAggregator[SLASnapshot]):
    """Computes the SLA card, the 5-month history and the breached-ticket sample."""

    name = "sla"

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

    def compute(self, company: CompanyProfile, period: PeriodWindow) -> SLASnapshot:
        base = self.filter_builder.base(company)
        periods = period.range_back(self.settings.sla_history_months)
        first, last = periods[0], periods[-1]

        closed = self.repository.query(
            base,
            "solved_at",
            DateWindow.spanning(first.closed_window(), last.closed_window()),
        )
        breaches = self.repository.query(
            base.with_sla_breached(True),
            "opened_at",
            DateWindow.spanning(first.opened_window(), last.opened_window()),
        )
        closed_by_month = bucket_by_window(closed, periods, date_field="solved_at", closed=True)
        breaches_by_month = bucket_by_window(breaches, periods, date_field="opened_at", closed=False)

        assessments = {
            month: assess(base, closed_by_month[month], breaches_by_month[month], company)
            for month in periods
        }
        history = tuple(
            SLAHistoryPoint(
                label=month.short_label,
                month=month.month,
                year=month.year,
                percentage=assessments[month].percentage,
                status=assessments[month].status,
                eligible=assessments[month].eligible,
            )
            for month in periods
        )
        current = assessments[period]
        current_breaches = base.with_sla_breached(True).apply(breaches_by_month[period])

        not_eligible_message = None
        if not current.eligible:
            not_eligible_message = (
                "SLA não elegível para avaliação no período: "
                f"{current.eligible_incidents} incidente(s) elegível(is) fechado(s), "
                f"mínimo exigido {company.minimum_incident_threshold}."
            )
        non_eligible_message = None
        if current.non_eligible_breaches:
            non_eligible_message = (
                f"{current.non_eligible_breaches} chamado(s) violado(s) com código de "
                "resolução não elegível; não contabilizado(s) no SLA."
            )

        snapshot = SLASnapshot(
            percentage=current.percentage,
            target_percentage=company.sla_target_percent,
            status=current.status,
            eligible=current.eligible,
            not_eligible_message=not_eligible_message,
            closed=current.closed,
            incidents_closed=current.incidents_closed,
            eligible_incidents=current.eligible_incidents,
            breaches=current.breaches,
            eligible_breaches=current.eligible_breaches,
            non_eligible_breaches=current.non_eligible_breaches,
            non_eligible_message=non_eligible_message,
            history=history,
            variance=month_variance(history),
            breached_tickets=breached_sample(current_breaches, self.settings.breached_sample_size),
        )
        self.logger.info(
            "SLA for %s (%s): %s%% (target %s%%, eligible=%s, status=%s)",
            company.id,
            period,
            snapshot.percentage,
            snapshot.target_percentage,
            snapshot.eligible,
            snapshot.status.value,
        )
        return snapshot

    def empty(self, company: CompanyProfile, period: PeriodWindow) -> SLASnapshot:
        return SLASnapshot(target_percentage=company.sla_target_percent)
