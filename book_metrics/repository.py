"""Repository interfaces consumed by the aggregators, plus an in-memory store."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from .filters import TicketFilter
from .periods import DateWindow, PeriodWindow
from .records import CompanyProfile, HourRecord, TicketRecord

LOGGER = logging.getLogger(__name__)

DATE_FIELDS = ("opened_at", "solved_at")


class RepositoryError(RuntimeError):
    """Raised when a store query fails (store unavailable, bad response...)."""


class NotFoundError(LookupError):
    """Raised when a requested entity (e.g. a company) does not exist."""


class TicketRepository(Protocol):
    def query(
        self, ticket_filter: TicketFilter, date_field: str, window: DateWindow
    ) -> List[TicketRecord]:
        ...

    def query_backlog(self, ticket_filter: TicketFilter) -> List[TicketRecord]:
        ...


class CompanyMetadata(Protocol):
    def get(self, company_id: str) -> CompanyProfile:
        ...


class HourRecordRepository(Protocol):
    def query(self, company_id: str, period: PeriodWindow) -> List[HourRecord]:
        ...

    def query_range(
        self, company_id: str, first: PeriodWindow, last: PeriodWindow
    ) -> List[HourRecord]:
        ...


def check_date_field(date_field: str) -> str:
    if date_field not in DATE_FIELDS:
        raise ValueError(f"date_field must be one of {DATE_FIELDS}, got {date_field!r}")
    return date_field


class InMemoryTicketStore:
    """Ticket, company and billable-hour store backed by Python lists.

    Implements :class:`TicketRepository`, :class:`CompanyMetadata` and
    :class:`HourRecordRepository`; used for tests and offline runs.
    """

    def __init__(
        self,
        *,
        tickets: Iterable[TicketRecord] = (),
        companies: Iterable[CompanyProfile] = (),
        hour_records: Optional[Dict[str, Sequence[HourRecord]]] = None,
    ) -> None:
        self.tickets: List[TicketRecord] = list(tickets)
        self.companies: Dict[str, CompanyProfile] = {company.id: company for company in companies}
        self.hour_records: Dict[str, List[HourRecord]] = {
            company_id: list(records) for company_id, records in (hour_records or {}).items()
        }
        self.query_count = 0

    # -- TicketRepository ----------------------------------------------------
    def query(
        self, ticket_filter: TicketFilter, date_field: str, window: DateWindow
    ) -> List[TicketRecord]:
        check_date_field(date_field)
        self.query_count += 1
        results = [
            ticket
            for ticket in self.tickets
            if window.contains(getattr(ticket, date_field)) and ticket_filter.matches(ticket)
        ]
        LOGGER.debug(
            "In-memory query %s in %s matched %s tickets", date_field, window.describe(), len(results)
        )
        return results

    def query_backlog(self, ticket_filter: TicketFilter) -> List[TicketRecord]:
        self.query_count += 1
        return ticket_filter.apply(self.tickets)

    # -- CompanyMetadata -----------------------------------------------------
    def get(self, company_id: str) -> CompanyProfile:
        try:
            return self.companies[company_id]
        except KeyError:
            raise NotFoundError(f"Company {company_id!r} not found") from None

    def list_company_ids(self) -> List[str]:
        return sorted(self.companies)

    # -- HourRecordRepository ------------------------------------------------
    def query_hours(self, company_id: str, period: PeriodWindow) -> List[HourRecord]:
        return self.query_hours_range(company_id, period, period)

    def query_hours_range(
        self, company_id: str, first: PeriodWindow, last: PeriodWindow
    ) -> List[HourRecord]:
        self.query_count += 1
        lower, upper = (first.year, first.month), (last.year, last.month)
        return [
            record
            for record in self.hour_records.get(company_id, [])
            if lower <= record.period_key <= upper
        ]

    def hours(self) -> "HourRecordView":
        """Expose the billable-hour side under the :class:`HourRecordRepository` names."""
        return HourRecordView(self)


class HourRecordView:
    """Adapter giving a store's billable-hour queries the repository method names."""

    def __init__(self, store: InMemoryTicketStore) -> None:
        self._store = store

    def query(self, company_id: str, period: PeriodWindow) -> List[HourRecord]:
        return self._store.query_hours(company_id, period)

    def query_range(
        self, company_id: str, first: PeriodWindow, last: PeriodWindow
    ) -> List[HourRecord]:
        return self._store.query_hours_range(company_id, first, last)
