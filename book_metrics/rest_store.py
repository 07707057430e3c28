"""PostgREST (Supabase) client implementing the ticket, company and hour repositories."""
from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional, Sequence, Tuple
from urllib.parse import urljoin

import requests

from .filters import TicketFilter
from .periods import DateWindow, PeriodWindow
from .records import CompanyProfile, HourRecord, MalformedRecordError, TicketRecord
from .repository import NotFoundError, RepositoryError, check_date_field

LOGGER = logging.getLogger(__name__)

DEFAULT_TABLES = {
    "tickets": "apontamentos_tickets_aranda",
    "companies": "empresas_clientes",
    "hours": "requerimentos",
}

# Record attribute -> store column used for date windows.
DATE_COLUMNS = {
    "opened_at": "data_abertura",
    "solved_at": "data_solucao",
}

STORE_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Stable row order for limit/offset paging, per table key.
PAGE_ORDER = {
    "tickets": "nro_solicitacao.asc,data_abertura.asc",
    "companies": "id.asc",
    "hours": "id.asc",
}


def _store_timestamp(value: datetime) -> str:
    # The store keeps wall-clock values without a timezone.
    return value.replace(tzinfo=None).strftime(STORE_TIMESTAMP_FORMAT)


def window_params(date_field: str, window: DateWindow) -> List[Tuple[str, str]]:
    column = DATE_COLUMNS[check_date_field(date_field)]
    if window.end_inclusive:
        # Inclusive ends cover the whole final second.
        upper = f"lte.{_store_timestamp(window.end)}.999999"
    else:
        upper = f"lt.{_store_timestamp(window.end)}"
    return [
        (column, f"gte.{_store_timestamp(window.start)}"),
        (column, upper),
    ]


class RestStoreClient:
    """Wrapper around the PostgREST API exposing the book data tables."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        tables: Optional[Dict[str, str]] = None,
        verify_ssl: bool = True,
        timeout: int = 30,
        page_size: int = 1000,
        rate_limit_per_minute: Optional[int] = None,
    ) -> None:
        self.base_url = self._normalise_base_url(base_url)
        self.session = requests.Session()
        self.session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            }
        )
        self.tables = {**DEFAULT_TABLES, **(tables or {})}
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.page_size = min(max(page_size, 1), 1000)  # PostgREST default max-rows is 1000
        self.rate_limit_per_minute = rate_limit_per_minute
        self._sleep_between_requests = (
            60.0 / rate_limit_per_minute if rate_limit_per_minute else 0.0
        )
        # One client is shared by every section and company thread.
        self._rate_lock = threading.Lock()
        self._next_request_slot: float | None = None

    # -- Low level request helpers -------------------------------------------------
    def _reserve_request_slot(self) -> float:
        """Claim the next free send time and return how long to wait for it."""
        with self._rate_lock:
            now = time.monotonic()
            slot = now if self._next_request_slot is None else max(now, self._next_request_slot)
            self._next_request_slot = slot + self._sleep_between_requests
        return slot - now

    def _request(self, path: str, params: Sequence[Tuple[str, str]]) -> List[Dict[str, Any]]:
        url = self._build_url(path)
        if self._sleep_between_requests:
            remaining = self._reserve_request_slot()
            if remaining > 0:
                LOGGER.debug("Sleeping %.2fs before GET %s to respect rate limits", remaining, url)
                time.sleep(remaining)
        LOGGER.debug("HTTP GET %s params=%s", url, list(params))
        try:
            response = self.session.request(
                "GET",
                url,
                params=list(params),
                timeout=self.timeout,
                verify=self.verify_ssl,
            )
            LOGGER.debug("Response status=%s", response.status_code)
            response.raise_for_status()
            payload = response.json() if response.content else []
        except requests.RequestException as exc:
            raise RepositoryError(f"GET {url} failed: {exc}") from exc
        except ValueError as exc:
            raise RepositoryError(f"GET {url} returned invalid JSON") from exc
        if not isinstance(payload, list):
            raise RepositoryError(f"GET {url} returned {type(payload).__name__}, expected a list")
        return payload

    def _normalise_base_url(self, base_url: str) -> str:
        """Trim a trailing ``/rest/v1`` so paths can always include it."""
        cleaned = base_url.strip().rstrip("/")
        if cleaned.lower().endswith("/rest/v1"):
            cleaned = cleaned[: -len("/rest/v1")]
        return cleaned.rstrip("/") or base_url.rstrip("/")

    def _build_url(self, path: str) -> str:
        base = self.base_url.rstrip("/") + "/"
        return urljoin(base, path.lstrip("/"))

    def _table_path(self, table_key: str) -> str:
        return f"/rest/v1/{self.tables[table_key]}"

    def iter_rows(
        self, table_key: str, params: Sequence[Tuple[str, str]]
    ) -> Generator[Dict[str, Any], None, None]:
        """Yield rows from a table, paging with ``limit``/``offset`` in a fixed order."""
        offset = 0
        path = self._table_path(table_key)
        while True:
            page_params = [
                ("select", "*"),
                *params,
                ("order", PAGE_ORDER[table_key]),
                ("limit", str(self.page_size)),
                ("offset", str(offset)),
            ]
            rows = self._request(path, page_params)
            LOGGER.debug("Fetched %s rows from %s at offset %s", len(rows), path, offset)
            yield from rows
            if len(rows) < self.page_size:
                break
            offset += len(rows)

    # -- TicketRepository ----------------------------------------------------------
    def _tickets(self, ticket_filter: TicketFilter, extra: Sequence[Tuple[str, str]]) -> List[TicketRecord]:
        records: List[TicketRecord] = []
        skipped = 0
        for row in self.iter_rows("tickets", [*ticket_filter.to_query_params(), *extra]):
            try:
                record = TicketRecord.from_api(row)
            except MalformedRecordError as exc:
                skipped += 1
                LOGGER.warning("Skipping malformed ticket row: %s", exc)
                continue
            if ticket_filter.matches(record):
                records.append(record)
        if skipped:
            LOGGER.info("Skipped %s malformed ticket row(s)", skipped)
        return records

    def query(
        self, ticket_filter: TicketFilter, date_field: str, window: DateWindow
    ) -> List[TicketRecord]:
        records = self._tickets(ticket_filter, window_params(date_field, window))
        return [record for record in records if window.contains(getattr(record, date_field))]

    def query_backlog(self, ticket_filter: TicketFilter) -> List[TicketRecord]:
        return self._tickets(ticket_filter, [])

    # -- CompanyMetadata -----------------------------------------------------------
    def get(self, company_id: str) -> CompanyProfile:
        rows = self._request(
            self._table_path("companies"),
            [("select", "*"), ("id", f"eq.{company_id}"), ("limit", "1")],
        )
        if not rows:
            raise NotFoundError(f"Company {company_id!r} not found")
        return CompanyProfile.from_api(rows[0])

    def list_company_ids(self) -> List[str]:
        return [str(row["id"]) for row in self.iter_rows("companies", []) if "id" in row]

    # -- HourRecordRepository ------------------------------------------------------
    def _hour_records(self, company_id: str, periods: Sequence[PeriodWindow]) -> List[HourRecord]:
        keys = ",".join(f'"{period.billing_key}"' for period in periods)
        records: List[HourRecord] = []
        for row in self.iter_rows(
            "hours", [("cliente_id", f"eq.{company_id}"), ("mes_cobranca", f"in.({keys})")]
        ):
            try:
                records.append(HourRecord.from_api(row))
            except MalformedRecordError as exc:
                LOGGER.warning("Skipping malformed hour row: %s", exc)
        return records

    def hours(self) -> "RestHourRecords":
        return RestHourRecords(self)


class RestHourRecords:
    """:class:`HourRecordRepository` view over a :class:`RestStoreClient`."""

    def __init__(self, client: RestStoreClient) -> None:
        self._client = client

    def query(self, company_id: str, period: PeriodWindow) -> List[HourRecord]:
        return self._client._hour_records(company_id, [period])

    def query_range(
        self, company_id: str, first: PeriodWindow, last: PeriodWindow
    ) -> List[HourRecord]:
        periods: List[PeriodWindow] = []
        current = first
        while current <= last:
            periods.append(current)
            current = current.shift(1)
        return self._client._hour_records(company_id, periods)
