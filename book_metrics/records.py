"""Normalised records read from the ticket, billing and company stores."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from dateutil import parser as date_parser

LOGGER = logging.getLogger(__name__)

INCIDENT_TYPE = "Incidente"
REQUEST_TYPE = "Solicitação"

_HOURS_PATTERN = re.compile(r"^\s*(-?\d+):(\d{1,2})(?::(\d{1,2}))?\s*$")
_TRUE_FLAGS = {"true", "t", "1", "sim", "s", "yes", "y"}
_FALSE_FLAGS = {"false", "f", "0", "não", "nao", "n", "no"}


class MalformedRecordError(ValueError):
    """Raised when a store value cannot be converted to the expected type."""


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a store timestamp into an aware UTC datetime (naive values are UTC)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = date_parser.isoparse(str(value))
        except (ValueError, TypeError):
            try:
                dt = date_parser.parse(str(value))
            except (ValueError, TypeError, OverflowError):
                LOGGER.debug("Unable to parse datetime value %r", value)
                return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_flag(value: Any) -> Optional[bool]:
    """Interpret the yes/no flags the service desk exports ("Sim", "Não", booleans)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_FLAGS:
        return True
    if text in _FALSE_FLAGS:
        return False
    return None


def parse_hours(value: Any) -> float:
    """Convert ``HH:MM`` / ``HH:MM:SS`` strings or numbers into decimal hours.

    Raises :class:`MalformedRecordError` for values that are neither.
    ``None`` and empty strings count as zero hours.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise MalformedRecordError(f"Unexpected boolean hour value {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return 0.0
    match = _HOURS_PATTERN.match(text)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2))
        seconds = int(match.group(3) or 0)
        if minutes >= 60 or seconds >= 60:
            raise MalformedRecordError(f"Invalid minutes/seconds in hour value {value!r}")
        sign = -1 if hours < 0 or match.group(1).startswith("-") else 1
        return sign * (abs(hours) + minutes / 60 + seconds / 3600)
    try:
        return float(text.replace(",", "."))
    except ValueError as exc:
        raise MalformedRecordError(f"Unparseable hour value {value!r}") from exc


def format_hours(hours: float) -> str:
    """Render decimal hours as ``HH:MM:SS``."""
    total_seconds = int(round(abs(hours) * 3600))
    whole_hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    sign = "-" if hours < 0 and total_seconds else ""
    return f"{sign}{whole_hours:02d}:{minutes:02d}:{seconds:02d}"


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class TicketRecord:
    """One row of the service-desk ticket store."""

    id: str
    organization_name: str
    type_code: str
    resolution_code: Optional[str]
    group_name: Optional[str]
    configuration_item: Optional[str]
    is_parent_case: bool
    status: str
    sla_breached: bool
    opened_at: datetime
    solved_at: Optional[datetime] = None

    @property
    def is_incident(self) -> bool:
        return self.type_code == INCIDENT_TYPE

    @property
    def is_open(self) -> bool:
        return self.solved_at is None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "TicketRecord":
        """Build a record from a ``apontamentos_tickets_aranda`` row."""
        ticket_id = _clean_text(payload.get("nro_solicitacao") or payload.get("id"))
        if not ticket_id:
            raise MalformedRecordError(f"Ticket row without a ticket number: {payload!r}")
        opened_at = parse_datetime(payload.get("data_abertura"))
        if opened_at is None:
            raise MalformedRecordError(f"Ticket {ticket_id} has no opening date")
        # "TDS cumprido" = solution deadline met; a missing flag is not a breach.
        tds_met = parse_flag(payload.get("tds_cumprido"))
        return cls(
            id=ticket_id,
            organization_name=_clean_text(payload.get("organizacao")) or "",
            type_code=_clean_text(payload.get("cod_tipo")) or "",
            resolution_code=_clean_text(payload.get("cod_resolucao")),
            group_name=_clean_text(payload.get("nome_grupo")),
            configuration_item=_clean_text(payload.get("item_configuracao")),
            is_parent_case=bool(parse_flag(payload.get("caso_pai"))),
            status=_clean_text(payload.get("status")) or "",
            sla_breached=tds_met is False,
            opened_at=opened_at,
            solved_at=parse_datetime(payload.get("data_solucao")),
        )


@dataclass(frozen=True)
class HourRecord:
    """A billable-hour entry; ``hours_total`` keeps the raw store value."""

    id: str
    billing_type: Optional[str]
    hours_total: Any
    month: int
    year: int

    @property
    def is_incident(self) -> bool:
        return self.billing_type == INCIDENT_TYPE

    @property
    def period_key(self) -> Tuple[int, int]:
        return (self.year, self.month)

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "HourRecord":
        """Build a record from a ``requerimentos`` row (``mes_cobranca`` = ``MM/YYYY``)."""
        billing_month = _clean_text(payload.get("mes_cobranca")) or ""
        try:
            month_text, year_text = billing_month.split("/", 1)
            month, year = int(month_text), int(year_text)
        except ValueError as exc:
            raise MalformedRecordError(
                f"Hour record {payload.get('id')!r} has invalid mes_cobranca {billing_month!r}"
            ) from exc
        return cls(
            id=str(payload.get("id", "")),
            billing_type=_clean_text(payload.get("tipo_cobranca")),
            hours_total=payload.get("horas_total"),
            month=month,
            year=year,
        )


@dataclass(frozen=True)
class CompanyProfile:
    """Company metadata needed to assess a book."""

    id: str
    name: str
    short_name: Optional[str] = None
    sla_target_percent: float = 85.0
    minimum_incident_threshold: int = 0
    contract_type: Optional[str] = None
    baseline_hours: float = 0.0

    @property
    def organization_terms(self) -> Tuple[str, ...]:
        terms = []
        for candidate in (self.short_name, self.name):
            if candidate and candidate not in terms:
                terms.append(candidate)
        return tuple(terms)

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "CompanyProfile":
        """Build a profile from an ``empresas_clientes`` row."""
        target = payload.get("meta_sla_percentual")
        threshold = payload.get("quantidade_minima_chamados_sla")
        baseline = payload.get("baseline_horas_mensal")
        try:
            baseline_hours = parse_hours(baseline)
        except MalformedRecordError:
            LOGGER.warning(
                "Company %s has unparseable baseline %r; using 0", payload.get("id"), baseline
            )
            baseline_hours = 0.0
        return cls(
            id=str(payload.get("id")),
            name=_clean_text(payload.get("nome_completo")) or "",
            short_name=_clean_text(payload.get("nome_abreviado")),
            sla_target_percent=float(target) if target is not None else 85.0,
            minimum_incident_threshold=int(threshold) if threshold is not None else 0,
            contract_type=_clean_text(payload.get("tipo_contrato")),
            baseline_hours=baseline_hours,
        )
