"""The shared "valid ticket" predicate every book section is computed from.

:class:`TicketFilter` is the only place the inclusion rules live. It is
evaluated in Python through :meth:`TicketFilter.matches` and pushed down to
the REST store through :meth:`TicketFilter.to_query_params`; aggregators only
ever refine a base filter produced by :class:`TicketFilterBuilder`.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import FrozenSet, Iterable, List, Optional, Tuple

from .config import (
    DEFAULT_CLOSED_STATUSES,
    DEFAULT_EXCLUDED_CONFIGURATION_ITEM,
    DEFAULT_EXCLUDED_GROUPS,
)
from .records import CompanyProfile, TicketRecord

EXCLUDED_TYPE = "Problema"

# Consulting resolution codes that make an incident assessable for SLA.
SLA_ELIGIBLE_RESOLUTION_CODES = frozenset(
    {
        "Consultoria",
        "Consultoria - Banco de Dados",
        "Consultoria - Nota Publicada",
        "Consultoria - Solução Paliativa",
    }
)

# Store column names the predicate is pushed down to.
COLUMN_ORGANIZATION = "organizacao"
COLUMN_TYPE = "cod_tipo"
COLUMN_RESOLUTION = "cod_resolucao"
COLUMN_GROUP = "nome_grupo"
COLUMN_CONFIGURATION_ITEM = "item_configuracao"
COLUMN_STATUS = "status"


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _in_list(values: Iterable[str]) -> str:
    return "(" + ",".join(_quote(value) for value in sorted(values)) + ")"


@dataclass(frozen=True)
class TicketFilter:
    """Immutable, composable ticket predicate."""

    organization_terms: Tuple[str, ...]
    organization_id: Optional[str] = None
    excluded_type: str = EXCLUDED_TYPE
    excluded_configuration_item: Optional[str] = DEFAULT_EXCLUDED_CONFIGURATION_ITEM
    excluded_groups: FrozenSet[str] = field(default=DEFAULT_EXCLUDED_GROUPS)
    require_parent_case: bool = True
    type_code: Optional[str] = None
    resolution_codes: Optional[FrozenSet[str]] = None
    sla_breached: Optional[bool] = None
    excluded_statuses: FrozenSet[str] = frozenset()

    # -- Composition ---------------------------------------------------------
    def with_type(self, type_code: str) -> "TicketFilter":
        return replace(self, type_code=type_code)

    def with_resolution_codes(self, codes: Iterable[str]) -> "TicketFilter":
        return replace(self, resolution_codes=frozenset(codes))

    def with_sla_breached(self, breached: bool = True) -> "TicketFilter":
        return replace(self, sla_breached=breached)

    def excluding_statuses(self, statuses: Iterable[str]) -> "TicketFilter":
        return replace(self, excluded_statuses=self.excluded_statuses | frozenset(statuses))

    # -- Evaluation ----------------------------------------------------------
    def matches_organization(self, organization_name: str) -> bool:
        name = (organization_name or "").strip()
        if self.organization_id and name == self.organization_id:
            return True
        lowered = name.lower()
        return any(term.lower() in lowered for term in self.organization_terms if term)

    def matches(self, record: TicketRecord) -> bool:
        if not self.matches_organization(record.organization_name):
            return False
        if record.type_code == self.excluded_type:
            return False
        if (
            self.excluded_configuration_item
            and record.configuration_item == self.excluded_configuration_item
        ):
            return False
        if self.require_parent_case and not record.is_parent_case:
            return False
        if record.group_name in self.excluded_groups:
            return False
        if self.type_code is not None and record.type_code != self.type_code:
            return False
        if self.resolution_codes is not None and record.resolution_code not in self.resolution_codes:
            return False
        if self.sla_breached is not None and record.sla_breached != self.sla_breached:
            return False
        if self.excluded_statuses:
            excluded = {status.lower() for status in self.excluded_statuses}
            if (record.status or "").lower() in excluded:
                return False
        return True

    def apply(self, records: Iterable[TicketRecord]) -> List[TicketRecord]:
        return [record for record in records if self.matches(record)]

    # -- Push-down -----------------------------------------------------------
    def to_query_params(self) -> List[Tuple[str, str]]:
        """Translate the predicate into PostgREST query parameters.

        The translation is a superset of :meth:`matches`: flags whose store
        representation varies (parent case, SLA breach) and case-insensitive
        status comparison are left to the client-side re-check.
        """
        groups: List[str] = []
        organization_terms = [
            f"{COLUMN_ORGANIZATION}.ilike.{_quote('*' + term + '*')}"
            for term in self.organization_terms
            if term
        ]
        if self.organization_id:
            organization_terms.append(f"{COLUMN_ORGANIZATION}.eq.{_quote(self.organization_id)}")
        if organization_terms:
            groups.append("or(" + ",".join(organization_terms) + ")")
        groups.append(f"or({COLUMN_TYPE}.is.null,{COLUMN_TYPE}.neq.{_quote(self.excluded_type)})")
        if self.excluded_configuration_item:
            groups.append(
                f"or({COLUMN_CONFIGURATION_ITEM}.is.null,"
                f"{COLUMN_CONFIGURATION_ITEM}.neq.{_quote(self.excluded_configuration_item)})"
            )
        if self.excluded_groups:
            groups.append(
                f"or({COLUMN_GROUP}.is.null,{COLUMN_GROUP}.not.in.{_in_list(self.excluded_groups)})"
            )
        if self.excluded_statuses:
            groups.append(
                f"or({COLUMN_STATUS}.is.null,"
                f"{COLUMN_STATUS}.not.in.{_in_list(self.excluded_statuses)})"
            )

        params: List[Tuple[str, str]] = [("and", "(" + ",".join(groups) + ")")]
        if self.type_code is not None:
            params.append((COLUMN_TYPE, f"eq.{_quote(self.type_code)}"))
        if self.resolution_codes is not None:
            params.append((COLUMN_RESOLUTION, f"in.{_in_list(self.resolution_codes)}"))
        return params


class TicketFilterBuilder:
    """Produces the base predicate for a company.

    Every aggregator starts from :meth:`base` (or :meth:`backlog`) so that all
    sections of a book agree on which tickets exist.
    """

    def __init__(
        self,
        *,
        excluded_groups: Iterable[str] = DEFAULT_EXCLUDED_GROUPS,
        excluded_configuration_item: Optional[str] = DEFAULT_EXCLUDED_CONFIGURATION_ITEM,
        closed_statuses: Iterable[str] = DEFAULT_CLOSED_STATUSES,
    ) -> None:
        self.excluded_groups = frozenset(excluded_groups)
        self.excluded_configuration_item = excluded_configuration_item
        self.closed_statuses = frozenset(closed_statuses)

    def base(self, company: CompanyProfile) -> TicketFilter:
        terms = company.organization_terms
        if not terms and not company.id:
            raise ValueError("A company needs a name or an id to build a ticket filter")
        return TicketFilter(
            organization_terms=terms,
            organization_id=company.id or None,
            excluded_configuration_item=self.excluded_configuration_item,
            excluded_groups=self.excluded_groups,
        )

    def backlog(self, company: CompanyProfile) -> TicketFilter:
        return self.base(company).excluding_statuses(self.closed_statuses)
