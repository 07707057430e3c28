"""Common plumbing for the per-section aggregators."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Generic, Optional, TypeVar

from .config import EngineSettings
from .filters import TicketFilterBuilder
from .periods import PeriodWindow
from .records import CompanyProfile
from .repository import RepositoryError
from .snapshots import DataSource, SectionResult

T = TypeVar("T")


class SectionAggregator(Generic[T]):
    """Base class: ``compute`` raises, ``run`` degrades to the empty snapshot."""

    name = "section"

    def __init__(
        self,
        *,
        filter_builder: Optional[TicketFilterBuilder] = None,
        settings: Optional[EngineSettings] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.filter_builder = filter_builder or TicketFilterBuilder(
            excluded_groups=self.settings.excluded_groups,
            excluded_configuration_item=self.settings.excluded_configuration_item,
            closed_statuses=self.settings.closed_statuses,
        )
        self.logger = logger or logging.getLogger(type(self).__module__)

    def compute(self, company: CompanyProfile, period: PeriodWindow) -> T:
        raise NotImplementedError

    def empty(self, company: CompanyProfile, period: PeriodWindow) -> T:
        raise NotImplementedError

    def run(self, company: CompanyProfile, period: PeriodWindow) -> SectionResult[T]:
        try:
            value = self.compute(company, period)
        except RepositoryError as exc:
            self.logger.warning(
                "%s section for company %s (%s) unavailable, using empty values: %s",
                self.name,
                company.id,
                period,
                exc,
            )
            fallback = replace(self.empty(company, period), data_source=DataSource.FALLBACK)
            return SectionResult.fallback(self.name, fallback, str(exc))
        return SectionResult.live(self.name, value)
