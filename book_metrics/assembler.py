"""Assembles the four sections into one immutable book snapshot."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from .backlog import BacklogAggregator
from .config import EngineSettings
from .consumption import ConsumptionAggregator
from .filters import TicketFilterBuilder
from .periods import PeriodWindow
from .records import CompanyProfile
from .repository import CompanyMetadata, HourRecordRepository, NotFoundError, TicketRepository
from .sections import SectionAggregator
from .sla import SLAAggregator
from .snapshots import (
    BookMetricsSnapshot,
    CoverSummary,
    DataSource,
    SectionResult,
    SectionStatus,
)
from .volumetry import VolumetryAggregator

LOGGER = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome of :meth:`SnapshotAssembler.build_many`."""

    snapshots: Dict[str, BookMetricsSnapshot] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return bool(self.skipped)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotAssembler:
    """Resolve a company, run every section and freeze the result."""

    def __init__(
        self,
        *,
        tickets: TicketRepository,
        companies: CompanyMetadata,
        hours: HourRecordRepository,
        settings: Optional[EngineSettings] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.companies = companies
        self.logger = logger or LOGGER
        self.clock = clock
        filter_builder = TicketFilterBuilder(
            excluded_groups=self.settings.excluded_groups,
            excluded_configuration_item=self.settings.excluded_configuration_item,
            closed_statuses=self.settings.closed_statuses,
        )
        common = {"filter_builder": filter_builder, "settings": self.settings, "logger": logger}
        self.volumetry = VolumetryAggregator(tickets, **common)
        self.sla = SLAAggregator(tickets, **common)
        self.backlog = BacklogAggregator(tickets, clock=clock, **common)
        self.consumption = ConsumptionAggregator(hours, settings=self.settings, logger=logger)

    @property
    def aggregators(self) -> List[SectionAggregator]:
        return [self.volumetry, self.sla, self.backlog, self.consumption]

    def _run_section(
        self, aggregator: SectionAggregator, company: CompanyProfile, period: PeriodWindow
    ) -> SectionResult:
        try:
            return aggregator.run(company, period)
        except Exception as exc:
            self.logger.exception(
                "Unexpected error in %s section for company %s (%s)", aggregator.name, company.id, period
            )
            fallback = replace(aggregator.empty(company, period), data_source=DataSource.FALLBACK)
            return SectionResult.fallback(aggregator.name, fallback, f"{type(exc).__name__}: {exc}")

    def _run_sections(self, company: CompanyProfile, period: PeriodWindow) -> Dict[str, SectionResult]:
        if not self.settings.parallel_sections:
            return {
                aggregator.name: self._run_section(aggregator, company, period)
                for aggregator in self.aggregators
            }
        with ThreadPoolExecutor(
            max_workers=len(self.aggregators), thread_name_prefix=f"book-{company.id}"
        ) as executor:
            futures = {
                aggregator.name: executor.submit(self._run_section, aggregator, company, period)
                for aggregator in self.aggregators
            }
            return {name: future.result() for name, future in futures.items()}

    def build(self, company_id: str, month: int, year: int) -> BookMetricsSnapshot:
        """Compute a fresh snapshot; raises :class:`NotFoundError` for unknown companies."""
        period = PeriodWindow.of(month, year)
        company = self.companies.get(company_id)
        self.logger.info("Building book metrics for %s (%s) %s", company.id, company.name, period)

        results = self._run_sections(company, period)
        volumetry = results["volumetry"].value
        sla = results["sla"].value
        backlog = results["backlog"].value
        consumption = results["consumption"].value
        generated_at = self.clock()

        cover = CoverSummary(
            company_name=company.name,
            short_name=company.short_name,
            contract_type=company.contract_type,
            period_label=period.label,
            month=period.month,
            year=period.year,
            generated_at=generated_at.strftime("%d/%m/%Y"),
            opened_total=volumetry.opened.total,
            closed_total=volumetry.closed.total,
            sla_percentage=sla.percentage,
            backlog_total=backlog.total,
        )
        sections = tuple(
            SectionStatus(name=result.name, data_source=result.data_source, error=result.error)
            for result in results.values()
        )
        snapshot = BookMetricsSnapshot(
            company_id=company.id,
            month=period.month,
            year=period.year,
            generated_at=generated_at,
            cover=cover,
            volumetry=volumetry,
            sla=sla,
            backlog=backlog,
            consumption=consumption,
            sections=sections,
        )
        if snapshot.is_partial:
            failed = [section.name for section in sections if section.data_source is DataSource.FALLBACK]
            self.logger.warning(
                "Book metrics for %s %s are partial; fallback sections: %s",
                company.id,
                period,
                ", ".join(failed),
            )
        return snapshot

    def build_many(
        self,
        company_ids: Iterable[str],
        month: int,
        year: int,
        *,
        max_workers: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[Callable[[int, int, int], None]] = None,
    ) -> BatchResult:
        """Build snapshots for many companies on a bounded worker pool.

        Setting ``cancel_event`` skips every company whose build has not
        started yet; builds already running finish and are kept.
        ``progress_callback`` receives ``(processed, total, failed)`` after each company.
        """
        ids = list(dict.fromkeys(company_ids))
        workers = max(1, max_workers or self.settings.max_workers)
        cancel_event = cancel_event or threading.Event()
        result = BatchResult()
        processed = 0

        def _build_one(company_id: str) -> Optional[BookMetricsSnapshot]:
            if cancel_event.is_set():
                return None
            return self.build(company_id, month, year)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="books") as executor:
            futures: Dict[str, Future] = {
                company_id: executor.submit(_build_one, company_id) for company_id in ids
            }
            for company_id, future in futures.items():
                try:
                    snapshot = future.result()
                except NotFoundError as exc:
                    self.logger.error("Skipping company %s: %s", company_id, exc)
                    result.failures[company_id] = str(exc)
                except Exception as exc:
                    self.logger.exception("Book metrics failed for company %s", company_id)
                    result.failures[company_id] = f"{type(exc).__name__}: {exc}"
                else:
                    if snapshot is None:
                        result.skipped.append(company_id)
                    else:
                        result.snapshots[company_id] = snapshot
                processed += 1
                if progress_callback:
                    progress_callback(processed, len(ids), len(result.failures))

        self.logger.info(
            "Batch %02d/%s finished: %s built, %s failed, %s skipped",
            month,
            year,
            len(result.snapshots),
            len(result.failures),
            len(result.skipped),
        )
        return result
