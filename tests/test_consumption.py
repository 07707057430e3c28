from __future__ import annotations

from dataclasses import replace

import pytest

from book_metrics.config import EngineSettings
from book_metrics.consumption import ConsumptionAggregator
from book_metrics.periods import PeriodWindow
from book_metrics.records import HourRecord
from book_metrics.repository import InMemoryTicketStore

SEPTEMBER = PeriodWindow.of(9, 2025)


def _hours(record_id: str, billing_type, hours, month: int = 9, year: int = 2025) -> HourRecord:
    return HourRecord(id=record_id, billing_type=billing_type, hours_total=hours, month=month, year=year)


def _store(records) -> InMemoryTicketStore:
    return InMemoryTicketStore(hour_records={"acme-1": records})


def test_consumption_sums_current_month(acme, caplog) -> None:
    store = _store(
        [
            _hours("1", "Banco de Horas", "08:30"),
            _hours("2", "Incidente", "01:30"),
            _hours("3", "Banco de Horas", "oito horas"),
            _hours("4", "Banco de Horas", "10:00", month=8),
            _hours("5", "Banco de Horas", "99:00", month=9, year=2024),
        ]
    )
    with caplog.at_level("WARNING"):
        snapshot = ConsumptionAggregator(store.hours()).compute(acme, SEPTEMBER)

    assert snapshot.total_hours == 10.0
    assert snapshot.incident_hours == 1.5
    assert snapshot.request_hours == 8.5
    assert snapshot.total_formatted == "10:00:00"
    assert snapshot.incident_formatted == "01:30:00"
    assert snapshot.baseline_formatted == "40:00:00"
    assert snapshot.consumed_percentage == 25
    assert snapshot.record_count == 3
    assert snapshot.malformed_records == 1
    assert "oito horas" in caplog.text
    assert store.query_count == 1

    assert [point.label for point in snapshot.history] == ["ABR", "MAI", "JUN", "JUL", "AGO", "SET"]
    assert snapshot.history[-2].hours == 10.0
    assert snapshot.history[-1].formatted == "10:00:00"


def test_causes_group_by_billing_type(acme) -> None:
    store = _store(
        [
            _hours("1", "Banco de Horas", "02:00"),
            _hours("2", "Banco de Horas", "01:00"),
            _hours("3", None, 1.5),
        ]
    )
    snapshot = ConsumptionAggregator(store.hours()).compute(acme, SEPTEMBER)
    causes = {cause.cause: cause for cause in snapshot.causes}
    assert causes["Banco de Horas"].quantity == 2
    assert causes["Banco de Horas"].hours == 3.0
    assert causes["Banco de Horas"].percentage == 67
    assert causes["Outros"].percentage == 33
    assert snapshot.causes[0].cause == "Banco de Horas"


def test_without_incident_hours_or_baseline(acme) -> None:
    company = replace(acme, baseline_hours=0.0)
    store = _store([_hours("1", "Banco de Horas", "05:00")])
    snapshot = ConsumptionAggregator(store.hours()).compute(company, SEPTEMBER)
    assert snapshot.incident_formatted == "--"
    assert snapshot.consumed_percentage == 0
    assert snapshot.request_hours == 5.0


def test_empty_snapshot_keeps_baseline(acme) -> None:
    snapshot = ConsumptionAggregator(_store([]).hours()).empty(acme, SEPTEMBER)
    assert snapshot.total_hours == 0.0
    assert snapshot.baseline_hours == 40.0
    assert len(snapshot.history) == 6


def test_consumption_takes_settings_but_no_ticket_filter(acme) -> None:
    settings = EngineSettings(consumption_months=3)
    aggregator = ConsumptionAggregator(_store([]).hours(), settings=settings)
    assert len(aggregator.empty(acme, SEPTEMBER).history) == 3
    with pytest.raises(TypeError):
        ConsumptionAggregator(_store([]).hours(), filter_builder=None)
