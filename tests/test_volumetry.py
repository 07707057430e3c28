from __future__ import annotations

from book_metrics.periods import PeriodWindow
from book_metrics.records import REQUEST_TYPE
from book_metrics.repository import InMemoryTicketStore
from book_metrics.volumetry import VolumetryAggregator, bucket_by_window

from conftest import utc

SEPTEMBER = PeriodWindow.of(9, 2025)


def _acme_tickets(make_ticket):
    tickets = []
    # 10 opened and closed in September.
    for day in range(1, 11):
        tickets.append(
            make_ticket(
                utc(2025, 9, day, 9),
                utc(2025, 9, day + 2, 17),
                type_code=REQUEST_TYPE if day % 2 else "Incidente",
                group_name="Fila A" if day <= 6 else "Fila B",
            )
        )
    # 3 opened in September and still open.
    for day in (20, 25, 30):
        tickets.append(make_ticket(utc(2025, 9, day, 23, 59, 59), resolution_code=None))
    # 7 opened in August, closed in September; the last one right before midnight.
    for day in range(20, 26):
        tickets.append(make_ticket(utc(2025, 8, day, 10), utc(2025, 9, 5, 12), group_name=None))
    tickets.append(make_ticket(utc(2025, 8, 31, 10), utc(2025, 9, 30, 23, 59, 59, 900000)))
    # 8 problems and noise that the base filter must drop.
    for day in range(1, 9):
        tickets.append(make_ticket(utc(2025, 9, day, 8), type_code="Problema"))
    tickets.append(make_ticket(utc(2025, 9, 3, 8), organization_name="Outra Empresa"))
    tickets.append(make_ticket(utc(2025, 9, 3, 8), is_parent_case=False))
    tickets.append(make_ticket(utc(2025, 9, 3, 8), group_name="CA SDM"))
    # Opened at the first instant of October: not part of September.
    tickets.append(make_ticket(utc(2025, 10, 1, 0, 0, 0)))
    return tickets


def test_acme_september_counts(acme, make_ticket) -> None:
    store = InMemoryTicketStore(tickets=_acme_tickets(make_ticket), companies=[acme])
    snapshot = VolumetryAggregator(store).compute(acme, SEPTEMBER)

    assert snapshot.opened.total == 13
    assert snapshot.closed.total == 17
    assert snapshot.opened.incident + snapshot.opened.request == 13
    assert snapshot.opened.request == 5
    assert snapshot.union_total == 20
    assert snapshot.resolution_rate == 85


def test_range_queries_bound_query_count(acme, make_ticket) -> None:
    store = InMemoryTicketStore(tickets=_acme_tickets(make_ticket), companies=[acme])
    VolumetryAggregator(store).compute(acme, SEPTEMBER)
    assert store.query_count == 2


def test_breakdowns_sum_to_union(acme, make_ticket) -> None:
    store = InMemoryTicketStore(tickets=_acme_tickets(make_ticket), companies=[acme])
    snapshot = VolumetryAggregator(store).compute(acme, SEPTEMBER)

    assert sum(group.total for group in snapshot.groups) == snapshot.union_total
    assert sum(cause.total for cause in snapshot.causes) == snapshot.union_total
    labels = [group.group for group in snapshot.groups]
    assert "Sem Grupo" in labels
    no_group = next(group for group in snapshot.groups if group.group == "Sem Grupo")
    assert no_group.opened == 0 and no_group.closed == 6
    assert "Sem Código de Resolução" in [cause.cause for cause in snapshot.causes]


def test_trend_matches_single_period_results(acme, make_ticket) -> None:
    store = InMemoryTicketStore(tickets=_acme_tickets(make_ticket), companies=[acme])
    aggregator = VolumetryAggregator(store)
    snapshot = aggregator.compute(acme, SEPTEMBER)

    assert [point.label for point in snapshot.trend] == ["ABR", "MAI", "JUN", "JUL", "AGO", "SET"]
    for point in snapshot.trend:
        single = aggregator.compute(acme, PeriodWindow.of(point.month, point.year))
        assert (point.opened, point.closed) == (single.opened.total, single.closed.total)
    august = snapshot.trend[-2]
    assert (august.opened, august.closed) == (7, 0)


def test_compute_is_idempotent(acme, make_ticket) -> None:
    store = InMemoryTicketStore(tickets=_acme_tickets(make_ticket), companies=[acme])
    aggregator = VolumetryAggregator(store)
    assert aggregator.compute(acme, SEPTEMBER) == aggregator.compute(acme, SEPTEMBER)


def test_bucket_by_window_drops_duplicates_and_out_of_range(make_ticket) -> None:
    periods = SEPTEMBER.range_back(2)
    inside = make_ticket(utc(2025, 9, 2))
    early = make_ticket(utc(2025, 7, 31))
    buckets = bucket_by_window([inside, inside, early], periods, date_field="opened_at", closed=False)
    assert buckets[SEPTEMBER] == [inside]
    assert buckets[periods[0]] == []


def test_empty_snapshot_has_zero_trend(acme) -> None:
    snapshot = VolumetryAggregator(InMemoryTicketStore()).empty(acme, SEPTEMBER)
    assert len(snapshot.trend) == 6
    assert all(point.opened == 0 and point.closed == 0 for point in snapshot.trend)
    assert snapshot.opened.total == 0 and snapshot.union_total == 0
