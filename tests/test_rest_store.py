"""Tests for the PostgREST-backed repositories."""

from __future__ import annotations

import json
import threading
from typing import Any, List
from unittest.mock import MagicMock

import pytest
import requests

from book_metrics import rest_store as rest_store_module
from book_metrics.filters import TicketFilterBuilder
from book_metrics.periods import PeriodWindow
from book_metrics.repository import NotFoundError, RepositoryError
from book_metrics.rest_store import RestStoreClient

SEPTEMBER = PeriodWindow.of(9, 2025)


def _mock_response(payload: Any, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.content = json.dumps(payload).encode("utf-8")
    response.json.return_value = payload
    response.status_code = status_code
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Server Error")
    else:
        response.raise_for_status.return_value = None
    return response


def _client(*responses: MagicMock, **kwargs) -> RestStoreClient:
    client = RestStoreClient(base_url="https://proj.supabase.co/rest/v1/", api_key="secret", **kwargs)
    client.session = MagicMock()
    client.session.request.side_effect = list(responses)
    return client


def _row(number: str, **overrides):
    row = {
        "nro_solicitacao": number,
        "organizacao": "ACME LTDA",
        "cod_tipo": "Incidente",
        "cod_resolucao": "Consultoria",
        "nome_grupo": "AMS APL - FUNCIONAL",
        "item_configuracao": "ERP",
        "caso_pai": "Sim",
        "status": "Closed",
        "tds_cumprido": "Sim",
        "data_abertura": "2025-09-03T10:00:00",
        "data_solucao": "2025-09-04T10:00:00",
    }
    row.update(overrides)
    return row


def _params(client: RestStoreClient, call: int = 0) -> List:
    return client.session.request.call_args_list[call].kwargs["params"]


def test_session_headers_and_url_normalisation() -> None:
    client = RestStoreClient(base_url="https://proj.supabase.co/rest/v1/", api_key="secret")
    assert client.base_url == "https://proj.supabase.co"
    assert client.session.headers["apikey"] == "secret"
    assert client.session.headers["Authorization"] == "Bearer secret"


def test_query_pushes_filter_and_window_and_rechecks_rows(acme) -> None:
    rows = [
        _row("1"),
        _row("2", caso_pai="Não"),
        _row("3", organizacao="Outra"),
        _row("4", data_abertura=None),
    ]
    client = _client(_mock_response(rows))
    base = TicketFilterBuilder().base(acme)

    records = client.query(base, "opened_at", SEPTEMBER.opened_window())

    assert [record.id for record in records] == ["1"]
    call = client.session.request.call_args_list[0]
    assert call.args == ("GET", "https://proj.supabase.co/rest/v1/apontamentos_tickets_aranda")
    params = _params(client)
    assert ("data_abertura", "gte.2025-09-01T00:00:00") in params
    assert ("data_abertura", "lte.2025-09-30T23:59:59.999999") in params
    assert params[0] == ("select", "*")
    assert params[1] == base.to_query_params()[0]


def test_closed_window_uses_exclusive_upper_bound(acme) -> None:
    client = _client(_mock_response([]))
    client.query(TicketFilterBuilder().base(acme), "solved_at", SEPTEMBER.closed_window())
    assert ("data_solucao", "lt.2025-10-01T00:00:00") in _params(client)


def test_unknown_date_field_is_rejected(acme) -> None:
    client = _client()
    with pytest.raises(ValueError):
        client.query(TicketFilterBuilder().base(acme), "created_at", SEPTEMBER.opened_window())


def test_pagination_follows_offsets(acme) -> None:
    client = _client(
        _mock_response([_row("1", status="Open"), _row("2", status="Open")]),
        _mock_response([_row("3", status="Open")]),
        page_size=2,
    )
    records = client.query_backlog(TicketFilterBuilder().backlog(acme))
    assert [record.id for record in records] == ["1", "2", "3"]
    assert client.session.request.call_count == 2
    assert ("offset", "0") in _params(client, 0)
    assert ("offset", "2") in _params(client, 1)
    assert ("limit", "2") in _params(client, 1)


def test_connection_errors_become_repository_errors(acme) -> None:
    client = _client()
    client.session.request.side_effect = requests.ConnectionError("connection refused")
    with pytest.raises(RepositoryError):
        client.query_backlog(TicketFilterBuilder().backlog(acme))


def test_http_errors_become_repository_errors() -> None:
    client = _client(_mock_response({"message": "boom"}, status_code=503))
    with pytest.raises(RepositoryError):
        client.get("acme-1")


def test_non_list_payload_is_rejected() -> None:
    client = _client(_mock_response({"message": "unexpected"}))
    with pytest.raises(RepositoryError):
        client.get("acme-1")


def test_get_company() -> None:
    client = _client(
        _mock_response([{"id": "acme-1", "nome_completo": "ACME LTDA", "meta_sla_percentual": 90}]),
        _mock_response([]),
    )
    profile = client.get("acme-1")
    assert profile.name == "ACME LTDA"
    assert profile.sla_target_percent == 90.0
    assert ("id", "eq.acme-1") in _params(client)
    with pytest.raises(NotFoundError):
        client.get("ghost")


def test_hour_range_queries_billing_months() -> None:
    client = _client(
        _mock_response(
            [
                {"id": 1, "tipo_cobranca": "Banco de Horas", "horas_total": "02:00", "mes_cobranca": "08/2025"},
                {"id": 2, "tipo_cobranca": "Banco de Horas", "horas_total": "01:00", "mes_cobranca": "??"},
            ]
        )
    )
    records = client.hours().query_range("acme-1", SEPTEMBER.shift(-1), SEPTEMBER)
    assert [record.id for record in records] == ["1"]
    params = _params(client)
    assert ("cliente_id", "eq.acme-1") in params
    assert ("mes_cobranca", 'in.("08/2025","09/2025")') in params


def test_rate_limit_sleeps_between_requests(monkeypatch) -> None:
    sleeps: List[float] = []
    monkeypatch.setattr(rest_store_module.time, "sleep", lambda seconds: sleeps.append(seconds))
    client = _client(_mock_response([]), _mock_response([]), rate_limit_per_minute=60)

    client.hours().query("acme-1", SEPTEMBER)
    client.hours().query("acme-1", SEPTEMBER)

    assert len(sleeps) == 1
    assert 0 < sleeps[0] <= 1.0


def test_rate_limit_spaces_concurrent_requests(monkeypatch) -> None:
    sleeps: List[float] = []
    monkeypatch.setattr(rest_store_module.time, "monotonic", lambda: 100.0)
    monkeypatch.setattr(rest_store_module.time, "sleep", lambda seconds: sleeps.append(seconds))
    client = _client(rate_limit_per_minute=60)
    client.session.request.side_effect = None
    client.session.request.return_value = _mock_response([])

    client._request("/rest/v1/requerimentos", [])
    workers = [
        threading.Thread(target=client._request, args=("/rest/v1/requerimentos", []))
        for _ in range(4)
    ]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert sorted(sleeps) == [1.0, 2.0, 3.0, 4.0]
    assert client.session.request.call_count == 5


def test_paged_requests_carry_a_stable_order(acme) -> None:
    client = _client(_mock_response([]), _mock_response([]), _mock_response([]))

    client.query_backlog(TicketFilterBuilder().backlog(acme))
    client.hours().query("acme-1", SEPTEMBER)
    client.list_company_ids()

    assert ("order", "nro_solicitacao.asc,data_abertura.asc") in _params(client, 0)
    assert ("order", "id.asc") in _params(client, 1)
    assert [key for key, _ in _params(client, 2)].count("order") == 1
