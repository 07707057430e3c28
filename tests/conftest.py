from __future__ import annotations

import itertools
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import pytest

from book_metrics.records import INCIDENT_TYPE, CompanyProfile, TicketRecord


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def acme() -> CompanyProfile:
    return CompanyProfile(
        id="acme-1",
        name="ACME LTDA",
        short_name="ACME",
        sla_target_percent=85.0,
        minimum_incident_threshold=1,
        contract_type="Banco de Horas",
        baseline_hours=40.0,
    )


@pytest.fixture
def make_ticket() -> Callable[..., TicketRecord]:
    counter = itertools.count(1)

    def _make(opened_at: datetime, solved_at: Optional[datetime] = None, **overrides) -> TicketRecord:
        values = {
            "id": f"T{next(counter):04d}",
            "organization_name": "ACME LTDA",
            "type_code": INCIDENT_TYPE,
            "resolution_code": "Consultoria",
            "group_name": "AMS APL - FUNCIONAL",
            "configuration_item": "ERP",
            "is_parent_case": True,
            "status": "Closed" if solved_at else "Open",
            "sla_breached": False,
        }
        values.update(overrides)
        return TicketRecord(opened_at=opened_at, solved_at=solved_at, **values)

    return _make


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    urllib3_level = logging.getLogger("urllib3").level
    yield root
    logging.getLogger("urllib3").setLevel(urllib3_level)
    for handler in list(root.handlers):
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
