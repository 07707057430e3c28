from __future__ import annotations

import logging

import pytest

from book_metrics.config import ConfigError, EngineSettings, load_config
from book_metrics.logging_setup import configure_logging


def test_load_config_reads_mapping(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("engine:\n  max_workers: 8\n", encoding="utf-8")
    assert load_config(path) == {"engine": {"max_workers": 8}}


def test_load_config_errors(tmp_path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")

    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(listing)

    broken = tmp_path / "broken.yaml"
    broken.write_text("engine: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(broken)


def test_engine_settings_from_config() -> None:
    settings = EngineSettings.from_config(
        {
            "engine": {"max_workers": 0, "parallel_sections": False, "sla_history_months": 3},
            "filters": {"excluded_groups": "Fila X", "closed_statuses": ["Fechado"]},
        }
    )
    assert settings.max_workers == 1
    assert settings.parallel_sections is False
    assert settings.sla_history_months == 3
    assert settings.trend_months == 6
    assert settings.excluded_groups == frozenset({"Fila X"})
    assert settings.closed_statuses == frozenset({"Fechado"})
    assert settings.excluded_configuration_item == "000000 - PROJETOS APL"


def test_engine_settings_rejects_bad_values() -> None:
    with pytest.raises(ConfigError):
        EngineSettings.from_config({"engine": {"max_workers": "many"}})


def test_configure_logging_installs_file_sink(tmp_path, restore_root_logging) -> None:
    configure_logging(
        {
            "logging": {
                "console": {"enabled": True, "rich_format": False, "level": "WARNING"},
                "file": {"path": "logs/run.log", "level": "INFO"},
            }
        },
        base_dir=tmp_path,
    )
    handlers = logging.getLogger().handlers
    assert len(handlers) == 2
    logging.getLogger("book_metrics.test").info("hello book")
    for handler in handlers:
        handler.flush()
    assert "hello book" in (tmp_path / "logs" / "run.log").read_text(encoding="utf-8")


def test_configure_logging_names_file_per_run_and_quiets_http(tmp_path, restore_root_logging) -> None:
    configure_logging(
        {
            "logging": {
                "console": {"enabled": False},
                "file": {"path": "logs/books_{run}.log"},
            }
        },
        base_dir=tmp_path,
        run_label="2025-09",
    )
    logging.getLogger("book_metrics.assembler").info("built acme")
    for handler in logging.getLogger().handlers:
        handler.flush()

    content = (tmp_path / "logs" / "books_2025-09.log").read_text(encoding="utf-8")
    assert "| MainThread | book_metrics.assembler | built acme" in content
    assert logging.getLogger("urllib3").level == logging.WARNING
