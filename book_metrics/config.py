"""Configuration helpers for the book metrics engine."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional

import yaml


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


PACKAGE_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_CONFIG_LOCATIONS = (
    PACKAGE_ROOT / "config" / "config.yaml",
    PACKAGE_ROOT / "config" / "config.yml",
    Path("./config/config.yaml"),
    Path("./config/config.yml"),
    Path.home() / ".book_metrics" / "config.yaml",
)

DEFAULT_EXCLUDED_GROUPS = frozenset({"AMS APL - TÉCNICO", "CA SDM"})
DEFAULT_EXCLUDED_CONFIGURATION_ITEM = "000000 - PROJETOS APL"
DEFAULT_CLOSED_STATUSES = frozenset({"Closed", "Resolved", "Canceled"})


def resolve_path(path_str: str | None, *, base: Path | None = None) -> Path:
    """Resolve a path string that may be relative to an optional base directory."""
    base_path = base or Path.cwd()
    if not path_str:
        return base_path
    path = Path(path_str)
    if not path.is_absolute():
        path = base_path / path
    return path


def load_config(path: str | os.PathLike[str] | None = None) -> Dict[str, Any]:
    """Load configuration from YAML.

    Parameters
    ----------
    path: Optional path to a configuration file. If not provided, default
        locations will be searched.
    """
    if path:
        candidate_paths = [Path(path)]
    else:
        candidate_paths = list(DEFAULT_CONFIG_LOCATIONS)

    for candidate in candidate_paths:
        if candidate.exists():
            with candidate.open("r", encoding="utf-8") as handle:
                try:
                    data = yaml.safe_load(handle) or {}
                except yaml.YAMLError as exc:
                    raise ConfigError(f"Unable to parse configuration file {candidate}") from exc
            if not isinstance(data, dict):
                raise ConfigError(f"Configuration file {candidate} must contain a mapping")
            return data
    raise ConfigError(
        "No configuration file could be located. Provide --config or create "
        "config/config.yaml (see config/config.example.yaml)."
    )


def _string_set(value: Any, default: FrozenSet[str]) -> FrozenSet[str]:
    if value is None:
        return default
    if isinstance(value, str):
        return frozenset({value})
    return frozenset(str(item) for item in value if item is not None)


@dataclass(frozen=True)
class EngineSettings:
    """Typed view over the ``engine`` and ``filters`` configuration sections."""

    max_workers: int = 4
    parallel_sections: bool = True
    trend_months: int = 6
    sla_history_months: int = 5
    consumption_months: int = 6
    breached_sample_size: int = 10
    excluded_groups: FrozenSet[str] = field(default=DEFAULT_EXCLUDED_GROUPS)
    excluded_configuration_item: Optional[str] = DEFAULT_EXCLUDED_CONFIGURATION_ITEM
    closed_statuses: FrozenSet[str] = field(default=DEFAULT_CLOSED_STATUSES)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "EngineSettings":
        engine_cfg = config.get("engine") or {}
        filters_cfg = config.get("filters") or {}
        try:
            return cls(
                max_workers=max(1, int(engine_cfg.get("max_workers", 4))),
                parallel_sections=bool(engine_cfg.get("parallel_sections", True)),
                trend_months=max(1, int(engine_cfg.get("trend_months", 6))),
                sla_history_months=max(1, int(engine_cfg.get("sla_history_months", 5))),
                consumption_months=max(1, int(engine_cfg.get("consumption_months", 6))),
                breached_sample_size=max(0, int(engine_cfg.get("breached_sample_size", 10))),
                excluded_groups=_string_set(
                    filters_cfg.get("excluded_groups"), DEFAULT_EXCLUDED_GROUPS
                ),
                excluded_configuration_item=filters_cfg.get(
                    "excluded_configuration_item", DEFAULT_EXCLUDED_CONFIGURATION_ITEM
                ),
                closed_statuses=_string_set(
                    filters_cfg.get("closed_statuses"), DEFAULT_CLOSED_STATUSES
                ),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid engine configuration: {exc}") from exc
