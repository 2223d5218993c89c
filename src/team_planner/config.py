"""Load optional planner configuration from `.team_planner/config.yaml`."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .constants import (
    CONFIG_FILE,
    DEFAULT_MONTHS_AHEAD,
    DEFAULT_MONTHS_BACK,
    LOG_LEVEL_ENV_VAR,
    STATE_DIR_NAME,
)
from .errors import ConfigError
from .io_utils import _load_data_with_error

VALID_WEEK_STARTS = {"monday": 0, "sunday": 6}
VALID_STRATEGIES = {"first_fit", "interval"}
VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class PlannerConfig:
    initial_months_back: int = DEFAULT_MONTHS_BACK
    initial_months_ahead: int = DEFAULT_MONTHS_AHEAD
    week_start: str = "monday"
    timezone: str = "UTC"
    packing_strategy: str = "first_fit"
    hide_done: bool = True
    workload_thresholds: dict[str, int] = field(default_factory=lambda: {"chill": 3, "busy": 6})
    log_level: str = "INFO"

    @property
    def first_weekday(self) -> int:
        """``date.weekday()`` value of the first displayed day."""
        return VALID_WEEK_STARTS[self.week_start]

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlannerConfig":
        """Build a config from a plain mapping, validating every known key.

        Unknown keys are ignored so newer config files keep working with
        older installs.
        """
        cfg = cls()
        for key in ("initial_months_back", "initial_months_ahead"):
            if key in data:
                raw = data[key]
                if not isinstance(raw, int) or isinstance(raw, bool) or raw < 0:
                    raise ConfigError(f"'{key}' must be a non-negative integer, got {raw!r}")
                setattr(cfg, key, raw)

        if "week_start" in data:
            raw = str(data["week_start"]).strip().lower()
            if raw not in VALID_WEEK_STARTS:
                raise ConfigError(f"'week_start' must be one of {sorted(VALID_WEEK_STARTS)}, got {data['week_start']!r}")
            cfg.week_start = raw

        if "timezone" in data:
            raw = str(data["timezone"])
            try:
                ZoneInfo(raw)
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise ConfigError(f"'timezone' is not a known IANA zone: {raw!r}") from exc
            cfg.timezone = raw

        if "packing_strategy" in data:
            raw = str(data["packing_strategy"])
            if raw not in VALID_STRATEGIES:
                raise ConfigError(f"'packing_strategy' must be one of {sorted(VALID_STRATEGIES)}, got {raw!r}")
            cfg.packing_strategy = raw

        if "hide_done" in data:
            cfg.hide_done = bool(data["hide_done"])

        if "workload_thresholds" in data:
            raw = data["workload_thresholds"]
            if not isinstance(raw, dict):
                raise ConfigError("'workload_thresholds' must be a mapping")
            merged = dict(cfg.workload_thresholds)
            for name, value in raw.items():
                if name not in merged:
                    raise ConfigError(f"unknown workload threshold {name!r}")
                if not isinstance(value, int) or value < 0:
                    raise ConfigError(f"workload threshold {name!r} must be a non-negative integer")
                merged[name] = value
            if merged["chill"] > merged["busy"]:
                raise ConfigError("workload threshold 'chill' must not exceed 'busy'")
            cfg.workload_thresholds = merged

        if "log_level" in data:
            cfg.log_level = _validate_log_level(data["log_level"])

        return cfg


def _validate_log_level(raw: Any) -> str:
    level = str(raw).strip().upper()
    if level not in VALID_LOG_LEVELS:
        raise ConfigError(f"'log_level' must be one of {sorted(VALID_LOG_LEVELS)}, got {raw!r}")
    return level


def load_planner_config(project_dir: Path) -> PlannerConfig:
    """Load the optional planner config file.

    Args:
        project_dir: Directory that holds `.team_planner/`.

    Returns:
        The parsed config; defaults when the file is missing.

    Raises:
        ConfigError: If the file cannot be parsed or holds an invalid value.
    """
    path = project_dir.resolve() / STATE_DIR_NAME / CONFIG_FILE
    data, err = _load_data_with_error(path, {})
    if err:
        raise ConfigError(err)
    cfg = PlannerConfig.from_dict(data)
    env_level = os.getenv(LOG_LEVEL_ENV_VAR)
    if env_level:
        cfg.log_level = _validate_log_level(env_level)
    return cfg
