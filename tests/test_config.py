from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from team_planner.config import PlannerConfig, load_planner_config
from team_planner.errors import ConfigError


def _write_config(project_dir: Path, data: object) -> None:
    state = project_dir / ".team_planner"
    state.mkdir(parents=True, exist_ok=True)
    (state / "config.yaml").write_text(yaml.safe_dump(data), encoding="utf-8")


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    cfg = load_planner_config(tmp_path)
    assert cfg == PlannerConfig()
    assert cfg.first_weekday == 0
    assert cfg.workload_thresholds == {"chill": 3, "busy": 6}


def test_values_are_read(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        {
            "initial_months_back": 1,
            "week_start": "Sunday",
            "timezone": "Asia/Bangkok",
            "packing_strategy": "interval",
            "hide_done": False,
            "workload_thresholds": {"busy": 10},
        },
    )

    cfg = load_planner_config(tmp_path)

    assert cfg.initial_months_back == 1
    assert cfg.initial_months_ahead == 3
    assert cfg.first_weekday == 6
    assert str(cfg.tzinfo) == "Asia/Bangkok"
    assert cfg.packing_strategy == "interval"
    assert cfg.hide_done is False
    assert cfg.workload_thresholds == {"chill": 3, "busy": 10}


@pytest.mark.parametrize(
    "data",
    [
        {"week_start": "wednesday"},
        {"timezone": "Mars/Olympus"},
        {"packing_strategy": "random"},
        {"initial_months_back": -1},
        {"workload_thresholds": {"chill": 9, "busy": 2}},
        {"workload_thresholds": {"panic": 1}},
        {"log_level": "LOUD"},
    ],
)
def test_invalid_values_raise(tmp_path: Path, data: dict) -> None:
    _write_config(tmp_path, data)
    with pytest.raises(ConfigError):
        load_planner_config(tmp_path)


def test_unparseable_file_raises(tmp_path: Path) -> None:
    state = tmp_path / ".team_planner"
    state.mkdir()
    (state / "config.yaml").write_text("week_start: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_planner_config(tmp_path)


def test_env_overrides_log_level(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_config(tmp_path, {"log_level": "info"})
    monkeypatch.setenv("TEAM_PLANNER_LOG_LEVEL", "debug")
    assert load_planner_config(tmp_path).log_level == "DEBUG"
