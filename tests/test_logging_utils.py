"""Tests for logging_utils module."""

from __future__ import annotations

from datetime import date

from loguru import logger

from team_planner.logging_utils import configure_logging, pretty, summarize_board


class TestPretty:
    def test_dict_is_indented_json(self):
        assert pretty({"a": 1}) == '{\n  "a": 1\n}'

    def test_dates_fall_back_to_str(self):
        assert '"2024-05-06"' in pretty({"day": date(2024, 5, 6)})

    def test_unserializable_keys_use_str(self):
        value = {(1, 2): "tuple key"}
        assert pretty(value) == str(value)


def test_summarize_empty_board():
    assert summarize_board(None) == {"board": None}


def test_configure_logging_filters_below_level(capsys):
    configure_logging("warning")
    logger.info("quiet")
    logger.warning("loud")
    err = capsys.readouterr().err
    assert "loud" in err
    assert "quiet" not in err
    configure_logging("INFO")
