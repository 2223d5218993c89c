from __future__ import annotations

from datetime import date

import pytest

from team_planner.timeline.calendar import WeekWindow, add_months, end_of_month
from team_planner.timeline.window import DateWindowManager, LoadRange


def _manager(start: date, end: date) -> tuple[DateWindowManager, list[int]]:
    calls: list[int] = []
    manager = DateWindowManager(LoadRange(start, end), on_change=lambda: calls.append(1))
    return manager, calls


def test_initial_range_covers_three_months_each_way() -> None:
    manager = DateWindowManager.initial(date(2024, 5, 20))
    assert manager.range == LoadRange(date(2024, 2, 1), date(2024, 8, 31))
    assert manager.is_all_loaded is False


def test_expand_forward_adds_a_month_of_slack() -> None:
    manager, calls = _manager(date(2024, 1, 1), date(2024, 3, 31))

    assert manager.expand_to_include(date(2024, 4, 15)) is True

    assert manager.range == LoadRange(date(2024, 1, 1), date(2024, 5, 31))
    assert len(calls) == 1


def test_expand_backward_starts_a_month_early() -> None:
    manager, calls = _manager(date(2024, 3, 1), date(2024, 5, 31))

    manager.expand_to_include(date(2024, 1, 20))

    assert manager.range.start == date(2023, 12, 1)
    assert manager.range.end == date(2024, 5, 31)
    assert len(calls) == 1


def test_expand_inside_range_is_a_no_op() -> None:
    manager, calls = _manager(date(2024, 1, 1), date(2024, 3, 31))
    assert manager.expand_to_include(date(2024, 2, 10)) is False
    assert calls == []


def test_load_all_freezes_the_range() -> None:
    manager, calls = _manager(date(2024, 1, 1), date(2024, 3, 31))

    assert manager.load_all() is True
    assert manager.load_all() is False
    assert manager.expand_to_include(date(2030, 1, 1)) is False

    assert manager.range == LoadRange(date(2024, 1, 1), date(2024, 3, 31))
    assert manager.is_all_loaded is True
    assert len(calls) == 1


def test_range_only_grows() -> None:
    manager, _ = _manager(date(2024, 3, 1), date(2024, 3, 31))
    seen = [manager.range]
    for target in [date(2024, 6, 2), date(2024, 1, 9), date(2024, 4, 1), date(2025, 2, 28), date(2023, 11, 30)]:
        manager.expand_to_include(target)
        seen.append(manager.range)
    for before, after in zip(seen, seen[1:]):
        assert after.start <= before.start
        assert after.end >= before.end


def test_load_range_rejects_inverted_bounds() -> None:
    with pytest.raises(ValueError):
        LoadRange(date(2024, 2, 1), date(2024, 1, 1))


class TestCalendarHelpers:
    def test_add_months_clamps_to_short_months(self) -> None:
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2024, 3, 15), -3) == date(2023, 12, 15)

    def test_end_of_month(self) -> None:
        assert end_of_month(date(2023, 2, 3)) == date(2023, 2, 28)

    def test_week_containing_respects_first_weekday(self) -> None:
        thursday = date(2024, 5, 9)
        assert WeekWindow.containing(thursday).start == date(2024, 5, 6)
        assert WeekWindow.containing(thursday, first_weekday=6).start == date(2024, 5, 5)
        assert WeekWindow.containing(thursday).shift(1).start == date(2024, 5, 13)
