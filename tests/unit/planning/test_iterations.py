"""Unit tests for planning.iterations."""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from release_train.domain.models import ProgramIncrement
from release_train.planning.errors import PlanningInputError
from release_train.planning.iterations import (
    check_program_increment,
    iteration_count,
    iterations_for,
)

pytestmark = pytest.mark.unit


def _pi(start: date, end: date) -> ProgramIncrement:
    return ProgramIncrement(id="PI-1", name="PI 1", start_date=start, end_date=end)


def test_quarter_with_two_week_iterations_yields_six() -> None:
    pi = _pi(date(2024, 1, 1), date(2024, 3, 31))

    iterations = iterations_for(pi, 14)

    assert len(iterations) == 6
    assert iterations[0].start_date == date(2024, 1, 1)
    assert iterations[0].end_date == date(2024, 1, 14)
    assert iterations[-1].start_date == date(2024, 3, 11)
    assert iterations[-1].end_date == date(2024, 3, 31)
    assert iterations[-1].duration_days == 21


def test_thirty_days_with_ten_day_iterations_yields_three() -> None:
    pi = _pi(date(2024, 4, 1), date(2024, 4, 30))

    iterations = iterations_for(pi, 10)

    assert [item.duration_days for item in iterations] == [10, 10, 10]
    assert iterations[-1].end_date == date(2024, 4, 30)


def test_short_pi_yields_one_iteration_ending_on_pi_end() -> None:
    pi = _pi(date(2024, 1, 1), date(2024, 1, 5))

    (only,) = iterations_for(pi, 14)

    assert only.start_date == date(2024, 1, 1)
    assert only.end_date == date(2024, 1, 5)


def test_iteration_ids_names_and_goals() -> None:
    pi = _pi(date(2024, 1, 1), date(2024, 1, 28))

    iterations = iterations_for(pi, 14, goals=[["ship checkout"]])

    assert [item.id for item in iterations] == ["PI-1-it1", "PI-1-it2"]
    assert iterations[1].name == "PI 1 - Iteration 2"
    assert iterations[0].goals == ("ship checkout",)
    assert iterations[1].goals == ()
    assert iterations[1].number == 2


def test_invalid_pi_and_length_are_reported_together() -> None:
    pi = _pi(date(2024, 2, 1), date(2024, 1, 1))

    issues = check_program_increment(pi, 0)

    assert [item.path for item in issues] == [
        "program_increment.end_date",
        "iteration_length",
    ]
    with pytest.raises(PlanningInputError):
        iterations_for(pi, 0)


def test_single_day_pi_is_rejected() -> None:
    day = date(2024, 1, 1)

    with pytest.raises(PlanningInputError, match="must be after start_date"):
        iterations_for(_pi(day, day), 14)


@settings(max_examples=75, deadline=None)
@given(
    start_offset=st.integers(min_value=0, max_value=3650),
    span=st.integers(min_value=1, max_value=400),
    length=st.integers(min_value=1, max_value=60),
)
def test_iterations_tile_the_pi_without_gaps(start_offset: int, span: int, length: int) -> None:
    start = date(2020, 1, 1) + timedelta(days=start_offset)
    pi = _pi(start, start + timedelta(days=span))

    iterations = iterations_for(pi, length)

    assert len(iterations) == iteration_count(pi, length)
    assert iterations[0].start_date == pi.start_date
    assert iterations[-1].end_date == pi.end_date
    for previous, current in zip(iterations, iterations[1:], strict=False):
        assert current.start_date == previous.end_date + timedelta(days=1)
        assert previous.duration_days == length
    assert [item.index for item in iterations] == list(range(len(iterations)))
