"""Unit tests for planning.capacity."""

from __future__ import annotations

from datetime import date

import pytest

from release_train.domain.models import Iteration, Team
from release_train.planning.capacity import (
    CapacityManager,
    capacity_confidence,
    validate_team,
    validate_teams,
)

pytestmark = pytest.mark.unit


def _team(team_id: str = "t1", **overrides: object) -> Team:
    fields: dict[str, object] = {
        "id": team_id,
        "name": f"Team {team_id}",
        "member_count": 5,
        "average_velocity": 20.0,
        "specializations": ("backend",),
    }
    fields.update(overrides)
    return Team(**fields)  # type: ignore[arg-type]


def _iteration(days: int) -> Iteration:
    start = date(2024, 1, 1)
    return Iteration(
        id="it1",
        name="Iteration 1",
        index=0,
        start_date=start,
        end_date=date.fromordinal(start.toordinal() + days - 1),
    )


def test_capacity_multiplies_velocity_trend_and_factor() -> None:
    manager = CapacityManager(buffer_capacity=0.2)
    team = _team(average_velocity=20.0, velocity_trend=1.1, capacity_factor=0.5)

    assert manager.capacity_for(team) == pytest.approx(11.0)
    assert manager.usable_capacity(team) == pytest.approx(8.8)


def test_buffer_withholds_share_of_capacity() -> None:
    assessed = CapacityManager(buffer_capacity=0.2).assess_team(_team(average_velocity=12.5))

    assert assessed.raw_capacity == pytest.approx(12.5)
    assert assessed.usable_capacity == pytest.approx(10.0)
    assert assessed.buffer_points == pytest.approx(2.5)


def test_zero_buffer_exposes_full_capacity() -> None:
    manager = CapacityManager(buffer_capacity=0.0)

    assert manager.usable_capacity(_team(average_velocity=10.0)) == pytest.approx(10.0)


@pytest.mark.parametrize("buffer", [-0.1, 1.0, 1.5])
def test_buffer_outside_unit_interval_is_rejected(buffer: float) -> None:
    with pytest.raises(ValueError, match="buffer_capacity"):
        CapacityManager(buffer_capacity=buffer)


def test_scaling_by_iteration_length_is_opt_in() -> None:
    team = _team(average_velocity=20.0)
    long_iteration = _iteration(21)

    plain = CapacityManager(buffer_capacity=0.0)
    scaled = CapacityManager(
        buffer_capacity=0.0, default_iteration_length=14, scale_by_iteration_length=True
    )

    assert plain.capacity_for(team, long_iteration) == pytest.approx(20.0)
    assert scaled.capacity_for(team, long_iteration) == pytest.approx(30.0)


def test_confidence_penalizes_small_slow_unspecialized_teams() -> None:
    healthy, healthy_risks = capacity_confidence(_team())
    risky, risks = capacity_confidence(
        _team(member_count=2, average_velocity=6.0, specializations=())
    )

    assert healthy == pytest.approx(0.9)
    assert healthy_risks == ()
    assert risky == pytest.approx(0.9 - 0.1 - 0.15 - 0.05)
    assert len(risks) == 3


def test_confidence_flags_large_teams() -> None:
    confidence, risks = capacity_confidence(_team(member_count=12, average_velocity=60.0))

    assert confidence == pytest.approx(0.8)
    assert any("coordination" in risk for risk in risks)


def test_validate_team_reports_every_problem() -> None:
    team = _team(average_velocity=0.0, member_count=0, capacity_factor=1.5, velocity_trend=0.0)

    errors, warnings = validate_team(team, "teams[0]")

    assert [issue.path for issue in errors] == [
        "teams[0].average_velocity",
        "teams[0].member_count",
        "teams[0].capacity_factor",
        "teams[0].velocity_trend",
    ]
    assert warnings == ()


def test_validate_teams_flags_duplicates_and_implausible_velocity() -> None:
    errors, warnings = validate_teams([_team("a"), _team("a", average_velocity=80.0)])

    assert [issue.path for issue in errors] == ["teams[1].id"]
    assert warnings == ("team a: velocity 80 seems high for 5 member(s)",)
