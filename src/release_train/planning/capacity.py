"""Team capacity derivation, buffer withholding, and capacity confidence."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from release_train.constants import DEFAULT_BUFFER_CAPACITY, DEFAULT_ITERATION_LENGTH_DAYS
from release_train.domain.models import CanonicalModel
from release_train.planning.errors import PlanningIssue

if TYPE_CHECKING:
    from collections.abc import Sequence

    from release_train.domain.models import Iteration, Team

_BASE_CONFIDENCE: Final[float] = 0.9
_MIN_CONFIDENCE: Final[float] = 0.3
_LOW_VELOCITY: Final[float] = 10.0
_SMALL_TEAM: Final[int] = 3
_LARGE_TEAM: Final[int] = 10
_MAX_POINTS_PER_MEMBER: Final[float] = 10.0


@dataclass(frozen=True, slots=True)
class TeamCapacity(CanonicalModel):
    team_id: str
    raw_capacity: float
    usable_capacity: float
    buffer_points: float
    confidence: float
    risks: tuple[str, ...] = ()


class CapacityManager:
    """Pure capacity calculations for one planning run.

    ``capacity = average_velocity * velocity_trend * capacity_factor``; the usable
    share withholds ``buffer_capacity`` from that total.
    """

    __slots__ = ("_buffer_capacity", "_iteration_length", "_scale_by_iteration_length")

    def __init__(
        self,
        *,
        buffer_capacity: float = DEFAULT_BUFFER_CAPACITY,
        default_iteration_length: int = DEFAULT_ITERATION_LENGTH_DAYS,
        scale_by_iteration_length: bool = False,
    ) -> None:
        if not 0.0 <= buffer_capacity < 1.0:
            raise ValueError("buffer_capacity must be in [0, 1)")
        if default_iteration_length <= 0:
            raise ValueError("default_iteration_length must be > 0")
        self._buffer_capacity = float(buffer_capacity)
        self._iteration_length = int(default_iteration_length)
        self._scale_by_iteration_length = bool(scale_by_iteration_length)

    @property
    def buffer_capacity(self) -> float:
        return self._buffer_capacity

    def capacity_for(self, team: Team, iteration: Iteration | None = None) -> float:
        capacity = team.average_velocity * team.velocity_trend * team.capacity_factor
        if self._scale_by_iteration_length and iteration is not None:
            capacity *= iteration.duration_days / self._iteration_length
        return max(capacity, 0.0)

    def usable_capacity(self, team: Team, iteration: Iteration | None = None) -> float:
        return self.capacity_for(team, iteration) * (1.0 - self._buffer_capacity)

    def assess_team(self, team: Team, iteration: Iteration | None = None) -> TeamCapacity:
        raw = self.capacity_for(team, iteration)
        usable = raw * (1.0 - self._buffer_capacity)
        confidence, risks = capacity_confidence(team)
        return TeamCapacity(
            team_id=team.id,
            raw_capacity=raw,
            usable_capacity=usable,
            buffer_points=raw - usable,
            confidence=confidence,
            risks=risks,
        )


def capacity_confidence(team: Team) -> tuple[float, tuple[str, ...]]:
    """Heuristic confidence that ``team`` delivers its nominal capacity."""

    confidence = _BASE_CONFIDENCE
    risks: list[str] = []

    if team.average_velocity < _LOW_VELOCITY:
        confidence -= 0.1
        risks.append("Low historical velocity may indicate capacity constraints")
    if team.member_count < _SMALL_TEAM:
        confidence -= 0.15
        risks.append("Small team size increases delivery risk")
    if team.member_count > _LARGE_TEAM:
        confidence -= 0.1
        risks.append("Large team size may create coordination overhead")
    if not team.specializations:
        confidence -= 0.05
        risks.append("No specializations recorded; work matching is less precise")

    return max(_MIN_CONFIDENCE, min(1.0, confidence)), tuple(risks)


def validate_team(team: Team, path: str) -> tuple[tuple[PlanningIssue, ...], tuple[str, ...]]:
    """Return ``(errors, warnings)`` for a team profile."""

    errors: list[PlanningIssue] = []
    warnings: list[str] = []

    if team.average_velocity <= 0:
        errors.append(PlanningIssue(f"{path}.average_velocity", "must be > 0"))
    if team.member_count <= 0:
        errors.append(PlanningIssue(f"{path}.member_count", "must be > 0"))
    if not 0.0 < team.capacity_factor <= 1.0:
        errors.append(PlanningIssue(f"{path}.capacity_factor", "must be in (0, 1]"))
    if team.velocity_trend <= 0:
        errors.append(PlanningIssue(f"{path}.velocity_trend", "must be > 0"))

    if team.member_count > 0 and team.average_velocity > team.member_count * _MAX_POINTS_PER_MEMBER:
        warnings.append(
            f"team {team.id}: velocity {team.average_velocity:g} seems high for "
            f"{team.member_count} member(s)"
        )
    return tuple(errors), tuple(warnings)


def validate_teams(teams: Sequence[Team]) -> tuple[tuple[PlanningIssue, ...], tuple[str, ...]]:
    errors: list[PlanningIssue] = []
    warnings: list[str] = []
    seen: set[str] = set()
    for index, team in enumerate(teams):
        path = f"teams[{index}]"
        if team.id in seen:
            errors.append(PlanningIssue(f"{path}.id", f"duplicate team id {team.id!r}"))
        seen.add(team.id)
        team_errors, team_warnings = validate_team(team, path)
        errors.extend(team_errors)
        warnings.extend(team_warnings)
    return tuple(errors), tuple(warnings)


__all__ = [
    "CapacityManager",
    "TeamCapacity",
    "capacity_confidence",
    "validate_team",
    "validate_teams",
]
