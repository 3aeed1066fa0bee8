"""Iteration structure generation for a Program Increment."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from release_train.constants import DEFAULT_ITERATION_LENGTH_DAYS
from release_train.domain.models import Iteration
from release_train.planning.errors import IssueCollector, PlanningIssue

if TYPE_CHECKING:
    from collections.abc import Sequence

    from release_train.domain.models import ProgramIncrement


def check_program_increment(
    pi: ProgramIncrement,
    length_days: int,
) -> tuple[PlanningIssue, ...]:
    """Return every structural problem with ``pi`` and ``length_days``."""

    issues = IssueCollector()
    if pi.end_date <= pi.start_date:
        issues.add("program_increment.end_date", "must be after start_date")
    if isinstance(length_days, bool) or not isinstance(length_days, int):
        issues.add("iteration_length", f"expected integer, got {type(length_days).__name__}")
    elif length_days <= 0:
        issues.add("iteration_length", "must be > 0")
    return issues.items()


def iteration_count(pi: ProgramIncrement, length_days: int) -> int:
    """Number of whole iterations that fit in ``pi``; at least one.

    Days left over after the last whole iteration are absorbed into it.
    """

    return max(1, pi.duration_days // length_days)


def iterations_for(
    pi: ProgramIncrement,
    length_days: int = DEFAULT_ITERATION_LENGTH_DAYS,
    *,
    goals: Sequence[Sequence[str]] = (),
) -> tuple[Iteration, ...]:
    """Slice ``pi`` into consecutive, non-overlapping iterations.

    Iteration ``i`` starts at ``pi.start_date + i * length_days``. The final
    iteration always ends on ``pi.end_date``, so a PI that does not divide
    evenly yields one longer final iteration instead of a short trailing one.
    """

    issues = IssueCollector()
    issues.extend(check_program_increment(pi, length_days))
    issues.raise_if_any()

    count = iteration_count(pi, length_days)
    iterations: list[Iteration] = []
    for index in range(count):
        start = pi.start_date + timedelta(days=index * length_days)
        if index == count - 1:
            end = pi.end_date
        else:
            end = min(start + timedelta(days=length_days - 1), pi.end_date)
        iteration_goals = tuple(goals[index]) if index < len(goals) else ()
        iterations.append(
            Iteration(
                id=f"{pi.id}-it{index + 1}",
                name=f"{pi.name} - Iteration {index + 1}",
                index=index,
                start_date=start,
                end_date=end,
                goals=iteration_goals,
            )
        )
    return tuple(iterations)


__all__ = ["check_program_increment", "iteration_count", "iterations_for"]
