"""Planning error taxonomy: invalid input and invalid dependency graphs."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PlanningIssue:
    """Single structured input problem (field path + message)."""

    path: str
    message: str


class PlanningInputError(ValueError):
    """Raised before allocation when any planning input is malformed.

    Every offending field is collected into ``issues`` rather than stopping at
    the first problem.
    """

    def __init__(self, issues: Sequence[PlanningIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown planning input failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid planning input:\n{rendered}")


class InvalidDependencyGraphError(ValueError):
    """Raised when HARD dependencies form at least one cycle."""

    cycles: tuple[tuple[str, ...], ...]

    def __init__(self, cycles: Iterable[Sequence[str]]) -> None:
        normalized: tuple[tuple[str, ...], ...] = tuple(tuple(path) for path in cycles)
        self.cycles = normalized

        if not normalized:
            message = "Dependency graph contains at least one hard cycle."
        else:
            preview = ", ".join(" -> ".join(path) for path in normalized[:3])
            suffix = "..." if len(normalized) > 3 else ""
            message = f"Dependency graph contains hard cycle(s): {preview}{suffix}"
        super().__init__(message)


class IssueCollector:
    """Accumulates planning issues in insertion order.

    Shared by input ingestion and the planner; ``raise_if_any`` turns the batch
    into one ``PlanningInputError``. Config validation keeps its own collector
    because it reports ``ConfigValidationIssue``s without raising.
    """

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[PlanningIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(PlanningIssue(path=path, message=message))

    def extend(self, issues: Iterable[PlanningIssue]) -> None:
        self._items.extend(issues)

    def items(self) -> tuple[PlanningIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)

    def raise_if_any(self) -> None:
        if self._items:
            raise PlanningInputError(self._items)


__all__ = [
    "InvalidDependencyGraphError",
    "IssueCollector",
    "PlanningInputError",
    "PlanningIssue",
]
