"""Dependency-respecting total order over work items."""

from __future__ import annotations

from heapq import heapify, heappop, heappush
from typing import TYPE_CHECKING

from release_train.planning.errors import InvalidDependencyGraphError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from release_train.domain.models import WorkItem
    from release_train.planning.dependency_graph import DependencyGraph

_SortKey = tuple[int, float, str]


def sequence_key(item: WorkItem, graph: DependencyGraph) -> _SortKey:
    """Eligibility tie-break: priority asc, planning size desc, identifier asc."""

    return (item.priority, -item.planning_size(graph.default_item_size), item.id)


def sequence(items: Iterable[WorkItem], graph: DependencyGraph) -> tuple[WorkItem, ...]:
    """Kahn's algorithm over HARD edges with a deterministic eligibility key.

    SOFT dependencies never gate eligibility. Items unknown to ``graph`` are
    rejected; the sequence covers exactly the supplied items.
    """

    selected: dict[str, WorkItem] = {}
    for item in items:
        if item.id not in graph:
            raise KeyError(f"Unknown work item: {item.id}")
        selected.setdefault(item.id, item)

    indegree: dict[str, int] = {
        item_id: sum(1 for dep in graph.hard_dependencies(item_id) if dep in selected)
        for item_id in selected
    }
    ready: list[tuple[_SortKey, str]] = [
        (sequence_key(selected[item_id], graph), item_id)
        for item_id, degree in indegree.items()
        if degree == 0
    ]
    heapify(ready)

    ordered: list[WorkItem] = []
    while ready:
        _, item_id = heappop(ready)
        ordered.append(selected[item_id])

        for dependent in graph.hard_dependents(item_id):
            if dependent not in indegree:
                continue
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                heappush(ready, (sequence_key(selected[dependent], graph), dependent))

    if len(ordered) != len(selected):
        raise InvalidDependencyGraphError(item.members for item in graph.validation.hard_cycles)
    return tuple(ordered)


__all__ = ["sequence", "sequence_key"]
