"""Dependency graph validation: adjacency, cycle detection, critical path, statistics."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from heapq import heapify, heappop, heappush

from release_train.constants import DEFAULT_ITEM_SIZE, HIGH_DEPENDENCY_THRESHOLD
from release_train.domain.models import (
    CanonicalModel,
    DependencyEdge,
    DependencyStrength,
    JSONValue,
    WorkItem,
    WorkItemKind,
    serialize,
)
from release_train.planning.errors import (
    InvalidDependencyGraphError,
    IssueCollector,
    PlanningInputError,
    PlanningIssue,
)


class CycleSeverity(StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class CycleRecord(CanonicalModel):
    """Closed cycle path such as ``("A", "B", "A")`` with remediation hints."""

    members: tuple[str, ...]
    severity: CycleSeverity
    suggestions: tuple[str, ...] = ()

    @property
    def item_ids(self) -> tuple[str, ...]:
        return self.members[:-1]


@dataclass(frozen=True, slots=True)
class GraphValidation(CanonicalModel):
    is_valid: bool
    issues: tuple[PlanningIssue, ...]
    cycles: tuple[CycleRecord, ...]

    @property
    def hard_cycles(self) -> tuple[CycleRecord, ...]:
        return tuple(item for item in self.cycles if item.severity is CycleSeverity.CRITICAL)

    @property
    def warnings(self) -> tuple[CycleRecord, ...]:
        return tuple(item for item in self.cycles if item.severity is CycleSeverity.WARNING)


@dataclass(frozen=True, slots=True)
class GraphStatistics(CanonicalModel):
    node_count: int
    edge_count: int
    hard_edge_count: int
    soft_edge_count: int
    average_fan_out: float
    independent_items: int
    high_dependency_items: tuple[str, ...]
    critical_path_points: float
    longest_chain: int


class DependencyGraph:
    """Read-only view over work items and their dependency edges.

    Adjacency is keyed by item identifier. ``hard_dependencies(x)`` lists the
    items ``x`` requires; ``hard_dependents(x)`` lists the items requiring ``x``.
    """

    __slots__ = (
        "_items",
        "_edges",
        "_hard",
        "_soft",
        "_hard_dependents",
        "_soft_dependents",
        "_default_item_size",
        "_validation",
        "_critical_path",
        "_statistics",
    )

    def __init__(
        self,
        items: Iterable[WorkItem],
        edges: Iterable[DependencyEdge] = (),
        *,
        default_item_size: float = DEFAULT_ITEM_SIZE,
    ) -> None:
        issues = IssueCollector()
        self._default_item_size = float(default_item_size)
        self._items: dict[str, WorkItem] = {}
        self._hard: dict[str, set[str]] = {}
        self._soft: dict[str, set[str]] = {}
        self._hard_dependents: dict[str, set[str]] = {}
        self._soft_dependents: dict[str, set[str]] = {}

        for index, item in enumerate(items):
            self._register_item(index, item, issues)

        self._edges = self._register_edges(edges, issues)

        cycles = self._find_cycles()
        hard_cycle_found = any(item.severity is CycleSeverity.CRITICAL for item in cycles)
        self._validation = GraphValidation(
            is_valid=not hard_cycle_found and not issues.has_issues,
            issues=issues.items(),
            cycles=cycles,
        )
        self._critical_path: tuple[str, ...] = () if hard_cycle_found else self._longest_path()
        self._statistics = self._compute_statistics()

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def items(self) -> tuple[WorkItem, ...]:
        """Work items in the order supplied (duplicates dropped)."""
        return tuple(self._items.values())

    @property
    def item_ids(self) -> tuple[str, ...]:
        return tuple(sorted(self._items))

    @property
    def edges(self) -> tuple[DependencyEdge, ...]:
        """Accepted edges in deterministic ``(source, target)`` order."""
        return self._edges

    @property
    def validation(self) -> GraphValidation:
        return self._validation

    @property
    def is_valid(self) -> bool:
        return self._validation.is_valid

    @property
    def cycles(self) -> tuple[CycleRecord, ...]:
        return self._validation.cycles

    @property
    def critical_path(self) -> tuple[str, ...]:
        """Longest HARD chain by cumulative size, prerequisites first."""
        return self._critical_path

    @property
    def statistics(self) -> GraphStatistics:
        return self._statistics

    @property
    def default_item_size(self) -> float:
        return self._default_item_size

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def item(self, item_id: str) -> WorkItem:
        self._assert_item_exists(item_id)
        return self._items[item_id]

    def planning_size(self, item_id: str) -> float:
        return self.item(item_id).planning_size(self._default_item_size)

    def hard_dependencies(self, item_id: str) -> tuple[str, ...]:
        self._assert_item_exists(item_id)
        return tuple(sorted(self._hard[item_id]))

    def soft_dependencies(self, item_id: str) -> tuple[str, ...]:
        self._assert_item_exists(item_id)
        return tuple(sorted(self._soft[item_id] - self._hard[item_id]))

    def dependencies(self, item_id: str) -> tuple[str, ...]:
        self._assert_item_exists(item_id)
        return tuple(sorted(self._hard[item_id] | self._soft[item_id]))

    def hard_dependents(self, item_id: str) -> tuple[str, ...]:
        self._assert_item_exists(item_id)
        return tuple(sorted(self._hard_dependents[item_id]))

    def soft_dependents(self, item_id: str) -> tuple[str, ...]:
        self._assert_item_exists(item_id)
        return tuple(sorted(self._soft_dependents[item_id] - self._hard_dependents[item_id]))

    def dependents(self, item_id: str) -> tuple[str, ...]:
        self._assert_item_exists(item_id)
        return tuple(sorted(self._hard_dependents[item_id] | self._soft_dependents[item_id]))

    def topological_order(self) -> tuple[str, ...]:
        """Prerequisites-first HARD ordering, ties broken by identifier."""
        indegree: dict[str, int] = {node: len(self._hard[node]) for node in self._items}
        ready: list[str] = [node for node, degree in indegree.items() if degree == 0]
        heapify(ready)

        order: list[str] = []
        while ready:
            node = heappop(ready)
            order.append(node)

            for dependent in sorted(self._hard_dependents[node]):
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    heappush(ready, dependent)

        if len(order) != len(self._items):
            raise InvalidDependencyGraphError(
                item.members for item in self._validation.hard_cycles
            )
        return tuple(order)

    def require_valid(self) -> None:
        """Raise when the graph cannot be planned against."""
        hard_cycles = self._validation.hard_cycles
        if hard_cycles:
            raise InvalidDependencyGraphError(item.members for item in hard_cycles)
        if self._validation.issues:
            raise PlanningInputError(self._validation.issues)

    def to_dict(self) -> dict[str, JSONValue]:
        """Serialize graph summary to a stable JSON-friendly mapping."""
        adjacency: dict[str, JSONValue] = {}
        for node in sorted(self._items):
            adjacency[node] = {
                "hard": list(self.hard_dependencies(node)),
                "soft": list(self.soft_dependencies(node)),
            }
        return {
            "adjacency": adjacency,
            "critical_path": list(self._critical_path),
            "statistics": serialize(self._statistics, "GraphStatistics"),
            "validation": serialize(self._validation, "GraphValidation"),
        }

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _register_item(self, index: int, item: WorkItem, issues: IssueCollector) -> None:
        path = f"work_items[{index}]"
        if not isinstance(item, WorkItem):
            issues.add(path, f"expected WorkItem, got {type(item).__name__}")
            return
        if item.id in self._items:
            issues.add(f"{path}.id", f"duplicate work item id {item.id!r}")
            return
        if item.estimated_size is None:
            if item.kind is WorkItemKind.STORY:
                issues.add(f"{path}.estimated_size", "stories require an estimated size")
        elif item.estimated_size <= 0:
            issues.add(f"{path}.estimated_size", "must be > 0")

        self._items[item.id] = item
        self._hard[item.id] = set()
        self._soft[item.id] = set()
        self._hard_dependents[item.id] = set()
        self._soft_dependents[item.id] = set()

    def _register_edges(
        self,
        edges: Iterable[DependencyEdge],
        issues: IssueCollector,
    ) -> tuple[DependencyEdge, ...]:
        accepted: dict[tuple[str, str], DependencyEdge] = {}
        for index, edge in enumerate(edges):
            path = f"dependencies[{index}]"
            if not isinstance(edge, DependencyEdge):
                issues.add(path, f"expected DependencyEdge, got {type(edge).__name__}")
                continue
            known = True
            if edge.source_id not in self._items:
                issues.add(f"{path}.source_id", f"unknown work item {edge.source_id!r}")
                known = False
            if edge.target_id not in self._items:
                issues.add(f"{path}.target_id", f"unknown work item {edge.target_id!r}")
                known = False
            if not known:
                continue

            key = (edge.source_id, edge.target_id)
            existing = accepted.get(key)
            if existing is None or (edge.is_hard and not existing.is_hard):
                accepted[key] = edge

        for (source, target), edge in accepted.items():
            if edge.strength is DependencyStrength.HARD:
                self._hard[source].add(target)
                self._hard_dependents[target].add(source)
            else:
                self._soft[source].add(target)
                self._soft_dependents[target].add(source)

        return tuple(accepted[key] for key in sorted(accepted))

    def _find_cycles(self) -> tuple[CycleRecord, ...]:
        hard_cycles = _detect_cycles(self._items, self._hard)
        combined: dict[str, set[str]] = {
            node: self._hard[node] | self._soft[node] for node in self._items
        }
        soft_cycles = [
            cycle for cycle in _detect_cycles(self._items, combined) if cycle not in hard_cycles
        ]

        records: list[CycleRecord] = [
            CycleRecord(
                members=cycle,
                severity=CycleSeverity.CRITICAL,
                suggestions=self._hard_cycle_suggestions(cycle),
            )
            for cycle in hard_cycles
        ]
        records.extend(
            CycleRecord(
                members=cycle,
                severity=CycleSeverity.WARNING,
                suggestions=(
                    "Soft cycle does not block allocation; confirm the intended delivery order.",
                ),
            )
            for cycle in soft_cycles
        )
        return tuple(records)

    def _hard_cycle_suggestions(self, cycle: Sequence[str]) -> tuple[str, ...]:
        members = cycle[:-1]
        largest = min(members, key=lambda node: (-self.planning_size(node), node))
        weakest = min(
            zip(cycle, cycle[1:], strict=False),
            key=lambda pair: (self._edge_confidence(pair[0], pair[1]), pair),
        )
        return (
            f"Downgrade {weakest[0]} -> {weakest[1]} to a soft dependency",
            f"Split {largest} so the part its dependents need can be delivered first",
        )

    def _edge_confidence(self, source: str, target: str) -> float:
        for edge in self._edges:
            if edge.source_id == source and edge.target_id == target:
                return edge.confidence
        return 1.0

    def _longest_path(self) -> tuple[str, ...]:
        ordered = self.topological_order()
        if not ordered:
            return ()

        distances: dict[str, float] = {}
        predecessors: dict[str, str | None] = {}
        for node in ordered:
            distances[node] = self.planning_size(node)
            predecessors[node] = None

        for prerequisite in ordered:
            base = distances[prerequisite]
            for dependent in sorted(self._hard_dependents[prerequisite]):
                candidate = base + self.planning_size(dependent)
                current = distances[dependent]
                if candidate > current:
                    distances[dependent] = candidate
                    predecessors[dependent] = prerequisite
                elif candidate == current:
                    existing = predecessors[dependent]
                    if existing is None or prerequisite < existing:
                        predecessors[dependent] = prerequisite

        end_node = ordered[0]
        end_distance = distances[end_node]
        for node in ordered[1:]:
            candidate_distance = distances[node]
            if candidate_distance > end_distance:
                end_node = node
                end_distance = candidate_distance
            elif candidate_distance == end_distance and node < end_node:
                end_node = node

        path: list[str] = []
        cursor: str | None = end_node
        while cursor is not None:
            path.append(cursor)
            cursor = predecessors[cursor]
        path.reverse()
        return tuple(path)

    def _compute_statistics(self) -> GraphStatistics:
        node_count = len(self._items)
        hard_count = sum(1 for edge in self._edges if edge.is_hard)
        edge_count = len(self._edges)
        independent = sum(
            1 for node in self._items if not self._hard[node] and not self._soft[node]
        )
        high_dependency = tuple(
            sorted(
                node
                for node in self._items
                if len(self._hard[node] | self._soft[node]) > HIGH_DEPENDENCY_THRESHOLD
            )
        )
        return GraphStatistics(
            node_count=node_count,
            edge_count=edge_count,
            hard_edge_count=hard_count,
            soft_edge_count=edge_count - hard_count,
            average_fan_out=(edge_count / node_count) if node_count else 0.0,
            independent_items=independent,
            high_dependency_items=high_dependency,
            critical_path_points=sum(self.planning_size(node) for node in self._critical_path),
            longest_chain=len(self._critical_path),
        )

    def _assert_item_exists(self, item_id: str) -> None:
        if item_id not in self._items:
            raise KeyError(f"Unknown work item: {item_id}")


def validate_dependencies(
    items: Iterable[WorkItem],
    edges: Iterable[DependencyEdge] = (),
    *,
    default_item_size: float = DEFAULT_ITEM_SIZE,
) -> DependencyGraph:
    """Build the dependency graph and record every validation problem found."""

    return DependencyGraph(items, edges, default_item_size=default_item_size)


def _detect_cycles(
    nodes: Iterable[str],
    adjacency: Mapping[str, set[str]],
) -> tuple[tuple[str, ...], ...]:
    state: dict[str, int] = {}
    stack: list[str] = []
    stack_index: dict[str, int] = {}
    cycles: dict[tuple[str, ...], None] = {}

    for start in sorted(nodes):
        if state.get(start, 0) != 0:
            continue

        state[start] = 1
        stack.append(start)
        stack_index[start] = len(stack) - 1
        frames: list[tuple[str, Iterator[str]]] = [(start, iter(sorted(adjacency[start])))]

        while frames:
            node, child_iter = frames[-1]

            try:
                child = next(child_iter)
            except StopIteration:
                frames.pop()
                state[node] = 2
                stack.pop()
                del stack_index[node]
                continue

            child_state = state.get(child, 0)
            if child_state == 0:
                state[child] = 1
                stack_index[child] = len(stack)
                stack.append(child)
                frames.append((child, iter(sorted(adjacency[child]))))
                continue

            if child_state == 1:
                start_index = stack_index[child]
                cycle = tuple(stack[start_index:] + [child])
                cycles[_canonicalize_cycle(cycle)] = None

    return tuple(sorted(cycles))


def _canonicalize_cycle(cycle: Sequence[str]) -> tuple[str, ...]:
    if len(cycle) < 2:
        raise ValueError("Cycle path must contain at least two nodes.")

    core = tuple(cycle[:-1])
    if len(core) == 1:
        return (core[0], core[0])

    best = core
    for offset in range(1, len(core)):
        rotated = core[offset:] + core[:offset]
        if rotated < best:
            best = rotated

    return best + (best[0],)


__all__ = [
    "CycleRecord",
    "CycleSeverity",
    "DependencyGraph",
    "GraphStatistics",
    "GraphValidation",
    "validate_dependencies",
]
