"""
Greedy iteration allocator.

Walks iterations in order and, within each, walks the remaining sequenced work
items, placing each into the first team with enough remaining usable capacity.
Capacity is tracked in an immutable ``CapacityLedger`` threaded through the
loop, so each placement step can be exercised in isolation.

Guarantees
- No item is placed before all of its HARD dependencies (same iteration allowed).
- Allocated points per (iteration, team) never exceed usable capacity.
- Items are never split; items no eligible team could ever hold are reported.
- Identical inputs produce identical allocations.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final

import structlog

from release_train.constants import DEFAULT_MAX_CAPACITY_UTILIZATION
from release_train.domain.models import CanonicalModel, RiskLevel
from release_train.planning.capacity import CapacityManager
from release_train.planning.errors import InvalidDependencyGraphError, PlanningInputError

if TYPE_CHECKING:
    from release_train.domain.models import Iteration, Team, WorkItem
    from release_train.planning.dependency_graph import DependencyGraph
    from release_train.planning.value_delivery import ValueAnalysis
    from release_train.planning.working_software import WorkingSoftwareReport

_EPSILON: Final[float] = 1e-9
_HIGH_DENSITY: Final[float] = 2.0
_MEDIUM_DENSITY: Final[float] = 1.0


class UnallocatedReason(StrEnum):
    OVERSIZED = "oversized"
    CAPACITY_EXHAUSTED = "capacity_exhausted"
    BLOCKED_BY_DEPENDENCY = "blocked_by_dependency"
    NO_MATCHING_CAPACITY = "no_matching_capacity"


@dataclass(frozen=True, slots=True)
class Allocation(CanonicalModel):
    work_item_id: str
    team_id: str
    points: float
    iteration_index: int


@dataclass(frozen=True, slots=True)
class TeamUtilization(CanonicalModel):
    team_id: str
    allocated_points: float
    usable_capacity: float
    utilization: float
    is_over_allocated: bool


@dataclass(frozen=True, slots=True)
class UnallocatedItem(CanonicalModel):
    work_item_id: str
    reason: UnallocatedReason
    detail: str
    blocked_by: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class IterationPlan(CanonicalModel):
    """Allocation result for one iteration; quality and value are attached later."""

    iteration: Iteration
    allocations: tuple[Allocation, ...]
    total_points: float
    total_capacity: float
    team_utilization: tuple[TeamUtilization, ...]
    risk_level: RiskLevel
    quality: WorkingSoftwareReport | None = None
    value: ValueAnalysis | None = None

    @property
    def index(self) -> int:
        return self.iteration.index

    @property
    def utilization(self) -> float:
        if self.total_capacity <= 0:
            return 0.0
        return self.total_points / self.total_capacity

    @property
    def is_over_allocated(self) -> bool:
        return any(item.is_over_allocated for item in self.team_utilization)

    @property
    def item_ids(self) -> tuple[str, ...]:
        return tuple(item.work_item_id for item in self.allocations)

    def team_for(self, work_item_id: str) -> str | None:
        for allocation in self.allocations:
            if allocation.work_item_id == work_item_id:
                return allocation.team_id
        return None


@dataclass(frozen=True, slots=True)
class CapacityLedger:
    """Immutable usable-capacity bookkeeping keyed by ``(iteration_index, team_id)``."""

    capacities: Mapping[tuple[int, str], float]
    consumed: Mapping[tuple[int, str], float] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        iterations: Sequence[Iteration],
        teams: Sequence[Team],
        capacity: CapacityManager,
    ) -> CapacityLedger:
        capacities = {
            (iteration.index, team.id): capacity.usable_capacity(team, iteration)
            for iteration in iterations
            for team in teams
        }
        return cls(capacities=capacities)

    def usable(self, iteration_index: int, team_id: str) -> float:
        return self.capacities.get((iteration_index, team_id), 0.0)

    def used(self, iteration_index: int, team_id: str) -> float:
        return self.consumed.get((iteration_index, team_id), 0.0)

    def remaining(self, iteration_index: int, team_id: str) -> float:
        return self.usable(iteration_index, team_id) - self.used(iteration_index, team_id)

    def fits(self, iteration_index: int, team_id: str, points: float) -> bool:
        return points <= self.remaining(iteration_index, team_id) + _EPSILON

    def consume(self, iteration_index: int, team_id: str, points: float) -> CapacityLedger:
        """Return a new ledger with ``points`` consumed; never exceeds usable capacity."""

        key = (iteration_index, team_id)
        if key not in self.capacities:
            raise KeyError(f"Unknown ledger slot: iteration {iteration_index}, team {team_id}")
        if points < 0:
            raise ValueError("points must be >= 0")
        if not self.fits(iteration_index, team_id, points):
            raise ValueError(
                f"team {team_id} has {self.remaining(iteration_index, team_id):g} points left "
                f"in iteration {iteration_index}; cannot consume {points:g}"
            )
        consumed = dict(self.consumed)
        consumed[key] = consumed.get(key, 0.0) + points
        return CapacityLedger(capacities=self.capacities, consumed=consumed)

    def release(self, iteration_index: int, team_id: str, points: float) -> CapacityLedger:
        key = (iteration_index, team_id)
        consumed = dict(self.consumed)
        consumed[key] = max(0.0, consumed.get(key, 0.0) - points)
        return CapacityLedger(capacities=self.capacities, consumed=consumed)


@dataclass(frozen=True, slots=True)
class AllocationResult(CanonicalModel):
    iteration_plans: tuple[IterationPlan, ...]
    unallocated: tuple[UnallocatedItem, ...]
    placement_order: tuple[str, ...]

    @property
    def allocations(self) -> tuple[Allocation, ...]:
        return tuple(
            allocation for plan in self.iteration_plans for allocation in plan.allocations
        )


def eligible_teams(item: WorkItem, teams: Sequence[Team]) -> tuple[Team, ...]:
    """Teams matching the item's specialization hint, or all teams when none match."""

    if item.specialization:
        matching = tuple(team for team in teams if team.has_specialization(item.specialization))
        if matching:
            return matching
    return tuple(teams)


def select_team(
    item: WorkItem,
    points: float,
    iteration_index: int,
    teams: Sequence[Team],
    ledger: CapacityLedger,
    rotation: Mapping[str, int],
) -> tuple[Team | None, dict[str, int]]:
    """Pick a team for ``item`` and return it with the updated rotation pointers.

    Hinted items rotate round-robin over matching teams; unhinted items take the
    first team in roster order with room.
    """

    candidates = eligible_teams(item, teams)
    updated = dict(rotation)
    if not candidates:
        return None, updated

    hint: str | None = None
    if item.specialization and candidates[0].has_specialization(item.specialization):
        hint = item.specialization.lower()
    start = updated.get(hint, 0) % len(candidates) if hint is not None else 0
    for offset in range(len(candidates)):
        position = (start + offset) % len(candidates)
        team = candidates[position]
        if ledger.fits(iteration_index, team.id, points):
            if hint is not None:
                updated[hint] = (position + 1) % len(candidates)
            return team, updated
    return None, updated


class IterationAllocator:
    """Deterministic greedy allocator over sequenced work items."""

    def __init__(
        self,
        capacity: CapacityManager | None = None,
        *,
        max_capacity_utilization: float = DEFAULT_MAX_CAPACITY_UTILIZATION,
        logger: Any | None = None,
    ) -> None:
        self._capacity = capacity if capacity is not None else CapacityManager()
        self._max_capacity_utilization = max_capacity_utilization
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def capacity(self) -> CapacityManager:
        return self._capacity

    def allocate(
        self,
        sequenced_items: Sequence[WorkItem],
        iterations: Sequence[Iteration],
        teams: Sequence[Team],
        graph: DependencyGraph,
    ) -> AllocationResult:
        hard_cycles = graph.validation.hard_cycles
        if hard_cycles:
            raise InvalidDependencyGraphError(item.members for item in hard_cycles)
        if not graph.is_valid:
            raise PlanningInputError(graph.validation.issues)

        ledger = CapacityLedger.build(iterations, teams, self._capacity)
        default_size = graph.default_item_size

        unallocated: dict[str, UnallocatedItem] = {}
        remaining: list[WorkItem] = []
        ceiling = _largest_capacity(teams, iterations, ledger)
        for item in sequenced_items:
            points = item.planning_size(default_size)
            if points > ceiling + _EPSILON:
                unallocated[item.id] = UnallocatedItem(
                    work_item_id=item.id,
                    reason=UnallocatedReason.OVERSIZED,
                    detail=(
                        f"size {points:g} exceeds the largest usable team capacity "
                        f"({ceiling:g} points per iteration)"
                    ),
                )
                self._logger.info(
                    "art_item_oversized",
                    work_item_id=item.id,
                    points=points,
                    largest_capacity=ceiling,
                )
                continue
            matching_ceiling = _largest_capacity(eligible_teams(item, teams), iterations, ledger)
            if points > matching_ceiling + _EPSILON:
                unallocated[item.id] = UnallocatedItem(
                    work_item_id=item.id,
                    reason=UnallocatedReason.NO_MATCHING_CAPACITY,
                    detail=(
                        f"size {points:g} exceeds the largest usable capacity of teams "
                        f"specialized in {item.specialization!r} "
                        f"({matching_ceiling:g} points per iteration)"
                    ),
                )
                self._logger.info(
                    "art_item_unallocated",
                    work_item_id=item.id,
                    reason=UnallocatedReason.NO_MATCHING_CAPACITY.value,
                    specialization=item.specialization,
                    largest_capacity=matching_ceiling,
                )
                continue
            remaining.append(item)

        placements: dict[str, int] = {}
        allocations: list[Allocation] = []
        rotation: dict[str, int] = {}

        for iteration in iterations:
            if not remaining:
                break
            deferred: list[WorkItem] = []
            for item in remaining:
                blockers = [
                    dep for dep in graph.hard_dependencies(item.id) if dep not in placements
                ]
                if blockers:
                    deferred.append(item)
                    continue

                points = item.planning_size(default_size)
                team, rotation = select_team(
                    item, points, iteration.index, teams, ledger, rotation
                )
                if team is None:
                    self._logger.debug(
                        "art_allocation_deferred",
                        work_item_id=item.id,
                        iteration_id=iteration.id,
                        points=points,
                    )
                    deferred.append(item)
                    continue

                ledger = ledger.consume(iteration.index, team.id, points)
                placements[item.id] = iteration.index
                allocations.append(
                    Allocation(
                        work_item_id=item.id,
                        team_id=team.id,
                        points=points,
                        iteration_index=iteration.index,
                    )
                )
            remaining = deferred

        for item in remaining:
            blockers = tuple(
                dep for dep in graph.hard_dependencies(item.id) if dep not in placements
            )
            if blockers:
                entry = UnallocatedItem(
                    work_item_id=item.id,
                    reason=UnallocatedReason.BLOCKED_BY_DEPENDENCY,
                    detail="hard prerequisite(s) were never allocated",
                    blocked_by=blockers,
                )
            else:
                entry = UnallocatedItem(
                    work_item_id=item.id,
                    reason=UnallocatedReason.CAPACITY_EXHAUSTED,
                    detail="no eligible team had enough remaining capacity in any iteration",
                )
            unallocated[item.id] = entry
            self._logger.info(
                "art_item_unallocated",
                work_item_id=item.id,
                reason=entry.reason.value,
                blocked_by=list(entry.blocked_by),
            )

        plans = assemble_iteration_plans(
            iterations,
            allocations,
            teams,
            graph,
            capacity=self._capacity,
            max_capacity_utilization=self._max_capacity_utilization,
        )
        ordered_unallocated = tuple(
            unallocated[item.id] for item in sequenced_items if item.id in unallocated
        )
        return AllocationResult(
            iteration_plans=plans,
            unallocated=ordered_unallocated,
            placement_order=tuple(allocation.work_item_id for allocation in allocations),
        )


def allocate(
    sequenced_items: Sequence[WorkItem],
    iterations: Sequence[Iteration],
    teams: Sequence[Team],
    graph: DependencyGraph,
    *,
    capacity: CapacityManager | None = None,
    max_capacity_utilization: float = DEFAULT_MAX_CAPACITY_UTILIZATION,
) -> AllocationResult:
    """Functional wrapper around :class:`IterationAllocator`."""

    allocator = IterationAllocator(capacity, max_capacity_utilization=max_capacity_utilization)
    return allocator.allocate(sequenced_items, iterations, teams, graph)


def assemble_iteration_plans(
    iterations: Sequence[Iteration],
    allocations: Sequence[Allocation],
    teams: Sequence[Team],
    graph: DependencyGraph,
    *,
    capacity: CapacityManager,
    max_capacity_utilization: float = DEFAULT_MAX_CAPACITY_UTILIZATION,
) -> tuple[IterationPlan, ...]:
    """Build per-iteration plans (utilization and risk) from flat allocations."""

    placements = {allocation.work_item_id: allocation.iteration_index for allocation in allocations}
    by_iteration: dict[int, list[Allocation]] = {iteration.index: [] for iteration in iterations}
    for allocation in allocations:
        by_iteration.setdefault(allocation.iteration_index, []).append(allocation)

    plans: list[IterationPlan] = []
    for iteration in iterations:
        iteration_allocations = tuple(by_iteration.get(iteration.index, ()))
        utilization = tuple(
            _team_utilization(team, iteration, iteration_allocations, capacity) for team in teams
        )
        total_points = sum(allocation.points for allocation in iteration_allocations)
        total_capacity = sum(item.usable_capacity for item in utilization)
        plans.append(
            IterationPlan(
                iteration=iteration,
                allocations=iteration_allocations,
                total_points=total_points,
                total_capacity=total_capacity,
                team_utilization=utilization,
                risk_level=classify_iteration_risk(
                    iteration.index,
                    iteration_allocations,
                    utilization,
                    graph,
                    placements,
                    max_capacity_utilization=max_capacity_utilization,
                ),
            )
        )
    return tuple(plans)


def classify_iteration_risk(
    iteration_index: int,
    allocations: Sequence[Allocation],
    utilization: Sequence[TeamUtilization],
    graph: DependencyGraph,
    placements: Mapping[str, int],
    *,
    max_capacity_utilization: float = DEFAULT_MAX_CAPACITY_UTILIZATION,
) -> RiskLevel:
    """Risk from HARD dependency density, utilization, and SOFT ordering slips."""

    if not allocations:
        return RiskLevel.LOW

    if any(item.is_over_allocated for item in utilization):
        return RiskLevel.HIGH

    hard_links = sum(len(graph.hard_dependencies(item.work_item_id)) for item in allocations)
    density = hard_links / len(allocations)
    peak = max((item.utilization for item in utilization), default=0.0)
    stretched = peak > max_capacity_utilization + _EPSILON

    if density > _HIGH_DENSITY or (stretched and density > _MEDIUM_DENSITY):
        return RiskLevel.HIGH

    soft_slip = any(
        placements.get(dep, iteration_index + 1) > iteration_index
        for item in allocations
        for dep in graph.soft_dependencies(item.work_item_id)
    )
    if stretched or density > _MEDIUM_DENSITY or soft_slip:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _team_utilization(
    team: Team,
    iteration: Iteration,
    allocations: Sequence[Allocation],
    capacity: CapacityManager,
) -> TeamUtilization:
    allocated = sum(item.points for item in allocations if item.team_id == team.id)
    usable = capacity.usable_capacity(team, iteration)
    ratio = allocated / usable if usable > 0 else 0.0
    return TeamUtilization(
        team_id=team.id,
        allocated_points=allocated,
        usable_capacity=usable,
        utilization=ratio,
        is_over_allocated=ratio > 1.0 + _EPSILON,
    )


def _largest_capacity(
    teams: Sequence[Team],
    iterations: Sequence[Iteration],
    ledger: CapacityLedger,
) -> float:
    return max(
        (ledger.usable(iteration.index, team.id) for iteration in iterations for team in teams),
        default=0.0,
    )


__all__ = [
    "Allocation",
    "AllocationResult",
    "CapacityLedger",
    "IterationAllocator",
    "IterationPlan",
    "TeamUtilization",
    "UnallocatedItem",
    "UnallocatedReason",
    "allocate",
    "assemble_iteration_plans",
    "classify_iteration_risk",
    "eligible_teams",
    "select_team",
]
