"""
Value delivery analysis and value-driven re-timing of allocated work.

Classification
- An explicit value-stream tag on the item wins.
- Otherwise: user-facing stories are customer-facing, infrastructure enablers are
  efficiency-improving, and everything else is technical debt.

Scoring
- Item impact = stream weight x planning size x priority factor, where the
  priority factor is ``(6 - min(priority, 5)) / 5``.
- The aggregate plan score discounts impact by how late it lands:
  ``impact * (n - iteration_index) / n``.

Optimization
- Local search, bounded by ``max_rounds`` (default: number of iterations).
- Each candidate moves one iteration earlier, directly or by swapping with a
  lower-value item of the same team. Moves keep HARD ordering and capacity
  intact and must strictly improve the aggregate score.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

import structlog

from release_train.constants import DEFAULT_MAX_CAPACITY_UTILIZATION, HIGH_DEPENDENCY_THRESHOLD
from release_train.domain.models import (
    CanonicalModel,
    Enabler,
    EnablerType,
    Story,
    ValueStreamType,
    WorkItem,
)
from release_train.planning.allocator import (
    Allocation,
    CapacityLedger,
    IterationPlan,
    assemble_iteration_plans,
    eligible_teams,
)

if TYPE_CHECKING:
    from release_train.domain.models import Team
    from release_train.planning.capacity import CapacityManager
    from release_train.planning.dependency_graph import DependencyGraph

DEFAULT_STREAM_WEIGHTS: Final[Mapping[ValueStreamType, float]] = {
    ValueStreamType.CUSTOMER_FACING: 1.0,
    ValueStreamType.REVENUE_GENERATING: 0.9,
    ValueStreamType.EFFICIENCY_IMPROVING: 0.7,
    ValueStreamType.TECHNICAL_DEBT: 0.5,
    ValueStreamType.INFRASTRUCTURE: 0.3,
}
_USER_STREAMS: Final[frozenset[ValueStreamType]] = frozenset(
    {ValueStreamType.CUSTOMER_FACING, ValueStreamType.REVENUE_GENERATING}
)
_EPSILON: Final[float] = 1e-9


@dataclass(frozen=True, slots=True)
class StreamValue(CanonicalModel):
    stream: ValueStreamType
    item_ids: tuple[str, ...]
    points: float
    impact: float


@dataclass(frozen=True, slots=True)
class ValueAnalysis(CanonicalModel):
    iteration_id: str
    iteration_index: int
    streams: tuple[StreamValue, ...]
    business_impact: float
    user_impact: float
    value_delivery_score: float
    confidence: float
    explicit_tag_ratio: float
    working_software_items: int


@dataclass(frozen=True, slots=True)
class ValueMove(CanonicalModel):
    work_item_id: str
    from_iteration: int
    to_iteration: int
    team_id: str
    swapped_with: str | None = None


@dataclass(frozen=True, slots=True)
class OptimizationResult(CanonicalModel):
    iteration_id: str
    iteration_index: int
    moved_in: tuple[str, ...]
    moved_out: tuple[str, ...]
    value_before: float
    value_after: float


@dataclass(frozen=True, slots=True)
class ValueOptimization(CanonicalModel):
    results: tuple[OptimizationResult, ...]
    moves: tuple[ValueMove, ...]
    iteration_plans: tuple[IterationPlan, ...]
    aggregate_before: float
    aggregate_after: float
    rounds: int

    @property
    def changed(self) -> bool:
        return bool(self.moves)


class ValueDeliveryAnalyzer:
    """Value-stream classification, per-iteration value analysis and re-timing."""

    def __init__(
        self,
        stream_weights: Mapping[ValueStreamType | str, float] | None = None,
        *,
        max_rounds: int | None = None,
        max_capacity_utilization: float = DEFAULT_MAX_CAPACITY_UTILIZATION,
        logger: Any | None = None,
    ) -> None:
        weights = dict(DEFAULT_STREAM_WEIGHTS)
        for key, value in (stream_weights or {}).items():
            weights[ValueStreamType(key)] = float(value)
        if any(value < 0 for value in weights.values()):
            raise ValueError("stream weights must be >= 0")
        if max_rounds is not None and max_rounds < 0:
            raise ValueError("max_rounds must be >= 0")
        self._weights = weights
        self._max_rounds = max_rounds
        self._max_capacity_utilization = max_capacity_utilization
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def stream_weights(self) -> dict[ValueStreamType, float]:
        return dict(self._weights)

    def classify(self, item: WorkItem) -> tuple[ValueStreamType, bool]:
        """Return ``(stream, explicit)`` where ``explicit`` marks a caller-supplied tag."""

        if item.value_stream is not None:
            return item.value_stream, True
        if isinstance(item, Story) and item.user_facing:
            return ValueStreamType.CUSTOMER_FACING, False
        if isinstance(item, Enabler) and item.enabler_type is EnablerType.INFRASTRUCTURE:
            return ValueStreamType.EFFICIENCY_IMPROVING, False
        return ValueStreamType.TECHNICAL_DEBT, False

    def item_value(self, item: WorkItem, default_size: float) -> float:
        stream, _ = self.classify(item)
        priority_factor = (6 - min(item.priority, 5)) / 5
        return self._weights[stream] * item.planning_size(default_size) * priority_factor

    def analyze_iteration_value(
        self,
        plan: IterationPlan,
        graph: DependencyGraph,
        *,
        planning_confidence: float | None = None,
    ) -> ValueAnalysis:
        buckets: dict[ValueStreamType, list[tuple[str, float, float]]] = {}
        explicit = 0
        for allocation in plan.allocations:
            item = graph.item(allocation.work_item_id)
            stream, tagged = self.classify(item)
            if tagged:
                explicit += 1
            impact = self.item_value(item, graph.default_item_size)
            buckets.setdefault(stream, []).append((item.id, allocation.points, impact))

        streams = tuple(
            StreamValue(
                stream=stream,
                item_ids=tuple(entry[0] for entry in buckets[stream]),
                points=sum(entry[1] for entry in buckets[stream]),
                impact=sum(entry[2] for entry in buckets[stream]),
            )
            for stream in ValueStreamType
            if stream in buckets
        )
        business_impact = sum(item.impact for item in streams)
        user_impact = sum(item.impact for item in streams if item.stream in _USER_STREAMS)
        points = sum(item.points for item in streams)
        score = min(1.0, business_impact / points) if points > 0 else 0.0

        count = len(plan.allocations)
        explicit_ratio = explicit / count if count else 0.0
        if planning_confidence is None:
            planning_confidence = (
                plan.quality.deployment_readiness if plan.quality is not None else 1.0
            )
        confidence = 0.5 * _clamp(planning_confidence) + 0.5 * explicit_ratio
        working_items = len(plan.quality.working_software_items) if plan.quality else 0

        return ValueAnalysis(
            iteration_id=plan.iteration.id,
            iteration_index=plan.iteration.index,
            streams=streams,
            business_impact=business_impact,
            user_impact=user_impact,
            value_delivery_score=score,
            confidence=_clamp(confidence),
            explicit_tag_ratio=explicit_ratio,
            working_software_items=working_items,
        )

    def aggregate_value_score(
        self,
        allocations: Sequence[Allocation],
        graph: DependencyGraph,
        iteration_count: int,
    ) -> float:
        """Time-discounted value of a placement; earlier delivery scores higher."""

        if iteration_count <= 0:
            return 0.0
        total = 0.0
        for allocation in allocations:
            value = self.item_value(graph.item(allocation.work_item_id), graph.default_item_size)
            total += value * (iteration_count - allocation.iteration_index) / iteration_count
        return total

    def optimize_value_delivery_timing(
        self,
        plans: Sequence[IterationPlan],
        graph: DependencyGraph,
        teams: Sequence[Team],
        capacity: CapacityManager,
    ) -> ValueOptimization:
        iterations = tuple(plan.iteration for plan in plans)
        n = len(iterations)
        original = [allocation for plan in plans for allocation in plan.allocations]
        assignments: dict[str, Allocation] = {item.work_item_id: item for item in original}
        order: list[str] = [item.work_item_id for item in original]

        ledger = CapacityLedger.build(iterations, teams, capacity)
        for allocation in original:
            ledger = ledger.consume(
                allocation.iteration_index, allocation.team_id, allocation.points
            )

        before = self.aggregate_value_score(original, graph, n)
        max_rounds = self._max_rounds if self._max_rounds is not None else n
        moves: list[ValueMove] = []
        rounds = 0
        team_index = {team.id: team for team in teams}

        while rounds < max_rounds and n > 1:
            rounds += 1
            moved_this_round: set[str] = set()
            candidates = sorted(
                (
                    allocation
                    for allocation in assignments.values()
                    if allocation.iteration_index > 0
                    and len(graph.hard_dependencies(allocation.work_item_id))
                    <= HIGH_DEPENDENCY_THRESHOLD
                ),
                key=lambda allocation: (
                    -self._density(allocation, graph),
                    allocation.work_item_id,
                ),
            )
            for candidate in candidates:
                item_id = candidate.work_item_id
                if item_id in moved_this_round:
                    continue
                current = assignments[item_id]
                target = current.iteration_index - 1
                if target < 0 or not _prerequisites_placed_by(item_id, target, assignments, graph):
                    continue

                item = graph.item(item_id)
                value = self.item_value(item, graph.default_item_size)
                if value <= _EPSILON:
                    continue

                outcome = self._try_direct_move(current, item, target, teams, ledger)
                if outcome is not None:
                    team_id, ledger = outcome
                    assignments[item_id] = Allocation(item_id, team_id, current.points, target)
                    order.remove(item_id)
                    order.append(item_id)
                    moved_this_round.add(item_id)
                    moves.append(ValueMove(item_id, current.iteration_index, target, team_id))
                    self._log_move(moves[-1])
                    continue

                swap = self._try_swap(
                    current, item, value, target, assignments, graph, team_index, ledger
                )
                if swap is None:
                    continue
                promoted, demoted, ledger = swap
                assignments[promoted.work_item_id] = promoted
                assignments[demoted.work_item_id] = demoted
                for moved_id in (promoted.work_item_id, demoted.work_item_id):
                    order.remove(moved_id)
                    order.append(moved_id)
                    moved_this_round.add(moved_id)
                moves.append(
                    ValueMove(
                        item_id,
                        current.iteration_index,
                        target,
                        promoted.team_id,
                        swapped_with=demoted.work_item_id,
                    )
                )
                self._log_move(moves[-1])

            if not moved_this_round:
                break

        final_allocations = sorted(
            (assignments[item_id] for item_id in order),
            key=lambda allocation: allocation.iteration_index,
        )
        after = self.aggregate_value_score(final_allocations, graph, n)
        rebuilt = assemble_iteration_plans(
            iterations,
            final_allocations,
            teams,
            graph,
            capacity=capacity,
            max_capacity_utilization=self._max_capacity_utilization,
        )
        results = tuple(
            self._iteration_result(old, new, graph) for old, new in zip(plans, rebuilt, strict=True)
        )
        return ValueOptimization(
            results=results,
            moves=tuple(moves),
            iteration_plans=rebuilt,
            aggregate_before=before,
            aggregate_after=after,
            rounds=rounds,
        )

    def _try_direct_move(
        self,
        current: Allocation,
        item: WorkItem,
        target: int,
        teams: Sequence[Team],
        ledger: CapacityLedger,
    ) -> tuple[str, CapacityLedger] | None:
        candidates = eligible_teams(item, teams)
        ordered = sorted(candidates, key=lambda team: team.id != current.team_id)
        for team in ordered:
            if ledger.fits(target, team.id, current.points):
                released = ledger.release(current.iteration_index, current.team_id, current.points)
                return team.id, released.consume(target, team.id, current.points)
        return None

    def _try_swap(
        self,
        current: Allocation,
        item: WorkItem,
        value: float,
        target: int,
        assignments: Mapping[str, Allocation],
        graph: DependencyGraph,
        team_index: Mapping[str, Team],
        ledger: CapacityLedger,
    ) -> tuple[Allocation, Allocation, CapacityLedger] | None:
        origin = current.iteration_index
        team = team_index[current.team_id]
        others = sorted(
            (
                allocation
                for allocation in assignments.values()
                if allocation.iteration_index == target and allocation.team_id == team.id
            ),
            key=lambda allocation: (
                self.item_value(graph.item(allocation.work_item_id), graph.default_item_size),
                allocation.work_item_id,
            ),
        )
        for other in others:
            other_item = graph.item(other.work_item_id)
            if self.item_value(other_item, graph.default_item_size) + _EPSILON >= value:
                break
            if other.work_item_id in graph.hard_dependencies(current.work_item_id):
                continue
            if any(
                dependent in assignments and assignments[dependent].iteration_index < origin
                for dependent in graph.hard_dependents(other.work_item_id)
            ):
                continue
            if team not in eligible_teams(other_item, tuple(team_index.values())):
                continue

            trial = ledger.release(origin, current.team_id, current.points)
            trial = trial.release(target, other.team_id, other.points)
            if not trial.fits(target, team.id, current.points):
                continue
            trial = trial.consume(target, team.id, current.points)
            if not trial.fits(origin, team.id, other.points):
                continue
            trial = trial.consume(origin, team.id, other.points)
            promoted = Allocation(current.work_item_id, team.id, current.points, target)
            demoted = Allocation(other.work_item_id, team.id, other.points, origin)
            return promoted, demoted, trial
        return None

    def _density(self, allocation: Allocation, graph: DependencyGraph) -> float:
        value = self.item_value(graph.item(allocation.work_item_id), graph.default_item_size)
        return value / allocation.points if allocation.points > 0 else 0.0

    def _iteration_result(
        self,
        old: IterationPlan,
        new: IterationPlan,
        graph: DependencyGraph,
    ) -> OptimizationResult:
        old_ids = old.item_ids
        new_ids = new.item_ids
        return OptimizationResult(
            iteration_id=new.iteration.id,
            iteration_index=new.iteration.index,
            moved_in=tuple(item_id for item_id in new_ids if item_id not in old_ids),
            moved_out=tuple(item_id for item_id in old_ids if item_id not in new_ids),
            value_before=self._plan_value(old, graph),
            value_after=self._plan_value(new, graph),
        )

    def _plan_value(self, plan: IterationPlan, graph: DependencyGraph) -> float:
        return sum(
            self.item_value(graph.item(item_id), graph.default_item_size)
            for item_id in plan.item_ids
        )

    def _log_move(self, move: ValueMove) -> None:
        self._logger.info(
            "art_value_move_accepted",
            work_item_id=move.work_item_id,
            from_iteration=move.from_iteration,
            to_iteration=move.to_iteration,
            team_id=move.team_id,
            swapped_with=move.swapped_with,
        )


def _prerequisites_placed_by(
    item_id: str,
    iteration_index: int,
    assignments: Mapping[str, Allocation],
    graph: DependencyGraph,
) -> bool:
    for dep in graph.hard_dependencies(item_id):
        placed = assignments.get(dep)
        if placed is None or placed.iteration_index > iteration_index:
            return False
    return True


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


__all__ = [
    "DEFAULT_STREAM_WEIGHTS",
    "OptimizationResult",
    "StreamValue",
    "ValueAnalysis",
    "ValueDeliveryAnalyzer",
    "ValueMove",
    "ValueOptimization",
]
