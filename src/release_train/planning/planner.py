"""
release-train-planner — ART planner

File: src/release_train/planning/planner.py
Last updated: 2026-10-18

Purpose
- Turn a Program Increment, work items, dependencies and teams into an ``ARTPlan``.

Pipeline
1. Collect every input issue (PI dates, iteration length, teams, graph) and raise
   one ``PlanningInputError``; reject HARD cycles with ``InvalidDependencyGraphError``.
2. Generate iterations, sequence work, allocate greedily.
3. Optionally re-time work for earlier value delivery.
4. Attach working-software and value analysis per iteration.
5. Assess readiness, summarize, and fingerprint the result.

Non-functional requirements
- No I/O; identical inputs and settings produce byte-identical plans.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from statistics import fmean
from typing import TYPE_CHECKING, Any, Final

import structlog

from release_train.constants import (
    DEFAULT_BUFFER_CAPACITY,
    DEFAULT_ITEM_SIZE,
    DEFAULT_ITERATION_LENGTH_DAYS,
    DEFAULT_MAX_CAPACITY_UTILIZATION,
    DEFAULT_READINESS_THRESHOLD,
    PLAN_SCHEMA_VERSION,
    PROPER_STORY_SIZE,
)
from release_train.domain.models import CanonicalModel, JSONValue, RiskLevel
from release_train.planning.allocator import IterationAllocator, IterationPlan, UnallocatedItem
from release_train.planning.capacity import CapacityManager, validate_teams
from release_train.planning.dependency_graph import validate_dependencies
from release_train.planning.errors import InvalidDependencyGraphError, IssueCollector
from release_train.planning.iterations import check_program_increment, iterations_for
from release_train.planning.readiness import (
    ARTReadiness,
    ReadinessAssessor,
    ReadinessCategory,
    ReadinessWeights,
)
from release_train.planning.sequencer import sequence
from release_train.planning.value_delivery import ValueDeliveryAnalyzer, ValueOptimization
from release_train.planning.working_software import QualityGates, WorkingSoftwareValidator
from release_train.utils.hashing import fingerprint

if TYPE_CHECKING:
    from collections.abc import Iterable

    from release_train.domain.models import DependencyEdge, ProgramIncrement, Team, WorkItem
    from release_train.planning.dependency_graph import DependencyGraph
    from release_train.planning.working_software import WorkingSoftwareReport

_HIGH_UTILIZATION: Final[float] = 0.9
_LOW_CONFIDENCE: Final[float] = 0.7
_EDGE_DENSITY: Final[float] = 0.5


@dataclass(frozen=True, slots=True)
class PlanningSettings:
    """Typed planner knobs, usually built from the validated configuration."""

    iteration_length_days: int = DEFAULT_ITERATION_LENGTH_DAYS
    buffer_capacity: float = DEFAULT_BUFFER_CAPACITY
    max_capacity_utilization: float = DEFAULT_MAX_CAPACITY_UTILIZATION
    readiness_threshold: float = DEFAULT_READINESS_THRESHOLD
    enable_value_optimization: bool = True
    max_optimization_rounds: int = 0
    default_item_size: float = DEFAULT_ITEM_SIZE
    scale_by_iteration_length: bool = False
    validation_workers: int = 4
    readiness_weights: ReadinessWeights = field(default_factory=ReadinessWeights)
    quality_gates: QualityGates = field(default_factory=QualityGates)
    stream_weights: Mapping[str, float] = field(default_factory=dict, hash=False)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> PlanningSettings:
        planning = config.get("planning", {})
        weights = config.get("readiness_weights", {})
        gates = config.get("quality_gates", {})
        defaults = cls()
        return cls(
            iteration_length_days=int(
                planning.get("default_iteration_length", defaults.iteration_length_days)
            ),
            buffer_capacity=float(planning.get("buffer_capacity", defaults.buffer_capacity)),
            max_capacity_utilization=float(
                planning.get("max_capacity_utilization", defaults.max_capacity_utilization)
            ),
            readiness_threshold=float(
                planning.get("readiness_threshold", defaults.readiness_threshold)
            ),
            enable_value_optimization=bool(
                planning.get("enable_value_optimization", defaults.enable_value_optimization)
            ),
            max_optimization_rounds=int(
                planning.get("max_optimization_rounds", defaults.max_optimization_rounds)
            ),
            default_item_size=float(planning.get("default_item_size", defaults.default_item_size)),
            scale_by_iteration_length=bool(
                planning.get("scale_by_iteration_length", defaults.scale_by_iteration_length)
            ),
            validation_workers=int(
                planning.get("validation_workers", defaults.validation_workers)
            ),
            readiness_weights=ReadinessWeights(
                capacity_balance=float(weights.get("capacity_balance", 1.0)),
                dependency_risk=float(weights.get("dependency_risk", 1.0)),
                delivery_predictability=float(weights.get("delivery_predictability", 1.0)),
            ),
            quality_gates=QualityGates(
                min_acceptance_criteria=int(gates.get("min_acceptance_criteria", 3)),
                min_test_coverage=float(gates.get("min_test_coverage", 0.8)),
                max_integration_complexity=int(gates.get("max_integration_complexity", 5)),
                deployment_readiness_threshold=float(
                    gates.get("deployment_readiness_threshold", 0.85)
                ),
            ),
            stream_weights={
                str(key): float(value) for key, value in config.get("value_streams", {}).items()
            },
        )


@dataclass(frozen=True, slots=True)
class PlanSummary(CanonicalModel):
    total_items: int
    allocated_items: int
    unallocated_items: int
    total_points: float
    allocated_points: float
    average_utilization: float
    capacity_balance: float
    properly_sized_ratio: float
    critical_path: tuple[str, ...]
    critical_path_points: float
    planning_confidence: float
    risk_level: RiskLevel


@dataclass(frozen=True, slots=True)
class ARTPlan(CanonicalModel):
    """Top-level planning result; ``fingerprint`` covers every other field."""

    schema_version: int
    program_increment: ProgramIncrement
    iteration_plans: tuple[IterationPlan, ...]
    work_items: tuple[WorkItem, ...]
    unallocated: tuple[UnallocatedItem, ...]
    dependency_graph: Mapping[str, JSONValue] = field(hash=False)
    readiness: ARTReadiness
    optimization: ValueOptimization | None
    summary: PlanSummary
    warnings: tuple[str, ...] = ()
    fingerprint: str = ""

    @property
    def is_ready(self) -> bool:
        return self.readiness.is_ready

    def iteration_of(self, work_item_id: str) -> int | None:
        for plan in self.iteration_plans:
            if work_item_id in plan.item_ids:
                return plan.iteration.index
        return None

    def compute_fingerprint(self) -> str:
        payload = self.to_dict()
        payload.pop("fingerprint", None)
        return fingerprint(payload)


class ARTPlanner:
    """Runs the full planning pipeline with one set of ``PlanningSettings``."""

    def __init__(
        self,
        settings: PlanningSettings | None = None,
        *,
        logger: Any | None = None,
    ) -> None:
        self._settings = settings if settings is not None else PlanningSettings()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        settings = self._settings
        # A nonpositive length is reported by plan_art with the other input issues.
        reference_length = settings.iteration_length_days
        if not isinstance(reference_length, int) or reference_length <= 0:
            reference_length = DEFAULT_ITERATION_LENGTH_DAYS
        self._capacity = CapacityManager(
            buffer_capacity=settings.buffer_capacity,
            default_iteration_length=reference_length,
            scale_by_iteration_length=settings.scale_by_iteration_length,
        )
        self._allocator = IterationAllocator(
            self._capacity,
            max_capacity_utilization=settings.max_capacity_utilization,
            logger=self._logger,
        )
        self._validator = WorkingSoftwareValidator(settings.quality_gates)
        self._analyzer = ValueDeliveryAnalyzer(
            settings.stream_weights,
            max_rounds=settings.max_optimization_rounds or None,
            max_capacity_utilization=settings.max_capacity_utilization,
            logger=self._logger,
        )
        self._assessor = ReadinessAssessor(
            settings.readiness_weights,
            threshold=settings.readiness_threshold,
        )

    @property
    def settings(self) -> PlanningSettings:
        return self._settings

    def plan_art(
        self,
        pi: ProgramIncrement,
        items: Iterable[WorkItem],
        edges: Iterable[DependencyEdge],
        teams: Iterable[Team],
    ) -> ARTPlan:
        settings = self._settings
        work_items = tuple(items)
        dependency_edges = tuple(edges)
        roster = tuple(teams)
        self._logger.info(
            "art_planning_started",
            pi_id=pi.id,
            work_items=len(work_items),
            dependencies=len(dependency_edges),
            teams=len(roster),
        )

        issues = IssueCollector()
        issues.extend(check_program_increment(pi, settings.iteration_length_days))
        if not roster:
            issues.add("teams", "at least one team is required")
        team_errors, team_warnings = validate_teams(roster)
        issues.extend(team_errors)
        graph = validate_dependencies(
            work_items,
            dependency_edges,
            default_item_size=settings.default_item_size,
        )
        issues.extend(graph.validation.issues)
        if issues.has_issues:
            self._logger.warning(
                "art_planning_rejected",
                pi_id=pi.id,
                reason="invalid_input",
                issue_count=len(issues.items()),
            )
            issues.raise_if_any()
        hard_cycles = graph.validation.hard_cycles
        if hard_cycles:
            self._logger.warning(
                "art_planning_rejected",
                pi_id=pi.id,
                reason="hard_cycle",
                cycles=[list(item.members) for item in hard_cycles],
            )
            raise InvalidDependencyGraphError(item.members for item in hard_cycles)

        iterations = iterations_for(pi, settings.iteration_length_days)
        ordered = sequence(graph.items, graph)
        allocation = self._allocator.allocate(ordered, iterations, roster, graph)
        plans = allocation.iteration_plans

        optimization: ValueOptimization | None = None
        if settings.enable_value_optimization:
            optimization = self._analyzer.optimize_value_delivery_timing(
                plans, graph, roster, self._capacity
            )
            plans = optimization.iteration_plans

        reports = self._validator.validate_all(
            plans, graph, max_workers=settings.validation_workers
        )
        confidence = self._planning_confidence(
            len(work_items), plans, self._assessor.score(plans, graph), reports, roster
        )
        enriched: list[IterationPlan] = []
        for plan, report in zip(plans, reports, strict=True):
            with_quality = replace(plan, quality=report)
            value = self._analyzer.analyze_iteration_value(
                with_quality, graph, planning_confidence=confidence
            )
            enriched.append(replace(with_quality, value=value))
        readiness = self._assessor.assess(enriched, graph)

        summary = self._summarize(
            graph, tuple(enriched), allocation.unallocated, readiness, confidence
        )
        warnings = list(team_warnings)
        warnings.extend(
            f"soft dependency cycle: {' -> '.join(item.members)}"
            for item in graph.validation.warnings
        )

        plan = ARTPlan(
            schema_version=PLAN_SCHEMA_VERSION,
            program_increment=pi,
            iteration_plans=tuple(enriched),
            work_items=_final_order(graph, tuple(enriched), allocation.unallocated),
            unallocated=allocation.unallocated,
            dependency_graph=graph.to_dict(),
            readiness=readiness,
            optimization=optimization,
            summary=summary,
            warnings=tuple(warnings),
        )
        plan = replace(plan, fingerprint=plan.compute_fingerprint())

        self._logger.info(
            "art_planning_completed",
            pi_id=pi.id,
            iterations=len(plan.iteration_plans),
            allocated_items=summary.allocated_items,
            unallocated_items=summary.unallocated_items,
            readiness_score=round(readiness.readiness_score, 4),
            is_ready=readiness.is_ready,
            value_moves=len(optimization.moves) if optimization is not None else 0,
            fingerprint=plan.fingerprint,
        )
        return plan

    def _planning_confidence(
        self,
        total_items: int,
        plans: Sequence[IterationPlan],
        readiness_score: float,
        reports: Sequence[WorkingSoftwareReport],
        teams: Sequence[Team],
    ) -> float:
        allocated = sum(len(plan.allocations) for plan in plans)
        allocation_ratio = allocated / total_items if total_items else 1.0
        deployment = [
            report.deployment_readiness
            for report, plan in zip(reports, plans, strict=True)
            if plan.allocations
        ]
        team_confidence = [self._capacity.assess_team(team).confidence for team in teams]
        components = (
            allocation_ratio,
            readiness_score,
            fmean(deployment) if deployment else 1.0,
            fmean(team_confidence) if team_confidence else 1.0,
        )
        return max(0.0, min(1.0, fmean(components)))

    def _summarize(
        self,
        graph: DependencyGraph,
        plans: Sequence[IterationPlan],
        unallocated: Sequence[UnallocatedItem],
        readiness: ARTReadiness,
        confidence: float,
    ) -> PlanSummary:
        items = graph.items
        sizes = {item.id: item.planning_size(graph.default_item_size) for item in items}
        allocated_items = sum(len(plan.allocations) for plan in plans)
        average_utilization = fmean(plan.utilization for plan in plans) if plans else 0.0
        properly_sized = sum(1 for size in sizes.values() if size <= PROPER_STORY_SIZE)

        return PlanSummary(
            total_items=len(items),
            allocated_items=allocated_items,
            unallocated_items=len(unallocated),
            total_points=sum(sizes.values()),
            allocated_points=sum(plan.total_points for plan in plans),
            average_utilization=average_utilization,
            capacity_balance=readiness.category_score(ReadinessCategory.CAPACITY_BALANCE),
            properly_sized_ratio=properly_sized / len(items) if items else 1.0,
            critical_path=graph.critical_path,
            critical_path_points=graph.statistics.critical_path_points,
            planning_confidence=confidence,
            risk_level=classify_plan_risk(
                average_utilization, confidence, len(graph.edges), len(items)
            ),
        )


def plan_art(
    pi: ProgramIncrement,
    items: Iterable[WorkItem],
    edges: Iterable[DependencyEdge],
    teams: Iterable[Team],
    *,
    settings: PlanningSettings | None = None,
    logger: Any | None = None,
) -> ARTPlan:
    """Functional wrapper around :class:`ARTPlanner`."""

    return ARTPlanner(settings, logger=logger).plan_art(pi, items, edges, teams)


def classify_plan_risk(
    average_utilization: float,
    confidence: float,
    edge_count: int,
    item_count: int,
) -> RiskLevel:
    """High when the train is both loaded and unsure; medium on either, or on dense edges."""

    high_utilization = average_utilization > _HIGH_UTILIZATION
    low_confidence = confidence < _LOW_CONFIDENCE
    if high_utilization and low_confidence:
        return RiskLevel.HIGH
    if high_utilization or low_confidence or edge_count > _EDGE_DENSITY * item_count:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _final_order(
    graph: DependencyGraph,
    plans: Sequence[IterationPlan],
    unallocated: Sequence[UnallocatedItem],
) -> tuple[WorkItem, ...]:
    ordered = [graph.item(item_id) for plan in plans for item_id in plan.item_ids]
    ordered.extend(graph.item(entry.work_item_id) for entry in unallocated)
    return tuple(ordered)


__all__ = [
    "ARTPlan",
    "ARTPlanner",
    "PlanSummary",
    "PlanningSettings",
    "classify_plan_risk",
    "plan_art",
]
