"""ART readiness scoring over a set of iteration plans."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from statistics import pvariance
from typing import TYPE_CHECKING, Final

from release_train.constants import (
    DEFAULT_READINESS_THRESHOLD,
    MIN_VALUE_CONFIDENCE,
    PREDICTABLE_UTILIZATION_RANGE,
    PROPER_STORY_SIZE,
    UNDER_UTILIZED_THRESHOLD,
)
from release_train.domain.models import CanonicalModel, WorkItemKind

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from release_train.planning.allocator import IterationPlan
    from release_train.planning.dependency_graph import DependencyGraph

_RECOMMEND_BELOW: Final[float] = 0.7
_VALUE_RISK_PENALTY: Final[float] = 0.2


class ReadinessCategory(StrEnum):
    CAPACITY_BALANCE = "capacity_balance"
    DEPENDENCY_RISK = "dependency_risk"
    DELIVERY_PREDICTABILITY = "delivery_predictability"


@dataclass(frozen=True, slots=True)
class ReadinessWeights:
    capacity_balance: float = 1.0
    dependency_risk: float = 1.0
    delivery_predictability: float = 1.0

    def __post_init__(self) -> None:
        values = (self.capacity_balance, self.dependency_risk, self.delivery_predictability)
        if any(value < 0 for value in values):
            raise ValueError("readiness weights must be >= 0")
        if not any(value > 0 for value in values):
            raise ValueError("at least one readiness weight must be > 0")

    def weight(self, category: ReadinessCategory) -> float:
        return float(getattr(self, category.value))


@dataclass(frozen=True, slots=True)
class CategoryScore(CanonicalModel):
    category: ReadinessCategory
    score: float
    detail: str


@dataclass(frozen=True, slots=True)
class CategoryAssessment(CanonicalModel):
    """Advisory finding group; does not contribute to ``readiness_score``."""

    category: str
    score: float
    issues: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ARTReadiness(CanonicalModel):
    readiness_score: float
    is_ready: bool
    threshold: float
    categories: tuple[CategoryScore, ...]
    assessments: tuple[CategoryAssessment, ...]
    over_allocated_iterations: tuple[str, ...]
    recommendations: tuple[str, ...]
    critical_blockers: tuple[str, ...] = ()

    def category_score(self, category: ReadinessCategory | str) -> float:
        wanted = ReadinessCategory(category)
        for item in self.categories:
            if item.category is wanted:
                return item.score
        raise KeyError(f"Unknown readiness category: {category}")


class ReadinessAssessor:
    """Scores capacity balance, dependency risk and delivery predictability.

    ``readiness_score`` is the weighted mean of the three category scores. A plan
    is ready when the score meets ``threshold`` and no iteration has an
    over-allocated team. Advisory assessments and ``critical_blockers`` are
    reported alongside and never change either.
    """

    __slots__ = ("_min_value_confidence", "_threshold", "_weights")

    def __init__(
        self,
        weights: ReadinessWeights | None = None,
        *,
        threshold: float = DEFAULT_READINESS_THRESHOLD,
        min_value_confidence: float = MIN_VALUE_CONFIDENCE,
    ) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be in [0, 1]")
        if not 0.0 <= min_value_confidence <= 1.0:
            raise ValueError("min_value_confidence must be in [0, 1]")
        self._weights = weights if weights is not None else ReadinessWeights()
        self._threshold = float(threshold)
        self._min_value_confidence = float(min_value_confidence)

    @property
    def threshold(self) -> float:
        return self._threshold

    def score(self, plans: Sequence[IterationPlan], graph: DependencyGraph) -> float:
        """Weighted readiness score alone; depends only on where work is placed."""

        return self._weighted(self._categories(plans, graph))

    def assess(self, plans: Sequence[IterationPlan], graph: DependencyGraph) -> ARTReadiness:
        categories = self._categories(plans, graph)
        readiness_score = self._weighted(categories)

        over_allocated = tuple(plan.iteration.id for plan in plans if plan.is_over_allocated)
        value, blockers = value_delivery(plans, min_confidence=self._min_value_confidence)
        assessments = (
            _story_readiness(graph),
            _soft_ordering(graph, _placements(plans)),
            _iteration_load(plans),
            value,
        )

        recommendations: list[str] = []
        for category in categories:
            if category.score < _RECOMMEND_BELOW:
                recommendations.append(_CATEGORY_ADVICE[category.category])
        for assessment in assessments:
            for item in assessment.recommendations:
                if item not in recommendations:
                    recommendations.append(item)

        return ARTReadiness(
            readiness_score=readiness_score,
            is_ready=readiness_score >= self._threshold and not over_allocated,
            threshold=self._threshold,
            categories=categories,
            assessments=assessments,
            over_allocated_iterations=over_allocated,
            recommendations=tuple(recommendations),
            critical_blockers=blockers,
        )

    def _categories(
        self, plans: Sequence[IterationPlan], graph: DependencyGraph
    ) -> tuple[CategoryScore, ...]:
        return (
            capacity_balance(plans),
            dependency_risk(graph, _placements(plans)),
            delivery_predictability(plans),
        )

    def _weighted(self, categories: Sequence[CategoryScore]) -> float:
        total_weight = sum(self._weights.weight(item.category) for item in categories)
        score = sum(self._weights.weight(item.category) * item.score for item in categories)
        return _clamp(score / total_weight)


def capacity_balance(plans: Sequence[IterationPlan]) -> CategoryScore:
    """``1 - population variance`` of every per-team utilization, clamped to [0, 1]."""

    utilizations = [item.utilization for plan in plans for item in plan.team_utilization]
    if not utilizations:
        return CategoryScore(ReadinessCategory.CAPACITY_BALANCE, 1.0, "no team utilization")
    variance = pvariance(utilizations)
    return CategoryScore(
        ReadinessCategory.CAPACITY_BALANCE,
        _clamp(1.0 - variance),
        f"utilization variance {variance:.3f} across {len(utilizations)} team slot(s)",
    )


def dependency_risk(graph: DependencyGraph, placements: Mapping[str, int]) -> CategoryScore:
    """Score is ``1 - share of cross-iteration HARD edges spanning more than one iteration``."""

    cross = 0
    risky = 0
    for edge in graph.edges:
        if not edge.is_hard:
            continue
        source = placements.get(edge.source_id)
        target = placements.get(edge.target_id)
        if source is None or target is None or source == target:
            continue
        cross += 1
        if abs(source - target) > 1:
            risky += 1
    risk = risky / cross if cross else 0.0
    return CategoryScore(
        ReadinessCategory.DEPENDENCY_RISK,
        _clamp(1.0 - risk),
        f"{risky} of {cross} cross-iteration hard dependencies span more than one iteration",
    )


def delivery_predictability(plans: Sequence[IterationPlan]) -> CategoryScore:
    if not plans:
        return CategoryScore(ReadinessCategory.DELIVERY_PREDICTABILITY, 1.0, "no iterations")
    low, high = PREDICTABLE_UTILIZATION_RANGE
    predictable = sum(1 for plan in plans if low <= plan.utilization <= high)
    return CategoryScore(
        ReadinessCategory.DELIVERY_PREDICTABILITY,
        predictable / len(plans),
        f"{predictable} of {len(plans)} iteration(s) loaded between {low:.0%} and {high:.0%}",
    )


def value_delivery(
    plans: Sequence[IterationPlan],
    *,
    min_confidence: float = MIN_VALUE_CONFIDENCE,
) -> tuple[CategoryAssessment, tuple[str, ...]]:
    """Can each planned iteration ship working software with enough value confidence?

    Only iterations with allocated work and attached quality and value analyses
    are judged. Score is the share of those that deliver working software, less
    ``0.2`` times the share carrying blocking quality findings. The second element
    holds the critical blockers: iterations with no working software and every
    blocking quality finding.
    """

    issues: list[str] = []
    blockers: list[str] = []
    recommendations: list[str] = []
    judged = delivering = risky = 0
    for plan in plans:
        quality, value = plan.quality, plan.value
        if not plan.allocations or quality is None or value is None:
            continue
        judged += 1
        name = plan.iteration.name
        if quality.working_software_items:
            delivering += 1
        else:
            issues.append(f"{name} cannot deliver working software")
            blockers.append(issues[-1])
        if value.confidence < min_confidence:
            issues.append(f"{name} has low value delivery confidence ({value.confidence:.0%})")
        if quality.errors:
            risky += 1
            blockers.extend(f"{name}: {finding.message}" for finding in quality.errors)
            recommendations.append(f"Resolve blocking quality findings in {name}")

    if delivering < judged:
        recommendations.append("Ensure every iteration can deliver working software")
    if any("low value delivery confidence" in item for item in issues):
        recommendations.append("Tag work items with their value stream to firm up value confidence")
    score = _clamp((delivering - _VALUE_RISK_PENALTY * risky) / judged) if judged else 1.0
    assessment = CategoryAssessment(
        category="value_delivery",
        score=score,
        issues=tuple(issues),
        recommendations=tuple(recommendations),
    )
    return assessment, tuple(blockers)


def _story_readiness(graph: DependencyGraph) -> CategoryAssessment:
    stories = [item for item in graph.items if item.kind is WorkItemKind.STORY]
    issues: list[str] = []
    recommendations: list[str] = []
    ready = 0
    for story in stories:
        problems: list[str] = []
        size = story.planning_size(graph.default_item_size)
        if size > PROPER_STORY_SIZE:
            problems.append(
                f"story {story.id} is {size:g} points; split to {PROPER_STORY_SIZE:g} or less"
            )
        if not story.acceptance_criteria:
            problems.append(f"story {story.id} has no acceptance criteria")
        if problems:
            issues.extend(problems)
        else:
            ready += 1
    if any("points;" in item for item in issues):
        recommendations.append("Split oversized stories before committing the PI")
    if any("acceptance criteria" in item for item in issues):
        recommendations.append("Add acceptance criteria to every story")
    return CategoryAssessment(
        category="story_readiness",
        score=ready / len(stories) if stories else 1.0,
        issues=tuple(issues),
        recommendations=tuple(recommendations),
    )


def _soft_ordering(graph: DependencyGraph, placements: Mapping[str, int]) -> CategoryAssessment:
    soft_edges = [edge for edge in graph.edges if not edge.is_hard]
    issues: list[str] = []
    for edge in soft_edges:
        source = placements.get(edge.source_id)
        if source is None:
            continue
        target = placements.get(edge.target_id)
        if target is None:
            issues.append(
                f"{edge.source_id} is planned but soft prerequisite {edge.target_id} is not"
            )
        elif target > source:
            issues.append(
                f"{edge.source_id} lands in iteration {source + 1} before soft prerequisite "
                f"{edge.target_id} (iteration {target + 1})"
            )
    recommendations = ("Review soft dependencies that land out of order",) if issues else ()
    return CategoryAssessment(
        category="dependency_ordering",
        score=1.0 - len(issues) / len(soft_edges) if soft_edges else 1.0,
        issues=tuple(issues),
        recommendations=recommendations,
    )


def _iteration_load(plans: Sequence[IterationPlan]) -> CategoryAssessment:
    issues: list[str] = []
    recommendations: list[str] = []
    flagged = 0
    for plan in plans:
        name = plan.iteration.name
        if plan.is_over_allocated:
            flagged += 1
            issues.append(f"{name} has over-allocated team(s)")
        elif plan.total_capacity > 0 and plan.utilization < UNDER_UTILIZED_THRESHOLD:
            flagged += 1
            issues.append(f"{name} is under-utilized at {plan.utilization:.0%}")
    if any("over-allocated" in item for item in issues):
        recommendations.append("Rebalance over-allocated iterations across teams")
    if any("under-utilized" in item for item in issues):
        recommendations.append("Pull ready work into under-utilized iterations")
    return CategoryAssessment(
        category="iteration_load",
        score=1.0 - flagged / len(plans) if plans else 1.0,
        issues=tuple(issues),
        recommendations=tuple(recommendations),
    )


def _placements(plans: Sequence[IterationPlan]) -> dict[str, int]:
    return {
        allocation.work_item_id: allocation.iteration_index
        for plan in plans
        for allocation in plan.allocations
    }


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


_CATEGORY_ADVICE: Final[dict[ReadinessCategory, str]] = {
    ReadinessCategory.CAPACITY_BALANCE: "Balance load across teams and iterations",
    ReadinessCategory.DEPENDENCY_RISK: "Pull hard prerequisites closer to their dependents",
    ReadinessCategory.DELIVERY_PREDICTABILITY: "Aim for 60-100% utilization in every iteration",
}


__all__ = [
    "ARTReadiness",
    "CategoryAssessment",
    "CategoryScore",
    "ReadinessAssessor",
    "ReadinessCategory",
    "ReadinessWeights",
    "capacity_balance",
    "delivery_predictability",
    "dependency_risk",
    "value_delivery",
]
