"""Working-software quality gates applied per iteration plan."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final

from release_train.constants import PROPER_STORY_SIZE
from release_train.domain.models import CanonicalModel, WorkItemKind

if TYPE_CHECKING:
    from collections.abc import Sequence

    from release_train.planning.allocator import IterationPlan
    from release_train.planning.dependency_graph import DependencyGraph

_MIN_DESCRIPTION_LENGTH: Final[int] = 20
_ACCEPTANCE_WEIGHT: Final[float] = 0.4
_COVERAGE_WEIGHT: Final[float] = 0.3
_INTEGRATION_WEIGHT: Final[float] = 0.3


class FindingSeverity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class QualityGates:
    min_acceptance_criteria: int = 3
    min_test_coverage: float = 0.8
    max_integration_complexity: int = 5
    deployment_readiness_threshold: float = 0.85

    def __post_init__(self) -> None:
        if self.min_acceptance_criteria < 0:
            raise ValueError("min_acceptance_criteria must be >= 0")
        if not 0.0 <= self.min_test_coverage <= 1.0:
            raise ValueError("min_test_coverage must be in [0, 1]")
        if self.max_integration_complexity < 0:
            raise ValueError("max_integration_complexity must be >= 0")
        if not 0.0 <= self.deployment_readiness_threshold <= 1.0:
            raise ValueError("deployment_readiness_threshold must be in [0, 1]")


@dataclass(frozen=True, slots=True)
class QualityFinding(CanonicalModel):
    code: str
    severity: FindingSeverity
    message: str
    work_item_id: str | None = None


@dataclass(frozen=True, slots=True)
class WorkingSoftwareReport(CanonicalModel):
    iteration_id: str
    iteration_index: int
    is_deployable: bool
    deployment_readiness: float
    acceptance_pass_ratio: float
    coverage_ratio: float
    integration_complexity: int
    working_software_items: tuple[str, ...]
    errors: tuple[QualityFinding, ...] = ()
    warnings: tuple[QualityFinding, ...] = ()


class WorkingSoftwareValidator:
    """Checks that an iteration's output is deployable, not just coded.

    Stories below the acceptance-criteria minimum are blocking errors; every other
    gate miss is a warning. Plans are never mutated.
    """

    __slots__ = ("_gates",)

    def __init__(self, gates: QualityGates | None = None) -> None:
        self._gates = gates if gates is not None else QualityGates()

    @property
    def gates(self) -> QualityGates:
        return self._gates

    def validate(self, plan: IterationPlan, graph: DependencyGraph) -> WorkingSoftwareReport:
        gates = self._gates
        errors: list[QualityFinding] = []
        warnings: list[QualityFinding] = []
        iteration = plan.iteration

        if not plan.allocations:
            warnings.append(
                QualityFinding(
                    code="empty_iteration",
                    severity=FindingSeverity.WARNING,
                    message=f"{iteration.name} has no allocated work to deploy",
                )
            )
            return WorkingSoftwareReport(
                iteration_id=iteration.id,
                iteration_index=iteration.index,
                is_deployable=False,
                deployment_readiness=0.0,
                acceptance_pass_ratio=0.0,
                coverage_ratio=0.0,
                integration_complexity=0,
                working_software_items=(),
                warnings=tuple(warnings),
            )

        passing_acceptance = 0
        verified = 0
        working: list[str] = []
        for allocation in plan.allocations:
            item = graph.item(allocation.work_item_id)
            criteria = len(item.acceptance_criteria)
            meets_acceptance = criteria >= gates.min_acceptance_criteria
            if meets_acceptance:
                passing_acceptance += 1
            else:
                finding = QualityFinding(
                    code="acceptance_criteria",
                    severity=(
                        FindingSeverity.ERROR
                        if item.kind is WorkItemKind.STORY
                        else FindingSeverity.WARNING
                    ),
                    message=(
                        f"{item.id} has {criteria} acceptance criteria; "
                        f"at least {gates.min_acceptance_criteria} required"
                    ),
                    work_item_id=item.id,
                )
                (errors if finding.severity is FindingSeverity.ERROR else warnings).append(finding)

            if item.is_verified:
                verified += 1

            dod_gaps = _definition_of_done_gaps(
                item.acceptance_criteria,
                item.description,
                item.planning_size(graph.default_item_size),
            )
            if dod_gaps:
                warnings.append(
                    QualityFinding(
                        code="definition_of_done",
                        severity=FindingSeverity.WARNING,
                        message=f"{item.id} misses definition of done: {', '.join(dod_gaps)}",
                        work_item_id=item.id,
                    )
                )
            elif meets_acceptance:
                working.append(item.id)

        count = len(plan.allocations)
        acceptance_ratio = passing_acceptance / count
        coverage_ratio = verified / count
        if coverage_ratio < gates.min_test_coverage:
            warnings.append(
                QualityFinding(
                    code="test_coverage",
                    severity=FindingSeverity.WARNING,
                    message=(
                        f"{coverage_ratio:.0%} of items carry a verification marker; "
                        f"floor is {gates.min_test_coverage:.0%}"
                    ),
                )
            )

        complexity = integration_complexity(plan, graph)
        if complexity > gates.max_integration_complexity:
            warnings.append(
                QualityFinding(
                    code="integration_complexity",
                    severity=FindingSeverity.WARNING,
                    message=(
                        f"{complexity} cross-team dependencies land in {iteration.name}; "
                        f"ceiling is {gates.max_integration_complexity}"
                    ),
                )
            )

        readiness = _deployment_readiness(acceptance_ratio, coverage_ratio, complexity, gates)
        return WorkingSoftwareReport(
            iteration_id=iteration.id,
            iteration_index=iteration.index,
            is_deployable=not errors and readiness >= gates.deployment_readiness_threshold,
            deployment_readiness=readiness,
            acceptance_pass_ratio=acceptance_ratio,
            coverage_ratio=coverage_ratio,
            integration_complexity=complexity,
            working_software_items=tuple(working),
            errors=tuple(errors),
            warnings=tuple(warnings),
        )

    def validate_all(
        self,
        plans: Sequence[IterationPlan],
        graph: DependencyGraph,
        *,
        max_workers: int = 4,
    ) -> tuple[WorkingSoftwareReport, ...]:
        """Validate iterations concurrently; results are returned in iteration order."""

        if not plans:
            return ()
        if max_workers <= 1 or len(plans) == 1:
            reports = [self.validate(plan, graph) for plan in plans]
        else:
            with ThreadPoolExecutor(max_workers=min(max_workers, len(plans))) as executor:
                reports = list(executor.map(lambda plan: self.validate(plan, graph), plans))
        return tuple(sorted(reports, key=lambda report: report.iteration_index))


def integration_complexity(plan: IterationPlan, graph: DependencyGraph) -> int:
    """Dependencies (either strength) realized within ``plan`` across two teams."""

    teams = {allocation.work_item_id: allocation.team_id for allocation in plan.allocations}
    count = 0
    for edge in graph.edges:
        source_team = teams.get(edge.source_id)
        target_team = teams.get(edge.target_id)
        if source_team is None or target_team is None:
            continue
        if source_team != target_team:
            count += 1
    return count


def _definition_of_done_gaps(
    acceptance_criteria: Sequence[str],
    description: str,
    size: float,
) -> tuple[str, ...]:
    gaps: list[str] = []
    if not acceptance_criteria:
        gaps.append("no acceptance criteria")
    if size > PROPER_STORY_SIZE:
        gaps.append(f"size {size:g} above {PROPER_STORY_SIZE:g}")
    if len(description) <= _MIN_DESCRIPTION_LENGTH:
        gaps.append("description too short")
    return tuple(gaps)


def _deployment_readiness(
    acceptance_ratio: float,
    coverage_ratio: float,
    complexity: int,
    gates: QualityGates,
) -> float:
    if gates.min_test_coverage <= 0:
        coverage_score = 1.0
    else:
        coverage_score = min(1.0, coverage_ratio / gates.min_test_coverage)
    if complexity <= gates.max_integration_complexity:
        integration_score = 1.0
    else:
        integration_score = gates.max_integration_complexity / complexity
    score = (
        _ACCEPTANCE_WEIGHT * acceptance_ratio
        + _COVERAGE_WEIGHT * coverage_score
        + _INTEGRATION_WEIGHT * integration_score
    )
    return max(0.0, min(1.0, score))


__all__ = [
    "FindingSeverity",
    "QualityFinding",
    "QualityGates",
    "WorkingSoftwareReport",
    "WorkingSoftwareValidator",
    "integration_complexity",
]
