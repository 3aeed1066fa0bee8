"""Unit tests for planning.working_software."""

from __future__ import annotations

from datetime import date

import pytest

from release_train.domain.models import (
    DependencyEdge,
    DependencyStrength,
    Enabler,
    ProgramIncrement,
    Story,
    Team,
    WorkItem,
)
from release_train.planning.allocator import Allocation, IterationPlan, assemble_iteration_plans
from release_train.planning.capacity import CapacityManager
from release_train.planning.dependency_graph import DependencyGraph, validate_dependencies
from release_train.planning.iterations import iterations_for
from release_train.planning.working_software import (
    FindingSeverity,
    QualityGates,
    WorkingSoftwareValidator,
    integration_complexity,
)

pytestmark = pytest.mark.unit

_CRITERIA = ("given a cart", "when paying", "then a receipt is issued")
_DESCRIPTION = "Customers can pay for the cart with a stored card."
_TEAMS = (
    Team(id="team-a", name="A", member_count=5, average_velocity=40.0),
    Team(id="team-b", name="B", member_count=5, average_velocity=40.0),
)


def _story(item_id: str, **overrides: object) -> Story:
    fields: dict[str, object] = {
        "id": item_id,
        "title": item_id,
        "description": _DESCRIPTION,
        "estimated_size": 3,
        "acceptance_criteria": _CRITERIA,
        "verification": ("unit",),
    }
    fields.update(overrides)
    return Story(**fields)  # type: ignore[arg-type]


def _plans(
    items: list[WorkItem],
    placements: list[tuple[str, str, int]],
    edges: list[DependencyEdge] | None = None,
) -> tuple[tuple[IterationPlan, ...], DependencyGraph]:
    graph = validate_dependencies(items, edges or [])
    pi = ProgramIncrement(
        id="PI", name="PI", start_date=date(2024, 1, 1), end_date=date(2024, 1, 28)
    )
    allocations = [
        Allocation(
            work_item_id=item_id,
            team_id=team_id,
            points=graph.planning_size(item_id),
            iteration_index=index,
        )
        for item_id, team_id, index in placements
    ]
    plans = assemble_iteration_plans(
        iterations_for(pi, 14), allocations, _TEAMS, graph, capacity=CapacityManager()
    )
    return plans, graph


def test_fully_specified_iteration_is_deployable() -> None:
    plans, graph = _plans(
        [_story("S1"), _story("S2")],
        [("S1", "team-a", 0), ("S2", "team-a", 0)],
    )

    report = WorkingSoftwareValidator().validate(plans[0], graph)

    assert report.is_deployable
    assert report.deployment_readiness == pytest.approx(1.0)
    assert report.acceptance_pass_ratio == pytest.approx(1.0)
    assert report.coverage_ratio == pytest.approx(1.0)
    assert report.integration_complexity == 0
    assert report.working_software_items == ("S1", "S2")
    assert report.errors == ()
    assert report.warnings == ()


def test_story_without_enough_criteria_blocks_deployment() -> None:
    plans, graph = _plans(
        [
            _story("S1", acceptance_criteria=("only one",)),
            Enabler(
                id="E1",
                title="E1",
                description=_DESCRIPTION,
                estimated_size=2,
                acceptance_criteria=("only one",),
                verification=("integration",),
            ),
        ],
        [("S1", "team-a", 0), ("E1", "team-a", 0)],
    )

    report = WorkingSoftwareValidator().validate(plans[0], graph)

    assert not report.is_deployable
    assert [(item.code, item.work_item_id) for item in report.errors] == [
        ("acceptance_criteria", "S1")
    ]
    assert report.errors[0].severity is FindingSeverity.ERROR
    enabler_findings = [item for item in report.warnings if item.work_item_id == "E1"]
    assert [item.code for item in enabler_findings] == ["acceptance_criteria"]
    assert report.acceptance_pass_ratio == pytest.approx(0.0)
    assert report.working_software_items == ()


def test_missing_verification_markers_lower_readiness() -> None:
    plans, graph = _plans(
        [_story("S1", verification=()), _story("S2", verification=())],
        [("S1", "team-a", 0), ("S2", "team-a", 0)],
    )

    report = WorkingSoftwareValidator().validate(plans[0], graph)

    assert report.coverage_ratio == pytest.approx(0.0)
    assert report.deployment_readiness == pytest.approx(0.7)
    assert not report.is_deployable
    assert [item.code for item in report.warnings] == ["test_coverage"]


def test_definition_of_done_gaps_are_warnings() -> None:
    plans, graph = _plans(
        [_story("S1", estimated_size=8, description="short")],
        [("S1", "team-a", 0)],
    )

    report = WorkingSoftwareValidator().validate(plans[0], graph)

    (finding,) = report.warnings
    assert finding.code == "definition_of_done"
    assert "size 8 above 5" in finding.message
    assert "description too short" in finding.message
    assert report.working_software_items == ()
    assert report.is_deployable


def test_cross_team_dependencies_count_towards_integration_complexity() -> None:
    items: list[WorkItem] = [_story("S1"), _story("S2"), _story("S3")]
    edges = [
        DependencyEdge(source_id="S2", target_id="S1"),
        DependencyEdge(source_id="S3", target_id="S1", strength=DependencyStrength.SOFT),
    ]
    plans, graph = _plans(
        items,
        [("S1", "team-a", 0), ("S2", "team-b", 0), ("S3", "team-b", 0)],
        edges,
    )
    validator = WorkingSoftwareValidator(
        QualityGates(max_integration_complexity=1, deployment_readiness_threshold=0.9)
    )

    report = validator.validate(plans[0], graph)

    assert integration_complexity(plans[0], graph) == 2
    assert report.integration_complexity == 2
    assert [item.code for item in report.warnings] == ["integration_complexity"]
    assert report.deployment_readiness == pytest.approx(0.4 + 0.3 + 0.3 * 0.5)
    assert not report.is_deployable


def test_dependencies_split_across_iterations_are_not_integration_work() -> None:
    plans, graph = _plans(
        [_story("S1"), _story("S2")],
        [("S1", "team-a", 0), ("S2", "team-b", 1)],
        [DependencyEdge(source_id="S2", target_id="S1")],
    )

    assert integration_complexity(plans[0], graph) == 0
    assert integration_complexity(plans[1], graph) == 0


def test_empty_iteration_has_zero_readiness() -> None:
    plans, graph = _plans([_story("S1")], [("S1", "team-a", 0)])

    report = WorkingSoftwareValidator().validate(plans[1], graph)

    assert report.deployment_readiness == 0.0
    assert not report.is_deployable
    assert [item.code for item in report.warnings] == ["empty_iteration"]


def test_validate_all_returns_reports_in_iteration_order() -> None:
    plans, graph = _plans(
        [_story("S1"), _story("S2")],
        [("S1", "team-a", 0), ("S2", "team-b", 1)],
    )
    validator = WorkingSoftwareValidator()

    concurrent = validator.validate_all(plans, graph, max_workers=4)
    serial = validator.validate_all(plans, graph, max_workers=1)

    assert [item.iteration_index for item in concurrent] == [0, 1]
    assert concurrent == serial
    assert validator.validate_all((), graph) == ()


@pytest.mark.parametrize(
    "overrides",
    [
        {"min_acceptance_criteria": -1},
        {"min_test_coverage": 1.5},
        {"max_integration_complexity": -1},
        {"deployment_readiness_threshold": -0.1},
    ],
)
def test_quality_gates_reject_out_of_range_values(overrides: dict[str, float]) -> None:
    with pytest.raises(ValueError):
        QualityGates(**overrides)  # type: ignore[arg-type]
