"""
release-train-planner — command-line interface

File: src/release_train/ui/cli.py
Last updated: 2026-10-18

Purpose
- Expose ``art-plan`` subcommands: ``plan``, ``validate`` and ``config``.

Functional requirements
- Deterministic plain-text output by default, canonical JSON with ``--json``.
- Exit codes: 0 success, 1 plan not ready, 2 input/config error,
  3 invalid dependency graph, 4 internal error.
- Config precedence: CLI flags > ``RELEASE_TRAIN_*`` env > TOML file > defaults.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from release_train.config.loader import ConfigLoadError, load_config
from release_train.config.schema import ConfigValidationError
from release_train.ingestion.loader import load_planning_input
from release_train.main import ExitCode
from release_train.observability.logging import correlation_scope, setup_logging, shutdown_logging
from release_train.planning.dependency_graph import validate_dependencies
from release_train.planning.errors import InvalidDependencyGraphError, PlanningInputError
from release_train.planning.planner import ARTPlanner, PlanningSettings
from release_train.ui.render import CLIRenderer, create_renderer
from release_train.utils.fs import atomic_write

if TYPE_CHECKING:
    from release_train.ingestion.loader import PlanningInput
    from release_train.planning.planner import ARTPlan
    from release_train.planning.working_software import WorkingSoftwareReport

_PLAN_ID_LENGTH = 12


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Structured CLI failure surfaced to users with an explicit exit code."""

    message: str
    exit_code: int = int(ExitCode.INPUT_ERROR)

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level parser with all subcommands."""

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to release_train.toml (default: ./release_train.toml if present)",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Config profile overlay (conservative, aggressive, strict, or custom)",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show per-iteration allocation detail",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable color output (also respects NO_COLOR env var)",
    )

    parser = argparse.ArgumentParser(
        prog="art-plan",
        description="Agile Release Train planner for SAFe Program Increments.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command")

    # plan ----------------------------------------------------------------
    plan_parser = subparsers.add_parser(
        "plan",
        parents=[common],
        help="Build an iteration plan for a Program Increment",
        description=(
            "Allocate work items to iterations and teams, then score ART readiness.\n\n"
            "Examples:\n"
            "  art-plan plan samples/planning/pi_2024_q1.yaml\n"
            "  art-plan plan pi.yaml --json\n"
            "  art-plan plan pi.yaml --profile conservative --output plan.json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    plan_parser.add_argument("input_path", help="Path to the planning input (YAML or JSON)")
    plan_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    plan_parser.add_argument(
        "--iteration-length",
        type=int,
        default=None,
        help="Iteration length in days (overrides planning.default_iteration_length)",
    )
    plan_parser.add_argument(
        "--buffer",
        type=float,
        default=None,
        help="Capacity buffer fraction in [0, 1) (overrides planning.buffer_capacity)",
    )
    plan_parser.add_argument(
        "--no-optimize",
        action="store_true",
        default=False,
        help="Skip value-delivery timing optimization",
    )
    plan_parser.add_argument(
        "--output",
        default=None,
        help="Also write the canonical plan JSON to this path",
    )
    plan_parser.set_defaults(handler=_cmd_plan)

    # validate ------------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Validate work items and dependencies without planning",
        description=(
            "Check for unknown references, self-dependencies and dependency cycles.\n\n"
            "Examples:\n"
            "  art-plan validate pi.yaml\n"
            "  art-plan validate pi.yaml --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    validate_parser.add_argument("input_path", help="Path to the planning input (YAML or JSON)")
    validate_parser.add_argument(
        "--json", action="store_true", help="Emit deterministic JSON output"
    )
    validate_parser.set_defaults(handler=_cmd_validate)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the effective configuration",
        description=(
            "Print configuration after defaults, file, env and profile are applied.\n\n"
            "Examples:\n"
            "  art-plan config\n"
            "  art-plan config --profile strict --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.INPUT_ERROR)

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_plan(args: argparse.Namespace) -> int:
    overrides: dict[str, object] = {
        "planning.default_iteration_length": getattr(args, "iteration_length", None),
        "planning.buffer_capacity": getattr(args, "buffer", None),
        "planning.enable_value_optimization": False if _flag(args, "no_optimize") else None,
    }
    config = _load_effective_config(args, cli_overrides=overrides)
    settings = PlanningSettings.from_config(config)
    input_path = _require_str(getattr(args, "input_path", None), "input_path")
    output_path = _optional_str(getattr(args, "output", None))

    # Frozen CLIError must not cross a @contextmanager exit; convert errors out here.
    try:
        with _logging_session(config):
            planning_input = load_planning_input(input_path)
            pi = planning_input.program_increment
            plan_id = planning_input.digest[:_PLAN_ID_LENGTH] or pi.id
            with correlation_scope(plan_id=plan_id, pi_id=pi.id):
                plan = ARTPlanner(settings).plan_art(
                    pi,
                    planning_input.work_items,
                    planning_input.dependencies,
                    planning_input.teams,
                )
    except InvalidDependencyGraphError as exc:
        raise CLIError(str(exc), exit_code=int(ExitCode.INVALID_GRAPH)) from exc
    except PlanningInputError as exc:
        raise CLIError(str(exc), exit_code=int(ExitCode.INPUT_ERROR)) from exc

    if output_path is not None:
        try:
            atomic_write(Path(output_path).expanduser(), plan.to_json() + "\n")
        except OSError as exc:
            raise CLIError(f"unable to write plan to {output_path}: {exc}") from exc

    exit_code = int(ExitCode.SUCCESS if plan.is_ready else ExitCode.PLAN_NOT_READY)

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "plan",
                "input": planning_input.source,
                "input_digest": planning_input.digest,
                "plan": plan.to_dict(),
            }
        )
        return exit_code

    renderer = _get_renderer(args)
    _render_plan(renderer, plan)
    steps = [f"art-plan plan {input_path} --json --output plan.json"]
    if not plan.is_ready:
        steps.insert(0, f"art-plan validate {input_path}")
    renderer.next_steps(steps)
    return exit_code


def _cmd_validate(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    settings = PlanningSettings.from_config(config)
    input_path = _require_str(getattr(args, "input_path", None), "input_path")

    planning_input = _load_input(input_path)
    graph = validate_dependencies(
        planning_input.work_items,
        planning_input.dependencies,
        default_item_size=settings.default_item_size,
    )
    validation = graph.validation

    if validation.issues:
        exit_code = int(ExitCode.INPUT_ERROR)
    elif validation.hard_cycles:
        exit_code = int(ExitCode.INVALID_GRAPH)
    else:
        exit_code = int(ExitCode.SUCCESS)

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "validate",
                "input": planning_input.source,
                "is_valid": validation.is_valid,
                "validation": validation.to_dict(),
                "statistics": graph.statistics.to_dict(),
                "critical_path": list(graph.critical_path),
            }
        )
        return exit_code

    renderer = _get_renderer(args)
    stats = graph.statistics
    renderer.kv("Validated input", planning_input.source)
    renderer.kv("Work items", stats.node_count)
    renderer.kv("Dependencies", f"{stats.edge_count} ({stats.hard_edge_count} hard)")
    renderer.kv("Critical path", " -> ".join(graph.critical_path) or "(none)")
    renderer.kv("Critical path points", f"{stats.critical_path_points:g}")

    renderer.section("Checks:")
    if validation.issues:
        renderer.fail(f"{len(validation.issues)} reference issue(s)")
        renderer.items([f"{item.path}: {item.message}" for item in validation.issues])
    else:
        renderer.ok("all dependency references resolve")
    if validation.hard_cycles:
        renderer.fail(f"{len(validation.hard_cycles)} hard dependency cycle(s)")
        for cycle in validation.hard_cycles:
            renderer.items([" -> ".join(cycle.members)])
            for suggestion in cycle.suggestions:
                renderer.detail(suggestion)
    else:
        renderer.ok("no hard dependency cycles")
    for cycle in validation.warnings:
        renderer.warning(f"soft dependency cycle: {' -> '.join(cycle.members)}")
    if stats.high_dependency_items:
        renderer.warning("high dependency items: " + ", ".join(stats.high_dependency_items))
    return exit_code


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = _optional_str(getattr(args, "profile", None))

    payload: dict[str, object] = {
        "command": "config",
        "active_profile": profile,
        "config": config,
    }

    if _flag(args, "json"):
        _emit_json(payload)
        return int(ExitCode.SUCCESS)

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(json.dumps(config, indent=2, sort_keys=True, ensure_ascii=False))
    return int(ExitCode.SUCCESS)


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    """Retrieve or create a CLI renderer from the parsed namespace."""

    no_color = _flag(args, "no_color")
    verbose = _flag(args, "verbose")
    return create_renderer(no_color=no_color, verbose=verbose)


def _render_plan(renderer: CLIRenderer, plan: ARTPlan) -> None:
    pi = plan.program_increment
    summary = plan.summary
    readiness = plan.readiness

    renderer.heading(f"Program Increment {pi.id}: {pi.name}")
    renderer.kv("Window", f"{pi.start_date.isoformat()} .. {pi.end_date.isoformat()}")
    renderer.kv("Iterations", len(plan.iteration_plans))
    renderer.kv(
        "Work items",
        f"{summary.allocated_items} allocated, {summary.unallocated_items} unallocated",
    )
    renderer.kv(
        "Points",
        f"{summary.allocated_points:g} of {summary.total_points:g} allocated",
    )
    renderer.kv(
        "Readiness",
        f"{readiness.readiness_score:.2f} (threshold {readiness.threshold:.2f})",
    )
    renderer.kv("Ready", "yes" if plan.is_ready else "no")
    renderer.kv("Planning confidence", f"{summary.planning_confidence:.2f}")
    renderer.kv("Risk", summary.risk_level.value)
    if renderer.verbose:
        renderer.kv("Fingerprint", plan.fingerprint)

    rows = [
        [
            iteration_plan.iteration.name,
            f"{iteration_plan.iteration.start_date.isoformat()}"
            f"..{iteration_plan.iteration.end_date.isoformat()}",
            str(len(iteration_plan.allocations)),
            f"{iteration_plan.total_points:g}",
            f"{iteration_plan.total_capacity:g}",
            f"{iteration_plan.utilization:.0%}",
            iteration_plan.risk_level.value,
            _deployable_label(iteration_plan.quality),
        ]
        for iteration_plan in plan.iteration_plans
    ]
    renderer.table(
        ["ITERATION", "DATES", "ITEMS", "POINTS", "CAPACITY", "UTIL", "RISK", "DEPLOYABLE"],
        rows,
        title="Iterations:",
    )
    if renderer.verbose:
        for iteration_plan in plan.iteration_plans:
            renderer.section(f"{iteration_plan.iteration.name}:")
            for allocation in iteration_plan.allocations:
                renderer.detail(
                    f"{allocation.work_item_id} -> {allocation.team_id} ({allocation.points:g} pts)"
                )

    renderer.section("Readiness categories:")
    renderer.items(
        [
            f"{item.category.value}: {item.score:.2f} ({item.detail})"
            for item in readiness.categories
        ]
    )

    if plan.unallocated:
        renderer.section("Unallocated:")
        renderer.items(
            [
                f"{entry.work_item_id} [{entry.reason.value}] {entry.detail}"
                for entry in plan.unallocated
            ]
        )
    if plan.optimization is not None and plan.optimization.moves:
        renderer.section("Value timing moves:")
        renderer.items(
            [
                f"{move.work_item_id}: iteration {move.from_iteration + 1} -> "
                f"{move.to_iteration + 1}"
                for move in plan.optimization.moves
            ]
        )
    if plan.warnings:
        renderer.section("Warnings:")
        for warning in plan.warnings:
            renderer.warning(warning)
    if readiness.critical_blockers:
        renderer.section("Critical blockers:")
        renderer.items(list(readiness.critical_blockers))
    if readiness.recommendations:
        renderer.section("Recommendations:")
        renderer.items(list(readiness.recommendations))


def _deployable_label(report: WorkingSoftwareReport | None) -> str:
    if report is None:
        return "-"
    return "yes" if report.is_deployable else "no"


# ---------------------------------------------------------------------------
# Helpers: config, input, logging
# ---------------------------------------------------------------------------


def _load_effective_config(
    args: argparse.Namespace,
    *,
    cli_overrides: Mapping[str, object] | None = None,
) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))

    try:
        return load_config(config_path, profile=profile, cli_overrides=cli_overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=int(ExitCode.INPUT_ERROR)) from exc


def _load_input(input_path: str) -> PlanningInput:
    try:
        return load_planning_input(input_path)
    except PlanningInputError as exc:
        raise CLIError(str(exc), exit_code=int(ExitCode.INPUT_ERROR)) from exc


@contextmanager
def _logging_session(config: Mapping[str, Any]) -> Iterator[None]:
    observability = config.get("observability")
    setup_logging(observability if isinstance(observability, Mapping) else None)
    try:
        yield
    finally:
        shutdown_logging()


# ---------------------------------------------------------------------------
# Helpers: argument parsing
# ---------------------------------------------------------------------------


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise CLIError(f"invalid {name}: expected string")
    cleaned = value.strip()
    if not cleaned:
        raise CLIError(f"invalid {name}: value cannot be empty")
    return cleaned


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise CLIError("invalid optional string argument")
    cleaned = value.strip()
    return cleaned or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    value = getattr(args, name, False)
    return bool(value)


__all__ = [
    "CLIError",
    "build_parser",
    "run_cli",
]


if __name__ == "__main__":
    raise SystemExit(run_cli())
