"""
release-train-planner — planning input loader

File: src/release_train/ingestion/loader.py
Last updated: 2026-10-18

Purpose
- Read a YAML (or JSON) planning input file into typed domain records.

Input layout
- ``program_increment``: ``{id, name, start_date, end_date}``
- ``teams``: list of team profiles
- ``work_items``: list of items, each carrying ``kind`` (story/enabler/feature)
- ``dependencies``: list of ``{source_id, target_id, strength?, rationale?, confidence?}``

Functional requirements
- Every malformed record is reported in one ``PlanningInputError`` with its path.
- ``attributes.value_stream`` and ``attributes.enabler_type`` are lifted into the
  typed fields when those fields are not given directly.

Non-functional requirements
- Parsing uses ``yaml.safe_load`` only; input is treated as data.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import yaml

from release_train.constants import PLANNING_INPUT_SCHEMA_VERSION
from release_train.domain.models import (
    DependencyEdge,
    ProgramIncrement,
    Team,
    WorkItem,
    WorkItemKind,
)
from release_train.planning.errors import IssueCollector, PlanningInputError, PlanningIssue
from release_train.utils.hashing import sha256_bytes

_TOP_LEVEL_KEYS: Final[frozenset[str]] = frozenset(
    {"schema_version", "program_increment", "teams", "work_items", "dependencies"}
)
_LIFTED_ATTRIBUTES: Final[dict[str, frozenset[WorkItemKind]]] = {
    "value_stream": frozenset(WorkItemKind),
    "enabler_type": frozenset({WorkItemKind.ENABLER}),
}


@dataclass(frozen=True, slots=True)
class PlanningInput:
    program_increment: ProgramIncrement
    work_items: tuple[WorkItem, ...]
    dependencies: tuple[DependencyEdge, ...]
    teams: tuple[Team, ...]
    source: str = "<memory>"
    digest: str = ""


def load_planning_input(path: str | Path) -> PlanningInput:
    """Load and validate a planning input file."""

    resolved = Path(path).expanduser()
    try:
        raw = resolved.read_bytes()
    except OSError as exc:
        raise PlanningInputError(
            (PlanningIssue(str(resolved), f"unable to read planning input: {exc}"),)
        ) from exc

    try:
        payload = yaml.safe_load(raw.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise PlanningInputError(
            (PlanningIssue(str(resolved), f"planning input must be UTF-8: {exc}"),)
        ) from exc
    except yaml.YAMLError as exc:
        raise PlanningInputError(
            (PlanningIssue(str(resolved), f"invalid YAML: {exc}"),)
        ) from exc

    parsed = parse_planning_input(payload)
    return PlanningInput(
        program_increment=parsed.program_increment,
        work_items=parsed.work_items,
        dependencies=parsed.dependencies,
        teams=parsed.teams,
        source=resolved.as_posix(),
        digest=sha256_bytes(raw),
    )


def parse_planning_input(payload: object) -> PlanningInput:
    """Build a ``PlanningInput`` from already-decoded data, aggregating every issue."""

    if not isinstance(payload, Mapping):
        raise PlanningInputError(
            (PlanningIssue("<root>", f"expected object, got {type(payload).__name__}"),)
        )

    issues = IssueCollector()
    for key in sorted(str(item) for item in payload):
        if key not in _TOP_LEVEL_KEYS:
            issues.add(key, "unknown field")

    version = payload.get("schema_version", PLANNING_INPUT_SCHEMA_VERSION)
    if version != PLANNING_INPUT_SCHEMA_VERSION:
        issues.add(
            "schema_version",
            f"unsupported version {version!r}; expected {PLANNING_INPUT_SCHEMA_VERSION}",
        )

    pi: ProgramIncrement | None = None
    if "program_increment" not in payload:
        issues.add("program_increment", "missing required field")
    else:
        pi = _parse_record(
            ProgramIncrement.from_dict, payload["program_increment"], "program_increment", issues
        )

    teams = tuple(
        team
        for team in _parse_list(payload, "teams", Team.from_dict, issues, required=True)
        if isinstance(team, Team)
    )
    work_items = tuple(
        item
        for item in _parse_list(
            payload, "work_items", _work_item_from_record, issues, required=False
        )
        if isinstance(item, WorkItem)
    )
    dependencies = tuple(
        edge
        for edge in _parse_list(
            payload, "dependencies", DependencyEdge.from_dict, issues, required=False
        )
        if isinstance(edge, DependencyEdge)
    )

    if pi is None or issues.has_issues:
        raise PlanningInputError(issues.items())
    return PlanningInput(
        program_increment=pi,
        work_items=work_items,
        dependencies=dependencies,
        teams=teams,
    )


def _parse_list(
    payload: Mapping[str, object],
    key: str,
    factory: Any,
    issues: IssueCollector,
    *,
    required: bool,
) -> list[object]:
    raw = payload.get(key)
    if raw is None:
        if required:
            issues.add(key, "missing required field")
        return []
    if not isinstance(raw, list):
        issues.add(key, f"expected array, got {type(raw).__name__}")
        return []
    parsed: list[object] = []
    for index, record in enumerate(raw):
        value = _parse_record(factory, record, f"{key}[{index}]", issues)
        if value is not None:
            parsed.append(value)
    return parsed


def _parse_record(factory: Any, record: object, path: str, issues: IssueCollector) -> Any:
    if not isinstance(record, Mapping):
        issues.add(path, f"expected object, got {type(record).__name__}")
        return None
    try:
        return factory(record)
    except (TypeError, ValueError) as exc:
        issues.add(path, str(exc))
        return None


def _work_item_from_record(record: Mapping[str, object]) -> WorkItem:
    data = dict(record)
    attributes = data.get("attributes")
    kind_raw = data.get("kind")
    if isinstance(attributes, Mapping) and isinstance(kind_raw, str):
        try:
            kind = WorkItemKind(kind_raw)
        except ValueError:
            kind = None
        if kind is not None:
            remaining = dict(attributes)
            for name, kinds in _LIFTED_ATTRIBUTES.items():
                if kind in kinds and name not in data and name in remaining:
                    data[name] = remaining.pop(name)
            data["attributes"] = remaining
    return WorkItem.from_dict(data)


__all__ = ["PlanningInput", "load_planning_input", "parse_planning_input"]
