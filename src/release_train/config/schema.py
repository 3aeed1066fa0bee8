"""
release-train-planner — configuration schema and validation.

File: src/release_train/config/schema.py
Last updated: 2026-10-18

Purpose
- Hold the built-in planning defaults and the rules every config layer obeys.

Behavior
- ``validate_config`` checks sections, field types, enums and numeric ranges and
  returns every issue with its dotted path; ``assert_valid_config`` raises
  ``ConfigValidationError`` instead.
- A ``meta.schema_version`` other than the supported one is reported with
  migration guidance.
- Profiles (``conservative``, ``aggressive``, ``strict`` or user-defined) are
  deep-merged over the base config and the result is validated again.
- ``overridable_fields`` exposes the typed field table the loader uses to
  coerce ``RELEASE_TRAIN_*`` environment variables.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

from release_train.constants import CONFIG_SCHEMA_VERSION
from release_train.domain.models import ValueStreamType

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = (
    "conservative",
    "aggressive",
    "strict",
)
PROFILE_SECTIONS: Final[tuple[str, ...]] = (
    "planning",
    "readiness_weights",
    "quality_gates",
    "value_streams",
    "observability",
)

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
_LOG_FORMATS: Final[tuple[str, ...]] = ("json", "text")


class MetaConfig(TypedDict):
    schema_version: int


class PlanningConfig(TypedDict):
    default_iteration_length: int
    buffer_capacity: float
    max_capacity_utilization: float
    readiness_threshold: float
    enable_value_optimization: bool
    max_optimization_rounds: int
    default_item_size: float
    scale_by_iteration_length: bool
    validation_workers: int


class ReadinessWeightsConfig(TypedDict):
    capacity_balance: float
    dependency_risk: float
    delivery_predictability: float


class QualityGatesConfig(TypedDict):
    min_acceptance_criteria: int
    min_test_coverage: float
    max_integration_complexity: int
    deployment_readiness_threshold: float


class ValueStreamsConfig(TypedDict):
    customer_facing: float
    revenue_generating: float
    efficiency_improving: float
    technical_debt: float
    infrastructure: float


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    log_file: NotRequired[str]


class ProfileOverlay(TypedDict, total=False):
    planning: dict[str, object]
    readiness_weights: dict[str, object]
    quality_gates: dict[str, object]
    value_streams: dict[str, object]
    observability: dict[str, object]


class ReleaseTrainConfig(TypedDict):
    meta: MetaConfig
    planning: PlanningConfig
    readiness_weights: ReadinessWeightsConfig
    quality_gates: QualityGatesConfig
    value_streams: ValueStreamsConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[ReleaseTrainConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "planning": {
        "default_iteration_length": 14,
        "buffer_capacity": 0.2,
        "max_capacity_utilization": 0.85,
        "readiness_threshold": 0.7,
        "enable_value_optimization": True,
        "max_optimization_rounds": 0,
        "default_item_size": 3.0,
        "scale_by_iteration_length": False,
        "validation_workers": 4,
    },
    "readiness_weights": {
        "capacity_balance": 1.0,
        "dependency_risk": 1.0,
        "delivery_predictability": 1.0,
    },
    "quality_gates": {
        "min_acceptance_criteria": 3,
        "min_test_coverage": 0.8,
        "max_integration_complexity": 5,
        "deployment_readiness_threshold": 0.85,
    },
    "value_streams": {
        "customer_facing": 1.0,
        "revenue_generating": 0.9,
        "efficiency_improving": 0.7,
        "technical_debt": 0.5,
        "infrastructure": 0.3,
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
    },
    "profiles": {
        "conservative": {
            "planning": {
                "buffer_capacity": 0.3,
                "max_capacity_utilization": 0.75,
                "readiness_threshold": 0.8,
            },
        },
        "aggressive": {
            "planning": {
                "buffer_capacity": 0.1,
                "max_capacity_utilization": 0.95,
                "readiness_threshold": 0.6,
            },
        },
        "strict": {
            "planning": {"readiness_threshold": 0.8},
            "quality_gates": {
                "min_acceptance_criteria": 4,
                "min_test_coverage": 0.9,
                "deployment_readiness_threshold": 0.9,
            },
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    """Accumulates config issues for ``validate_config``.

    Kept apart from ``planning.errors.IssueCollector``: validation here returns its
    issues in a ``ConfigValidationResult`` instead of raising, and the config layer
    does not import the planning package.
    """

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> ReleaseTrainConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade release_train.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the release-train-planner package"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    if profile is None:
        return materialized

    selected = profile.strip()
    if not selected:
        return materialized

    profiles_raw = materialized.get("profiles")
    if not isinstance(profiles_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", "profiles section is required"),)
        )

    overlay_raw = profiles_raw.get(selected)
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    merged = merge_config(materialized, overlay_raw)
    return assert_valid_config(merged, active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, "", issues, partial=False)

    selected_profile = active_profile.strip() if isinstance(active_profile, str) else None
    if selected_profile:
        profiles = normalized.get("profiles")
        if not isinstance(profiles, Mapping):
            issues.add("profiles", "profiles section is required")
        elif selected_profile not in profiles:
            issues.add("profiles", f"profile {selected_profile!r} is not defined")
        else:
            effective = merge_config(normalized, profiles[selected_profile])
            _validate_root(effective, "", issues, partial=False)

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


@dataclass(frozen=True, slots=True)
class _FieldRule:
    """How one scalar config field is parsed and range-checked."""

    kind: Literal["int", "float", "bool", "choice", "path"]
    minimum: float | None = None
    maximum: float | None = None
    below: float | None = None
    positive: bool = False
    choices: tuple[str, ...] = ()
    required: bool = True


_RATIO: Final = _FieldRule("float", minimum=0.0, maximum=1.0)
_WEIGHT: Final = _FieldRule("float", minimum=0.0)

_SECTION_RULES: Final[dict[str, dict[str, _FieldRule]]] = {
    "meta": {"schema_version": _FieldRule("int", minimum=1)},
    "planning": {
        "default_iteration_length": _FieldRule("int", minimum=1),
        "buffer_capacity": _FieldRule("float", minimum=0.0, below=1.0),
        "max_capacity_utilization": _RATIO,
        "readiness_threshold": _RATIO,
        "enable_value_optimization": _FieldRule("bool"),
        "max_optimization_rounds": _FieldRule("int", minimum=0),
        "default_item_size": _FieldRule("float", positive=True),
        "scale_by_iteration_length": _FieldRule("bool"),
        "validation_workers": _FieldRule("int", minimum=1),
    },
    "readiness_weights": {key: _WEIGHT for key in DEFAULT_CONFIG["readiness_weights"]},
    "quality_gates": {
        "min_acceptance_criteria": _FieldRule("int", minimum=0),
        "min_test_coverage": _RATIO,
        "max_integration_complexity": _FieldRule("int", minimum=0),
        "deployment_readiness_threshold": _RATIO,
    },
    "value_streams": {item.value: _WEIGHT for item in ValueStreamType},
    "observability": {
        "log_level": _FieldRule("choice", choices=_LOG_LEVELS),
        "log_format": _FieldRule("choice", choices=_LOG_FORMATS),
        "log_file": _FieldRule("path", required=False),
    },
}


OverrideKind = Literal["str", "int", "float", "bool"]

_OVERRIDE_KINDS: Final[dict[str, OverrideKind]] = {
    "int": "int",
    "float": "float",
    "bool": "bool",
    "choice": "str",
    "path": "str",
}


def overridable_fields() -> dict[tuple[str, str], OverrideKind]:
    """Scalar fields that may be overridden from outside the config file, with value kinds.

    ``meta`` is excluded: the schema version only ever comes from the file itself.
    """

    fields: dict[tuple[str, str], OverrideKind] = {}
    for section in sorted(_SECTION_RULES):
        if section == "meta":
            continue
        for key, rule in sorted(_SECTION_RULES[section].items()):
            fields[(section, key)] = _OVERRIDE_KINDS[rule.kind]
    return fields


def _validate_root(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    sections = ("meta", *PROFILE_SECTIONS)
    _reject_unknown_keys(payload, {*sections, "profiles"}, path, issues)
    if not partial:
        _require_keys(payload, set(sections), path, issues)

    out: dict[str, Any] = {}
    for name in sections:
        section = _section_object(payload, name, path, issues)
        if section is not None:
            out[name] = _validate_section(name, section, _join(path, name), issues, partial)

    profiles = _section_object(payload, "profiles", path, issues)
    if profiles is not None:
        out["profiles"] = _validate_profiles(profiles, _join(path, "profiles"), issues)
    return out


def _section_object(
    payload: Mapping[str, object],
    key: str,
    path: str,
    issues: _IssueCollector,
) -> dict[str, object] | None:
    raw = payload.get(key)
    if raw is None:
        return None
    return _as_object(raw, _join(path, key), issues)


def _validate_section(
    name: str,
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    rules = _SECTION_RULES[name]
    _reject_unknown_keys(payload, set(rules), path, issues)
    if not partial:
        required = {key for key, rule in rules.items() if rule.required}
        _require_keys(payload, required, path, issues)

    out: dict[str, Any] = {}
    for key, rule in rules.items():
        if key not in payload:
            continue
        parsed = _parse_field(payload[key], _join(path, key), issues, rule)
        if parsed is not None:
            out[key] = parsed

    if name == "meta":
        version = out.get("schema_version")
        if version is not None and version != ConfigSchemaVersion:
            issues.add(_join(path, "schema_version"), migration_guidance(version))
    elif name == "readiness_weights" and not partial and len(out) == len(rules):
        if not any(value > 0 for value in out.values()):
            issues.add(path, "at least one readiness weight must be > 0")
    return out


def _parse_field(
    value: object,
    path: str,
    issues: _IssueCollector,
    rule: _FieldRule,
) -> object | None:
    if rule.kind == "bool":
        if isinstance(value, bool):
            return value
        issues.add(path, f"expected boolean, got {type(value).__name__}")
        return None
    if rule.kind in ("int", "float"):
        return _parse_number(value, path, issues, rule)

    text = _as_str(value, path, issues)
    if text is None:
        return None
    if rule.kind == "choice" and text not in rule.choices:
        expected = ", ".join(sorted(rule.choices))
        issues.add(path, f"invalid value {text!r}; expected one of: {expected}")
        return None
    if rule.kind == "path" and "\x00" in text:
        issues.add(path, "must not contain NUL bytes")
        return None
    return text


def _parse_number(
    value: object,
    path: str,
    issues: _IssueCollector,
    rule: _FieldRule,
) -> int | float | None:
    integer = rule.kind == "int"
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or (integer and isinstance(value, float))
    ):
        expected = "integer" if integer else "number"
        issues.add(path, f"expected {expected}, got {type(value).__name__}")
        return None

    number: int | float = value if integer else float(value)
    failure: str | None = None
    if not math.isfinite(number):
        failure = "must be finite"
    elif rule.minimum is not None and number < rule.minimum:
        failure = f"must be >= {rule.minimum}"
    elif rule.maximum is not None and number > rule.maximum:
        failure = f"must be <= {rule.maximum}"
    elif rule.below is not None and number >= rule.below:
        failure = f"must be < {rule.below}"
    elif rule.positive and number <= 0:
        failure = "must be > 0"
    if failure is not None:
        issues.add(path, failure)
        return None
    return number


def _validate_profiles(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    """Validate each named overlay; overlays may set any subset of a section's fields."""

    out: dict[str, Any] = {}
    for name in sorted(payload):
        profile_path = _join(path, name)
        if not _PROFILE_NAME_PATTERN.fullmatch(name):
            issues.add(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        overlay = _as_object(payload[name], profile_path, issues)
        if overlay is None:
            continue
        _reject_unknown_keys(overlay, set(PROFILE_SECTIONS), profile_path, issues)
        validated: dict[str, Any] = {}
        for section_name in PROFILE_SECTIONS:
            section = _section_object(overlay, section_name, profile_path, issues)
            if section is not None:
                validated[section_name] = _validate_section(
                    section_name, section, _join(profile_path, section_name), issues, True
                )
        out[name] = validated
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    """Overlay tables merge key by key; any other value replaces the base value."""

    for key in sorted(overlay):
        value = overlay[key]
        if not isinstance(value, Mapping):
            target[key] = copy.deepcopy(value)
            continue
        existing = target.get(key)
        nested = _deep_copy_mapping(existing) if isinstance(existing, Mapping) else {}
        _merge_into(nested, value)
        target[key] = nested


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: copy.deepcopy(value[key]) for key in sorted(value)}


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "DEFAULT_CONFIG",
    "PROFILE_SECTIONS",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "OverrideKind",
    "ReleaseTrainConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "overridable_fields",
    "validate_config",
]
