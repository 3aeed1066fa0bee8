"""
release-train-planner — unit tests for config schema validation

File: tests/unit/config/test_schema.py
Last updated: 2026-10-18

Purpose
- Validate strict config schema behavior, structured errors, and profile overlays.

What this test file should cover
- Validates the sample release_train.toml successfully.
- Rejects unknown keys, invalid types and out-of-range values with actionable paths.
- Deep-merges profile overlays and re-validates the effective config.

Non-functional requirements
- Deterministic and fast.
"""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from pathlib import Path

import pytest

from release_train.config.schema import (
    BUILTIN_PROFILE_NAMES,
    ConfigSchemaVersion,
    ConfigValidationError,
    apply_profile_overlay,
    default_config,
    merge_config,
    migration_guidance,
    overridable_fields,
    validate_config,
)

pytestmark = pytest.mark.unit

REPO_ROOT = Path(__file__).resolve().parents[3]
SAMPLE_CONFIG = REPO_ROOT / "samples" / "config" / "release_train.toml"


def _load_toml(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    assert isinstance(data, dict)
    return data


def _as_object_dict(value: object) -> dict[str, object]:
    assert isinstance(value, Mapping)
    normalized: dict[str, object] = {}
    for key, item in value.items():
        assert isinstance(key, str)
        normalized[key] = item
    return normalized


def _issues(config: Mapping[str, object]) -> dict[str, str]:
    result = validate_config(config)
    assert not result.is_valid
    return {issue.path: issue.message for issue in result.issues}


def test_defaults_validate_and_include_builtin_profiles() -> None:
    result = validate_config(default_config())

    assert result.is_valid
    assert result.config is not None
    assert result.config["meta"]["schema_version"] == ConfigSchemaVersion
    assert sorted(result.config["profiles"]) == sorted(BUILTIN_PROFILE_NAMES)


def test_sample_config_validates_successfully() -> None:
    config = merge_config(default_config(), _load_toml(SAMPLE_CONFIG))

    result = validate_config(config, active_profile="release_candidate")

    assert result.is_valid
    assert result.config is not None
    assert result.config["readiness_weights"]["dependency_risk"] == 1.5
    assert result.config["observability"]["log_format"] == "text"


def test_unknown_key_rejection_is_explicit() -> None:
    config = merge_config(default_config(), {"planning": {"sprint_length": 10}, "extras": {}})

    issues = _issues(config)

    assert issues["planning.sprint_length"] == "unknown field"
    assert issues["extras"] == "unknown field"


def test_type_validation_reports_structured_paths() -> None:
    config = default_config()
    planning = _as_object_dict(config["planning"])
    planning["default_iteration_length"] = "two weeks"
    planning["enable_value_optimization"] = "yes"
    config["planning"] = planning  # type: ignore[typeddict-item]

    issues = _issues(config)

    assert "expected integer" in issues["planning.default_iteration_length"]
    assert "expected boolean" in issues["planning.enable_value_optimization"]


@pytest.mark.parametrize(
    ("section", "key", "value", "message"),
    [
        ("planning", "buffer_capacity", 1.0, "must be < 1.0"),
        ("planning", "buffer_capacity", -0.1, "must be >= 0.0"),
        ("planning", "readiness_threshold", 1.2, "must be <= 1.0"),
        ("planning", "default_iteration_length", 0, "must be >= 1"),
        ("planning", "default_item_size", 0, "must be > 0"),
        ("quality_gates", "min_test_coverage", 2, "must be <= 1.0"),
        ("value_streams", "technical_debt", -1, "must be >= 0.0"),
    ],
)
def test_range_violation_reports_exact_path(
    section: str, key: str, value: object, message: str
) -> None:
    config = merge_config(default_config(), {section: {key: value}})

    issues = _issues(config)

    assert issues[f"{section}.{key}"] == message


def test_all_zero_readiness_weights_are_rejected() -> None:
    config = merge_config(
        default_config(),
        {
            "readiness_weights": {
                "capacity_balance": 0.0,
                "dependency_risk": 0.0,
                "delivery_predictability": 0.0,
            }
        },
    )

    issues = _issues(config)

    assert issues["readiness_weights"] == "at least one readiness weight must be > 0"


def test_log_settings_are_restricted_to_known_values() -> None:
    config = merge_config(default_config(), {"observability": {"log_format": "xml"}})

    issues = _issues(config)

    assert issues["observability.log_format"].startswith("invalid value 'xml'")


def test_schema_version_mismatch_carries_migration_guidance() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": 2}})

    issues = _issues(config)

    assert issues["meta.schema_version"] == migration_guidance(2)
    assert "newer than supported" in migration_guidance(2)
    assert migration_guidance(ConfigSchemaVersion) == "schema version is current"


def test_missing_sections_are_reported() -> None:
    config = _as_object_dict(default_config())
    del config["quality_gates"]

    issues = _issues(config)

    assert issues["quality_gates"] == "missing required field"


def test_profile_overlay_deep_merges_known_sections_and_revalidates() -> None:
    merged = apply_profile_overlay(default_config(), "strict")

    assert merged["planning"]["readiness_threshold"] == 0.8
    assert merged["planning"]["buffer_capacity"] == 0.2
    assert merged["quality_gates"]["min_acceptance_criteria"] == 4
    assert validate_config(merged, active_profile="strict").is_valid


def test_unknown_profile_is_rejected() -> None:
    with pytest.raises(ConfigValidationError) as excinfo:
        apply_profile_overlay(default_config(), "turbo")

    assert excinfo.value.issues[0].path == "profiles"
    assert "'turbo' is not defined" in str(excinfo.value)


def test_profile_overlay_values_are_validated() -> None:
    config = merge_config(
        default_config(),
        {"profiles": {"broken": {"planning": {"buffer_capacity": "lots"}}, "Bad Name": {}}},
    )

    issues = _issues(config)

    assert "expected number" in issues["profiles.broken.planning.buffer_capacity"]
    assert issues["profiles.Bad Name"] == "profile name must match ^[a-z][a-z0-9_-]*$"


def test_overridable_fields_cover_every_default_scalar_except_meta() -> None:
    fields = overridable_fields()
    defaults = merge_config({}, default_config())

    expected = {
        (section, key)
        for section in ("planning", "readiness_weights", "quality_gates", "value_streams")
        for key in defaults[section]
    }
    expected |= {("observability", "log_level"), ("observability", "log_format")}

    assert expected <= set(fields)
    assert ("observability", "log_file") in fields
    assert not any(section == "meta" for section, _ in fields)
    assert fields[("planning", "default_iteration_length")] == "int"
    assert fields[("planning", "enable_value_optimization")] == "bool"
    assert fields[("observability", "log_level")] == "str"
