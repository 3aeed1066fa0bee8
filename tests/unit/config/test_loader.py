"""
release-train-planner — unit tests for config loader

File: tests/unit/config/test_loader.py
Last updated: 2026-10-18

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Profile selection by argument, CLI override, and environment.
- Path normalization relative to the config file.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from release_train.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    env_name_for_path,
    load_config,
)

pytestmark = pytest.mark.unit

REPO_ROOT = Path(__file__).resolve().parents[3]


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _sha256_json(data: dict[str, object]) -> str:
    payload = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = tmp_path / "release_train.toml"
    default_path = tmp_path / "default.toml"
    _write_config(default_path, "")
    _write_config(
        config_path,
        """
[planning]
buffer_capacity = 0.25
""".strip(),
    )
    env = {"RELEASE_TRAIN_PLANNING_BUFFER_CAPACITY": "0.3"}

    default_loaded = load_config(default_path, environ={})
    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(config_path, environ=env)
    cli_loaded = load_config(
        config_path,
        environ=env,
        cli_overrides={"planning.buffer_capacity": 0.35},
    )

    assert default_loaded["planning"]["buffer_capacity"] == 0.2
    assert file_loaded["planning"]["buffer_capacity"] == 0.25
    assert env_loaded["planning"]["buffer_capacity"] == 0.3
    assert cli_loaded["planning"]["buffer_capacity"] == 0.35


def test_env_mapping_coerces_each_value_type(tmp_path: Path) -> None:
    config_path = tmp_path / "release_train.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "RELEASE_TRAIN_PLANNING_DEFAULT_ITERATION_LENGTH": "10",
            "RELEASE_TRAIN_PLANNING_ENABLE_VALUE_OPTIMIZATION": "off",
            "RELEASE_TRAIN_VALUE_STREAMS_TECHNICAL_DEBT": "0.6",
            "RELEASE_TRAIN_OBSERVABILITY_LOG_FORMAT": "text",
            "RELEASE_TRAIN_UNRELATED": "ignored",
        },
    )

    assert loaded["planning"]["default_iteration_length"] == 10
    assert loaded["planning"]["enable_value_optimization"] is False
    assert loaded["value_streams"]["technical_debt"] == 0.6
    assert loaded["observability"]["log_format"] == "text"
    assert env_name_for_path(("planning", "buffer_capacity")) == (
        "RELEASE_TRAIN_PLANNING_BUFFER_CAPACITY"
    )


@pytest.mark.parametrize(
    ("env_name", "raw", "expected"),
    [
        ("RELEASE_TRAIN_PLANNING_DEFAULT_ITERATION_LENGTH", "fortnight", "must be an integer"),
        ("RELEASE_TRAIN_PLANNING_BUFFER_CAPACITY", "lots", "must be a number"),
        ("RELEASE_TRAIN_PLANNING_SCALE_BY_ITERATION_LENGTH", "maybe", "must be a boolean"),
    ],
)
def test_invalid_env_coercion_raises_actionable_error(
    tmp_path: Path, env_name: str, raw: str, expected: str
) -> None:
    config_path = tmp_path / "release_train.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match=expected) as excinfo:
        load_config(config_path, environ={env_name: raw})

    assert env_name in str(excinfo.value)


def test_env_values_are_validated_after_coercion(tmp_path: Path) -> None:
    config_path = tmp_path / "release_train.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigValidationError) as excinfo:
        load_config(config_path, environ={"RELEASE_TRAIN_PLANNING_BUFFER_CAPACITY": "1.5"})

    assert [issue.path for issue in excinfo.value.issues] == ["planning.buffer_capacity"]


def test_loader_is_deterministic_for_same_inputs(tmp_path: Path) -> None:
    config_path = tmp_path / "release_train.toml"
    _write_config(config_path, "[readiness_weights]\ndependency_risk = 2.0\n")

    first = load_config(config_path, environ={})
    second = load_config(config_path, environ={})

    assert _sha256_json(first) == _sha256_json(second)
    assert dump_effective_config(first) == dump_effective_config(second)


def test_profiles_are_selected_by_argument_cli_or_environment(tmp_path: Path) -> None:
    config_path = tmp_path / "release_train.toml"
    _write_config(config_path, "")

    by_argument = load_config(config_path, profile="conservative", environ={})
    by_cli = load_config(config_path, cli_overrides={"profile": "aggressive"}, environ={})
    by_env = load_config(config_path, environ={"RELEASE_TRAIN_PROFILE": "strict"})
    env_over_profile = load_config(
        config_path,
        profile="conservative",
        environ={"RELEASE_TRAIN_PLANNING_BUFFER_CAPACITY": "0.15"},
    )

    assert by_argument["planning"]["buffer_capacity"] == 0.3
    assert by_cli["planning"]["buffer_capacity"] == 0.1
    assert by_env["quality_gates"]["min_acceptance_criteria"] == 4
    assert env_over_profile["planning"]["buffer_capacity"] == 0.15
    assert env_over_profile["planning"]["readiness_threshold"] == 0.8


def test_unknown_profile_is_a_validation_error(tmp_path: Path) -> None:
    config_path = tmp_path / "release_train.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigValidationError, match="'turbo' is not defined"):
        load_config(config_path, profile="turbo", environ={})


def test_explicit_missing_file_fails_but_implicit_default_is_optional(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "missing.toml", environ={})

    loaded = load_config(environ={})
    assert loaded["planning"]["default_iteration_length"] == 14


def test_invalid_toml_is_reported_with_path(tmp_path: Path) -> None:
    config_path = tmp_path / "release_train.toml"
    _write_config(config_path, "[planning\nbuffer_capacity = ")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_path_normalization_is_relative_to_config_file(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "release_train.toml"
    _write_config(config_path, '[observability]\nlog_file = "logs/planner.log"\n')

    loaded = load_config(config_path, environ={})

    expected = (tmp_path / "conf" / "logs" / "planner.log").resolve().as_posix()
    assert loaded["observability"]["log_file"] == expected


def test_log_file_can_be_set_from_environment(tmp_path: Path) -> None:
    config_path = tmp_path / "release_train.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path, environ={"RELEASE_TRAIN_OBSERVABILITY_LOG_FILE": "planner.log"}
    )

    assert loaded["observability"]["log_file"] == (tmp_path / "planner.log").resolve().as_posix()


def test_can_load_sample_config_with_profile_and_env_override() -> None:
    loaded = load_config(
        REPO_ROOT / "samples" / "config" / "release_train.toml",
        profile="release_candidate",
        environ={"RELEASE_TRAIN_OBSERVABILITY_LOG_LEVEL": "DEBUG"},
    )

    assert loaded["planning"]["buffer_capacity"] == 0.25
    assert loaded["planning"]["readiness_threshold"] == 0.75
    assert loaded["readiness_weights"]["dependency_risk"] == 1.5
    assert loaded["observability"]["log_level"] == "DEBUG"
