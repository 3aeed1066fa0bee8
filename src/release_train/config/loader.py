"""
release-train-planner — runtime config loader.

File: src/release_train/config/loader.py
Last updated: 2026-10-18

Purpose
- Resolve the effective planning config for one CLI run.

Behavior
- Layers: defaults, ``release_train.toml`` (``tomllib``), profile overlay,
  ``RELEASE_TRAIN_*`` environment variables, CLI overrides.
- Environment variables are typed from the schema field table and rejected
  with the variable name when they cannot be coerced.
- The merged result is validated again, so overrides obey the same ranges.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from release_train.config.schema import (
    OverrideKind,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    overridable_fields,
)

DEFAULT_CONFIG_FILE: Final[str] = "release_train.toml"
ENV_PREFIX: Final[str] = "RELEASE_TRAIN_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Build the effective planner config.

    Layers apply in order: built-in defaults, ``release_train.toml``, the selected
    profile overlay, ``RELEASE_TRAIN_*`` variables, then CLI overrides. The file
    layer is validated on its own first so that a broken file is reported before
    any override hides it. An implicit ``./release_train.toml`` may be absent; an
    explicit ``config_path`` must exist.
    """

    path = _resolve_config_path(config_path)
    env = os.environ if environ is None else environ
    overrides = dict(cli_overrides or {})
    active_profile = _resolve_profile(profile=profile, cli_overrides=overrides, environ=env)

    effective = assert_valid_config(
        merge_config(default_config(), _load_toml_file(path, required=config_path is not None))
    )
    if active_profile is not None:
        effective = apply_profile_overlay(effective, active_profile)
    for layer in (_collect_env_overrides(env), _materialize_cli_overrides(overrides)):
        effective = merge_config(effective, layer)

    effective = assert_valid_config(effective, active_profile=active_profile)
    return _normalize_log_file(effective, base_dir=path.parent)


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Return deterministic JSON dump of effective config."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def env_name_for_path(path: tuple[str, ...]) -> str:
    """Environment variable bound to a config field path."""

    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _resolve_profile(
    *,
    profile: str | None,
    cli_overrides: Mapping[str, object],
    environ: Mapping[str, str],
) -> str | None:
    """First profile named by argument, CLI override, then environment; blanks select none."""

    cli_profile = cli_overrides.get("profile")
    if cli_profile is not None and not isinstance(cli_profile, str):
        raise ConfigLoadError("cli override 'profile' must be a string")

    for candidate in (profile, cli_profile, environ.get(f"{ENV_PREFIX}PROFILE")):
        if candidate is not None:
            return candidate.strip() or None
    return None


def _collect_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for (section, key), kind in overridable_fields().items():
        env_name = env_name_for_path((section, key))
        raw = environ.get(env_name)
        if raw is None:
            continue
        overrides.setdefault(section, {})[key] = _coerce_env(
            raw.strip(), kind, f"{env_name} -> {section}.{key}"
        )
    return overrides


def _coerce_env(value: str, kind: OverrideKind, label: str) -> object:
    if kind == "str":
        return value
    if kind == "bool":
        lowered = value.lower()
        if lowered in _BOOLEAN_TRUE or lowered in _BOOLEAN_FALSE:
            return lowered in _BOOLEAN_TRUE
        raise ConfigLoadError(f"{label} must be a boolean (true/false/1/0/yes/no/on/off)")

    parse = int if kind == "int" else float
    try:
        return parse(value)
    except ValueError as exc:
        expected = "an integer" if kind == "int" else "a number"
        raise ConfigLoadError(f"{label} must be {expected}") from exc


def _materialize_cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    """Expand dotted ``section.key`` overrides into a nested payload, skipping unset values."""

    payload: dict[str, Any] = {}
    for dotted, value in sorted(cli_overrides.items()):
        if dotted == "profile" or value is None:
            continue
        parts = [part for part in dotted.split(".") if part]
        if not parts:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        node = payload
        for part in parts[:-1]:
            node = node.setdefault(part, {})
            if not isinstance(node, dict):
                raise ConfigLoadError(f"CLI override {dotted!r} conflicts with a scalar value")
        node[parts[-1]] = value
    return payload


def _normalize_log_file(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    materialized = merge_config({}, config)
    observability = materialized.get("observability")
    if not isinstance(observability, dict) or not isinstance(observability.get("log_file"), str):
        return materialized
    candidate = Path(os.path.expandvars(observability["log_file"])).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    observability["log_file"] = Path(os.path.normpath(candidate)).as_posix()
    return materialized


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "env_name_for_path",
    "load_config",
]
