"""Structured logging setup with JSON-lines or text output and correlation context.

Planning components log through ``structlog`` with event-name messages
(``art_planning_started``, ``art_item_unallocated``, ...). ``setup_logging``
routes those events into the stdlib ``release_train`` logger so every record
shares one formatter, one set of sinks, and the active correlation fields.
"""

from __future__ import annotations

import contextvars
import json
import logging
import math
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Final, Literal, TextIO

import structlog

from release_train.domain.models import JSONValue

_DEFAULT_LOGGER_NAME: Final[str] = "release_train"
_CORRELATION_KEYS: Final[tuple[str, ...]] = (
    "plan_id",
    "pi_id",
    "iteration_id",
    "work_item_id",
)
# Attributes every LogRecord carries; anything else arrived through ``extra``.
_STANDARD_LOG_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for CLI structured logging."""

    level: int | str = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | str | None = None
    logger_name: str = _DEFAULT_LOGGER_NAME


class _JsonLineFormatter(logging.Formatter):
    """Formatter that emits canonical JSON objects per log line."""

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z_from_epoch(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in sorted(_merge_correlation_context(record).items()):
            event[key] = value

        extras = _extract_extra_fields(record)
        if extras:
            event["fields"] = extras
        if record.exc_info is not None:
            event["exception"] = self.formatException(record.exc_info)

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class _TextFormatter(logging.Formatter):
    """Human-readable ``timestamp LEVEL logger message key=value`` lines."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            _iso8601z_from_epoch(record.created),
            record.levelname,
            record.name,
            record.getMessage(),
        ]
        context = _merge_correlation_context(record)
        context.update(
            {key: _render_text_value(value) for key, value in _extract_extra_fields(record).items()}
        )
        parts.extend(f"{key}={value}" for key, value in sorted(context.items()))
        line = " ".join(parts)
        if record.exc_info is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    stream: TextIO | None = None,
    logger_name: str = _DEFAULT_LOGGER_NAME,
) -> logging.Logger:
    """Configure logging from an ``[observability]`` config section and return the logger."""

    cfg = dict(observability_config or {})
    raw_level = cfg.get("log_level", "INFO")
    raw_format = cfg.get("log_format", "json")
    raw_file = cfg.get("log_file")
    return setup_structured_logging(
        LoggingConfig(
            level=raw_level if isinstance(raw_level, (int, str)) else "INFO",
            log_format="text" if raw_format == "text" else "json",
            log_file=raw_file if isinstance(raw_file, (str, Path)) else None,
            logger_name=logger_name,
        ),
        stream=stream,
    )


def setup_structured_logging(
    config: LoggingConfig,
    *,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Install sinks on the package logger and route structlog events through it."""

    level = _parse_log_level(config.level)
    formatter: logging.Formatter
    if config.log_format == "text":
        formatter = _TextFormatter()
    else:
        formatter = _JsonLineFormatter()

    logger = logging.getLogger(config.logger_name)
    shutdown_logging(logger_name=config.logger_name)
    logger.setLevel(level)
    logger.propagate = False

    sinks: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if config.log_file is not None:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        sinks.append(logging.FileHandler(log_path, encoding="utf-8"))
    for handler in sinks:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    return logger


def shutdown_logging(*, logger_name: str = _DEFAULT_LOGGER_NAME) -> None:
    """Close sinks on the package logger and restore structlog defaults."""

    logger = logging.getLogger(logger_name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.flush()
        handler.close()
    structlog.reset_defaults()


def get_correlation_context() -> dict[str, str]:
    """Correlation fields currently bound through ``structlog.contextvars``."""
    return {key: str(value) for key, value in structlog.contextvars.get_contextvars().items()}


def set_correlation_fields(**fields: str) -> Mapping[str, contextvars.Token[Any]]:
    """Bind non-empty correlation fields; pass the result to ``reset_correlation_fields``."""
    cleaned: dict[str, str] = {}
    for key, value in fields.items():
        normalized = value.strip() if isinstance(value, str) else ""
        if not normalized:
            raise ValueError(f"correlation value for {key!r} must be a non-empty string")
        cleaned[key] = normalized
    return structlog.contextvars.bind_contextvars(**cleaned)


def reset_correlation_fields(tokens: Mapping[str, contextvars.Token[Any]]) -> None:
    structlog.contextvars.reset_contextvars(**tokens)


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for log records in scope; ``None`` values are skipped."""
    tokens = set_correlation_fields(
        **{key: value for key, value in fields.items() if value is not None}
    )
    try:
        yield
    finally:
        reset_correlation_fields(tokens)


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    parsed = logging.getLevelName(value.strip().upper())
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def _iso8601z_from_epoch(epoch_seconds: float) -> str:
    timestamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _merge_correlation_context(record: logging.LogRecord) -> dict[str, str]:
    merged = get_correlation_context()
    for key in _CORRELATION_KEYS:
        value = getattr(record, key, None)
        if isinstance(value, str) and value.strip():
            merged[key] = value.strip()
    return merged


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, JSONValue]:
    fields: dict[str, JSONValue] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_LOG_RECORD_FIELDS or key in _CORRELATION_KEYS:
            continue
        if key.startswith("_"):
            continue
        fields[key] = _normalize_json_value(value)
    return fields


def _normalize_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if isinstance(value, Enum):
        return _normalize_json_value(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Mapping):
        return {str(key): _normalize_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize_json_value(item) for item in value), key=repr)
    return repr(value)


def _render_text_value(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "LoggingConfig",
    "correlation_scope",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
