"""Stable constants shared across planning components."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
PLAN_SCHEMA_VERSION: Final[int] = 1
PLANNING_INPUT_SCHEMA_VERSION: Final[int] = 1

# Planning defaults.
DEFAULT_ITERATION_LENGTH_DAYS: Final[int] = 14
DEFAULT_BUFFER_CAPACITY: Final[float] = 0.2
DEFAULT_MAX_CAPACITY_UTILIZATION: Final[float] = 0.85
DEFAULT_READINESS_THRESHOLD: Final[float] = 0.7
DEFAULT_ITEM_SIZE: Final[float] = 3.0
DEFAULT_PRIORITY: Final[int] = 3

# Sizing and dependency heuristics.
PROPER_STORY_SIZE: Final[float] = 5.0
HIGH_DEPENDENCY_THRESHOLD: Final[int] = 3
UNDER_UTILIZED_THRESHOLD: Final[float] = 0.5
PREDICTABLE_UTILIZATION_RANGE: Final[tuple[float, float]] = (0.6, 1.0)
MIN_VALUE_CONFIDENCE: Final[float] = 0.8

# Risk levels and weights for deterministic sorting/escalation.
RISK_LEVELS: Final[tuple[str, ...]] = ("low", "medium", "high")
RISK_LEVEL_WEIGHT: Final[dict[str, int]] = {
    "low": 1,
    "medium": 2,
    "high": 3,
}

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_BUFFER_CAPACITY",
    "DEFAULT_ITEM_SIZE",
    "DEFAULT_ITERATION_LENGTH_DAYS",
    "DEFAULT_MAX_CAPACITY_UTILIZATION",
    "DEFAULT_PRIORITY",
    "DEFAULT_READINESS_THRESHOLD",
    "HIGH_DEPENDENCY_THRESHOLD",
    "MIN_VALUE_CONFIDENCE",
    "PLANNING_INPUT_SCHEMA_VERSION",
    "PLAN_SCHEMA_VERSION",
    "PREDICTABLE_UTILIZATION_RANGE",
    "PROPER_STORY_SIZE",
    "RISK_LEVELS",
    "RISK_LEVEL_WEIGHT",
    "UNDER_UTILIZED_THRESHOLD",
]
