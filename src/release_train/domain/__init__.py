"""Domain model package: typed planning inputs and canonical serialization."""

from release_train.domain.models import (
    CanonicalModel,
    DependencyEdge,
    DependencyStrength,
    Enabler,
    EnablerType,
    Feature,
    Iteration,
    ProgramIncrement,
    RiskLevel,
    Story,
    Team,
    ValueStreamType,
    WorkItem,
    WorkItemKind,
    canonical_json,
    serialize,
)

__all__ = [
    "CanonicalModel",
    "DependencyEdge",
    "DependencyStrength",
    "Enabler",
    "EnablerType",
    "Feature",
    "Iteration",
    "ProgramIncrement",
    "RiskLevel",
    "Story",
    "Team",
    "ValueStreamType",
    "WorkItem",
    "WorkItemKind",
    "canonical_json",
    "serialize",
]
