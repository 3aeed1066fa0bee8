"""Planning engine: graph validation, capacity, allocation, quality, value and readiness."""

from release_train.planning.allocator import (
    Allocation,
    AllocationResult,
    CapacityLedger,
    IterationAllocator,
    IterationPlan,
    TeamUtilization,
    UnallocatedItem,
    UnallocatedReason,
    allocate,
    assemble_iteration_plans,
)
from release_train.planning.capacity import CapacityManager, TeamCapacity, capacity_confidence
from release_train.planning.dependency_graph import (
    CycleRecord,
    CycleSeverity,
    DependencyGraph,
    GraphStatistics,
    GraphValidation,
    validate_dependencies,
)
from release_train.planning.errors import (
    InvalidDependencyGraphError,
    PlanningInputError,
    PlanningIssue,
)
from release_train.planning.iterations import iteration_count, iterations_for
from release_train.planning.planner import (
    ARTPlan,
    ARTPlanner,
    PlanningSettings,
    PlanSummary,
    plan_art,
)
from release_train.planning.readiness import (
    ARTReadiness,
    CategoryAssessment,
    CategoryScore,
    ReadinessAssessor,
    ReadinessCategory,
    ReadinessWeights,
)
from release_train.planning.sequencer import sequence
from release_train.planning.value_delivery import (
    OptimizationResult,
    StreamValue,
    ValueAnalysis,
    ValueDeliveryAnalyzer,
    ValueMove,
    ValueOptimization,
)
from release_train.planning.working_software import (
    QualityFinding,
    QualityGates,
    WorkingSoftwareReport,
    WorkingSoftwareValidator,
)

__all__ = [
    "ARTPlan",
    "ARTPlanner",
    "ARTReadiness",
    "Allocation",
    "AllocationResult",
    "CapacityLedger",
    "CapacityManager",
    "CategoryAssessment",
    "CategoryScore",
    "CycleRecord",
    "CycleSeverity",
    "DependencyGraph",
    "GraphStatistics",
    "GraphValidation",
    "InvalidDependencyGraphError",
    "IterationAllocator",
    "IterationPlan",
    "OptimizationResult",
    "PlanSummary",
    "PlanningInputError",
    "PlanningIssue",
    "PlanningSettings",
    "QualityFinding",
    "QualityGates",
    "ReadinessAssessor",
    "ReadinessCategory",
    "ReadinessWeights",
    "StreamValue",
    "TeamCapacity",
    "TeamUtilization",
    "UnallocatedItem",
    "UnallocatedReason",
    "ValueAnalysis",
    "ValueDeliveryAnalyzer",
    "ValueMove",
    "ValueOptimization",
    "WorkingSoftwareReport",
    "WorkingSoftwareValidator",
    "allocate",
    "assemble_iteration_plans",
    "capacity_confidence",
    "iteration_count",
    "iterations_for",
    "plan_art",
    "sequence",
    "validate_dependencies",
]
