"""Planning input ingestion."""

from release_train.ingestion.loader import PlanningInput, load_planning_input, parse_planning_input

__all__ = ["PlanningInput", "load_planning_input", "parse_planning_input"]
