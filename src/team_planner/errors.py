"""Exception hierarchy shared by the planner modules."""

from __future__ import annotations


class PlannerError(Exception):
    """Base class for all planner errors."""


class ConfigError(PlannerError):
    """Raised when `.team_planner/config.yaml` holds an invalid value."""


class NormalizationError(PlannerError):
    """Raised when a raw backend record cannot become a Task."""

    def __init__(self, message: str, *, record_id: str | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class TaskNotFoundError(PlannerError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class SourceError(PlannerError):
    """Raised by task sources when a read or write cannot be completed."""
