"""Structured outcomes of page actions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Reasons the scheduler treats as "try the next task"
RECOVERABLE_REASONS = frozenset({
    "not_enough_resources",
    "queue_full",
    "not_enough_resources_or_zero_max",
    "training_not_applied",
    "building_not_found",
    "troop_not_found",
    "building_choice_not_found",
    "fields_busy",
    "build_not_verified",
})


@dataclass
class ActionResult:
    """Result of one build or training attempt."""

    success: bool
    reason: str = ""
    trained: int = 0
    slot: int | None = None
    task: Any = None  # the task the action was executed for
    detail: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **kwargs: Any) -> ActionResult:
        return cls(success=True, reason="success", **kwargs)

    @classmethod
    def fail(cls, reason: str, **kwargs: Any) -> ActionResult:
        return cls(success=False, reason=reason, **kwargs)

    @property
    def recoverable(self) -> bool:
        return not self.success and self.reason in RECOVERABLE_REASONS
