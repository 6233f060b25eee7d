"""Gateway alias and base security group generation."""

from .models import GenerateRequest, GenerateResult, PendingChanges, PlannedAction
from .planner import ChangePlanGenerator

__all__ = [
    "ChangePlanGenerator",
    "GenerateRequest",
    "GenerateResult",
    "PendingChanges",
    "PlannedAction",
]
