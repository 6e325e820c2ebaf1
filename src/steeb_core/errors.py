# src/steeb_core/errors.py

"""
Error taxonomy shared by the task repository and the push scheduler.

Repository mutations raise these; recomputation never does.
"""

from __future__ import annotations

REASON_SUBTASKS_INCOMPLETE = "subtasks incomplete"
REASON_QA_NOT_APPROVED = "QA not approved"


class SteebError(Exception):
    pass


class NotFound(SteebError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class InvalidTransition(SteebError):
    """A requested status change failed the done-gate. The caller must fix preconditions and resubmit."""

    def __init__(self, task_id: str, reason: str) -> None:
        super().__init__(f"Cannot mark task {task_id} as done: {reason}")
        self.task_id = task_id
        self.reason = reason


class StorageUnavailable(SteebError):
    pass


class DeliveryFailure(SteebError):
    """Transient push failure; the registration stays pending for the next tick."""


class DeliveryGone(DeliveryFailure):
    """The push endpoint is permanently invalid (404/410)."""
