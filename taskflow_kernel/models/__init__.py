"""ORM models for the taskflow kernel."""

from taskflow_kernel.models.sequence import SequenceCounter
from taskflow_kernel.models.task import TaskModel
from taskflow_kernel.models.workflow_event import WorkflowEventModel

__all__ = [
    "SequenceCounter",
    "TaskModel",
    "WorkflowEventModel",
]
