from .activity_registry import ActivityRegistry
from .workflow_registry import WorkflowRegistry, WorkflowType, WorkflowMetadata
from .constants import *

__all__ = [
    "ActivityRegistry",
    "WorkflowRegistry",
    "WorkflowType",
    "WorkflowMetadata",
    "constants",
]
