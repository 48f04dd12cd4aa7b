from .common import ApiResponse, ErrorDetail, ResponseMeta
from .workflows import WorkflowListResponse, WorkflowRecord, WorkflowStats

__all__ = [
    "ApiResponse",
    "ErrorDetail",
    "ResponseMeta",
    "WorkflowListResponse",
    "WorkflowRecord",
    "WorkflowStats",
]
