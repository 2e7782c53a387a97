"""approvalchain: sequential approval workflows for business requests."""

from .actions import CommitActionRegistry
from .chains import ChainBuilder, ChainDefinition, StepDefinition
from .contracts import (
    Approval,
    ApprovalStatus,
    Outcome,
    Page,
    PendingItem,
    RequestFilters,
    RequestStatus,
    RequestType,
    TaskRequest,
    TransitionEvent,
)
from .engine import WorkflowEngine
from .hooks import get_hooks
from .persistence import get_repository
from .query import ApprovalQueryService, get_query_service

__version__ = "0.1.0"
__all__ = [
    "Approval",
    "ApprovalQueryService",
    "ApprovalStatus",
    "ChainBuilder",
    "ChainDefinition",
    "CommitActionRegistry",
    "Outcome",
    "Page",
    "PendingItem",
    "RequestFilters",
    "RequestStatus",
    "RequestType",
    "StepDefinition",
    "TaskRequest",
    "TransitionEvent",
    "WorkflowEngine",
    "get_hooks",
    "get_query_service",
    "get_repository",
]
