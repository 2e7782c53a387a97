from .models import ApprovalRow, TaskRequestRow
from .request_db import SQLModelRequestRepository

__all__ = [
    "TaskRequestRow",
    "ApprovalRow",
    "SQLModelRequestRepository",
]
