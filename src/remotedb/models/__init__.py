"""
Pydantic data models package.

Contains data validation models for:
- Query requests and responses
- Admin operations
"""

from .query import AccessTier, ErrorResponse, QueryRequest, QueryResponse
from .admin import AdminStatusResponse, LogCleanupResponse

__all__ = [
    # Query models
    "AccessTier",
    "QueryRequest",
    "QueryResponse",
    "ErrorResponse",

    # Admin models
    "AdminStatusResponse",
    "LogCleanupResponse",
]
