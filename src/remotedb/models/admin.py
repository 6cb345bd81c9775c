"""
Admin API data models.
"""

from typing import List

from pydantic import BaseModel, Field


class LogCleanupResponse(BaseModel):
    """Result of a manual log retention sweep."""

    message: str = Field(..., description="Summary message")
    keep_logs_for_days: int = Field(..., description="Retention window applied")
    deleted_files: List[str] = Field(default_factory=list, description="Log files removed")


class AdminStatusResponse(BaseModel):
    """Effective, non-secret configuration."""

    admin_key_configured: bool = Field(..., description="Whether a privileged key is set")
    max_requests_per_hour: int = Field(..., description="Rate limit per client address")
    max_query_length: int = Field(..., description="Maximum standard-tier query length")
    logging_enabled: bool = Field(..., description="Query log enabled")
    log_level: str = Field(..., description="Query log level policy")
    keep_logs_for_days: int = Field(..., description="Log retention in days")
    auto_cleanup_logs: bool = Field(..., description="Automatic retention sweep enabled")
    database_host: str = Field(..., description="Database host")
    database_port: int = Field(..., description="Database port")
