"""
Custom exceptions for the RemoteDB gateway.

Every failure of a request is one of these. The application exception
handler turns them into ``{"query_status": "ERROR", "response": ...}``
bodies with the status code carried here.
"""

from typing import Any, Dict, Optional


class RemoteDbException(Exception):
    """Base exception for the RemoteDB gateway."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class BadRequestError(RemoteDbException):
    """Raised for missing parameters or rejected queries."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="bad_request",
            details=details,
        )


class AuthenticationError(RemoteDbException):
    """Raised when the API key is missing or wrong."""

    def __init__(self, message: str = "Invalid API key.") -> None:
        super().__init__(
            message=message,
            status_code=401,
            error_code="authentication_error",
        )


class RateLimitError(RemoteDbException):
    """Raised when a client exceeds its hourly request allowance."""

    def __init__(
        self,
        message: str = "Rate limit exceeded. Try again later.",
        retry_after: Optional[int] = None,
    ) -> None:
        details = {}
        if retry_after:
            details["retry_after"] = retry_after

        super().__init__(
            message=message,
            status_code=429,
            error_code="rate_limit_exceeded",
            details=details,
        )


class ConfigurationError(RemoteDbException):
    """Raised when server-side configuration is missing or invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="configuration_error",
        )


class DatabaseError(RemoteDbException):
    """Base for database failures. The message never carries driver text."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "database_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=status_code,
            error_code=error_code,
            details=details,
        )


class DatabaseConnectionError(DatabaseError):
    """Raised when a connection to the keyspace cannot be established."""

    def __init__(self, message: str = "Database connection failed.", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="database_connection_error",
            details=details,
        )


class QueryExecutionError(DatabaseError):
    """Raised when the statement itself fails or times out."""

    def __init__(self, message: str = "Query execution failed.", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="query_execution_error",
            details=details,
        )
