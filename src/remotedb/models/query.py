"""
Query request and response models.

- Request parameters: apikey, keyspace, query (query string, form or JSON)
- Success body: query_status, query_time, response_length, response
- Error body: query_status, response
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class AccessTier(str, Enum):
    """Access level derived from the presented API key."""

    STANDARD = "standard"
    PRIVILEGED = "privileged"


class QueryRequest(BaseModel):
    """
    A parsed, authenticated query request.

    Immutable once built; lives for the duration of one request.
    """

    keyspace: str = Field(min_length=1, description="Target database name")
    query: str = Field(min_length=1, description="Raw SQL statement")
    tier: AccessTier = Field(description="Access tier of the caller")
    client_ip: str = Field(description="Client network identity")
    received_at: datetime = Field(description="Arrival timestamp")

    model_config = ConfigDict(frozen=True)


class QueryResponse(BaseModel):
    """
    Successful query response.

    ``response`` is a list of row objects for read statements and ``true``
    for statements that do not return rows.
    """

    query_status: Literal["OK"] = Field(default="OK", description="Always OK on success")
    query_time: float = Field(description="Seconds spent handling the request")
    response_length: int = Field(description="Size in bytes of the JSON-encoded response payload")
    response: Union[List[Dict[str, Any]], bool] = Field(description="Rows or write outcome")


class ErrorResponse(BaseModel):
    """
    Standard error response model.
    """

    query_status: Literal["ERROR"] = Field(default="ERROR", description="Always ERROR on failure")
    response: str = Field(description="Human-readable error message")
