"""
Response envelope shared by every API endpoint.
"""

from typing import Any, Generic, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """{isSuccess, data, message?, errors?, correlationId?, timestamp?}"""

    model_config = ConfigDict(populate_by_name=True)

    is_success: bool = Field(alias="isSuccess")
    data: T | None = None
    message: str | None = None
    errors: list[str] | dict[str, Any] | None = None
    correlation_id: str | None = Field(default=None, alias="correlationId")
    timestamp: str | None = None


def parse_json_body(response: httpx.Response) -> Any:
    """Parsed JSON body, or None when the body is empty or not JSON."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def is_envelope(body: Any) -> bool:
    return isinstance(body, dict) and "isSuccess" in body
