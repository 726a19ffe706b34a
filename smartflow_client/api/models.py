"""
Request/response models for the SmartFlow API.

Fields are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class ApiModel(BaseModel):
    """Base for wire models."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class LoginRequest(ApiModel):
    user_name_or_email: str
    password: str


class UserDto(ApiModel):
    id: str
    email: str | None = None
    user_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    is_active: bool = True
    tenant_id: str | None = None
    roles: list[str] = []


class LoginResponse(ApiModel):
    token: str
    refresh_token: str | None = None
    user: UserDto
    expires_at: datetime | None = None


class ProjectDto(ApiModel):
    id: str
    name: str
    description: str | None = None
    status: str | int | None = None
    priority: str | int | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    manager_id: str | None = None
    manager_name: str | None = None


class TaskDto(ApiModel):
    id: str
    title: str
    description: str | None = None
    status: str | int | None = None
    priority: str | int | None = None
    project_id: str | None = None
    assignee_id: str | None = None
    due_date: datetime | None = None


class PaginatedResponse(ApiModel, Generic[T]):
    items: list[T] = []
    total_count: int = 0
    current_page: int = 1
    page_size: int = 10
    total_pages: int = 0
    has_previous_page: bool = False
    has_next_page: bool = False
