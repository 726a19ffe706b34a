"""
Tasks API.
"""

from typing import Any

from smartflow_client.api.base import BaseApiService
from smartflow_client.api.models import PaginatedResponse, TaskDto


class TaskService(BaseApiService):
    """CRUD over /tasks."""

    async def get_tasks(self, page: int = 1, page_size: int = 10) -> PaginatedResponse[TaskDto]:
        params = self.build_pagination_params(page, page_size)
        return await self._get("/tasks", model=PaginatedResponse[TaskDto], params=params)

    async def get_task(self, task_id: str) -> TaskDto:
        return await self._get(f"/tasks/{task_id}", model=TaskDto)

    async def create_task(self, task: dict[str, Any]) -> TaskDto:
        return await self._post("/tasks", task, model=TaskDto)

    async def update_task(self, task_id: str, task: dict[str, Any]) -> TaskDto:
        return await self._put(f"/tasks/{task_id}", task, model=TaskDto)

    async def update_task_status(self, task_id: str, status: str) -> TaskDto:
        return await self._patch(f"/tasks/{task_id}/status", {"status": status}, model=TaskDto)

    async def delete_task(self, task_id: str) -> None:
        await self._delete(f"/tasks/{task_id}")

    async def get_user_tasks(self, user_id: str) -> list[TaskDto]:
        return await self._get(f"/users/{user_id}/tasks", model=list[TaskDto])
