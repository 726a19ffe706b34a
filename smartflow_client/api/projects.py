"""
Projects API.
"""

from typing import Any

from smartflow_client.api.base import BaseApiService
from smartflow_client.api.models import PaginatedResponse, ProjectDto, TaskDto


class ProjectService(BaseApiService):
    """CRUD over /projects."""

    async def get_projects(
        self, page: int = 1, page_size: int = 10, search_term: str | None = None
    ) -> PaginatedResponse[ProjectDto]:
        params = self.build_pagination_params(page, page_size, searchTerm=search_term)
        return await self._get("/projects", model=PaginatedResponse[ProjectDto], params=params)

    async def get_project(self, project_id: str) -> ProjectDto:
        return await self._get(f"/projects/{project_id}", model=ProjectDto)

    async def create_project(self, project: dict[str, Any]) -> ProjectDto:
        return await self._post("/projects", project, model=ProjectDto)

    async def update_project(self, project_id: str, project: dict[str, Any]) -> ProjectDto:
        return await self._put(f"/projects/{project_id}", project, model=ProjectDto)

    async def delete_project(self, project_id: str) -> None:
        await self._delete(f"/projects/{project_id}")

    async def get_project_tasks(self, project_id: str) -> list[TaskDto]:
        return await self._get(f"/projects/{project_id}/tasks", model=list[TaskDto])
