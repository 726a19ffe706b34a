from smartflow_client.api.auth import AuthService
from smartflow_client.api.base import BaseApiService
from smartflow_client.api.projects import ProjectService
from smartflow_client.api.tasks import TaskService

__all__ = [
    "AuthService",
    "BaseApiService",
    "ProjectService",
    "TaskService",
]
