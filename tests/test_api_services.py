import json

import httpx
import pytest
import pytest_asyncio

from smartflow_client.api import AuthService, ProjectService, TaskService
from smartflow_client.api.models import LoginRequest, PaginatedResponse, ProjectDto
from smartflow_client.services.client import ServiceClient
from smartflow_client.services.errors import ApiError
from tests.helpers import envelope, json_response, make_jwt


class Router:
    """Maps (method, path) to a response factory and records requests."""

    def __init__(self):
        self.handlers: dict[tuple[str, str], object] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, status: int, body=None) -> None:
        self.handlers[(method, path)] = (status, body)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.handlers.get((request.method, request.url.path), (404, None))
        return json_response(status, body)


@pytest.fixture
def router():
    return Router()


@pytest_asyncio.fixture
async def client(settings, token_store, retry_engine, router):
    client = ServiceClient(
        settings,
        token_store=token_store,
        retry_engine=retry_engine,
        transport=httpx.MockTransport(router),
    )
    yield client
    await client.close()


@pytest.mark.asyncio
async def test_login_stores_tokens_and_tenant(client, token_store, router):
    token = make_jwt(email="ada@example.com")
    router.on(
        "POST",
        "/api/auth/login",
        200,
        envelope(
            {
                "token": token,
                "refreshToken": "refresh-1",
                "user": {"id": "u1", "email": "ada@example.com", "tenantId": "tenant-1"},
            }
        ),
    )
    auth = AuthService(client)

    result = await auth.login(LoginRequest(user_name_or_email="ada", password="secret"))

    assert result.user.tenant_id == "tenant-1"
    assert token_store.get_token() == token
    assert token_store.get_refresh_token() == "refresh-1"
    assert token_store.get_tenant_id() == "tenant-1"
    assert auth.is_authenticated() is True
    assert auth.get_user_from_token()["email"] == "ada@example.com"

    request = router.requests[0]
    assert json.loads(request.content) == {"userNameOrEmail": "ada", "password": "secret"}
    assert "Authorization" not in request.headers


@pytest.mark.asyncio
async def test_failed_login_leaves_store_empty(client, token_store, router):
    router.on("POST", "/api/auth/login", 401, {"detail": "Invalid credentials"})

    with pytest.raises(ApiError) as exc_info:
        await AuthService(client).login(LoginRequest(user_name_or_email="ada", password="wrong"))

    assert str(exc_info.value) == "Invalid credentials"
    assert token_store.get_token() is None


@pytest.mark.asyncio
async def test_logout_clears_tokens_even_when_server_fails(client, token_store, router):
    token_store.set_tokens(make_jwt(), "refresh-1")
    router.on("POST", "/api/auth/logout", 400, {"detail": "Session unknown"})

    with pytest.raises(ApiError):
        await AuthService(client).logout()

    assert token_store.get_token() is None
    assert token_store.get_refresh_token() is None


@pytest.mark.asyncio
async def test_get_projects_parses_page(client, token_store, router):
    token_store.set_tokens(make_jwt(), "refresh-1")
    router.on(
        "GET",
        "/api/projects",
        200,
        envelope(
            {
                "items": [{"id": "p1", "name": "Apollo", "status": "Active", "startDate": "2024-01-01T00:00:00Z"}],
                "totalCount": 1,
                "currentPage": 2,
                "pageSize": 5,
            }
        ),
    )

    page = await ProjectService(client).get_projects(page=2, page_size=5, search_term="apo")

    assert isinstance(page, PaginatedResponse)
    assert page.total_count == 1
    assert isinstance(page.items[0], ProjectDto)
    assert page.items[0].name == "Apollo"
    assert page.items[0].start_date.year == 2024

    params = router.requests[0].url.params
    assert params["pageNumber"] == "2"
    assert params["pageSize"] == "5"
    assert params["searchTerm"] == "apo"


@pytest.mark.asyncio
async def test_task_status_update_uses_patch(client, token_store, router):
    token_store.set_tokens(make_jwt(), "refresh-1")
    router.on("PATCH", "/api/tasks/t1/status", 200, envelope({"id": "t1", "title": "Write docs", "status": "Done"}))

    task = await TaskService(client).update_task_status("t1", "Done")

    assert task.status == "Done"
    assert json.loads(router.requests[0].content) == {"status": "Done"}


@pytest.mark.asyncio
async def test_delete_project(client, token_store, router):
    token_store.set_tokens(make_jwt(), "refresh-1")
    router.on("DELETE", "/api/projects/p1", 200, envelope(None))

    assert await ProjectService(client).delete_project("p1") is None
    assert router.requests[0].method == "DELETE"


def test_build_query_params_drops_none_and_lowercases_bools():
    params = ProjectService.build_query_params({"a": 1, "b": None, "c": True})
    assert params == {"a": "1", "c": "true"}
