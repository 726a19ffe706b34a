"""
Authentication API: login, logout, current user and manual token renewal.
"""

from typing import Any

from loguru import logger

from smartflow_client.api.base import BaseApiService
from smartflow_client.api.models import LoginRequest, LoginResponse, UserDto


class AuthService(BaseApiService):
    """Session lifecycle on top of the shared TokenStore."""

    async def login(self, credentials: LoginRequest) -> LoginResponse:
        """Authenticate and store the returned tokens and tenant id."""
        result: LoginResponse = await self._post(
            "/auth/login", credentials, model=LoginResponse, skip_auth=True
        )

        store = self.client.token_store
        store.set_tokens(result.token, result.refresh_token)
        if result.user.tenant_id:
            store.set_tenant_id(result.user.tenant_id)

        logger.info(f"Logged in as {result.user.email or result.user.id}")
        return result

    async def logout(self) -> None:
        """Tell the server, then drop local tokens whatever it answered."""
        try:
            await self._post("/auth/logout")
        finally:
            self.client.token_store.clear_tokens()
            logger.info("Logged out")

    async def get_current_user(self) -> UserDto:
        return await self._get("/auth/me", model=UserDto)

    async def refresh_token(self) -> str:
        """Renew the access token now, sharing any renewal already in flight."""
        return await self.client.coordinator.refresh(reason="manual")

    def is_authenticated(self) -> bool:
        return self.client.token_store.is_token_valid()

    def get_token(self) -> str | None:
        return self.client.token_store.get_token()

    def get_tenant_id(self) -> str | None:
        return self.client.token_store.get_tenant_id()

    def get_user_from_token(self) -> dict[str, Any] | None:
        return self.client.token_store.get_user_from_token()
