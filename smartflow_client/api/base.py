"""
Base API service.
"""

from typing import Any

from pydantic import BaseModel, TypeAdapter

from smartflow_client.services.client import ClientName, ServiceClient


class BaseApiService:
    """
    Base class for typed API services.

    All services should:
    - Send every request through ServiceClient (auth, refresh, retries)
    - Return Pydantic models
    - Let classified errors propagate to the caller
    """

    def __init__(
        self,
        client: ServiceClient,
        client_name: str = ClientName.DEFAULT.value,
    ):
        self.client = client
        self.client_name = client_name

    async def _get(self, url: str, model: Any = None, params: dict[str, Any] | None = None) -> Any:
        envelope = await self.client.get(url, params=params, client=self.client_name)
        return self._convert(envelope.data, model)

    async def _post(self, url: str, payload: Any = None, model: Any = None, **kwargs: Any) -> Any:
        envelope = await self.client.post(
            url, json_data=self._dump(payload), client=self.client_name, **kwargs
        )
        return self._convert(envelope.data, model)

    async def _put(self, url: str, payload: Any = None, model: Any = None) -> Any:
        envelope = await self.client.put(url, json_data=self._dump(payload), client=self.client_name)
        return self._convert(envelope.data, model)

    async def _patch(self, url: str, payload: Any = None, model: Any = None) -> Any:
        envelope = await self.client.patch(url, json_data=self._dump(payload), client=self.client_name)
        return self._convert(envelope.data, model)

    async def _delete(self, url: str) -> None:
        await self.client.delete(url, client=self.client_name)

    @staticmethod
    def _dump(payload: Any) -> Any:
        if isinstance(payload, BaseModel):
            return payload.model_dump(by_alias=True, exclude_none=True, mode="json")
        return payload

    @staticmethod
    def _convert(data: Any, model: Any) -> Any:
        if model is None or data is None:
            return data
        return TypeAdapter(model).validate_python(data)

    @staticmethod
    def build_query_params(params: dict[str, Any]) -> dict[str, str]:
        """Drop unset values and stringify the rest."""
        return {
            key: str(value).lower() if isinstance(value, bool) else str(value)
            for key, value in params.items()
            if value is not None
        }

    def build_pagination_params(
        self, page: int = 1, page_size: int = 10, **extra: Any
    ) -> dict[str, str]:
        return self.build_query_params({"pageNumber": page, "pageSize": page_size, **extra})
