import time

import httpx
import jwt

SECRET = "smartflow-test-signing-key-0123456789"


def make_jwt(expires_in: float = 3600, **claims) -> str:
    """Mint an HS256 token; the client never verifies signatures."""
    now = int(time.time())
    payload = {"sub": "user-1", "iat": now, "exp": now + int(expires_in), **claims}
    return jwt.encode(payload, SECRET, algorithm="HS256")


def envelope(data=None, is_success: bool = True, **extra) -> dict:
    return {"isSuccess": is_success, "data": data, **extra}


def json_response(status: int, body=None, headers: dict | None = None) -> httpx.Response:
    if body is None:
        return httpx.Response(status, headers=headers)
    return httpx.Response(status, json=body, headers=headers)


class Sleeper:
    """Records requested sleeps instead of sleeping."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
