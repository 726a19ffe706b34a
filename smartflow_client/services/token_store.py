"""
TokenStore - Access/refresh token and tenant storage with claim introspection.

Exactly one TokenStorage backs a store; it is picked at construction time:
- MemoryTokenStorage: process-local, lost on exit
- FileTokenStorage: JSON file, survives restarts

Reads consult only the selected storage. A missing or unreadable token file
reads as "no tokens" rather than failing.
"""

import json
import math
import os
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import jwt
from loguru import logger

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
TENANT_ID_KEY = "tenant_id"

TOKEN_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, TENANT_ID_KEY)


@dataclass
class Token:
    """Snapshot of the current session credentials."""

    access_token: str
    refresh_token: str | None
    tenant_id: str | None
    expiry_epoch_seconds: float | None
    issued_at: float | None


@dataclass
class ClaimsResult:
    """Outcome of decoding a JWT payload."""

    ok: bool
    claims: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def expiry(self) -> float | None:
        exp = self.claims.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            return None
        if not math.isfinite(exp):
            return None
        return float(exp)


def decode_claims(token: str | None) -> ClaimsResult:
    """
    Decode a JWT payload without verifying its signature.

    The issuing server is the trust boundary; the client only reads claims to
    schedule renewal. Never raises: malformed input yields ok=False.
    """
    if not token:
        return ClaimsResult(ok=False, error="empty token")

    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        return ClaimsResult(ok=False, error=str(e))

    if not isinstance(claims, dict):
        return ClaimsResult(ok=False, error="claims payload is not an object")
    return ClaimsResult(ok=True, claims=claims)


class TokenStorage(ABC):
    """Backing medium for the token store."""

    @abstractmethod
    def load(self) -> dict[str, str]:
        """Return all stored values."""
        ...

    @abstractmethod
    def save(self, values: dict[str, str]) -> None:
        """Replace all stored values."""
        ...

    def clear(self) -> None:
        self.save({})


class MemoryTokenStorage(TokenStorage):
    """Keeps tokens in process memory."""

    def __init__(self):
        self._values: dict[str, str] = {}

    def load(self) -> dict[str, str]:
        return dict(self._values)

    def save(self, values: dict[str, str]) -> None:
        self._values = dict(values)


class FileTokenStorage(TokenStorage):
    """
    Keeps tokens in a JSON file readable only by the current user.

    Writes go to a temporary file that replaces the target, so a crash never
    leaves a half-written token file behind.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"[TokenStore] Ignoring unreadable token file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if k in TOKEN_KEYS and isinstance(v, str)}

    def save(self, values: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tokens-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(values, f)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class TokenStore:
    """
    Owns the access token, refresh token and tenant id.

    Usage:
        store = TokenStore(MemoryTokenStorage())
        store.set_tokens(access_token, refresh_token)

        if store.is_token_expiring_soon(60):
            ...  # renew before use
    """

    def __init__(
        self,
        storage: TokenStorage | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._storage = storage or MemoryTokenStorage()
        self._clock = clock

    @classmethod
    def from_settings(cls, settings) -> "TokenStore":
        """Build a store using the storage backend named in settings."""
        if settings.token_storage == "file":
            storage: TokenStorage = FileTokenStorage(settings.token_file)
        else:
            storage = MemoryTokenStorage()
        logger.debug(f"[TokenStore] Using {type(storage).__name__}")
        return cls(storage)

    @property
    def storage(self) -> TokenStorage:
        return self._storage

    # Accessors

    def get_token(self) -> str | None:
        return self._storage.load().get(ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> str | None:
        return self._storage.load().get(REFRESH_TOKEN_KEY)

    def get_tenant_id(self) -> str | None:
        return self._storage.load().get(TENANT_ID_KEY)

    def set_token(self, token: str) -> None:
        self._update({ACCESS_TOKEN_KEY: token})

    def set_refresh_token(self, token: str) -> None:
        self._update({REFRESH_TOKEN_KEY: token})

    def set_tenant_id(self, tenant_id: str) -> None:
        self._update({TENANT_ID_KEY: tenant_id})

    def set_tokens(self, access_token: str, refresh_token: str | None) -> None:
        """Write the access and refresh token in a single storage write."""
        values = {ACCESS_TOKEN_KEY: access_token}
        if refresh_token:
            values[REFRESH_TOKEN_KEY] = refresh_token
        self._update(values, drop=() if refresh_token else (REFRESH_TOKEN_KEY,))

    def clear_tokens(self) -> None:
        """Remove the access token, refresh token and tenant id."""
        self._storage.clear()
        logger.debug("[TokenStore] Tokens cleared")

    def _update(self, values: dict[str, str], drop: tuple[str, ...] = ()) -> None:
        current = self._storage.load()
        for key in drop:
            current.pop(key, None)
        current.update(values)
        self._storage.save(current)

    # Introspection

    def is_token_valid(self) -> bool:
        """True when an access token exists and its `exp` claim is in the future."""
        result = decode_claims(self.get_token())
        if not result.ok:
            if result.error != "empty token":
                logger.warning(f"[TokenStore] Invalid token format: {result.error}")
            return False
        expiry = result.expiry
        return expiry is not None and expiry > self._clock()

    def is_token_expiring_soon(self, buffer_seconds: float) -> bool:
        """
        True when the access token's expiry falls within `buffer_seconds`.

        Already-expired tokens count as expiring. Tokens without a readable
        `exp` claim return False and are left to the 401 path.
        """
        expiry = decode_claims(self.get_token()).expiry
        if expiry is None:
            return False
        return expiry - self._clock() <= buffer_seconds

    def get_token_expiration(self) -> datetime | None:
        expiry = decode_claims(self.get_token()).expiry
        if expiry is None:
            return None
        try:
            return datetime.fromtimestamp(expiry, tz=timezone.utc)
        except (OverflowError, ValueError, OSError):
            logger.warning(f"[TokenStore] Token expiry {expiry} is outside the datetime range")
            return None

    def get_user_from_token(self) -> dict[str, Any] | None:
        """User identity claims carried by the access token."""
        result = decode_claims(self.get_token())
        if not result.ok:
            return None
        claims = result.claims
        return {
            "id": claims.get("UserId") or claims.get("sub"),
            "email": claims.get("email"),
            "user_name": claims.get("userName"),
            "roles": claims.get("roles") or [],
        }

    def get_token_info(self) -> Token | None:
        values = self._storage.load()
        access_token = values.get(ACCESS_TOKEN_KEY)
        if not access_token:
            return None

        result = decode_claims(access_token)
        iat = result.claims.get("iat")
        return Token(
            access_token=access_token,
            refresh_token=values.get(REFRESH_TOKEN_KEY),
            tenant_id=values.get(TENANT_ID_KEY),
            expiry_epoch_seconds=result.expiry,
            issued_at=float(iat) if isinstance(iat, (int, float)) else None,
        )
