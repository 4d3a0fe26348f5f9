"""
Inter-service bearer token validation.

Every service except auth round-trips the caller's token to
GET {AUTH_SERVICE_URL}/api/auth/me. Fail-closed:

- 200 + {"data": {"user", "permissions", "roles"}}  → AuthContext
- any other status, or success=false                 → None (unauthorized)
- timeout / network error / undecodable 200 body     → AuthServiceUnavailable

Successful validations are cached by SHA-256 of the token; failures never are.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from sports_events.errors import AuthServiceUnavailable
from sports_events.telemetry.metrics import record_auth_validation
from sports_events.utils.cache import TTLCache

logger = logging.getLogger(__name__)

ME_PATH = "/api/auth/me"


@dataclass(frozen=True)
class AuthContext:
    user: Optional[dict] = None
    permissions: list = field(default_factory=list)
    roles: list = field(default_factory=list)

    @property
    def user_id(self) -> Optional[Any]:
        return (self.user or {}).get("id")


def token_cache_key(token: str) -> str:
    return "auth_token:" + hashlib.sha256(token.encode("utf-8")).hexdigest()


class CrossServiceTokenValidator:
    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        cache: Optional[TTLCache] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cache = cache if cache is not None else TTLCache(ttl=300)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def validate(self, token: str) -> Optional[AuthContext]:
        """
        Returns:
            AuthContext when the auth service vouches for the token, else None.

        Raises:
            AuthServiceUnavailable: the auth service could not answer.
        """
        if not token:
            record_auth_validation("unauthorized")
            return None

        key = token_cache_key(token)
        hit, cached = self.cache.get(key)
        if hit:
            logger.debug(f"[AUTH] Token validation cache hit ({key[-8:]})")
            record_auth_validation("cache_hit")
            return cached

        context = await self._validate_with_auth_service(token)
        if context is not None:
            self.cache.set(key, context)
        return context

    async def _validate_with_auth_service(self, token: str) -> Optional[AuthContext]:
        url = f"{self.base_url}{ME_PATH}"
        try:
            response = await self._client.get(
                url,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            record_auth_validation("unavailable")
            logger.error(f"[AUTH] Auth service timed out after {self.timeout}s")
            raise AuthServiceUnavailable("auth service timeout", cause=e) from e
        except httpx.HTTPError as e:
            record_auth_validation("unavailable")
            logger.error(f"[AUTH] Auth service unreachable: {type(e).__name__}: {e}")
            raise AuthServiceUnavailable("auth service unreachable", cause=e) from e

        if response.status_code != 200:
            record_auth_validation("unauthorized")
            logger.info(f"[AUTH] Token rejected by auth service (HTTP {response.status_code})")
            return None

        try:
            body = response.json()
        except ValueError as e:
            record_auth_validation("unavailable")
            logger.error("[AUTH] Auth service returned 200 with a non-JSON body")
            raise AuthServiceUnavailable("auth service returned invalid JSON", cause=e) from e

        if not isinstance(body, dict) or body.get("success") is False:
            record_auth_validation("unauthorized")
            return None

        data = body.get("data")
        if not isinstance(data, dict):
            record_auth_validation("unauthorized")
            logger.warning("[AUTH] Auth service 200 without a data object, denying")
            return None

        record_auth_validation("authorized")
        return AuthContext(
            user=data.get("user"),
            permissions=list(data.get("permissions") or []),
            roles=list(data.get("roles") or []),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
