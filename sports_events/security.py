"""Inbound request authentication against the auth service (fail-closed)."""

import logging
from typing import Optional

from fastapi import Request

from sports_events.auth.token_validator import AuthContext
from sports_events.errors import AuthServiceUnavailable
from sports_events.responses import ERROR_AUTH_UNAVAILABLE, ERROR_UNAUTHORIZED, ApiError

logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def require_service_token(request: Request) -> AuthContext:
    """
    FastAPI dependency. On success merges `authenticated_user`,
    `user_permissions` and `user_roles` into request.state.

    401 UNAUTHORIZED: missing or rejected token.
    503 SERVICE_UNAVAILABLE_AUTH: auth service timeout / unreachable.
    """
    token = _bearer_token(request)
    if token is None:
        raise ApiError(401, "Token required", ERROR_UNAUTHORIZED)

    validator = request.app.state.container.token_validator
    try:
        context = await validator.validate(token)
    except AuthServiceUnavailable as e:
        logger.error(f"Auth service error: {e}")
        raise ApiError(503, "Authentication service unavailable", ERROR_AUTH_UNAVAILABLE) from e

    if context is None:
        raise ApiError(401, "Invalid token", ERROR_UNAUTHORIZED)

    request.state.authenticated_user = context.user
    request.state.user_permissions = context.permissions
    request.state.user_roles = context.roles
    return context
