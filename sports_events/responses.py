"""
Standard API envelope.

    {
        "success": bool,
        "message": str,
        "data": ...,
        "pagination": {...},        # optional, all eight fields or none
        "error_code": "UNAUTHORIZED",  # errors only
        "timestamp": "2026-01-31T16:43:18.123456+00:00"
    }
"""

import math
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

ERROR_UNAUTHORIZED = "UNAUTHORIZED"
ERROR_AUTH_UNAVAILABLE = "SERVICE_UNAVAILABLE_AUTH"
ERROR_VALIDATION = "VALIDATION_ERROR"


class Pagination(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_page: int
    last_page: int
    per_page: int
    total: int
    from_: Optional[int] = Field(default=None, alias="from")
    to: Optional[int] = None
    has_more: bool
    has_previous: bool

    @classmethod
    def build(cls, current_page: int, per_page: int, total: int, count: int) -> "Pagination":
        """All fields derived together from page, page size, total and items on this page."""
        last_page = max(1, math.ceil(total / per_page)) if per_page > 0 else 1
        first = (current_page - 1) * per_page + 1 if count else None
        return cls(
            current_page=current_page,
            last_page=last_page,
            per_page=per_page,
            total=total,
            from_=first,
            to=first + count - 1 if first is not None else None,
            has_more=current_page < last_page,
            has_previous=current_page > 1,
        )


class ApiError(Exception):
    """Raised from routes/dependencies; rendered as an error envelope."""

    def __init__(self, status_code: int, message: str, error_code: str, errors: Any = None):
        self.status_code = status_code
        self.message = message
        self.error_code = error_code
        self.errors = errors
        super().__init__(message)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def success(data: Any = None, message: str = "Success", status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "message": message, "data": data, "timestamp": _now()},
    )


def paginated(items: list, pagination: Pagination, message: str = "Data retrieved successfully") -> JSONResponse:
    return JSONResponse(
        content={
            "success": True,
            "message": message,
            "data": items,
            "pagination": pagination.model_dump(by_alias=True),
            "timestamp": _now(),
        }
    )


def error(message: str, status_code: int, error_code: str, errors: Any = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "message": message,
            "error_code": error_code,
            "errors": errors,
            "timestamp": _now(),
        },
    )


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error(exc.message, exc.status_code, exc.error_code, exc.errors)
