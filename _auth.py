"""Shared response-envelope and error-handling helpers for HTTP routes."""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from session import RateLimitedError, ValidationError

logger = logging.getLogger("lark_timesheet.server")

Handler = Callable[[Request], Awaitable[Response]]

__all__ = ["api_error_handler", "fail", "json_body", "ok", "session_person"]


def ok(data: Any) -> JSONResponse:
    return JSONResponse({"code": 0, "data": data})


def fail(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"code": 1, "msg": message}, status_code=status_code)


def api_error_handler(error_message: str = "Server error") -> Callable[[Handler], Handler]:
    """Decorator that wraps route handlers with the standard error envelope.

    RateLimitedError becomes 429 with ``Retry-After``, ValueError (including
    ValidationError) becomes 400 with its message, and everything else is
    logged with its traceback and reported as a 500 with *error_message*.
    """

    def decorator(fn: Handler) -> Handler:
        @functools.wraps(fn)
        async def wrapper(request: Request) -> Response:
            try:
                return await fn(request)
            except RateLimitedError as exc:
                response = fail(str(exc), 429)
                response.headers["Retry-After"] = str(exc.retry_after)
                return response
            except ValueError as exc:
                return fail(str(exc), 400)
            except Exception:
                logger.exception("%s failed", fn.__name__)
                return fail(error_message, 500)

        return wrapper

    return decorator


async def json_body(request: Request) -> dict[str, Any]:
    """Parse the request body as a JSON object or raise ValidationError."""
    try:
        body = await request.json()
    except ValueError as exc:
        raise ValidationError("Request body must be valid JSON") from exc
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def session_person(request: Request, verify: Callable[[str | None], str | None]) -> str | None:
    """Return the person pinned by the request's ``session_token``, if valid."""
    token = request.query_params.get("session_token") or request.headers.get("x-session-token")
    return verify(token) if token else None
