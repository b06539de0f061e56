"""Diagnostic routes for column discovery during setup.

They return raw table contents, so they are only loaded with
ENABLE_DEBUG_ROUTES=true.
"""

from __future__ import annotations

from typing import Any

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import BaseRoute, Route

from _auth import api_error_handler, ok
from clients import get_registry

__all__ = ["register"]


def _dump(fields: dict[str, Any] | None, *, empty_msg: str = "no records") -> JSONResponse:
    if fields is None:
        return JSONResponse({"code": 0, "msg": empty_msg, "fields": {}})
    return JSONResponse({"code": 0, "msg": "ok", "fields": fields})


@api_error_handler("debug error")
async def debug_record(request: Request) -> JSONResponse:
    """First timesheet record, keyed the way the upstream returns it."""
    return _dump(await get_registry().timesheet.debug_record())


@api_error_handler("debug error")
async def debug_people(request: Request) -> JSONResponse:
    registry = get_registry()
    if not registry.roster.configured:
        return _dump(None, empty_msg="people table not configured")
    return _dump(await registry.roster.debug_record())


@api_error_handler("debug error")
async def debug_fields(request: Request) -> JSONResponse:
    """Column name -> field id map of the timesheet table."""
    return ok(await get_registry().timesheet.describe_fields())


def register(routes: list[BaseRoute]) -> None:
    routes.append(Route("/api/debug-record", debug_record, methods=["GET"]))
    routes.append(Route("/api/debug-people", debug_people, methods=["GET"]))
    routes.append(Route("/api/debug-fields", debug_fields, methods=["GET"]))
