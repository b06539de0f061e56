"""Phone-code login routes."""

from __future__ import annotations

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import BaseRoute, Route

from _auth import api_error_handler, json_body
from clients import get_registry

__all__ = ["register"]


@api_error_handler("Server error")
async def request_code(request: Request) -> JSONResponse:
    """POST /api/request_code {phone}"""
    body = await json_body(request)
    issued = await get_registry().login.request_code(body.get("phone"))
    return JSONResponse(issued.to_dict())


@api_error_handler("Server error")
async def verify_code(request: Request) -> JSONResponse:
    """POST /api/verify_code {phone, code}"""
    body = await json_body(request)
    grant = await get_registry().login.verify_code(body.get("phone"), body.get("code"))
    return JSONResponse(grant.to_dict())


def register(routes: list[BaseRoute]) -> None:
    routes.append(Route("/api/request_code", request_code, methods=["POST"]))
    routes.append(Route("/api/verify_code", verify_code, methods=["POST"]))
