"""Person directory route."""

from __future__ import annotations

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import BaseRoute, Route

from _auth import api_error_handler, ok
from clients import get_registry

__all__ = ["register"]


@api_error_handler("Server error")
async def people(request: Request) -> JSONResponse:
    return ok(await get_registry().people.list_persons())


def register(routes: list[BaseRoute]) -> None:
    routes.append(Route("/api/people", people, methods=["GET"]))
