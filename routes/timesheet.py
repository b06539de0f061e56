"""Timesheet query route."""

from __future__ import annotations

import logging
from datetime import date as date_type

from starlette.datastructures import QueryParams
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import BaseRoute, Route

from _auth import api_error_handler, ok, session_person
from clients import get_registry
from session import ValidationError

logger = logging.getLogger("lark_timesheet.server")

__all__ = ["register"]


def _date_param(params: QueryParams, name: str) -> str | None:
    """Return *name* as ``YYYY-MM-DD`` or ``None`` when blank."""
    value = (params.get(name) or "").strip()
    if not value:
        return None
    try:
        return date_type.fromisoformat(value).isoformat()
    except ValueError as exc:
        raise ValidationError(f"Invalid {name} {value!r}. Use YYYY-MM-DD.") from exc


@api_error_handler("Server error")
async def timesheet(request: Request) -> JSONResponse:
    """GET /api/timesheet?start_date&end_date&person&session_token"""
    params = request.query_params
    start_date = _date_param(params, "start_date")
    end_date = _date_param(params, "end_date")
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end_date must be on or after start_date.")

    registry = get_registry()
    person = (params.get("person") or "").strip() or None
    pinned = session_person(request, registry.signer.verify)
    if pinned is not None:
        if person and person != pinned:
            logger.info("Session for %s overrides requested person=%s", pinned, person)
        person = pinned

    rows = await registry.timesheet.query(start_date, end_date, person)
    return ok([row.to_dict() for row in rows])


def register(routes: list[BaseRoute]) -> None:
    routes.append(Route("/api/timesheet", timesheet, methods=["GET"]))
