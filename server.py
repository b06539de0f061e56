"""Lark timesheet API: Starlette app over a Lark Bitable.

Serves timesheet queries, a person directory and a phone-code login that
pins timesheet queries to one person.  All data lives in the upstream
Bitable; this process only caches the tenant token, field ids and
short-lived login codes.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from dotenv import load_dotenv
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import BaseRoute, Route

from _config import Settings
from clients import ClientRegistry, get_registry, set_registry
from clients._base import BitableClient
from routes import load_routes

load_dotenv()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("lark_timesheet.server")

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

settings: Settings = Settings.from_env()


@asynccontextmanager
async def _lifespan(app: Starlette) -> AsyncIterator[None]:
    """Build the client registry for the process and close it on shutdown."""
    missing = settings.missing()
    if missing:
        logger.critical("Required settings are not set: %s (refusing to start)", ", ".join(missing))
        raise SystemExit(1)
    registry = ClientRegistry(
        base=BitableClient(settings.base_url, settings.app_id, settings.app_secret),
        settings=settings,
    )
    set_registry(registry)
    logger.info(
        "Lark timesheet API starting up (filter_mode=%s, roster=%s)",
        settings.filter_mode,
        "on" if settings.roster_configured else "off",
    )
    try:
        yield
    finally:
        logger.info("Lark timesheet API shutting down")
        await get_registry().close()
        set_registry(None)


# ---------------------------------------------------------------------------
# Security headers middleware
# ---------------------------------------------------------------------------


_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Cache-Control": "no-store",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response = await call_next(request)
        response.headers.update(_SECURITY_HEADERS)
        return response


# ---------------------------------------------------------------------------
# Liveness probe
# ---------------------------------------------------------------------------


async def ping(request: Request) -> PlainTextResponse:
    return PlainTextResponse("OK")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def create_app(env: Mapping[str, str] | None = None) -> Starlette:
    routes: list[BaseRoute] = [Route("/ping", ping, methods=["GET"])]
    load_routes(routes, env)
    return Starlette(
        routes=routes,
        middleware=[Middleware(SecurityHeadersMiddleware)],
        lifespan=_lifespan,
    )


app = create_app()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    missing = settings.missing()
    if missing:
        raise SystemExit(f"Required environment variables are not set: {', '.join(missing)}")
    uvicorn.run(
        app,
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", "3000")),
    )
