"""HTTP route groups and the ENABLED_ROUTES switch.

A group is a named ``register(routes)`` callable.  ``enabled_groups`` turns
the environment into the ordered groups to mount; ``load_routes`` mounts
them.  The ``debug`` group serves raw table contents and is refused at
startup unless ENABLE_DEBUG_ROUTES is set.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from starlette.routing import BaseRoute

from _config import env_flag
from routes import debug, login, people, timesheet

logger = logging.getLogger("lark_timesheet.server")

__all__ = ["GROUPS", "RouteGroup", "enabled_groups", "load_routes"]


@dataclass(frozen=True)
class RouteGroup:
    name: str
    register: Callable[[list[BaseRoute]], None]
    debug_only: bool = False


GROUPS: dict[str, RouteGroup] = {
    group.name: group
    for group in (
        RouteGroup("timesheet", timesheet.register),
        RouteGroup("people", people.register),
        RouteGroup("login", login.register),
        RouteGroup("debug", debug.register, debug_only=True),
    )
}

DEFAULT_GROUPS = "timesheet,people,login"


def enabled_groups(env: Mapping[str, str]) -> list[RouteGroup]:
    """Resolve ENABLED_ROUTES into known groups, in order and without repeats.

    Exits the process when nothing usable is enabled or when a debug-only
    group is requested without ENABLE_DEBUG_ROUTES.
    """
    raw = env.get("ENABLED_ROUTES", DEFAULT_GROUPS)
    names = list(dict.fromkeys(n.strip().lower() for n in raw.split(",") if n.strip()))
    unknown = [n for n in names if n not in GROUPS]
    if unknown:
        logger.warning("Ignoring unknown route groups %s (known: %s)", unknown, sorted(GROUPS))

    groups = [GROUPS[n] for n in names if n in GROUPS]
    if not groups:
        logger.critical("No route groups enabled by ENABLED_ROUTES=%r", raw)
        raise SystemExit(1)

    refused = [g.name for g in groups if g.debug_only]
    if refused and not env_flag(env, "ENABLE_DEBUG_ROUTES"):
        logger.critical("Route groups %s need ENABLE_DEBUG_ROUTES=true", refused)
        raise SystemExit(1)
    return groups


def load_routes(routes: list[BaseRoute], env: Mapping[str, str] | None = None) -> list[str]:
    """Append the routes of every enabled group; return the group names."""
    groups = enabled_groups(os.environ if env is None else env)
    for group in groups:
        group.register(routes)
    logger.info("Mounted route groups: %s", ", ".join(g.name for g in groups))
    return [g.name for g in groups]
