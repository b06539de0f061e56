"""Client registry for the Bitable-backed services.

Provides get_registry() / set_registry() so request handlers share one set
of process-wide caches (tenant token, field ids, login codes) without
module-level singletons in each client.  Tests inject mocks via
set_registry().
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo

import httpx

from _config import Settings
from clients._base import BitableClient
from clients.fields import FieldResolver
from clients.people import PeopleDirectory, RosterClient, TimesheetPersonSource
from clients.timesheet import TimesheetClient
from session import LoginService, PhoneCodeStore, SessionSigner
from sms import HttpSmsSender

__all__ = ["ClientRegistry", "get_registry", "set_registry"]

logger = logging.getLogger("lark_timesheet.server")


@dataclass
class ClientRegistry:
    """Holds client instances. One registry per server lifecycle."""

    base: BitableClient
    settings: Settings
    fields: FieldResolver = field(init=False)
    timesheet: TimesheetClient = field(init=False)
    roster: RosterClient = field(init=False)
    people: PeopleDirectory = field(init=False)
    codes: PhoneCodeStore = field(init=False)
    signer: SessionSigner = field(init=False)
    login: LoginService = field(init=False)
    sms_http: httpx.AsyncClient | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        s = self.settings
        self.fields = FieldResolver(self.base)
        self.timesheet = TimesheetClient(
            self.base,
            self.fields,
            s.app_token,
            s.table_id,
            columns=s.columns,
            filter_mode=s.filter_mode,
            tz=ZoneInfo(s.timezone),
        )
        self.roster = RosterClient(
            self.base,
            self.fields,
            s.people_app_token,
            s.people_table_id,
            name_field=s.people_name_field,
            phone_field=s.people_phone_field,
        )
        self.people = PeopleDirectory([self.roster, TimesheetPersonSource(self.timesheet)])

        secret = s.session_secret
        if not secret:
            logger.warning(
                "SESSION_SECRET is not set; using a per-process secret, "
                "sessions will not survive a restart"
            )
            secret = secrets.token_urlsafe(48)
        self.codes = PhoneCodeStore()
        self.signer = SessionSigner(secret, ttl_hours=s.session_ttl_hours)

        sender = None
        if s.sms_api_url:
            self.sms_http = httpx.AsyncClient(
                follow_redirects=False,
                timeout=httpx.Timeout(10.0),
            )
            sender = HttpSmsSender(
                s.sms_api_url, s.sms_api_key, self.sms_http, country_code=s.sms_country_code
            )
        self.login = LoginService(
            self.roster, self.codes, self.signer, sender=sender, debug=s.auth_debug
        )

    async def close(self) -> None:
        if self.sms_http is not None:
            await self.sms_http.aclose()
        await self.base.close()


_registry: ClientRegistry | None = None


def get_registry() -> ClientRegistry:
    """Return the active registry, or raise if not initialized."""
    if _registry is None:
        raise RuntimeError("ClientRegistry not initialized. Server lifespan has not started.")
    return _registry


def set_registry(registry: ClientRegistry | None) -> None:
    """Set (or clear) the global registry. Used by lifespan and tests."""
    global _registry
    _registry = registry
