"""Person directory: roster table first, timesheet scan as fallback.

The directory is informational, so it degrades instead of failing: each
source but the last may be unconfigured or broken and is skipped with a
warning.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

from cells import EMPTY, cell_names, cell_text
from clients._base import BitableClient, BitableError, Record
from clients.fields import FieldResolver
from clients.timesheet import TimesheetClient
from sms import digits_only

__all__ = ["PeopleDirectory", "PersonSource", "RosterClient", "TimesheetPersonSource"]

logger = logging.getLogger("lark_timesheet.client")


class PersonSource(Protocol):
    name: str

    async def fetch(self) -> list[str] | None:
        """Return person names, or ``None`` when the source is not available."""
        ...


# ---------------------------------------------------------------------------
# Roster table
# ---------------------------------------------------------------------------


class RosterClient:
    """The dedicated roster (employee) table.

    Unconfigured when either the app token or table id is empty; every read
    then returns ``None`` without touching the network.
    """

    name = "roster"

    def __init__(
        self,
        base: BitableClient,
        fields: FieldResolver,
        app_token: str = "",
        table_id: str = "",
        *,
        name_field: str = "姓名",
        phone_field: str = "手机号",
    ) -> None:
        self._base = base
        self._fields = fields
        self._app_token = app_token
        self._table_id = table_id
        self._name_field = name_field
        self._phone_field = phone_field

    @property
    def configured(self) -> bool:
        return bool(self._app_token and self._table_id)

    async def _keys(self, name: str) -> tuple[str, ...] | None:
        field_id = await self._fields.field_id(self._app_token, self._table_id, name)
        return (field_id, name) if field_id else None

    async def _records(self) -> list[Record]:
        return await self._base.list_records(self._app_token, self._table_id)

    async def fetch(self) -> list[str] | None:
        if not self.configured:
            return None
        name_keys = await self._keys(self._name_field)
        if name_keys is None:
            return None

        names: set[str] = set()
        for record in await self._records():
            names.update(cell_names(record.cell(*name_keys) or EMPTY))
        return sorted(names)

    async def find_by_phone(self, phone_digits: str) -> str | None:
        """Return the roster name registered for *phone_digits*, or ``None``."""
        if not self.configured or not phone_digits:
            return None
        name_keys = await self._keys(self._name_field)
        phone_keys = await self._keys(self._phone_field)
        if name_keys is None or phone_keys is None:
            return None

        for record in await self._records():
            stored = digits_only(cell_text(record.cell(*phone_keys) or EMPTY))
            if stored and stored == phone_digits:
                name = cell_text(record.cell(*name_keys) or EMPTY)
                return name or None
        return None

    async def debug_record(self) -> dict[str, Any] | None:
        if not self.configured:
            return None
        records = await self._records()
        return records[0].fields if records else None


class TimesheetPersonSource:
    name = "timesheet"

    def __init__(self, timesheet: TimesheetClient) -> None:
        self._timesheet = timesheet

    async def fetch(self) -> list[str] | None:
        return await self._timesheet.list_persons()


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


class PeopleDirectory:
    """Tries each source in order and returns the first non-empty result."""

    def __init__(self, sources: Sequence[PersonSource]) -> None:
        if not sources:
            raise ValueError("PeopleDirectory needs at least one source")
        self._sources = list(sources)

    async def list_persons(self) -> list[str]:
        last = len(self._sources) - 1
        for index, source in enumerate(self._sources):
            try:
                names = await source.fetch()
            except BitableError as exc:
                if index == last:
                    raise
                logger.warning("Person source %s failed, falling back: %s", source.name, exc)
                continue
            if names:
                return sorted({n.strip() for n in names if n and n.strip()})
            logger.debug("Person source %s returned nothing", source.name)
        return []
