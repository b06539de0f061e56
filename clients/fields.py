"""Column-name to stable field-id resolution.

Records come back keyed by field id in some deployments and by field name
in others; ids survive column renames.  Field metadata is fetched once per
table and kept for the lifetime of the resolver.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from clients._base import BitableClient

__all__ = ["FieldMeta", "FieldResolver"]

logger = logging.getLogger("lark_timesheet.client")


@dataclass(frozen=True)
class FieldMeta:
    by_name: dict[str, str]
    by_id: dict[str, str]


class FieldResolver:
    def __init__(self, base: BitableClient) -> None:
        self._base = base
        self._cache: dict[str, FieldMeta] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def meta(self, app_token: str, table_id: str) -> FieldMeta:
        key = f"{app_token}:{table_id}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            by_name: dict[str, str] = {}
            by_id: dict[str, str] = {}
            for item in await self._base.list_fields(app_token, table_id):
                field_id = item.get("field_id")
                field_name = item.get("field_name")
                if not isinstance(field_id, str) or not isinstance(field_name, str):
                    continue
                by_name[field_name] = field_id
                by_id[field_id] = field_name

            meta = FieldMeta(by_name=by_name, by_id=by_id)
            self._cache[key] = meta
            logger.debug("Cached %d field definitions for table %s", len(by_id), table_id)
            return meta

    async def field_id(self, app_token: str, table_id: str, name: str) -> str | None:
        """Return the stable id for column *name*, or ``None`` if the table lacks it."""
        field_id = (await self.meta(app_token, table_id)).by_name.get(name)
        if field_id is None:
            logger.warning("Field name not found: %s in table %s", name, table_id)
        return field_id

    async def first_present(
        self,
        app_token: str,
        table_id: str,
        names: tuple[str, ...],
    ) -> tuple[str | None, str | None]:
        """Return ``(name, id)`` of the first of *names* that exists on the table."""
        meta = await self.meta(app_token, table_id)
        for name in names:
            if name in meta.by_name:
                return name, meta.by_name[name]
        logger.warning("None of the fields %s found in table %s", list(names), table_id)
        return None, None

    async def describe(self, app_token: str, table_id: str) -> dict[str, str]:
        return dict((await self.meta(app_token, table_id)).by_name)

    def clear(self) -> None:
        self._cache.clear()
