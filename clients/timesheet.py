"""Timesheet table queries.

Uses composition: holds the shared :class:`BitableClient` for transport and
a :class:`FieldResolver` for column ids.  Two filtering strategies:

- ``local`` (default): scan the whole table and filter on normalized
  values.  Survives renamed columns and per-deployment person columns.
- ``remote``: push an ``AND(...)`` filter expression to the records
  endpoint and only normalize what comes back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timezone, tzinfo
from typing import Any

from _config import TimesheetColumns
from cells import EMPTY, cell_date, cell_hours, cell_names, cell_text
from clients._base import BitableClient, Record
from clients.fields import FieldResolver

__all__ = ["TimesheetClient", "TimesheetRow", "build_filter"]

logger = logging.getLogger("lark_timesheet.client")

FILTER_MODES = ("local", "remote")


@dataclass(frozen=True)
class TimesheetRow:
    date: str
    project: str
    start_time: str
    end_time: str
    person: str
    hours: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "project": self.project,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "person": self.person,
            "hours": self.hours,
        }


@dataclass(frozen=True)
class _ResolvedColumns:
    """Lookup keys per output column: stable id first, then display name."""

    date: tuple[str, ...]
    project: tuple[str, ...]
    start_time: tuple[str, ...]
    end_time: tuple[str, ...]
    hours: tuple[str, ...]
    person: tuple[str, ...]
    person_name: str


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def build_filter(
    date_field: str,
    person_field: str,
    start_date: str | None = None,
    end_date: str | None = None,
    person: str | None = None,
) -> str | None:
    """Build a conjunctive Bitable filter expression, or ``None`` when unfiltered."""
    clauses: list[str] = []
    if start_date:
        clauses.append(f"CurrentValue.[{date_field}] >= {_quote(start_date)}")
    if end_date:
        clauses.append(f"CurrentValue.[{date_field}] <= {_quote(end_date)}")
    if person:
        clauses.append(f"CurrentValue.[{person_field}] = {_quote(person)}")
    if not clauses:
        return None
    return "AND(" + ",".join(clauses) + ")"


class TimesheetClient:
    """Read-side operations on the timesheet table."""

    def __init__(
        self,
        base: BitableClient,
        fields: FieldResolver,
        app_token: str,
        table_id: str,
        *,
        columns: TimesheetColumns | None = None,
        filter_mode: str = "local",
        tz: tzinfo = timezone.utc,
    ) -> None:
        if filter_mode not in FILTER_MODES:
            raise ValueError(f"filter_mode must be one of {FILTER_MODES}, got {filter_mode!r}")
        if columns is not None and not columns.person:
            raise ValueError("at least one person column name is required")
        self._base = base
        self._fields = fields
        self._app_token = app_token
        self._table_id = table_id
        self._columns = columns or TimesheetColumns()
        self._filter_mode = filter_mode
        self._tz = tz
        self._resolved: _ResolvedColumns | None = None

    @property
    def filter_mode(self) -> str:
        return self._filter_mode

    # -- column resolution --------------------------------------------------

    async def _resolve_columns(self) -> _ResolvedColumns:
        if self._resolved is not None:
            return self._resolved

        async def keys(name: str) -> tuple[str, ...]:
            field_id = await self._fields.field_id(self._app_token, self._table_id, name)
            return (field_id, name) if field_id else (name,)

        cols = self._columns
        person_name, person_id = await self._fields.first_present(
            self._app_token, self._table_id, cols.person
        )
        if person_name is None:
            person_keys: tuple[str, ...] = cols.person
            person_name = cols.person[0]
        else:
            person_keys = (person_id, person_name) if person_id else (person_name,)

        self._resolved = _ResolvedColumns(
            date=await keys(cols.date),
            project=await keys(cols.project),
            start_time=await keys(cols.start_time),
            end_time=await keys(cols.end_time),
            hours=await keys(cols.hours),
            person=person_keys,
            person_name=person_name,
        )
        return self._resolved

    # -- normalization ------------------------------------------------------

    def _row(self, record: Record, cols: _ResolvedColumns) -> TimesheetRow:
        def text(keys: tuple[str, ...]) -> str:
            return cell_text(record.cell(*keys) or EMPTY)

        return TimesheetRow(
            date=cell_date(record.cell(*cols.date) or EMPTY, self._tz),
            project=text(cols.project),
            start_time=text(cols.start_time),
            end_time=text(cols.end_time),
            person=text(cols.person),
            hours=cell_hours(record.cell(*cols.hours) or EMPTY),
        )

    # -- read methods -------------------------------------------------------

    async def query(
        self,
        start_date: str | None = None,
        end_date: str | None = None,
        person: str | None = None,
    ) -> list[TimesheetRow]:
        """Return timesheet rows in table order, filtered by date range and person."""
        person = person.strip() if person else None
        cols = await self._resolve_columns()

        if self._filter_mode == "remote":
            expression = build_filter(
                self._columns.date, cols.person_name, start_date, end_date, person
            )
            records = await self._base.list_records(
                self._app_token, self._table_id, filter=expression
            )
            return [self._row(record, cols) for record in records]

        records = await self._base.list_records(self._app_token, self._table_id)
        rows: list[TimesheetRow] = []
        for record in records:
            row = self._row(record, cols)
            # YYYY-MM-DD is fixed width, so string order is date order.
            if start_date and (not row.date or row.date < start_date):
                continue
            if end_date and (not row.date or row.date > end_date):
                continue
            if person and person not in cell_names(record.cell(*cols.person) or EMPTY):
                continue
            rows.append(row)

        logger.debug(
            "Timesheet query start=%s end=%s person=%s: %d of %d rows",
            start_date, end_date, person, len(rows), len(records),
        )
        return rows

    async def list_persons(self) -> list[str]:
        """Distinct person names found in the timesheet table, sorted."""
        cols = await self._resolve_columns()
        records = await self._base.list_records(self._app_token, self._table_id)
        names: set[str] = set()
        for record in records:
            names.update(cell_names(record.cell(*cols.person) or EMPTY))
        return sorted(names)

    async def debug_record(self) -> dict[str, Any] | None:
        """Raw fields of the first record, for column discovery during setup."""
        records = await self._base.list_records(self._app_token, self._table_id)
        return records[0].fields if records else None

    async def describe_fields(self) -> dict[str, str]:
        return await self._fields.describe(self._app_token, self._table_id)
