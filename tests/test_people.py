"""Tests for clients/people.py -- roster table and person directory fallback."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

import httpx
import pytest
import pytest_asyncio
import respx

from clients._base import BitableClient, BitableFetchError
from clients.fields import FieldResolver
from clients.people import PeopleDirectory, RosterClient, TimesheetPersonSource
from clients.timesheet import TimesheetClient
from conftest import (
    BASE_URL,
    TIMESHEET_FIELDS,
    TOKEN_URL,
    field_defs,
    fields_url,
    page,
    record,
    records_url,
    token_body,
)

PEOPLE_APP = "app_people"
PEOPLE_TABLE = "tbl_people"
ROSTER_FIELDS = {"姓名": "fldName", "手机号": "fldPhone"}

ROSTER: list[dict[str, Any]] = [
    record({"fldName": "Zoe", "fldPhone": "138-0013-8000"}, "p1"),
    record({"fldName": "Alice", "fldPhone": "+86 139 0000 1111"}, "p2"),
    record({"fldName": [{"text": "Bob"}], "fldPhone": 13700001234}, "p3"),
    record({"fldName": " Alice "}, "p4"),
]


@pytest_asyncio.fixture
async def base() -> AsyncGenerator[BitableClient, None]:
    c = BitableClient(BASE_URL, "cli_test_app", "test-app-secret")
    yield c
    await c.close()


def _roster(base: BitableClient, **kwargs: Any) -> RosterClient:
    kwargs.setdefault("app_token", PEOPLE_APP)
    kwargs.setdefault("table_id", PEOPLE_TABLE)
    return RosterClient(base, FieldResolver(base), **kwargs)


def _mock_roster(
    items: list[dict[str, Any]] = ROSTER,
    fields: dict[str, str] = ROSTER_FIELDS,
) -> respx.Route:
    respx.post(TOKEN_URL).mock(return_value=httpx.Response(200, json=token_body()))
    respx.get(fields_url(PEOPLE_APP, PEOPLE_TABLE)).mock(
        return_value=httpx.Response(200, json=page(field_defs(fields)))
    )
    return respx.get(records_url(PEOPLE_APP, PEOPLE_TABLE)).mock(
        return_value=httpx.Response(200, json=page(items))
    )


class StaticSource:
    def __init__(self, name: str, result: list[str] | None = None, error: bool = False) -> None:
        self.name = name
        self.result = result
        self.error = error
        self.calls = 0

    async def fetch(self) -> list[str] | None:
        self.calls += 1
        if self.error:
            raise BitableFetchError(f"{self.name} unavailable")
        return self.result


# =========================================================================
# RosterClient
# =========================================================================


class TestRosterClient:
    async def test_unconfigured_returns_none_without_network(self, base: BitableClient) -> None:
        roster = _roster(base, app_token="", table_id="")

        assert roster.configured is False
        assert await roster.fetch() is None
        assert await roster.find_by_phone("13800138000") is None
        assert await roster.debug_record() is None

    @respx.mock
    async def test_fetch_sorted_distinct_names(self, base: BitableClient) -> None:
        _mock_roster()

        assert await _roster(base).fetch() == ["Alice", "Bob", "Zoe"]

    @respx.mock
    async def test_fetch_none_when_name_column_missing(self, base: BitableClient) -> None:
        records = _mock_roster(fields={"Other": "fldOther"})

        assert await _roster(base).fetch() is None
        assert not records.called

    @respx.mock
    async def test_find_by_phone_ignores_formatting(self, base: BitableClient) -> None:
        _mock_roster()
        roster = _roster(base)

        assert await roster.find_by_phone("13800138000") == "Zoe"
        assert await roster.find_by_phone("8613900001111") == "Alice"
        assert await roster.find_by_phone("13700001234") == "Bob"

    @respx.mock
    async def test_find_by_phone_requires_exact_digits(self, base: BitableClient) -> None:
        _mock_roster()
        roster = _roster(base)

        assert await roster.find_by_phone("13900001111") is None
        assert await roster.find_by_phone("19999999999") is None

    @respx.mock
    async def test_find_by_phone_none_when_phone_column_missing(
        self, base: BitableClient
    ) -> None:
        _mock_roster(fields={"姓名": "fldName"})

        assert await _roster(base).find_by_phone("13800138000") is None

    @respx.mock
    async def test_custom_column_names(self, base: BitableClient) -> None:
        _mock_roster(
            items=[record({"fldN": "Yan", "fldM": "15500001111"})],
            fields={"Name": "fldN", "Mobile": "fldM"},
        )
        roster = _roster(base, name_field="Name", phone_field="Mobile")

        assert await roster.find_by_phone("15500001111") == "Yan"

    @respx.mock
    async def test_debug_record(self, base: BitableClient) -> None:
        _mock_roster()

        assert await _roster(base).debug_record() == ROSTER[0]["fields"]


# =========================================================================
# PeopleDirectory
# =========================================================================


class TestPeopleDirectory:
    def test_requires_a_source(self) -> None:
        with pytest.raises(ValueError):
            PeopleDirectory([])

    async def test_first_non_empty_source_wins(self) -> None:
        roster = StaticSource("roster", ["Zoe", "Alice", "Alice", " "])
        timesheet = StaticSource("timesheet", ["Bob"])

        assert await PeopleDirectory([roster, timesheet]).list_persons() == ["Alice", "Zoe"]
        assert timesheet.calls == 0

    async def test_unconfigured_source_falls_back(self) -> None:
        directory = PeopleDirectory(
            [StaticSource("roster", None), StaticSource("timesheet", ["Bob"])]
        )
        assert await directory.list_persons() == ["Bob"]

    async def test_empty_source_falls_back(self) -> None:
        directory = PeopleDirectory(
            [StaticSource("roster", []), StaticSource("timesheet", ["Bob", "Alice"])]
        )
        assert await directory.list_persons() == ["Alice", "Bob"]

    async def test_failing_source_falls_back(self) -> None:
        directory = PeopleDirectory(
            [StaticSource("roster", error=True), StaticSource("timesheet", ["Bob"])]
        )
        assert await directory.list_persons() == ["Bob"]

    async def test_last_source_failure_propagates(self) -> None:
        directory = PeopleDirectory(
            [StaticSource("roster", None), StaticSource("timesheet", error=True)]
        )
        with pytest.raises(BitableFetchError):
            await directory.list_persons()

    async def test_all_empty(self) -> None:
        directory = PeopleDirectory([StaticSource("roster", []), StaticSource("timesheet", [])])
        assert await directory.list_persons() == []

    async def test_repeated_listing_is_stable(self) -> None:
        directory = PeopleDirectory(
            [StaticSource("roster", None), StaticSource("timesheet", ["Carol", "Alice", "Carol"])]
        )

        first = await directory.list_persons()
        second = await directory.list_persons()

        assert first == second == ["Alice", "Carol"]

    @respx.mock
    async def test_undecodable_roster_falls_back(self, base: BitableClient) -> None:
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(200, json=token_body()))
        respx.get(fields_url(PEOPLE_APP, PEOPLE_TABLE)).mock(
            return_value=httpx.Response(200, json=page(field_defs(ROSTER_FIELDS)))
        )
        respx.get(records_url(PEOPLE_APP, PEOPLE_TABLE)).mock(
            return_value=httpx.Response(
                200, headers={"Content-Encoding": "gzip"}, content=b"\x00garbage"
            )
        )
        respx.get(fields_url()).mock(
            return_value=httpx.Response(200, json=page(field_defs(TIMESHEET_FIELDS)))
        )
        respx.get(records_url()).mock(
            return_value=httpx.Response(200, json=page([record({"fldPerson": "Carol"})]))
        )
        fields = FieldResolver(base)
        timesheet = TimesheetClient(base, fields, "app_timesheet", "tbl_timesheet")
        roster = RosterClient(base, fields, PEOPLE_APP, PEOPLE_TABLE)

        directory = PeopleDirectory([roster, TimesheetPersonSource(timesheet)])

        assert await directory.list_persons() == ["Carol"]

    @respx.mock
    async def test_repeated_listing_from_tables_is_stable(self, base: BitableClient) -> None:
        _mock_roster()
        directory = PeopleDirectory([_roster(base)])

        assert await directory.list_persons() == await directory.list_persons()

    @respx.mock
    async def test_timesheet_fallback_end_to_end(self, base: BitableClient) -> None:
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(200, json=token_body()))
        respx.get(fields_url()).mock(
            return_value=httpx.Response(200, json=page(field_defs(TIMESHEET_FIELDS)))
        )
        respx.get(records_url()).mock(
            return_value=httpx.Response(
                200,
                json=page(
                    [
                        record({"fldPerson": "Carol"}, "r1"),
                        record({"fldPerson": [{"name": "Alice"}, {"name": "Carol"}]}, "r2"),
                    ]
                ),
            )
        )
        fields = FieldResolver(base)
        timesheet = TimesheetClient(base, fields, "app_timesheet", "tbl_timesheet")
        roster = RosterClient(base, fields)

        directory = PeopleDirectory([roster, TimesheetPersonSource(timesheet)])

        assert await directory.list_persons() == ["Alice", "Carol"]
