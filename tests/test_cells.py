"""Tests for cells.py -- cell parsing and normalization."""

from __future__ import annotations

from datetime import timezone
from zoneinfo import ZoneInfo

import pytest

from cells import (
    Empty,
    Link,
    Links,
    Scalar,
    TextList,
    cell_date,
    cell_hours,
    cell_names,
    normalize_value,
    parse_cell,
)

SHANGHAI = ZoneInfo("Asia/Shanghai")


class TestParseCell:
    def test_none_is_empty(self) -> None:
        assert parse_cell(None) == Empty()

    def test_string_is_scalar(self) -> None:
        assert parse_cell("  Alice ") == Scalar("  Alice ")

    def test_number_is_float_scalar(self) -> None:
        assert parse_cell(8) == Scalar(8.0)

    def test_list_of_strings(self) -> None:
        assert parse_cell(["a", "b"]) == TextList(("a", "b"))

    def test_list_of_link_objects(self) -> None:
        raw = [{"id": "ou_1", "name": "Alice"}, {"text": "Proj X", "type": "text"}]
        assert parse_cell(raw) == Links((Link(name="Alice"), Link(text="Proj X")))

    def test_link_entries_without_text_or_name_are_skipped(self) -> None:
        raw = [{"id": "ou_1"}, {"name": "Bob"}]
        assert parse_cell(raw) == Links((Link(name="Bob"),))

    def test_single_link_object(self) -> None:
        assert parse_cell({"text": "Linked", "link_record_ids": ["rec1"]}) == Links(
            (Link(text="Linked"),)
        )


class TestCellText:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (None, ""),
            ("  Alice  ", "Alice"),
            ("   ", ""),
            (["Design", "Build"], "Design, Build"),
            ([{"name": "Alice"}, {"name": "Bob"}], "Alice, Bob"),
            ([{"text": "T", "name": "N"}], "T"),
            ({"name": "Solo"}, "Solo"),
            (8, "8"),
            (7.5, "7.5"),
            ([{"id": "x"}], ""),
        ],
    )
    def test_normalize_value(self, raw: object, expected: str) -> None:
        assert normalize_value(raw) == expected

    def test_pure(self) -> None:
        raw = [{"name": " Alice "}, {"text": "Bob"}]
        assert normalize_value(raw) == normalize_value(raw)
        assert raw == [{"name": " Alice "}, {"text": "Bob"}]


class TestCellNames:
    def test_scalar(self) -> None:
        assert cell_names(parse_cell(" Alice ")) == ["Alice"]

    def test_blank_scalar(self) -> None:
        assert cell_names(parse_cell("  ")) == []

    def test_links(self) -> None:
        assert cell_names(parse_cell([{"name": "Alice"}, {"name": "Bob "}])) == ["Alice", "Bob"]

    def test_text_list(self) -> None:
        assert cell_names(parse_cell(["Alice", "", "Bob"])) == ["Alice", "Bob"]

    def test_number_has_no_names(self) -> None:
        assert cell_names(parse_cell(42)) == []


class TestCellDate:
    def test_date_string(self) -> None:
        assert cell_date(parse_cell("2025-03-05")) == "2025-03-05"

    def test_datetime_string_truncated(self) -> None:
        assert cell_date(parse_cell("2025-03-05 09:30:00")) == "2025-03-05"

    def test_slash_separated(self) -> None:
        assert cell_date(parse_cell("2025/03/05")) == "2025-03-05"

    def test_epoch_millis_utc(self) -> None:
        # 2025-03-05T00:00:00Z
        assert cell_date(parse_cell(1741132800000), timezone.utc) == "2025-03-05"

    def test_epoch_millis_in_configured_zone(self) -> None:
        # 2025-03-04T16:00:00Z is midnight 2025-03-05 in Shanghai.
        assert cell_date(parse_cell(1741104000000), SHANGHAI) == "2025-03-05"
        assert cell_date(parse_cell(1741104000000), timezone.utc) == "2025-03-04"

    def test_garbage(self) -> None:
        assert cell_date(parse_cell("soon")) == ""
        assert cell_date(parse_cell(None)) == ""


class TestCellHours:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (8, 8.0),
            (7.5, 7.5),
            ("4", 4.0),
            (" 2.5 ", 2.5),
            (None, 0.0),
            ("", 0.0),
            ("eight", 0.0),
            ("nan", 0.0),
            (["6"], 6.0),
        ],
    )
    def test_hours(self, raw: object, expected: float) -> None:
        assert cell_hours(parse_cell(raw)) == expected
