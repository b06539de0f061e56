"""Bitable cell values as a tagged variant, plus flat-string normalization.

The records endpoint returns a cell as a string, a number, a list of
strings, a list of link/person objects, or a single such object.
:func:`parse_cell` converts the raw JSON once at the API boundary; every
downstream comparison works on :func:`cell_text` / :func:`cell_names`.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any

__all__ = [
    "Cell",
    "Empty",
    "Link",
    "Links",
    "Scalar",
    "TextList",
    "cell_date",
    "cell_hours",
    "cell_names",
    "cell_text",
    "normalize_value",
    "parse_cell",
]

_DATE_PREFIX = re.compile(r"^(\d{4})[-/](\d{2})[-/](\d{2})")


@dataclass(frozen=True)
class Empty:
    pass


@dataclass(frozen=True)
class Scalar:
    value: str | float


@dataclass(frozen=True)
class TextList:
    items: tuple[str, ...]


@dataclass(frozen=True)
class Link:
    text: str | None = None
    name: str | None = None

    @property
    def label(self) -> str:
        return (self.text or self.name or "").strip()


@dataclass(frozen=True)
class Links:
    items: tuple[Link, ...]


type Cell = Empty | Scalar | TextList | Links

EMPTY = Empty()


def _link_from(obj: dict[str, Any]) -> Link | None:
    text = obj.get("text")
    name = obj.get("name")
    text = text if isinstance(text, str) else None
    name = name if isinstance(name, str) else None
    if text is None and name is None:
        return None
    return Link(text=text, name=name)


def parse_cell(raw: Any) -> Cell:
    """Classify a raw cell value.  Pure; never raises."""
    if raw is None:
        return EMPTY
    if isinstance(raw, bool):
        return Scalar(float(raw))
    if isinstance(raw, (int, float)):
        return Scalar(float(raw))
    if isinstance(raw, str):
        return Scalar(raw)
    if isinstance(raw, dict):
        link = _link_from(raw)
        return Links((link,)) if link is not None else EMPTY
    if isinstance(raw, list):
        if any(isinstance(item, dict) for item in raw):
            links = (_link_from(item) for item in raw if isinstance(item, dict))
            return Links(tuple(link for link in links if link is not None))
        return TextList(tuple(_format_scalar(item) for item in raw if item is not None))
    return Scalar(str(raw))


def _format_number(value: float) -> str:
    if math.isfinite(value) and value == int(value):
        return str(int(value))
    return str(value)


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return _format_number(float(value))
    return str(value)


def cell_text(cell: Cell) -> str:
    """Flatten *cell* into a display string; absent values become ``""``."""
    match cell:
        case Scalar(value=str() as text):
            return text.strip()
        case Scalar(value=number):
            return _format_number(float(number))
        case TextList(items=items):
            return ", ".join(item.strip() for item in items if item.strip())
        case Links(items=items):
            return ", ".join(link.label for link in items if link.label)
        case _:
            return ""


def cell_names(cell: Cell) -> list[str]:
    """Individual trimmed, non-empty values held by *cell*."""
    match cell:
        case Scalar(value=str() as text):
            return [text.strip()] if text.strip() else []
        case TextList(items=items):
            return [item.strip() for item in items if item.strip()]
        case Links(items=items):
            return [link.label for link in items if link.label]
        case _:
            return []


def normalize_value(raw: Any) -> str:
    return cell_text(parse_cell(raw))


def cell_date(cell: Cell, tz: tzinfo = timezone.utc) -> str:
    """Return ``YYYY-MM-DD`` for a date cell, or ``""`` if it has no date.

    Strings are truncated to their date prefix; numbers are epoch
    milliseconds rendered in *tz*.
    """
    if isinstance(cell, Scalar) and not isinstance(cell.value, str):
        try:
            moment = datetime.fromtimestamp(cell.value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return ""
        return moment.astimezone(tz).strftime("%Y-%m-%d")

    text = cell_text(cell)
    m = _DATE_PREFIX.match(text)
    if m is None:
        return ""
    return "-".join(m.groups())


def cell_hours(cell: Cell) -> float:
    """Numeric hours; anything missing or unparseable counts as ``0``."""
    if isinstance(cell, Scalar) and not isinstance(cell.value, str):
        value = float(cell.value)
    else:
        try:
            value = float(cell_text(cell) or 0)
        except ValueError:
            return 0.0
    return value if math.isfinite(value) else 0.0
