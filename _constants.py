"""Shared constants for the Lark timesheet API."""

from __future__ import annotations

PAGE_SIZE: int = 500
TOKEN_REFRESH_MARGIN: float = 60.0
DEFAULT_TOKEN_EXPIRE: int = 3600
PHONE_CODE_TTL: float = 300.0
PHONE_CODE_COOLDOWN: float = 60.0
PHONE_CODE_DIGITS: int = 6
MAX_CODE_ATTEMPTS: int = 5
MAX_PENDING_CODES: int = 10_000
MIN_PHONE_DIGITS: int = 6
MAX_PHONE_DIGITS: int = 15
DEFAULT_SESSION_TTL_HOURS: float = 4.0
MAX_ERROR_BODY_LEN: int = 500
