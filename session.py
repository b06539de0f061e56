"""Phone-code login and stateless session tokens.

Flow per phone number: request a code (roster lookup, cooldown, 6-digit
code valid for five minutes) then verify it (single use) to receive a
signed session token carrying the person's roster name and an absolute
expiry.  The token is verified by signature and expiry alone; there is no
server-side session store and no logout.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
import math
import secrets
import time
from dataclasses import dataclass, replace
from typing import Any, Protocol

from itsdangerous import BadData, URLSafeSerializer

from _cache import TTLCache
from _constants import (
    DEFAULT_SESSION_TTL_HOURS,
    MAX_CODE_ATTEMPTS,
    MAX_PENDING_CODES,
    MAX_PHONE_DIGITS,
    MIN_PHONE_DIGITS,
    PHONE_CODE_COOLDOWN,
    PHONE_CODE_DIGITS,
    PHONE_CODE_TTL,
)
from sms import SmsDeliveryError, SmsSender, digits_only

__all__ = [
    "CodeIssued",
    "LoginService",
    "PhoneCodeStore",
    "RateLimitedError",
    "SessionGrant",
    "SessionSigner",
    "ValidationError",
]

logger = logging.getLogger("lark_timesheet.session")

_SESSION_SALT = "lark-timesheet.session"
INVALID_CODE_MSG = "Invalid or expired code"


class ValidationError(ValueError):
    """Client-caused failure; reported as HTTP 400 with its message."""


class RateLimitedError(ValidationError):
    """A cooldown is active; reported as HTTP 429."""

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = retry_after


# ---------------------------------------------------------------------------
# Phone codes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PendingCode:
    code: str
    person_name: str
    attempts: int = 0


class PhoneCodeStore:
    """In-memory, per-process code and cooldown state keyed by phone digits."""

    def __init__(
        self,
        *,
        ttl: float = PHONE_CODE_TTL,
        cooldown: float = PHONE_CODE_COOLDOWN,
        max_attempts: int = MAX_CODE_ATTEMPTS,
        maxsize: int = MAX_PENDING_CODES,
    ) -> None:
        self._codes: TTLCache[PendingCode] = TTLCache(maxsize=maxsize, ttl=ttl)
        self._cooldowns: TTLCache[bool] = TTLCache(maxsize=maxsize, ttl=cooldown)
        self._max_attempts = max_attempts
        self._lock = asyncio.Lock()

    async def cooldown_remaining(self, phone: str) -> float:
        return await self._cooldowns.aremaining(phone)

    async def issue(self, phone: str, person_name: str) -> str:
        """Store a fresh code for *phone*, replacing any earlier one, and start the cooldown."""
        code = f"{secrets.randbelow(10**PHONE_CODE_DIGITS):0{PHONE_CODE_DIGITS}d}"
        async with self._lock:
            await self._codes.aput(phone, PendingCode(code=code, person_name=person_name))
            await self._cooldowns.aput(phone, True)
        return code

    async def discard(self, phone: str) -> None:
        """Drop the pending code and cooldown for *phone*."""
        async with self._lock:
            await self._codes.apop(phone)
            await self._cooldowns.apop(phone)

    async def consume(self, phone: str, code: str) -> str | None:
        """Return the person name and delete the entry if *code* matches.

        A mismatch counts as an attempt; the entry is dropped once
        ``max_attempts`` is reached.
        """
        async with self._lock:
            pending = await self._codes.aget(phone)
            if pending is None:
                return None
            if hmac.compare_digest(pending.code.encode(), code.encode()):
                await self._codes.apop(phone)
                return pending.person_name

            attempts = pending.attempts + 1
            if attempts >= self._max_attempts:
                await self._codes.apop(phone)
                logger.warning(
                    "Login code for phone ending %s burned after %d attempts", phone[-4:], attempts
                )
            else:
                await self._codes.areplace(phone, replace(pending, attempts=attempts))
            return None


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


class SessionSigner:
    """Issues and verifies signed ``{name, exp}`` tokens."""

    def __init__(self, secret: str, ttl_hours: float = DEFAULT_SESSION_TTL_HOURS) -> None:
        if not secret:
            raise ValueError("session secret must not be empty")
        if ttl_hours <= 0:
            raise ValueError("ttl_hours must be > 0")
        self._serializer = URLSafeSerializer(secret, salt=_SESSION_SALT)
        self._ttl_seconds = ttl_hours * 3600

    def issue(self, person_name: str, now: float | None = None) -> tuple[str, int]:
        """Return ``(token, expires_at)`` with *expires_at* in epoch seconds."""
        issued_at = time.time() if now is None else now
        expires_at = int(issued_at + self._ttl_seconds)
        token = self._serializer.dumps({"name": person_name, "exp": expires_at})
        return token, expires_at

    def verify(self, token: str | None, now: float | None = None) -> str | None:
        """Return the embedded person name, or ``None`` if the token is bad or expired."""
        if not token:
            return None
        try:
            payload: Any = self._serializer.loads(token)
        except BadData:
            return None
        if not isinstance(payload, dict):
            return None
        name = payload.get("name")
        exp = payload.get("exp")
        if not isinstance(name, str) or not name or not isinstance(exp, (int, float)):
            return None
        if exp <= (time.time() if now is None else now):
            return None
        return name


# ---------------------------------------------------------------------------
# Login flow
# ---------------------------------------------------------------------------


class PhoneDirectory(Protocol):
    async def find_by_phone(self, phone_digits: str) -> str | None: ...


@dataclass(frozen=True)
class CodeIssued:
    message: str
    debug_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": 0, "msg": self.message}
        if self.debug_code is not None:
            body["debug_code"] = self.debug_code
        return body


@dataclass(frozen=True)
class SessionGrant:
    token: str
    person_name: str
    expires_at: int

    def to_dict(self) -> dict[str, Any]:
        return {"code": 0, "token": self.token, "personName": self.person_name}


class LoginService:
    def __init__(
        self,
        directory: PhoneDirectory,
        codes: PhoneCodeStore,
        signer: SessionSigner,
        *,
        sender: SmsSender | None = None,
        debug: bool = False,
    ) -> None:
        self._directory = directory
        self._codes = codes
        self._signer = signer
        self._sender = sender
        self._debug = debug

    @staticmethod
    def _phone_key(phone: Any) -> str:
        raw = str(phone) if isinstance(phone, (str, int)) and not isinstance(phone, bool) else ""
        digits = digits_only(raw)
        if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
            raise ValidationError("Invalid phone number")
        return digits

    async def request_code(self, phone: Any) -> CodeIssued:
        key = self._phone_key(phone)

        wait = await self._codes.cooldown_remaining(key)
        if wait > 0:
            seconds = max(1, math.ceil(wait))
            raise RateLimitedError(
                f"Please wait {seconds}s before requesting another code", retry_after=seconds
            )

        person_name = await self._directory.find_by_phone(key)
        if person_name is None:
            raise ValidationError("Phone number not registered")

        sender = self._sender
        if not self._debug and sender is None:
            raise SmsDeliveryError("SMS delivery is not configured")

        code = await self._codes.issue(key, person_name)
        if self._debug or sender is None:
            logger.info("Debug mode: login code for phone ending %s returned in response", key[-4:])
            return CodeIssued(message="Code generated (debug mode)", debug_code=code)

        try:
            await sender.send(
                str(phone), f"Your timesheet login code is {code}. It expires in 5 minutes."
            )
        except SmsDeliveryError:
            await self._codes.discard(key)
            raise
        return CodeIssued(message="Code sent")

    async def verify_code(self, phone: Any, code: Any) -> SessionGrant:
        if not phone or not code:
            raise ValidationError("phone and code are required")
        key = self._phone_key(phone)

        person_name = await self._codes.consume(key, str(code).strip())
        if person_name is None:
            raise ValidationError(INVALID_CODE_MSG)

        token, expires_at = self._signer.issue(person_name)
        logger.info("Session issued for %s (expires_at=%d)", person_name, expires_at)
        return SessionGrant(token=token, person_name=person_name, expires_at=expires_at)

    def session_person(self, token: str | None) -> str | None:
        return self._signer.verify(token)
