"""Phone-number helpers and SMS dispatch for login codes.

The SMS provider is an external HTTP collaborator: it receives the
destination in international format and the message body as JSON.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

import httpx

__all__ = ["HttpSmsSender", "SmsDeliveryError", "SmsSender", "digits_only", "to_international"]

logger = logging.getLogger("lark_timesheet.sms")

_NON_DIGITS = re.compile(r"\D+")


class SmsDeliveryError(Exception):
    """The SMS provider could not be reached or rejected the message."""


def digits_only(phone: str | None) -> str:
    """Strip everything but ASCII digits; the key used for phone comparisons."""
    return _NON_DIGITS.sub("", phone or "")


def to_international(phone: str, country_code: str = "86") -> str:
    """Render *phone* as ``+<country><national>``.

    ``+`` and ``00`` prefixes mark a number as already international.
    Anything else is national: a leading trunk ``0`` is dropped and
    *country_code* is prepended.
    """
    raw = (phone or "").strip()
    digits = digits_only(raw)
    if not digits:
        raise ValueError("Invalid phone number")
    if raw.startswith("+"):
        return "+" + digits
    if digits.startswith("00"):
        return "+" + digits[2:]
    cc = digits_only(country_code)
    if not cc:
        raise ValueError("country_code must contain digits")
    return "+" + cc + digits.lstrip("0")


class SmsSender(Protocol):
    async def send(self, phone: str, message: str) -> None: ...


class HttpSmsSender:
    """POSTs ``{"to": ..., "message": ...}`` to a provider endpoint."""

    def __init__(
        self,
        url: str,
        api_key: str,
        http: httpx.AsyncClient,
        *,
        country_code: str = "86",
    ) -> None:
        if not url:
            raise ValueError("SMS provider url must not be empty")
        self._url = url
        self._api_key = api_key
        self._http = http
        self._country_code = country_code

    async def send(self, phone: str, message: str) -> None:
        destination = to_international(phone, self._country_code)
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        try:
            response = await self._http.post(
                self._url,
                json={"to": destination, "message": message},
                headers=headers,
            )
        except httpx.TransportError as exc:
            raise SmsDeliveryError(f"SMS provider unreachable: {exc}") from exc

        if response.status_code >= 400:
            logger.error(
                "SMS provider returned status=%d body=%s",
                response.status_code,
                response.text[:500],
            )
            raise SmsDeliveryError(f"SMS provider rejected message (HTTP {response.status_code})")
        logger.info("Login code sent to number ending %s", destination[-4:])
