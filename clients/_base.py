"""Base Bitable client: tenant token cache and paginated table reads.

Provides ``BitableClient`` -- the async HTTP client for the Lark open
platform.  It holds one tenant access token at a time (``TokenCache``) and
pages through record and field listings, raising ``BitableError``
subclasses on any upstream failure.  There are no retries and no partial
results: a failed page discards the whole listing.

Security controls implemented:
    - Constructor rejects non-HTTPS base_url for non-localhost targets.
    - ``httpx.AsyncClient(follow_redirects=False)``.
    - Upstream error bodies are logged, never returned to callers.
"""

from __future__ import annotations

import asyncio
import ipaddress
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote, urlparse

import httpx

from _constants import DEFAULT_TOKEN_EXPIRE, MAX_ERROR_BODY_LEN, PAGE_SIZE, TOKEN_REFRESH_MARGIN
from cells import Cell, parse_cell

__all__ = [
    "BitableAuthError",
    "BitableClient",
    "BitableError",
    "BitableFetchError",
    "Record",
    "TokenCache",
]

logger = logging.getLogger("lark_timesheet.client")


def _table_path(app_token: str, table_id: str) -> str:
    return f"bitable/v1/apps/{quote(app_token, safe='')}/tables/{quote(table_id, safe='')}"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class BitableError(Exception):
    """Base class for upstream Bitable failures."""


class BitableAuthError(BitableError):
    """The tenant access token could not be obtained."""


class BitableFetchError(BitableError):
    """A listing request failed; nothing from that listing is returned."""


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Record:
    """One table row.  ``fields`` keeps the raw JSON for diagnostics."""

    record_id: str
    fields: dict[str, Any]
    cells: dict[str, Cell] = field(repr=False, compare=False)

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> Record:
        raw = item.get("fields") or {}
        if not isinstance(raw, dict):
            raw = {}
        return cls(
            record_id=str(item.get("record_id") or item.get("id") or ""),
            fields=raw,
            cells={key: parse_cell(value) for key, value in raw.items()},
        )

    def cell(self, *keys: str | None) -> Cell | None:
        """Return the first cell present under any of *keys*."""
        for key in keys:
            if key and key in self.cells:
                return self.cells[key]
        return None


# ---------------------------------------------------------------------------
# TokenCache
# ---------------------------------------------------------------------------


class TokenCache:
    """Holds a single bearer token and the monotonic instant it goes stale.

    A token issued with ``expire`` seconds of life is treated as stale
    ``margin`` seconds early.  Refreshes are serialized by a lock so a burst
    of callers past the deadline performs one fetch.
    """

    __slots__ = ("_deadline", "_lock", "_margin", "_token")

    def __init__(self, margin: float = TOKEN_REFRESH_MARGIN) -> None:
        self._margin = margin
        self._token: str | None = None
        self._deadline: float = 0.0
        self._lock = asyncio.Lock()

    def valid(self) -> str | None:
        """Return the cached token if it is still fresh."""
        if self._token is not None and time.monotonic() < self._deadline:
            return self._token
        return None

    def store(self, token: str, expire: float, fetched_at: float) -> None:
        self._token = token
        self._deadline = fetched_at + expire - self._margin

    def clear(self) -> None:
        self._token = None
        self._deadline = 0.0

    async def get(self, fetch: Callable[[], Awaitable[tuple[str, float]]]) -> str:
        """Return a fresh token, calling *fetch* for ``(token, expire)`` when stale."""
        token = self.valid()
        if token is not None:
            return token
        async with self._lock:
            # Another coroutine may have refreshed while we waited.
            token = self.valid()
            if token is not None:
                return token
            fetched_at = time.monotonic()
            token, expire = await fetch()
            self.store(token, expire, fetched_at)
            return token


# ---------------------------------------------------------------------------
# BitableClient
# ---------------------------------------------------------------------------


class BitableClient:
    """Async HTTP client for the Lark tenant-token and Bitable listing APIs."""

    # -- construction -------------------------------------------------------

    def __init__(
        self,
        base_url: str,
        app_id: str,
        app_secret: str,
        *,
        http: httpx.AsyncClient | None = None,
        token_cache: TokenCache | None = None,
    ) -> None:
        parsed = urlparse(base_url)
        host = (parsed.hostname or "").lower()

        if parsed.scheme != "https" and not self._is_loopback(host):
            raise ValueError(
                f"Non-HTTPS base_url is only permitted for localhost. Got: {base_url}"
            )
        if not app_id or not app_secret:
            raise ValueError("app_id and app_secret must not be empty")

        self._base_url: str = base_url.rstrip("/")
        self._app_id = app_id
        self._app_secret = app_secret
        self._tokens = token_cache if token_cache is not None else TokenCache()
        self._http: httpx.AsyncClient = http or httpx.AsyncClient(
            follow_redirects=False,
            timeout=httpx.Timeout(connect=5.0, read=30.0, write=30.0, pool=5.0),
            verify=True,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._http.aclose()

    async def __aenter__(self) -> BitableClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @staticmethod
    def _is_loopback(host: str) -> bool:
        if host == "localhost":
            return True
        stripped = host.strip("[]")
        try:
            return ipaddress.ip_address(stripped).is_loopback
        except ValueError:
            return False

    # -- authentication -----------------------------------------------------

    async def get_access_token(self) -> str:
        """Return a valid tenant access token, refreshing when stale."""
        return await self._tokens.get(self._fetch_tenant_token)

    async def _fetch_tenant_token(self) -> tuple[str, float]:
        url = f"{self._base_url}/auth/v3/tenant_access_token/internal"
        try:
            response = await self._http.post(
                url,
                json={"app_id": self._app_id, "app_secret": self._app_secret},
                headers={"Content-Type": "application/json; charset=utf-8"},
            )
        except httpx.HTTPError as exc:
            raise BitableAuthError(f"Tenant token request failed: {exc}") from exc

        data = self._parse_body(response, BitableAuthError, "tenant token")
        token = data.get("tenant_access_token")
        if not isinstance(token, str) or not token:
            raise BitableAuthError("Tenant token response did not include a token")

        expire = data.get("expire") or DEFAULT_TOKEN_EXPIRE
        try:
            expire = float(expire)
        except (TypeError, ValueError):
            expire = float(DEFAULT_TOKEN_EXPIRE)
        logger.info("Fetched tenant access token (expire=%ss)", int(expire))
        return token, expire

    # -- listing ------------------------------------------------------------

    async def list_records(
        self,
        app_token: str,
        table_id: str,
        filter: str | None = None,
    ) -> list[Record]:
        """Return every record of a table, following ``page_token`` cursors."""
        extra = {"filter": filter} if filter else None
        items = await self._list_all(f"{_table_path(app_token, table_id)}/records", extra)
        return [Record.from_item(item) for item in items]

    async def list_fields(self, app_token: str, table_id: str) -> list[dict[str, Any]]:
        """Return the raw field (column) definitions of a table."""
        return await self._list_all(f"{_table_path(app_token, table_id)}/fields", None)

    async def _list_all(
        self,
        endpoint: str,
        extra: dict[str, Any] | None,
    ) -> list[dict[str, Any]]:
        token = await self.get_access_token()
        url = f"{self._base_url}/{endpoint}"
        items: list[dict[str, Any]] = []
        page_token: str | None = None

        while True:
            params: dict[str, Any] = {"page_size": PAGE_SIZE}
            if extra:
                params.update(extra)
            if page_token:
                params["page_token"] = page_token

            try:
                response = await self._http.get(
                    url,
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except httpx.HTTPError as exc:
                logger.warning("Bitable GET %s request error: %s", endpoint, exc)
                raise BitableFetchError(f"Listing {endpoint} failed: {exc}") from exc

            data = self._parse_body(response, BitableFetchError, endpoint).get("data") or {}
            items.extend(item for item in data.get("items") or [] if isinstance(item, dict))

            page_token = data.get("page_token") if data.get("has_more") else None
            if not page_token:
                return items

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _parse_body(
        response: httpx.Response,
        error: type[BitableError],
        what: str,
    ) -> dict[str, Any]:
        """Decode a Lark envelope, raising *error* unless ``code == 0``."""
        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError):
            body = None

        if response.status_code >= 400 or not isinstance(body, dict) or body.get("code") != 0:
            detail = json.dumps(body, ensure_ascii=False) if body is not None else response.text
            logger.error(
                "Bitable %s failed: status=%d body=%s",
                what,
                response.status_code,
                detail[:MAX_ERROR_BODY_LEN],
            )
            msg = body.get("msg") if isinstance(body, dict) else None
            raise error(f"{what} failed: {msg or f'HTTP {response.status_code}'}")
        return body
