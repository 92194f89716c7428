from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Protocol

import aiohttp

from discord_rest.errors import TransportFailure
from discord_rest.types import TransportResponse

DEFAULT_BASE_URL = "https://discord.com/api/v10"
DEFAULT_USER_AGENT = "DiscordBot (discord-rest, 0.1.0)"


class Transport(Protocol):
    async def send(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        ...


class AiohttpTransport:
    """Thin aiohttp wrapper; knows nothing about rate limits."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: str | None = None,
        timeout_sec: float = 10.0,
        max_in_flight: int = 8,
        user_agent: str = DEFAULT_USER_AGENT,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = aiohttp.ClientTimeout(total=timeout_sec)
        self.user_agent = user_agent
        self.log = logging.getLogger("AiohttpTransport")
        self._session = session
        self._own_session = session is None
        self._sem = asyncio.Semaphore(max_in_flight)

    def _default_headers(self) -> dict[str, str]:
        headers = {"User-Agent": self.user_agent}
        if self.token:
            headers["Authorization"] = f"Bot {self.token}"
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout, headers=self._default_headers())
            self._own_session = True
        return self._session

    async def send(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        kwargs: dict[str, Any] = {"headers": dict(headers), "params": dict(params or {})}
        if isinstance(body, (bytes, bytearray, str)):
            kwargs["data"] = body
        elif body is not None:
            kwargs["json"] = body

        url = f"{self.base_url}{path}"
        async with self._sem:
            try:
                async with self._get_session().request(method, url, **kwargs) as resp:
                    payload = await resp.read()
                    return TransportResponse(status=resp.status, headers=dict(resp.headers), body=payload)
            except (aiohttp.ClientError, TimeoutError) as exc:
                self.log.warning("transport error %s %s: %r", method, path, exc, extra={"event_type": "transport_error"})
                raise TransportFailure(f"{method} {path} failed: {exc!r}", cause=exc) from exc

    async def close(self) -> None:
        if self._session is not None and self._own_session and not self._session.closed:
            await self._session.close()
