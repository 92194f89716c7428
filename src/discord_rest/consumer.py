from __future__ import annotations

import asyncio
from typing import Any, Mapping, Protocol
from urllib.parse import urlencode

from discord_rest.rate_limiter import RateLimiter, ResultCallback
from discord_rest.routes import Route
from discord_rest.types import RequestResult

OAUTH_AUTHORIZE_URL = "https://discord.com/oauth2/authorize"


class EndpointConsumer(Protocol):
    """Anything that can send rate-limited REST requests."""

    @property
    def rate_limiter(self) -> RateLimiter:
        ...

    def request(
        self,
        route: Route,
        *,
        json: Any = None,
        params: Mapping[str, str] | None = None,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> asyncio.Future[RequestResult]:
        ...


class UserActor(Protocol):
    """Knows which user it acts as; ``user`` is None until that is known."""

    @property
    def user(self) -> Mapping[str, Any] | None:
        ...


def bot_add_url(actor: UserActor, permissions: int, authorize_url: str = OAUTH_AUTHORIZE_URL) -> str | None:
    user = actor.user
    if not user or not user.get("id"):
        return None
    query = urlencode({"client_id": str(user["id"]), "scope": "bot", "permissions": str(int(permissions))})
    return f"{authorize_url}?{query}"
