from __future__ import annotations

import json
import math
import time
from dataclasses import dataclass
from typing import Any, Mapping

from discord_rest.errors import MalformedResponse, RateLimited
from discord_rest.types import RateLimitScope, TransportResponse

LIMIT = "x-ratelimit-limit"
REMAINING = "x-ratelimit-remaining"
RESET = "x-ratelimit-reset"
RESET_AFTER = "x-ratelimit-reset-after"
GLOBAL = "x-ratelimit-global"
SCOPE = "x-ratelimit-scope"
RETRY_AFTER = "retry-after"

QUOTA_HEADERS = (LIMIT, REMAINING, RESET, RESET_AFTER)


@dataclass(slots=True)
class QuotaUpdate:
    remaining: int
    limit: int
    reset_after: float

    def reset_at(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) + self.reset_after


def parse_quota_headers(headers: Mapping[str, str], wall_now: float | None = None) -> QuotaUpdate | None:
    """Read the quota headers of a response.

    Returns None when the response carries no quota headers at all. Raises
    MalformedResponse when they are partial or unparseable, so the caller can
    keep the previous state instead of storing half an update.
    """
    present = [h for h in QUOTA_HEADERS if h in headers]
    if not present:
        return None
    if LIMIT not in headers or REMAINING not in headers or (RESET not in headers and RESET_AFTER not in headers):
        raise MalformedResponse(f"incomplete quota headers: {sorted(present)}")
    try:
        limit = int(headers[LIMIT])
        remaining = int(headers[REMAINING])
        if RESET_AFTER in headers:
            reset_after = float(headers[RESET_AFTER])
        else:
            wall = time.time() if wall_now is None else wall_now
            reset_after = float(headers[RESET]) - wall
    except ValueError as exc:
        raise MalformedResponse(f"unparseable quota headers: {exc}") from exc
    if limit < 1 or remaining < 0 or math.isnan(reset_after):
        raise MalformedResponse(f"out of range quota headers limit={limit} remaining={remaining}")
    return QuotaUpdate(remaining=remaining, limit=limit, reset_after=max(0.0, reset_after))


def decode_body(response: TransportResponse) -> Any:
    if not response.body:
        return None
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        return json.loads(response.body)
    return response.body.decode("utf-8", errors="replace")


def _json_object(body: bytes) -> dict[str, Any] | None:
    try:
        payload = json.loads(body) if body else None
    except (ValueError, UnicodeDecodeError):
        return None
    return payload if isinstance(payload, dict) else None


def parse_rejection(
    response: TransportResponse,
    retry_after_in_ms: bool = False,
    default_retry_after: float = 1.0,
    max_retry_after: float | None = None,
) -> RateLimited:
    """Build the rate-limit signal of a 429.

    The body's ``global`` field decides the scope. Headers are only consulted
    when the body is not a JSON object.
    """
    payload = _json_object(response.body)
    retry_after: float | None = None
    if payload is not None:
        is_global = bool(payload.get("global", False))
        raw = payload.get("retry_after")
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            retry_after = float(raw) / 1000.0 if retry_after_in_ms else float(raw)
    else:
        is_global = (
            response.headers.get(GLOBAL, "").lower() == "true"
            or response.headers.get(SCOPE, "").lower() == "global"
        )
    if retry_after is None:
        try:
            retry_after = float(response.headers[RETRY_AFTER])
        except (KeyError, ValueError):
            retry_after = default_retry_after
    retry_after = max(0.0, retry_after)
    if max_retry_after is not None:
        retry_after = min(retry_after, max_retry_after)
    scope = RateLimitScope.GLOBAL if is_global else RateLimitScope.ROUTE
    return RateLimited(scope, retry_after)
