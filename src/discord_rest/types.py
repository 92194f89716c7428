from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from discord_rest.errors import RestError


HTTP_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})


class RateLimitScope(str, Enum):
    ROUTE = "route"
    GLOBAL = "global"


class RequestState(str, Enum):
    QUEUED = "QUEUED"
    DISPATCHING = "DISPATCHING"
    REQUEUED_ROUTE = "REQUEUED_ROUTE"
    REQUEUED_GLOBAL = "REQUEUED_GLOBAL"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


TERMINAL_STATES = frozenset({RequestState.DELIVERED, RequestState.FAILED})


@dataclass(frozen=True, slots=True)
class BucketKey:
    method: str
    route: str
    major: str = ""

    def __str__(self) -> str:
        if self.major:
            return f"{self.method} {self.route}:{self.major}"
        return f"{self.method} {self.route}"


@dataclass(frozen=True, slots=True)
class RequestDescriptor:
    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, str] = field(default_factory=dict)
    body: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))


@dataclass(slots=True)
class BucketState:
    remaining: int
    limit: int
    # monotonic deadline; 0.0 means the current window is unknown
    reset_at: float = 0.0
    in_flight: int = 0


@dataclass(slots=True)
class TransportResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self) -> None:
        self.headers = {str(k).lower(): str(v) for k, v in self.headers.items()}


@dataclass(slots=True)
class RequestResult:
    ok: bool
    status_code: int | None = None
    data: Any = None
    error: RestError | None = None
    request_id: str = ""
    attempts: int = 0

    def raise_for_error(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.data


@dataclass(slots=True)
class QueuedRequest:
    id: str
    bucket: BucketKey
    descriptor: RequestDescriptor
    future: asyncio.Future
    enqueued_at: float = field(default_factory=time.monotonic)
    state: RequestState = RequestState.QUEUED
    attempts: int = 0
    # arrival rank within the owning queue manager, assigned on enqueue
    seq: int = 0

    @property
    def withdrawn(self) -> bool:
        return self.future.cancelled()
