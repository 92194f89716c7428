from __future__ import annotations

from typing import Any


class RestError(Exception):
    """Base class for every failure the REST core can report."""


class RateLimited(RestError):
    """A 429 from the service. Absorbed by the dispatcher, never delivered."""

    def __init__(self, scope: Any, retry_after: float) -> None:
        super().__init__(f"rate limited scope={getattr(scope, 'value', scope)} retry_after={retry_after:.3f}s")
        self.scope = scope
        self.retry_after = retry_after


class TransportFailure(RestError):
    """Network, timeout or undecodable response. Never retried by the core."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class RemoteRejection(RestError):
    def __init__(self, status_code: int, body: Any = None) -> None:
        super().__init__(f"remote rejected request status={status_code}")
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:
        return self.status_code >= 500 or self.status_code == 408


class MalformedResponse(RestError):
    """Quota headers were present but partial or unparseable."""


class ClientClosed(RestError):
    pass
