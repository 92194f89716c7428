from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field


@dataclass(slots=True)
class GlobalLimitGate:
    """Platform-wide throttle. While tripped no bucket may dispatch."""

    limited: bool = False
    deadline: float = 0.0
    trips: int = 0
    log: logging.Logger = field(default_factory=lambda: logging.getLogger("GlobalLimitGate"), repr=False)

    def trip(self, retry_after: float, now: float | None = None) -> None:
        now = time.monotonic() if now is None else now
        deadline = now + max(0.0, retry_after)
        if self.limited and self.deadline >= deadline:
            return
        self.limited = True
        self.deadline = deadline
        self.trips += 1
        self.log.warning(
            "global rate limit tripped retry_after=%.3fs",
            retry_after,
            extra={"event_type": "global_limit_tripped"},
        )

    def is_open(self, now: float | None = None) -> bool:
        if not self.limited:
            return True
        now = time.monotonic() if now is None else now
        if now >= self.deadline:
            self.limited = False
            self.log.info("global rate limit cleared", extra={"event_type": "global_limit_cleared"})
            return True
        return False

    def remaining(self, now: float | None = None) -> float:
        if not self.is_open(now):
            return self.deadline - (time.monotonic() if now is None else now)
        return 0.0
