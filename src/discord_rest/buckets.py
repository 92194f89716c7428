from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace

from discord_rest.types import BucketKey, BucketState


class BucketStore:
    """Per-bucket quota state, created lazily and kept for the owner's lifetime.

    Every method is synchronous and runs on the event loop with no suspension
    point between reading and writing a state, so each read-modify-write is a
    single critical section relative to admission checks on the same key.
    Only ``wait_for_change`` suspends.
    """

    def __init__(self, default_remaining: int = 1, default_limit: int = 1) -> None:
        if default_limit < 1 or default_remaining < 0:
            raise ValueError("default_limit must be >= 1 and default_remaining >= 0")
        self.default_remaining = min(default_remaining, default_limit)
        self.default_limit = default_limit
        self.log = logging.getLogger("BucketStore")
        self._states: dict[BucketKey, BucketState] = {}
        self._changed: dict[BucketKey, asyncio.Event] = {}

    def __len__(self) -> int:
        return len(self._states)

    def get(self, key: BucketKey) -> BucketState:
        state = self._states.get(key)
        if state is None:
            state = BucketState(remaining=self.default_remaining, limit=self.default_limit)
            self._states[key] = state
        return state

    def snapshot(self, key: BucketKey) -> BucketState:
        return replace(self.get(key))

    def update(self, key: BucketKey, remaining: int, limit: int, reset_at: float) -> BucketState:
        state = self.get(key)
        state.limit = max(1, int(limit))
        state.remaining = min(max(0, int(remaining)), state.limit)
        state.reset_at = reset_at
        self.log.debug(
            "bucket updated remaining=%s limit=%s reset_in=%.3fs",
            state.remaining,
            state.limit,
            max(0.0, reset_at - time.monotonic()),
            extra={"event_type": "bucket_update", "bucket": str(key)},
        )
        self._notify(key)
        return state

    def block_until(self, key: BucketKey, reset_at: float) -> BucketState:
        state = self.get(key)
        state.remaining = 0
        state.reset_at = reset_at
        self._notify(key)
        return state

    def _refresh(self, state: BucketState, now: float) -> None:
        if state.reset_at and now >= state.reset_at:
            state.remaining = state.limit
            state.reset_at = 0.0
        elif not state.reset_at and state.remaining <= 0 and state.in_flight == 0:
            # unknown window and nobody left to report it: treat as a fresh reset
            state.remaining = state.limit

    def try_acquire(self, key: BucketKey, now: float | None = None) -> bool:
        state = self.get(key)
        self._refresh(state, time.monotonic() if now is None else now)
        if state.remaining <= 0:
            return False
        state.remaining -= 1
        state.in_flight += 1
        return True

    def release(self, key: BucketKey) -> None:
        state = self.get(key)
        state.in_flight = max(0, state.in_flight - 1)
        self._notify(key)

    def next_reset(self, key: BucketKey, now: float | None = None) -> float | None:
        """Seconds until the bucket resets, or None when only a response can unblock it."""
        state = self.get(key)
        now = time.monotonic() if now is None else now
        if state.reset_at and state.reset_at > now:
            return state.reset_at - now
        if state.reset_at:
            return 0.0
        return None

    def changed(self, key: BucketKey) -> asyncio.Event:
        event = self._changed.get(key)
        if event is None:
            event = asyncio.Event()
            self._changed[key] = event
        return event

    def _notify(self, key: BucketKey) -> None:
        event = self._changed.get(key)
        if event is not None:
            event.set()

    async def wait_for_change(self, key: BucketKey, timeout: float | None) -> bool:
        event = self.changed(key)
        event.clear()
        try:
            await asyncio.wait_for(event.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True
