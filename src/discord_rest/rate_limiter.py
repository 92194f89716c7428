from __future__ import annotations

import asyncio
import functools
import logging
import uuid
from typing import Callable

from discord_rest.buckets import BucketStore
from discord_rest.config import RateLimitConfig
from discord_rest.dispatcher import Dispatcher
from discord_rest.errors import ClientClosed
from discord_rest.global_gate import GlobalLimitGate
from discord_rest.metrics import Metrics
from discord_rest.queues import RequestQueueManager
from discord_rest.transport import Transport
from discord_rest.types import BucketKey, BucketState, QueuedRequest, RequestDescriptor, RequestResult

ResultCallback = Callable[[RequestResult], None]


class RateLimiter:
    """Rate-limited dispatch core shared by every endpoint call of one client.

    ``submit`` never blocks: it queues the request on its bucket and returns a
    future that resolves with exactly one RequestResult. Failures are carried
    in the result, never raised through the future. Optional callbacks run as
    done-callbacks of that future, i.e. on a later loop iteration and never
    inside the submitting call; callers mutating shared state from a callback
    must synchronize it themselves.
    """

    def __init__(self, transport: Transport, cfg: RateLimitConfig | None = None, metrics: Metrics | None = None) -> None:
        self.cfg = cfg or RateLimitConfig()
        self.metrics = metrics or Metrics()
        self.log = logging.getLogger("RateLimiter")
        self.buckets = BucketStore(self.cfg.default_remaining, self.cfg.default_limit)
        self.gate = GlobalLimitGate()
        self.queues = RequestQueueManager(self.buckets, self.gate)
        self.dispatcher = Dispatcher(transport, self.queues, self.buckets, self.gate, self.cfg, self.metrics)
        self._ids: dict[asyncio.Future, str] = {}

    def submit(
        self,
        descriptor: RequestDescriptor,
        bucket: BucketKey,
        callback: ResultCallback | None = None,
    ) -> asyncio.Future[RequestResult]:
        if self.dispatcher.closed:
            raise ClientClosed("rate limiter is closed")
        future: asyncio.Future[RequestResult] = asyncio.get_running_loop().create_future()
        request = QueuedRequest(id=uuid.uuid4().hex, bucket=bucket, descriptor=descriptor, future=future)
        self._ids[future] = request.id
        future.add_done_callback(self._forget)
        if callback is not None:
            future.add_done_callback(functools.partial(self._run_callback, callback))
        self.queues.enqueue(request)
        self.dispatcher.kick(bucket)
        self.log.debug(
            "queued %s %s",
            descriptor.method,
            descriptor.path,
            extra={"event_type": "submit", "request_id": request.id, "bucket": str(bucket)},
        )
        return future

    async def request(self, descriptor: RequestDescriptor, bucket: BucketKey) -> RequestResult:
        return await self.submit(descriptor, bucket)

    def withdraw(self, future: asyncio.Future) -> bool:
        """Take a request out of its queue before dispatch. False once dispatch has begun."""
        request_id = self._ids.get(future)
        if request_id is None or self.queues.withdraw(request_id) is None:
            return False
        future.cancel()
        self.log.debug("withdrawn", extra={"event_type": "withdraw", "request_id": request_id})
        return True

    def _forget(self, future: asyncio.Future) -> None:
        self._ids.pop(future, None)

    def _run_callback(self, callback: ResultCallback, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        try:
            callback(future.result())
        except Exception:
            self.metrics.inc("callback_error")
            self.log.exception("result callback raised", extra={"event_type": "callback_error"})

    def pending(self, bucket: BucketKey) -> int:
        return self.queues.pending(bucket)

    def bucket_state(self, bucket: BucketKey) -> BucketState:
        return self.buckets.snapshot(bucket)

    def stats(self) -> dict[str, float]:
        out = self.metrics.summary()
        out["known_buckets"] = float(len(self.buckets))
        out["queued"] = float(sum(self.queues.pending(k) for k in self.queues.keys()))
        return out

    async def close(self) -> None:
        await self.dispatcher.shutdown()
