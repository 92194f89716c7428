from __future__ import annotations

import itertools
import logging
from collections import deque

from discord_rest.buckets import BucketStore
from discord_rest.global_gate import GlobalLimitGate
from discord_rest.types import BucketKey, QueuedRequest, RequestState


class RequestQueueManager:
    """One FIFO queue per bucket; admission is gated by bucket quota and the global gate."""

    def __init__(self, buckets: BucketStore, gate: GlobalLimitGate) -> None:
        self.buckets = buckets
        self.gate = gate
        self.log = logging.getLogger("RequestQueueManager")
        self._queues: dict[BucketKey, deque[QueuedRequest]] = {}
        self._by_id: dict[str, QueuedRequest] = {}
        self._seq = itertools.count(1)

    def _queue(self, key: BucketKey) -> deque[QueuedRequest]:
        queue = self._queues.get(key)
        if queue is None:
            queue = deque()
            self._queues[key] = queue
        return queue

    def enqueue(self, request: QueuedRequest) -> None:
        request.state = RequestState.QUEUED
        request.seq = next(self._seq)
        self._queue(request.bucket).append(request)
        self._by_id[request.id] = request

    def requeue_front(self, request: QueuedRequest) -> None:
        if request.state not in (RequestState.REQUEUED_ROUTE, RequestState.REQUEUED_GLOBAL):
            raise RuntimeError(f"request {request.id} requeued from state {request.state.value}")
        request.state = RequestState.QUEUED
        queue = self._queue(request.bucket)
        # before the first request that arrived later; keeps arrival order
        for index, queued in enumerate(queue):
            if queued.seq > request.seq:
                queue.insert(index, request)
                break
        else:
            queue.append(request)
        self._by_id[request.id] = request

    def _drop_withdrawn_head(self, queue: deque[QueuedRequest]) -> None:
        while queue and queue[0].withdrawn:
            dropped = queue.popleft()
            self._by_id.pop(dropped.id, None)
            self.log.debug("skipping withdrawn request", extra={"request_id": dropped.id, "bucket": str(dropped.bucket)})

    def admit(self, key: BucketKey) -> QueuedRequest | None:
        queue = self._queues.get(key)
        if not queue:
            return None
        self._drop_withdrawn_head(queue)
        if not queue:
            return None
        if not self.gate.is_open():
            return None
        if not self.buckets.try_acquire(key):
            return None
        request = queue.popleft()
        self._by_id.pop(request.id, None)
        request.state = RequestState.DISPATCHING
        request.attempts += 1
        return request

    def withdraw(self, request_id: str) -> QueuedRequest | None:
        request = self._by_id.pop(request_id, None)
        if request is None or request.state is not RequestState.QUEUED:
            return None
        self._queue(request.bucket).remove(request)
        return request

    def next_deadline(self, key: BucketKey) -> float | None:
        """Seconds until admission should be retried; None means wait for a bucket change."""
        if not self.gate.is_open():
            return self.gate.remaining()
        return self.buckets.next_reset(key)

    def pending(self, key: BucketKey) -> int:
        return sum(1 for r in self._queues.get(key, ()) if not r.withdrawn)

    def has_pending(self, key: BucketKey) -> bool:
        queue = self._queues.get(key)
        if queue:
            self._drop_withdrawn_head(queue)
        return bool(queue)

    def keys(self) -> list[BucketKey]:
        return [k for k, q in self._queues.items() if q]

    def drain(self, key: BucketKey) -> list[QueuedRequest]:
        queue = self._queues.pop(key, deque())
        for request in queue:
            self._by_id.pop(request.id, None)
        return [r for r in queue if not r.withdrawn]

    def drain_all(self) -> list[QueuedRequest]:
        out: list[QueuedRequest] = []
        for key in list(self._queues):
            out.extend(self.drain(key))
        return out
