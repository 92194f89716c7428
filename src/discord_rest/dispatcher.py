from __future__ import annotations

import asyncio
import logging
import time

from discord_rest.buckets import BucketStore
from discord_rest.config import RateLimitConfig
from discord_rest.errors import ClientClosed, MalformedResponse, RateLimited, RemoteRejection, TransportFailure
from discord_rest.global_gate import GlobalLimitGate
from discord_rest.metrics import Metrics
from discord_rest.quota import decode_body, parse_quota_headers, parse_rejection
from discord_rest.queues import RequestQueueManager
from discord_rest.transport import Transport
from discord_rest.types import (
    TERMINAL_STATES,
    BucketKey,
    QueuedRequest,
    RateLimitScope,
    RequestResult,
    RequestState,
    TransportResponse,
)


class Dispatcher:
    """Moves admitted requests to the transport; one worker task per active bucket.

    A worker admits as many requests as its bucket allows, starting one
    transport call per request in queue order, then sleeps until the bucket
    resets, the global gate reopens, or the bucket state changes. Responses
    are handled by the per-request tasks, which update the bucket store and
    the gate and resolve each request's future exactly once.
    """

    def __init__(
        self,
        transport: Transport,
        queues: RequestQueueManager,
        buckets: BucketStore,
        gate: GlobalLimitGate,
        cfg: RateLimitConfig,
        metrics: Metrics | None = None,
    ) -> None:
        self.transport = transport
        self.queues = queues
        self.buckets = buckets
        self.gate = gate
        self.cfg = cfg
        self.metrics = metrics or Metrics()
        self.log = logging.getLogger("Dispatcher")
        self._workers: dict[BucketKey, asyncio.Task] = {}
        self._in_flight: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_buckets(self) -> list[BucketKey]:
        return [k for k, t in self._workers.items() if not t.done()]

    def kick(self, key: BucketKey) -> None:
        if self._closed:
            return
        worker = self._workers.get(key)
        if worker is None or worker.done():
            self._workers[key] = asyncio.get_running_loop().create_task(self._run_bucket(key), name=f"bucket:{key}")

    async def _run_bucket(self, key: BucketKey) -> None:
        try:
            while not self._closed:
                request = self.queues.admit(key)
                if request is not None:
                    self._start(request)
                    continue
                if not self.queues.has_pending(key):
                    return
                # no suspension point between the failed admission and the wait,
                # so any state change from here on wakes the worker
                await self.buckets.wait_for_change(key, self.queues.next_deadline(key))
        except Exception:
            self.log.exception("bucket worker crashed", extra={"event_type": "worker_crash", "bucket": str(key)})
            raise
        finally:
            if self._workers.get(key) is asyncio.current_task():
                del self._workers[key]

    def _start(self, request: QueuedRequest) -> None:
        task = asyncio.get_running_loop().create_task(self._dispatch(request), name=f"request:{request.id}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _dispatch(self, request: QueuedRequest) -> None:
        key = request.bucket
        desc = request.descriptor
        self.metrics.inc("dispatched")
        self.log.debug(
            "dispatching %s %s attempt=%d",
            desc.method,
            desc.path,
            request.attempts,
            extra={"event_type": "dispatch", "request_id": request.id, "bucket": str(key)},
        )
        started = time.monotonic()
        try:
            response = await self.transport.send(desc.method, desc.path, desc.headers, desc.body, desc.params)
        except TransportFailure as exc:
            self.metrics.observe_response(None, (time.monotonic() - started) * 1000)
            self.buckets.release(key)
            self._finish(request, RequestResult(ok=False, error=exc))
            return
        except Exception as exc:
            self.log.exception("transport raised", extra={"event_type": "transport_error", "request_id": request.id})
            self.metrics.observe_response(None, (time.monotonic() - started) * 1000)
            self.buckets.release(key)
            self._finish(request, RequestResult(ok=False, error=TransportFailure(f"transport raised {exc!r}", cause=exc)))
            return
        self.metrics.observe_response(response.status, (time.monotonic() - started) * 1000)

        if response.status == 429:
            signal = parse_rejection(
                response,
                retry_after_in_ms=self.cfg.retry_after_in_ms,
                default_retry_after=self.cfg.default_retry_after_sec,
                max_retry_after=self.cfg.max_retry_after_sec,
            )
            self._requeue(request, signal)
            return

        self._apply_quota(key, response)
        self.buckets.release(key)
        self._complete(request, response)

    def _apply_quota(self, key: BucketKey, response: TransportResponse) -> None:
        try:
            update = parse_quota_headers(response.headers)
        except MalformedResponse as exc:
            self.metrics.inc("malformed_quota")
            self.log.warning("keeping previous bucket state: %s", exc, extra={"event_type": "malformed_quota", "bucket": str(key)})
            return
        if update is not None:
            self.buckets.update(key, update.remaining, update.limit, update.reset_at())

    def _complete(self, request: QueuedRequest, response: TransportResponse) -> None:
        status = response.status
        if 200 <= status < 300:
            try:
                data = decode_body(response)
            except ValueError as exc:
                self._finish(request, RequestResult(ok=False, status_code=status, error=TransportFailure("undecodable response body", cause=exc)))
                return
            self._finish(request, RequestResult(ok=True, status_code=status, data=data))
            return
        try:
            body = decode_body(response)
        except ValueError:
            body = response.body
        self._finish(request, RequestResult(ok=False, status_code=status, data=body, error=RemoteRejection(status, body)))

    def _requeue(self, request: QueuedRequest, signal: RateLimited) -> None:
        key = request.bucket
        if signal.scope is RateLimitScope.GLOBAL:
            self.gate.trip(signal.retry_after)
            request.state = RequestState.REQUEUED_GLOBAL
        else:
            self.buckets.block_until(key, time.monotonic() + signal.retry_after)
            request.state = RequestState.REQUEUED_ROUTE
        self.metrics.record_requeue(str(key), signal.scope.value)
        self.log.info(
            "rate limited, requeued at head: %s",
            signal,
            extra={"event_type": "requeue", "request_id": request.id, "bucket": str(key)},
        )
        self.buckets.release(key)
        if self._closed:
            self._finish(request, RequestResult(ok=False, status_code=429, error=ClientClosed("client closed while rate limited")))
            return
        self.queues.requeue_front(request)
        self.kick(key)

    def _finish(self, request: QueuedRequest, result: RequestResult) -> None:
        if request.state in TERMINAL_STATES:
            raise RuntimeError(f"request {request.id} already finished as {request.state.value}")
        request.state = RequestState.DELIVERED if result.ok else RequestState.FAILED
        result.request_id = request.id
        result.attempts = request.attempts
        self.metrics.inc("delivered" if result.ok else "failed")
        if not result.ok:
            self.log.info(
                "request failed: %s",
                result.error,
                extra={"event_type": "request_failed", "request_id": request.id, "status_code": result.status_code},
            )
        if request.future.done():
            self.log.debug("result discarded, caller cancelled", extra={"request_id": request.id})
            return
        request.future.set_result(result)

    async def shutdown(self) -> None:
        self._closed = True
        workers = list(self._workers.values())
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
        for request in self.queues.drain_all():
            self._finish(request, RequestResult(ok=False, error=ClientClosed("client closed before dispatch")))
