import asyncio
import json
import random
import time

import pytest

from discord_rest.config import RateLimitConfig
from discord_rest.errors import ClientClosed, RemoteRejection, TransportFailure
from discord_rest.rate_limiter import RateLimiter
from discord_rest.routes import Route
from discord_rest.types import RequestDescriptor, TransportResponse


class FakeTransport:
    """Answers through ``responder`` and records every call in order."""

    def __init__(self, responder):
        self.responder = responder
        self.calls = []
        self.active = set()
        self.overlaps = 0

    async def send(self, method, path, headers, body=None, params=None):
        n = body["n"]
        if n in self.active:
            self.overlaps += 1
        self.active.add(n)
        self.calls.append((time.monotonic(), path, n))
        try:
            return await self.responder(n, len([c for c in self.calls if c[2] == n]))
        finally:
            self.active.discard(n)

    def order(self, path=None):
        return [n for _, p, n in self.calls if path is None or p == path]


def mk_response(status=200, data=None, remaining=None, limit=5, reset_after=10.0, extra_headers=None):
    headers = {"content-type": "application/json"}
    if remaining is not None:
        headers.update(
            {
                "x-ratelimit-limit": str(limit),
                "x-ratelimit-remaining": str(remaining),
                "x-ratelimit-reset-after": str(reset_after),
            }
        )
    headers.update(extra_headers or {})
    body = json.dumps(data if data is not None else {"ok": True}).encode()
    return TransportResponse(status, headers, body)


def mk_429(retry_after, is_global=False):
    return TransportResponse(
        429,
        {"content-type": "application/json"},
        json.dumps({"message": "You are being rate limited.", "retry_after": retry_after, "global": is_global}).encode(),
    )


def submit(limiter, route, n, callback=None):
    desc = RequestDescriptor(route.method, route.path, body={"n": n})
    return limiter.submit(desc, route.bucket, callback)


MESSAGES = Route("POST", "/channels/{channel_id}/messages", channel_id=123)


def test_requests_in_one_bucket_are_dispatched_fifo():
    async def run() -> None:
        async def responder(n, attempt):
            await asyncio.sleep(0.01)
            return mk_response(remaining=1, limit=1, reset_after=0.0)

        transport = FakeTransport(responder)
        limiter = RateLimiter(transport)
        futures = [submit(limiter, MESSAGES, n) for n in range(1, 8)]
        results = await asyncio.gather(*futures)
        assert transport.order() == list(range(1, 8))
        assert all(r.ok for r in results)
        assert len({r.request_id for r in results}) == 7
        await limiter.close()

    asyncio.run(run())


def test_sixth_request_waits_for_quota_update():
    async def run() -> None:
        gates = {n: asyncio.Event() for n in range(1, 7)}

        async def responder(n, attempt):
            await gates[n].wait()
            return mk_response(remaining=4, limit=5, reset_after=10.0)

        transport = FakeTransport(responder)
        limiter = RateLimiter(transport)
        limiter.buckets.update(MESSAGES.bucket, remaining=5, limit=5, reset_at=time.monotonic() + 10)
        futures = [submit(limiter, MESSAGES, n) for n in range(1, 7)]
        await asyncio.sleep(0.05)
        assert transport.order() == [1, 2, 3, 4, 5]
        assert limiter.bucket_state(MESSAGES.bucket).remaining == 0
        assert limiter.pending(MESSAGES.bucket) == 1

        gates[1].set()
        await asyncio.sleep(0.05)
        assert transport.order() == [1, 2, 3, 4, 5, 6]
        assert futures[0].done() and futures[0].result().ok

        for event in gates.values():
            event.set()
        results = await asyncio.gather(*futures)
        assert [r.attempts for r in results] == [1] * 6
        await limiter.close()

    asyncio.run(run())


def test_route_rate_limit_requeues_at_head():
    async def run() -> None:
        async def responder(n, attempt):
            if n == 1 and attempt == 1:
                return mk_429(0.3)
            return mk_response()

        seen = []
        transport = FakeTransport(responder)
        limiter = RateLimiter(transport)
        route = Route("GET", "/guilds/{guild_id}/members", guild_id=9)
        first = submit(limiter, route, 1, callback=seen.append)
        second = submit(limiter, route, 2, callback=seen.append)

        await asyncio.sleep(0.1)
        assert transport.order() == [1]
        state = limiter.bucket_state(route.bucket)
        assert state.remaining == 0
        assert state.reset_at > time.monotonic()
        assert not first.done()

        r1, r2 = await asyncio.gather(first, second)
        assert transport.order() == [1, 1, 2]
        first_call, retry = transport.calls[0][0], transport.calls[1][0]
        assert retry - first_call >= 0.29
        assert r1.ok and r1.attempts == 2
        assert r2.ok and r2.attempts == 1
        await asyncio.sleep(0)
        assert len(seen) == 2
        assert limiter.stats()["requeued_route"] == 1.0
        await limiter.close()

    asyncio.run(run())


def test_concurrent_route_rejections_keep_arrival_order():
    async def run() -> None:
        async def responder(n, attempt):
            if attempt == 1 and n <= 3:
                await asyncio.sleep(0.01 * n)
                return mk_429(0.1)
            return mk_response()

        transport = FakeTransport(responder)
        limiter = RateLimiter(transport)
        route = Route("GET", "/channels/{channel_id}/pins", channel_id=4)
        limiter.buckets.update(route.bucket, remaining=3, limit=3, reset_at=time.monotonic() + 10)
        futures = [submit(limiter, route, n) for n in range(1, 5)]
        await asyncio.sleep(0.05)
        assert transport.order() == [1, 2, 3]
        assert limiter.pending(route.bucket) == 4

        results = await asyncio.gather(*futures)
        assert transport.order() == [1, 2, 3, 1, 2, 3, 4]
        assert [r.attempts for r in results] == [2, 2, 2, 1]
        assert limiter.stats()["requeued_route"] == 3.0
        await limiter.close()

    asyncio.run(run())


def test_route_rate_limit_shortens_a_known_window():
    async def run() -> None:
        async def responder(n, attempt):
            if attempt == 1:
                return mk_429(0.1)
            return mk_response()

        transport = FakeTransport(responder)
        limiter = RateLimiter(transport)
        route = Route("POST", "/channels/{channel_id}/messages", channel_id=77)
        limiter.buckets.update(route.bucket, remaining=5, limit=5, reset_at=time.monotonic() + 30)
        result = await asyncio.wait_for(submit(limiter, route, 1), timeout=2)
        assert result.ok and result.attempts == 2
        gap = transport.calls[1][0] - transport.calls[0][0]
        assert 0.09 <= gap < 1.0
        await limiter.close()

    asyncio.run(run())


def test_global_rate_limit_pauses_every_bucket():
    async def run() -> None:
        async def responder(n, attempt):
            if n == 1 and attempt == 1:
                return mk_429(0.4, is_global=True)
            if n in (3, 5):
                await asyncio.sleep(0.1)
            return mk_response()

        transport = FakeTransport(responder)
        limiter = RateLimiter(transport)
        a = Route("POST", "/channels/{channel_id}/messages", channel_id=1)
        b = Route("POST", "/channels/{channel_id}/messages", channel_id=2)
        c = Route("GET", "/guilds/{guild_id}/roles", guild_id=3)
        futures = [
            submit(limiter, a, 1),
            submit(limiter, a, 2),
            submit(limiter, b, 3),
            submit(limiter, b, 4),
            submit(limiter, c, 5),
            submit(limiter, c, 6),
        ]
        await asyncio.sleep(0.2)
        assert sorted(transport.order()) == [1, 3, 5]
        assert not limiter.gate.is_open()

        results = await asyncio.gather(*futures)
        assert all(r.ok for r in results)
        tripped_at = transport.calls[0][0]
        later = [t for t, _, n in transport.calls[3:]]
        assert len(later) == 4
        assert all(t >= tripped_at + 0.39 for t in later)
        assert transport.order(a.path)[:2] == [1, 1]
        assert results[0].attempts == 2
        assert limiter.gate.trips == 1
        await limiter.close()

    asyncio.run(run())


def test_transport_failure_is_delivered_not_retried():
    async def run() -> None:
        async def responder(n, attempt):
            if n == 1:
                raise TransportFailure("connection reset")
            raise OSError("socket closed")

        transport = FakeTransport(responder)
        limiter = RateLimiter(transport)
        r1 = await submit(limiter, MESSAGES, 1)
        r2 = await submit(limiter, MESSAGES, 2)
        assert not r1.ok and isinstance(r1.error, TransportFailure)
        assert isinstance(r2.error, TransportFailure)
        assert isinstance(r2.error.cause, OSError)
        assert transport.order() == [1, 2]
        assert limiter.bucket_state(MESSAGES.bucket).in_flight == 0
        await limiter.close()

    asyncio.run(run())


def test_non_success_status_is_a_remote_rejection():
    async def run() -> None:
        async def responder(n, attempt):
            if n == 1:
                return mk_response(403, {"message": "Missing Permissions", "code": 50013}, remaining=2, limit=5)
            return mk_response(502, {"message": "bad gateway"})

        transport = FakeTransport(responder)
        limiter = RateLimiter(transport)
        denied = await submit(limiter, MESSAGES, 1)
        assert not denied.ok
        assert denied.status_code == 403
        assert isinstance(denied.error, RemoteRejection)
        assert denied.error.body["code"] == 50013
        assert not denied.error.retryable
        assert limiter.bucket_state(MESSAGES.bucket).remaining == 2

        flaky = await submit(limiter, MESSAGES, 2)
        assert flaky.error.retryable
        assert transport.order() == [1, 2]
        await limiter.close()

    asyncio.run(run())


def test_malformed_quota_headers_keep_previous_state():
    async def run() -> None:
        async def responder(n, attempt):
            return mk_response(extra_headers={"x-ratelimit-remaining": "1"})

        transport = FakeTransport(responder)
        limiter = RateLimiter(transport)
        limiter.buckets.update(MESSAGES.bucket, remaining=3, limit=5, reset_at=time.monotonic() + 10)
        result = await submit(limiter, MESSAGES, 1)
        assert result.ok
        state = limiter.bucket_state(MESSAGES.bucket)
        assert (state.remaining, state.limit) == (2, 5)
        assert limiter.stats()["malformed_quota"] == 1.0
        await limiter.close()

    asyncio.run(run())


def test_callback_runs_once_after_submit_returns():
    async def run() -> None:
        async def responder(n, attempt):
            return mk_response()

        calls = []
        submitted = {"done": False}

        def callback(result):
            calls.append((result.ok, submitted["done"]))

        limiter = RateLimiter(FakeTransport(responder))
        future = submit(limiter, MESSAGES, 1, callback=callback)
        submitted["done"] = True
        assert calls == []
        await future
        await asyncio.sleep(0)
        assert calls == [(True, True)]
        await limiter.close()

    asyncio.run(run())


def test_raising_callback_does_not_stop_dispatch():
    async def run() -> None:
        async def responder(n, attempt):
            return mk_response()

        def explode(result):
            raise RuntimeError("consumer bug")

        limiter = RateLimiter(FakeTransport(responder))
        bad = submit(limiter, MESSAGES, 1, callback=explode)
        good = submit(limiter, MESSAGES, 2)
        await asyncio.gather(bad, good)
        await asyncio.sleep(0)
        assert good.result().ok
        assert limiter.stats()["callback_error"] == 1.0
        await limiter.close()

    asyncio.run(run())


def test_withdraw_before_dispatch():
    async def run() -> None:
        release = asyncio.Event()

        async def responder(n, attempt):
            await release.wait()
            return mk_response()

        called = []
        transport = FakeTransport(responder)
        limiter = RateLimiter(transport)
        first = submit(limiter, MESSAGES, 1)
        second = submit(limiter, MESSAGES, 2, callback=called.append)
        third = submit(limiter, MESSAGES, 3)
        await asyncio.sleep(0.02)
        assert limiter.withdraw(second)
        assert not limiter.withdraw(first)
        assert second.cancelled()
        release.set()
        await asyncio.gather(first, third)
        assert transport.order() == [1, 3]
        assert called == []
        await limiter.close()

    asyncio.run(run())


def test_close_fails_queued_requests():
    async def run() -> None:
        async def responder(n, attempt):
            await asyncio.sleep(0.05)
            return mk_response()

        limiter = RateLimiter(FakeTransport(responder))
        first = submit(limiter, MESSAGES, 1)
        queued = submit(limiter, MESSAGES, 2)
        await asyncio.sleep(0.01)
        await limiter.close()
        assert first.result().ok
        assert isinstance(queued.result().error, ClientClosed)
        with pytest.raises(ClientClosed):
            submit(limiter, MESSAGES, 3)

    asyncio.run(run())


def test_quota_stays_non_negative_and_requests_never_overlap():
    async def run() -> None:
        rng = random.Random(7)
        route = Route("DELETE", "/channels/{channel_id}/messages/{message_id}", channel_id=5, message_id=1)
        limiter = None
        low_water = []

        async def responder(n, attempt):
            low_water.append(limiter.bucket_state(route.bucket).remaining)
            await asyncio.sleep(rng.random() * 0.01)
            if rng.random() < 0.15:
                return mk_429(0.02)
            return mk_response(remaining=rng.randint(0, 3), limit=3, reset_after=0.02)

        transport = FakeTransport(responder)
        limiter = RateLimiter(transport, RateLimitConfig(default_remaining=3, default_limit=3))
        results = await asyncio.gather(*(submit(limiter, route, n) for n in range(40)))
        assert all(r.ok for r in results)
        assert min(low_water) >= 0
        assert transport.overlaps == 0
        assert sorted(set(transport.order())) == list(range(40))
        await limiter.close()

    asyncio.run(run())
