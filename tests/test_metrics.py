import pytest

from discord_rest.metrics import Metrics


def test_summary_reports_latency_and_ratios():
    m = Metrics(window=10)
    for v in range(1, 11):
        m.observe_response(200, float(v))
    m.observe_response(None, 100.0)  # evicts the 1.0 sample
    m.inc("dispatched", 4)
    m.record_requeue("POST /channels/{channel_id}/messages:1", "route")
    m.inc("failed", 2)
    out = m.summary()
    assert out["transport_p50"] == pytest.approx(6.5)
    assert out["transport_mean"] == pytest.approx(15.4)
    assert out["status_200"] == 10.0
    assert out["requeued_route"] == 1.0
    assert out["requeue_ratio"] == 0.25
    assert out["failure_ratio"] == 0.5


def test_hottest_buckets():
    m = Metrics()
    for _ in range(3):
        m.record_requeue("GET /guilds/{guild_id}:9", "route")
    m.record_requeue("POST /users/@me/channels", "global")
    assert m.hottest_buckets(1) == [("GET /guilds/{guild_id}:9", 3)]
    assert m.summary()["requeued_global"] == 1.0


def test_empty_metrics():
    out = Metrics().summary()
    assert out["requeue_ratio"] == 0.0
    assert out["failure_ratio"] == 0.0
    assert "transport_p50" not in out
