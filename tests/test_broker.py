from __future__ import annotations

import asyncio
import threading

import pytest

from bedwatch import broker as broker_mod
from bedwatch.broker import READINGS_TOPIC, FanoutBroker, get_broker


def test_fanout_delivers_to_every_subscriber() -> None:
    async def scenario():
        b = FanoutBroker(queue_size=5)
        s1 = b.subscribe()
        s2 = b.subscribe()
        b.publish(READINGS_TOPIC, {"room": "room1", "bed": "bed1", "weight": 12.0})
        return await asyncio.wait_for(s1.get(), 1), await asyncio.wait_for(s2.get(), 1)

    m1, m2 = asyncio.run(scenario())
    assert m1 == m2 == {"room": "room1", "bed": "bed1", "weight": 12.0}


def test_publish_from_another_thread() -> None:
    async def scenario():
        b = FanoutBroker(queue_size=5)
        sub = b.subscribe()
        t = threading.Thread(target=b.publish, args=(READINGS_TOPIC, {"weight": 1}))
        t.start()
        t.join()
        return await asyncio.wait_for(sub.get(), 1)

    assert asyncio.run(scenario()) == {"weight": 1}


def test_topics_are_filtered() -> None:
    async def scenario():
        b = FanoutBroker(queue_size=5)
        sub = b.subscribe("other")
        b.publish(READINGS_TOPIC, {"weight": 1})
        await asyncio.sleep(0)
        return sub.queue.qsize()

    assert asyncio.run(scenario()) == 0


def test_full_queue_drops_for_slow_subscriber_only() -> None:
    async def scenario():
        b = FanoutBroker(queue_size=2)
        slow = b.subscribe()
        fast = b.subscribe()
        got = []
        for i in range(3):
            b.publish(READINGS_TOPIC, {"i": i})
            await asyncio.sleep(0)
            got.append(await fast.get())
        return slow, got

    slow, got = asyncio.run(scenario())
    assert [m["i"] for m in got] == [0, 1, 2]
    assert slow.queue.qsize() == 2
    assert slow.dropped == 1


def test_unsubscribe_stops_delivery() -> None:
    async def scenario():
        b = FanoutBroker(queue_size=5)
        sub = b.subscribe()
        b.unsubscribe(sub)
        b.publish(READINGS_TOPIC, {"weight": 1})
        await asyncio.sleep(0)
        return b.subscriber_count, sub.queue.qsize()

    assert asyncio.run(scenario()) == (0, 0)


def test_publish_after_subscriber_loop_closed_is_harmless() -> None:
    b = FanoutBroker(queue_size=5)

    async def subscribe_only():
        b.subscribe()

    asyncio.run(subscribe_only())
    b.publish(READINGS_TOPIC, {"weight": 1})
    assert b.subscriber_count == 0


def test_get_broker_defaults_to_fanout(monkeypatch) -> None:
    monkeypatch.setattr(broker_mod.settings, "broker_type", "direct")
    assert type(get_broker()) is FanoutBroker


def test_get_broker_rejects_unknown(monkeypatch) -> None:
    monkeypatch.setattr(broker_mod.settings, "broker_type", "carrier-pigeon")
    with pytest.raises(RuntimeError, match="carrier-pigeon"):
        get_broker()


def test_redis_broker_mirrors_to_stream(monkeypatch) -> None:
    calls = []

    class FakeRedis:
        def xadd(self, stream, fields, maxlen=None, approximate=False):
            calls.append((stream, fields, maxlen, approximate))

    import redis
    monkeypatch.setattr(redis.Redis, "from_url", classmethod(lambda cls, *a, **k: FakeRedis()))

    b = broker_mod.RedisBroker("redis://localhost:6379/0", "bedwatch.test", 50)
    b.publish(READINGS_TOPIC, {"room": "room1", "bed": "bed1", "weight": 5.0})
    b._executor.shutdown(wait=True)

    assert len(calls) == 1
    stream, fields, maxlen, approximate = calls[0]
    assert stream == "bedwatch.test" and maxlen == 50 and approximate
    assert fields["topic"] == READINGS_TOPIC
    assert '"weight": 5.0' in fields["payload"]
