from __future__ import annotations

import asyncio
import json
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Set

import structlog

from bedwatch.config import settings
from bedwatch.observability import BROADCAST_FAILURES

log = structlog.get_logger("bedwatch-broker")

READINGS_TOPIC = "readings"

class Broker:
    def publish(self, topic: str, message: Dict[str, Any]) -> None:
        raise NotImplementedError

class Subscription:
    """One live listener: a bounded queue owned by the subscriber's event loop."""

    def __init__(self, topic: str, loop: asyncio.AbstractEventLoop, maxsize: int):
        self.topic = topic
        self.loop = loop
        self.queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, message: Dict[str, Any]) -> None:
        # Called from any thread; the queue is only touched on its own loop.
        self.loop.call_soon_threadsafe(self._put, message)

    def _put(self, message: Dict[str, Any]) -> None:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1

    async def get(self) -> Dict[str, Any]:
        return await self.queue.get()

class FanoutBroker(Broker):
    def __init__(self, queue_size: int | None = None):
        self.queue_size = queue_size or settings.subscriber_queue_size
        self._subs: Set[Subscription] = set()
        self._lock = threading.Lock()

    def subscribe(self, topic: str = READINGS_TOPIC) -> Subscription:
        sub = Subscription(topic, asyncio.get_running_loop(), self.queue_size)
        with self._lock:
            self._subs.add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subs.discard(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    def publish(self, topic: str, message: Dict[str, Any]) -> None:
        with self._lock:
            targets = [s for s in self._subs if s.topic == topic]
        for sub in targets:
            try:
                sub.offer(message)
            except RuntimeError:
                # Subscriber loop already closed without unsubscribing.
                self.unsubscribe(sub)

class RedisBroker(FanoutBroker):
    """Fan-out locally and mirror every message onto a Redis stream."""

    def __init__(self, redis_url: str, stream: str, maxlen: int, queue_size: int | None = None):
        super().__init__(queue_size=queue_size)
        import redis
        self.stream = stream
        self.maxlen = maxlen
        self.client = redis.Redis.from_url(redis_url, decode_responses=True)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="bedwatch-redis")

    def publish(self, topic: str, message: Dict[str, Any]) -> None:
        super().publish(topic, message)
        self._executor.submit(self._xadd, topic, message)

    def _xadd(self, topic: str, message: Dict[str, Any]) -> None:
        try:
            self.client.xadd(
                self.stream,
                {"topic": topic, "payload": json.dumps(message)},
                maxlen=self.maxlen,
                approximate=True,
            )
        except Exception as e:
            BROADCAST_FAILURES.inc()
            log.warning("redis_publish_failed", stream=self.stream, error=str(e))

def get_broker() -> FanoutBroker:
    kind = settings.broker_type.lower()
    if kind == "redis":
        return RedisBroker(settings.redis_url, settings.redis_stream, settings.redis_stream_maxlen)
    if kind != "direct":
        raise RuntimeError(f"unknown broker_type: {settings.broker_type}")
    return FanoutBroker()
