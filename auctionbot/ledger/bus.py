"""Fan auction updates out from Redis pub/sub to independent subscribers."""

from __future__ import annotations

import asyncio
from typing import Any

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from auctionbot.ledger.events import Event, EventDecodeError, decode_event
from auctionbot.ledger.keys import AUCTION_UPDATES_CHANNEL
from auctionbot.monitoring.metrics import Metrics

_CLOSED = object()


class Subscription:
    """One consumer's ordered view of auction events.

    Owns a dedicated pub/sub connection and a delivery task that decodes raw
    messages into a bounded queue. A full queue stalls only this delivery
    task. Iterate with `async for`, or call `get()`; both stop once the
    subscription is closed. Events still buffered at close may be dropped.
    """

    def __init__(
        self,
        bus: "EventBus",
        pubsub: Any,
        queue_size: int,
        poll_interval_sec: float,
    ) -> None:
        self._bus = bus
        self._pubsub = pubsub
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size)
        self._poll_interval_sec = poll_interval_sec
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self._finished = False
        self._log = structlog.get_logger(__name__)

    @property
    def closed(self) -> bool:
        return self._closed

    def _start(self) -> None:
        self._task = asyncio.create_task(self._deliver())

    async def _deliver(self) -> None:
        metrics = self._bus.metrics
        try:
            while not self._closed:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=self._poll_interval_sec
                )
                if message is None or message.get("type") != "message":
                    continue
                try:
                    event = decode_event(message["data"])
                except EventDecodeError as exc:
                    if metrics:
                        metrics.events_dropped.inc()
                    self._log.debug("event_decode_failed", error=str(exc))
                    continue
                await self._queue.put(event)
                if metrics:
                    metrics.events_delivered.labels(event_type=event.event_type.value).inc()
        except RedisError as exc:
            self._log.warning("subscription_connection_lost", error=str(exc))
        except Exception:
            self._log.exception("subscription_delivery_failed")
        finally:
            self._finish()

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        while True:
            try:
                self._queue.put_nowait(_CLOSED)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()

    async def get(self) -> Event | None:
        """Wait for the next event; None once the subscription has ended."""
        if self._finished and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for any other waiter.
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Event:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Stop delivery and release the connection. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._finish()
        try:
            await self._pubsub.unsubscribe()
        except RedisError as exc:
            self._log.debug("unsubscribe_failed", error=str(exc))
        finally:
            await self._pubsub.aclose()
            self._bus._release(self)


class EventBus:
    """Turn the store's update channel into typed events for each subscriber."""

    def __init__(
        self,
        client: redis.Redis,
        channel: str = AUCTION_UPDATES_CHANNEL,
        queue_size: int = 100,
        subscribe_timeout_sec: float = 5.0,
        poll_interval_sec: float = 1.0,
        metrics: Metrics | None = None,
    ) -> None:
        self._redis = client
        self.channel = channel
        self.queue_size = queue_size
        self.subscribe_timeout_sec = subscribe_timeout_sec
        self.poll_interval_sec = poll_interval_sec
        self.metrics = metrics
        self._subscriptions: set[Subscription] = set()
        self._log = structlog.get_logger(__name__)

    @property
    def active(self) -> int:
        return len(self._subscriptions)

    async def subscribe(self) -> Subscription:
        """Open a new, independent subscription.

        Returns once the store has confirmed the subscription, so every
        event published afterwards reaches it. Nothing published earlier is
        replayed.
        """
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            await self._await_confirmation(pubsub)
        except BaseException:
            await pubsub.aclose()
            raise
        subscription = Subscription(
            self,
            pubsub,
            queue_size=self.queue_size,
            poll_interval_sec=self.poll_interval_sec,
        )
        self._subscriptions.add(subscription)
        subscription._start()
        if self.metrics:
            self.metrics.subscriptions_active.set(len(self._subscriptions))
        self._log.info("subscription_opened", active=len(self._subscriptions))
        return subscription

    async def _await_confirmation(self, pubsub: Any) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.subscribe_timeout_sec
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                self._log.warning("subscribe_unconfirmed", channel=self.channel)
                return
            message = await pubsub.get_message(timeout=remaining)
            if message is not None and message.get("type") == "subscribe":
                return

    def _release(self, subscription: Subscription) -> None:
        if subscription not in self._subscriptions:
            return
        self._subscriptions.discard(subscription)
        if self.metrics:
            self.metrics.subscriptions_active.set(len(self._subscriptions))
        self._log.info("subscription_closed", active=len(self._subscriptions))

    async def close_all(self) -> None:
        """Close every outstanding subscription."""
        for subscription in list(self._subscriptions):
            await subscription.close()
