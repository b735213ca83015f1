"""Tests for EventBus fan-out, decoding and subscription lifecycle."""

from __future__ import annotations

import asyncio

import pytest
from structlog.testing import capture_logs

from auctionbot.ledger import (
    AuctionLedger,
    BidEvent,
    BidTooLowError,
    CloseItemEvent,
    DeleteBidEvent,
    EventBus,
    Item,
    NotFoundError,
    OpenItemEvent,
)
from auctionbot.ledger.keys import AUCTION_UPDATES_CHANNEL


async def next_event(subscription, timeout: float = 2.0):
    return await asyncio.wait_for(subscription.get(), timeout)


async def open_new_item(ledger: AuctionLedger, item_id: str) -> None:
    await ledger.put_item(Item(id=item_id, title=f"Lot {item_id}"))
    await ledger.open_item(item_id)


@pytest.mark.asyncio
async def test_two_subscribers_both_receive_bid_in_order(bus: EventBus, ledger: AuctionLedger) -> None:
    await ledger.put_item(Item(id="itemA", title="Lot A"))
    first = await bus.subscribe()
    second = await bus.subscribe()

    await ledger.open_item("itemA")
    bid = await ledger.bid(1000, "u1", "Rarity")
    assert bid is not None

    for subscription in (first, second):
        assert await next_event(subscription) == OpenItemEvent(item_id="itemA")
        received = await next_event(subscription)
        assert received == BidEvent.from_bid(bid)


@pytest.mark.asyncio
async def test_late_subscriber_does_not_see_earlier_events(bus: EventBus, ledger: AuctionLedger) -> None:
    await open_new_item(ledger, "itemA")
    await ledger.bid(1000, "u1", "Rarity")

    late = await bus.subscribe()
    await ledger.close_item()
    assert await next_event(late) == CloseItemEvent(item_id="itemA")


@pytest.mark.asyncio
async def test_undecodable_messages_are_dropped(bus: EventBus, redis_client, metrics) -> None:
    subscription = await bus.subscribe()
    await redis_client.publish(AUCTION_UPDATES_CHANNEL, "{broken")
    await redis_client.publish(AUCTION_UPDATES_CHANNEL, '{"event": "mystery", "itemId": "x"}')
    await redis_client.publish(AUCTION_UPDATES_CHANNEL, '{"event": "openItem", "itemId": "itemB"}')

    assert await next_event(subscription) == OpenItemEvent(item_id="itemB")
    assert metrics.registry.get_sample_value("auction_events_dropped_total") == 2
    assert (
        metrics.registry.get_sample_value(
            "auction_events_delivered_total", {"event_type": "openItem"}
        )
        == 1
    )


@pytest.mark.asyncio
async def test_delete_bid_event_and_failed_delete_is_silent(bus: EventBus, ledger: AuctionLedger) -> None:
    await open_new_item(ledger, "itemA")
    bid = await ledger.bid(1000, "u1", "Rarity")
    assert bid is not None

    subscription = await bus.subscribe()
    with pytest.raises(NotFoundError):
        await ledger.delete_bid("itemA", "missing")
    await ledger.delete_bid("itemA", bid.id)

    event = await next_event(subscription)
    assert isinstance(event, DeleteBidEvent)
    assert event.bid_id == bid.id
    assert event.bid_cents == 1000
    assert event.bidder_id == "u1"
    assert event.bidder_display_name == "Rarity"


@pytest.mark.asyncio
async def test_rejected_bid_publishes_nothing(bus: EventBus, ledger: AuctionLedger) -> None:
    await open_new_item(ledger, "itemA")
    await ledger.bid(1000, "u1", "Rarity")
    subscription = await bus.subscribe()

    with pytest.raises(BidTooLowError):
        await ledger.bid(1050, "u2", "Twilight")
    await ledger.close_item()

    assert await next_event(subscription) == CloseItemEvent(item_id="itemA")


@pytest.mark.asyncio
async def test_slow_subscriber_does_not_block_others(redis_client, ledger: AuctionLedger) -> None:
    bus = EventBus(redis_client, queue_size=1, subscribe_timeout_sec=1.0, poll_interval_sec=0.05)
    try:
        slow = await bus.subscribe()
        fast = await bus.subscribe()
        await open_new_item(ledger, "itemA")
        amounts = [100, 200, 300, 400, 500]
        for amount in amounts:
            await ledger.bid(amount, "u1", "Rarity")

        assert await next_event(fast) == OpenItemEvent(item_id="itemA")
        received = [await next_event(fast) for _ in amounts]
        assert [event.bid_cents for event in received] == amounts

        # The slow reader still sees the oldest event first.
        assert await next_event(slow) == OpenItemEvent(item_id="itemA")
    finally:
        await bus.close_all()


@pytest.mark.asyncio
async def test_close_terminates_iteration(bus: EventBus, ledger: AuctionLedger) -> None:
    subscription = await bus.subscribe()
    received: list = []

    async def consume() -> None:
        async for event in subscription:
            received.append(event)

    consumer = asyncio.create_task(consume())
    await open_new_item(ledger, "itemA")
    for _ in range(40):
        if received:
            break
        await asyncio.sleep(0.05)

    await subscription.close()
    await asyncio.wait_for(consumer, 2.0)
    assert received == [OpenItemEvent(item_id="itemA")]
    assert subscription.closed
    assert await subscription.get() is None


@pytest.mark.asyncio
async def test_registry_tracks_and_sweeps_subscriptions(bus: EventBus, metrics) -> None:
    first = await bus.subscribe()
    second = await bus.subscribe()
    assert bus.active == 2
    assert metrics.registry.get_sample_value("auction_subscriptions_active") == 2

    await first.close()
    await first.close()
    assert bus.active == 1

    await bus.close_all()
    assert bus.active == 0
    assert second.closed
    assert metrics.registry.get_sample_value("auction_subscriptions_active") == 0


@pytest.mark.asyncio
async def test_subscription_context_manager_releases(bus: EventBus) -> None:
    async with await bus.subscribe() as subscription:
        assert bus.active == 1
    assert subscription.closed
    assert bus.active == 0


@pytest.mark.asyncio
async def test_delivery_failure_ends_subscription_and_is_logged(
    bus: EventBus, monkeypatch: pytest.MonkeyPatch
) -> None:
    subscription = await bus.subscribe()

    async def broken_get_message(*args, **kwargs):
        raise RuntimeError("decoder exploded")

    with capture_logs() as logs:
        monkeypatch.setattr(subscription._pubsub, "get_message", broken_get_message)
        assert await next_event(subscription) is None
        await subscription.close()

    failures = [entry for entry in logs if entry["event"] == "subscription_delivery_failed"]
    assert len(failures) == 1
    assert failures[0]["log_level"] == "error"
    assert bus.active == 0
