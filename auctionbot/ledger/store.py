"""Redis-backed auction ledger.

All authoritative state lives in Redis under the keys in
`auctionbot.ledger.keys`. Writes that must not race (accepting a bid,
deleting a bid, marking an item closed) run as optimistic WATCH/MULTI/EXEC
transactions, so the state change and its published event commit together
or not at all.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from uuid import uuid4

import orjson
import redis.asyncio as redis
import structlog
from pydantic import ValidationError
from redis.exceptions import RedisError, WatchError

from auctionbot.ledger.errors import (
    BidTooLowError,
    InvalidBidError,
    ItemStateError,
    NoCurrentItemError,
    NotFoundError,
    StoreError,
)
from auctionbot.ledger.events import (
    BidEvent,
    CloseItemEvent,
    DeleteBidEvent,
    Event,
    OpenItemEvent,
    encode_event,
)
from auctionbot.ledger.keys import (
    ALL_ITEMS_KEY,
    AUCTION_UPDATES_CHANNEL,
    CURRENT_ITEM_KEY,
    TOTAL_RAISED_KEY,
    bids_key,
    item_key,
)
from auctionbot.ledger.models import Bid, Item
from auctionbot.monitoring.metrics import Metrics

DEFAULT_MIN_INCREMENT_CENTS = 100
DEFAULT_MAX_TRANSACTION_RETRIES = 50

_DECODE_ERRORS = (orjson.JSONDecodeError, ValidationError)


def create_redis(url: str) -> redis.Redis:
    """Create an async Redis client that returns str values."""
    return redis.from_url(url, decode_responses=True)


@contextmanager
def _store_call(operation: str) -> Iterator[None]:
    try:
        yield
    except RedisError as exc:
        raise StoreError(f"{operation} failed: {exc}") from exc


class AuctionLedger:
    """Owns every auction state transition."""

    def __init__(
        self,
        client: redis.Redis,
        min_increment_cents: int = DEFAULT_MIN_INCREMENT_CENTS,
        max_transaction_retries: int = DEFAULT_MAX_TRANSACTION_RETRIES,
        metrics: Metrics | None = None,
    ) -> None:
        self._redis = client
        self.min_increment_cents = min_increment_cents
        self.max_transaction_retries = max_transaction_retries
        self._metrics = metrics
        self._log = structlog.get_logger(__name__)

    # Read paths

    async def get_item(self, item_id: str) -> Item:
        with _store_call("get item"):
            raw = await self._redis.get(item_key(item_id))
        if raw is None:
            raise NotFoundError(f"no item with ID {item_id!r}")
        try:
            item = Item.from_json(raw)
        except _DECODE_ERRORS as exc:
            self._log.warning("item_decode_failed", item_id=item_id, error=str(exc))
            raise NotFoundError(f"no item with ID {item_id!r}") from exc
        return item.model_copy(update={"id": item_id})

    async def get_items(self) -> list[Item]:
        """Return every known item, skipping records that fail to decode."""
        with _store_call("list items"):
            item_ids = sorted(await self._redis.smembers(ALL_ITEMS_KEY))
            if not item_ids:
                return []
            blobs = await self._redis.mget([item_key(item_id) for item_id in item_ids])
        items: list[Item] = []
        for item_id, raw in zip(item_ids, blobs):
            if raw is None:
                continue
            try:
                item = Item.from_json(raw)
            except _DECODE_ERRORS:
                self._log.warning("item_decode_failed", item_id=item_id)
                continue
            items.append(item.model_copy(update={"id": item_id}))
        return items

    async def get_top_bids(self, item_id: str, count: int = 0) -> list[Bid]:
        """Return the `count` most recent bids, oldest first; 0 returns all."""
        if count < 0:
            raise ValueError("count must be zero or positive")
        with _store_call("get bids"):
            raw_bids = await self._redis.lrange(bids_key(item_id), -count, -1)
        return self._decode_bids(item_id, raw_bids)

    async def total_raised_cents(self) -> int:
        """Return the running total; 0 if it is missing, corrupt or unreachable."""
        try:
            raw = await self._redis.get(TOTAL_RAISED_KEY)
        except RedisError as exc:
            self._log.warning("total_raised_read_failed", error=str(exc))
            return 0
        if not raw:
            return 0
        try:
            return int(raw)
        except ValueError:
            return 0

    async def current_item(self) -> Item | None:
        """Return the current item, or None when nothing is open or it can't be loaded."""
        try:
            item_id = await self._redis.get(CURRENT_ITEM_KEY)
        except RedisError as exc:
            self._log.warning("current_item_read_failed", error=str(exc))
            return None
        if not item_id:
            return None
        try:
            return await self.get_item(item_id)
        except (NotFoundError, StoreError):
            return None

    # Write paths

    async def put_item(self, item: Item) -> None:
        """Store an item and register it in the item index."""
        if not item.id:
            raise ValueError("item must have an id")
        with _store_call("put item"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(item_key(item.id), item.to_json())
                pipe.sadd(ALL_ITEMS_KEY, item.id)
                await pipe.execute()
        self._log.info("item_stored", item_id=item.id)

    async def open_item(self, item_id: str) -> None:
        item = await self.get_item(item_id)
        with _store_call("read current item"):
            current_id = await self._redis.get(CURRENT_ITEM_KEY)
        if current_id == item_id:
            raise ItemStateError(f"item {item_id!r} is already open")

        if item.closed:
            # Reopening clears the flag and takes the earlier top bid back off the total.
            await self._set_closed(item_id, False)
            await self._adjust_total(item_id, sign=-1)

        with _store_call("set current item"):
            await self._redis.set(CURRENT_ITEM_KEY, item_id)
        await self._publish(OpenItemEvent(item_id=item_id))
        self._log.info("item_opened", item_id=item_id, reopened=item.closed)

    async def close_item(self) -> str:
        """Close the current item and return its id.

        The steps below are independent writes. A failure while adding the
        top bid to the total is logged and the close still completes.
        """
        with _store_call("read current item"):
            item_id = await self._redis.get(CURRENT_ITEM_KEY)
        if not item_id:
            raise NoCurrentItemError()

        await self._set_closed(item_id, True)
        with _store_call("clear current item"):
            await self._redis.set(CURRENT_ITEM_KEY, "")
        raised = await self._adjust_total(item_id, sign=1)
        await self._publish(CloseItemEvent(item_id=item_id))
        self._log.info("item_closed", item_id=item_id, top_bid_cents=raised)
        return item_id

    async def bid(self, amount_cents: int, bidder_id: str, display_name: str) -> Bid | None:
        """Place a bid on the current item.

        Returns the recorded bid, or None when no item is open. Raises
        BidTooLowError when the amount does not beat the last bid by the
        minimum increment.
        """
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents < 0:
            raise InvalidBidError("bid must be a non-negative number of cents")
        with _store_call("read current item"):
            item_id = await self._redis.get(CURRENT_ITEM_KEY)
        if not item_id:
            self._log.info("bid_ignored_no_current_item", bidder=bidder_id, bid_cents=amount_cents)
            return None

        bid = Bid(
            bid_cents=amount_cents,
            bidder_id=bidder_id,
            bidder_display_name=display_name,
            id=str(uuid4()),
            item_id=item_id,
        )
        key = bids_key(item_id)
        record = bid.to_json()
        message = encode_event(BidEvent.from_bid(bid))

        with _store_call("place bid"):
            async with self._redis.pipeline(transaction=True) as pipe:
                for attempt in range(self.max_transaction_retries):
                    try:
                        await pipe.watch(key)
                        last = await pipe.lrange(key, -1, -1)
                        if last:
                            previous = self._decode_last_bid(item_id, last[0])
                            minimum = previous + self.min_increment_cents
                            if amount_cents < minimum:
                                if self._metrics:
                                    self._metrics.bids_rejected.inc()
                                self._log.info(
                                    "bid_rejected",
                                    item_id=item_id,
                                    bidder=bidder_id,
                                    bid_cents=amount_cents,
                                    minimum_cents=minimum,
                                )
                                raise BidTooLowError(minimum, previous, self.min_increment_cents)
                        pipe.multi()
                        pipe.rpush(key, record)
                        pipe.publish(AUCTION_UPDATES_CHANNEL, message)
                        await pipe.execute()
                        break
                    except WatchError:
                        self._record_retry("bid", item_id, attempt)
                        continue
                else:
                    raise StoreError(f"bid on {item_id!r} lost too many concurrent races")

        if self._metrics:
            self._metrics.bids_accepted.inc()
        self._log.info(
            "bid_accepted",
            item_id=item_id,
            bid_id=bid.id,
            bidder=bidder_id,
            bid_cents=amount_cents,
        )
        return bid

    async def delete_bid(self, item_id: str, bid_id: str) -> Bid:
        """Remove one bid and announce it. The running total is left untouched."""
        key = bids_key(item_id)
        with _store_call("delete bid"):
            async with self._redis.pipeline(transaction=True) as pipe:
                for attempt in range(self.max_transaction_retries):
                    try:
                        await pipe.watch(key)
                        raw_bids = await pipe.lrange(key, 0, -1)
                        match = self._find_bid(raw_bids, bid_id)
                        if match is None:
                            raise NotFoundError(f"no such bid exists: {bid_id!r}")
                        raw, bid = match
                        pipe.multi()
                        pipe.lrem(key, 1, raw)
                        pipe.publish(AUCTION_UPDATES_CHANNEL, encode_event(DeleteBidEvent.from_bid(bid)))
                        await pipe.execute()
                        break
                    except WatchError:
                        self._record_retry("delete_bid", item_id, attempt)
                        continue
                else:
                    raise StoreError(f"deleting bid {bid_id!r} lost too many concurrent races")

        self._log.info(
            "bid_deleted",
            item_id=item_id,
            bid_id=bid_id,
            bidder=bid.bidder_id,
            bid_cents=bid.bid_cents,
        )
        return bid

    # Internals

    async def _set_closed(self, item_id: str, closed: bool) -> None:
        """Rewrite the item's closed flag, keeping any fields the model doesn't know."""
        key = item_key(item_id)
        operation = "close_item" if closed else "open_item"
        with _store_call(f"set closed={closed}"):
            async with self._redis.pipeline(transaction=True) as pipe:
                for attempt in range(self.max_transaction_retries):
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        if raw is None:
                            raise NotFoundError(f"no item with ID {item_id!r}")
                        data = self._decode_item_fields(item_id, raw)
                        data["closed"] = closed
                        pipe.multi()
                        pipe.set(key, orjson.dumps(data))
                        await pipe.execute()
                        return
                    except WatchError:
                        self._record_retry(operation, item_id, attempt)
                        continue
        raise StoreError(f"updating {item_id!r} lost too many concurrent races")

    async def _adjust_total(self, item_id: str, sign: int) -> int:
        """Add (sign=1) or remove (sign=-1) the item's top bid from the total.

        Returns the top bid amount. Store failures are logged, not raised.
        """
        try:
            top = await self.get_top_bids(item_id, 1)
        except StoreError as exc:
            self._log.warning("total_adjust_failed", item_id=item_id, error=str(exc))
            return 0
        if not top:
            return 0
        amount = top[0].bid_cents
        try:
            if sign > 0:
                await self._redis.incrby(TOTAL_RAISED_KEY, amount)
            else:
                await self._redis.decrby(TOTAL_RAISED_KEY, amount)
        except RedisError as exc:
            self._log.warning(
                "total_adjust_failed",
                item_id=item_id,
                amount_cents=amount * sign,
                error=str(exc),
            )
        return amount

    async def _publish(self, event: Event) -> None:
        with _store_call(f"publish {event.event_type.value}"):
            await self._redis.publish(AUCTION_UPDATES_CHANNEL, encode_event(event))

    def _record_retry(self, operation: str, item_id: str, attempt: int) -> None:
        if self._metrics:
            self._metrics.transaction_retries.labels(operation=operation).inc()
        self._log.debug("transaction_retry", operation=operation, item_id=item_id, attempt=attempt)

    def _decode_bids(self, item_id: str, raw_bids: list[str]) -> list[Bid]:
        bids: list[Bid] = []
        for raw in raw_bids:
            try:
                bids.append(Bid.from_json(raw))
            except _DECODE_ERRORS:
                self._log.warning("bid_decode_failed", item_id=item_id)
                continue
        return bids

    def _find_bid(self, raw_bids: list[str], bid_id: str) -> tuple[str, Bid] | None:
        for raw in raw_bids:
            try:
                bid = Bid.from_json(raw)
            except _DECODE_ERRORS:
                continue
            if bid.id == bid_id:
                return raw, bid
        return None

    def _decode_last_bid(self, item_id: str, raw: str) -> int:
        try:
            return Bid.from_json(raw).bid_cents
        except _DECODE_ERRORS as exc:
            raise StoreError(f"top bid record for {item_id!r} is corrupt") from exc

    def _decode_item_fields(self, item_id: str, raw: str) -> dict[str, Any]:
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise StoreError(f"item record {item_id!r} is corrupt") from exc
        if not isinstance(data, dict):
            raise StoreError(f"item record {item_id!r} is corrupt")
        return data
