"""Auction event definitions and wire serialization."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Union

import orjson

from auctionbot.ledger.models import Bid


class EventType(str, Enum):
    """Discriminator values carried in the `event` field."""

    OPEN_ITEM = "openItem"
    CLOSE_ITEM = "closeItem"
    BID = "bid"
    DELETE_BID = "deleteBid"


@dataclass(frozen=True)
class OpenItemEvent:
    """An item became the current item."""

    event_type: ClassVar[EventType] = EventType.OPEN_ITEM

    item_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.event_type.value, "itemId": self.item_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OpenItemEvent":
        return cls(item_id=_require_str(data, "itemId"))


@dataclass(frozen=True)
class CloseItemEvent:
    """Bidding on an item closed."""

    event_type: ClassVar[EventType] = EventType.CLOSE_ITEM

    item_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.event_type.value, "itemId": self.item_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CloseItemEvent":
        return cls(item_id=_require_str(data, "itemId"))


@dataclass(frozen=True)
class BidEvent:
    """A bid was accepted. The bid id travels as `id` on the wire."""

    event_type: ClassVar[EventType] = EventType.BID

    item_id: str
    bid_id: str
    bid_cents: int
    bidder_id: str
    bidder_display_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event_type.value,
            "bid": self.bid_cents,
            "bidder": self.bidder_id,
            "bidderDisplayName": self.bidder_display_name,
            "id": self.bid_id,
            "itemId": self.item_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BidEvent":
        return cls(
            item_id=_require_str(data, "itemId"),
            bid_id=_require_str(data, "id"),
            bid_cents=_require_int(data, "bid"),
            bidder_id=_require_str(data, "bidder"),
            bidder_display_name=str(data.get("bidderDisplayName", "")),
        )

    @classmethod
    def from_bid(cls, bid: Bid) -> "BidEvent":
        return cls(
            item_id=bid.item_id,
            bid_id=bid.id,
            bid_cents=bid.bid_cents,
            bidder_id=bid.bidder_id,
            bidder_display_name=bid.bidder_display_name,
        )


@dataclass(frozen=True)
class DeleteBidEvent:
    """A recorded bid was removed by a moderator."""

    event_type: ClassVar[EventType] = EventType.DELETE_BID

    item_id: str
    bid_id: str
    bid_cents: int
    bidder_id: str
    bidder_display_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event_type.value,
            "itemId": self.item_id,
            "bidId": self.bid_id,
            "bid": self.bid_cents,
            "bidder": self.bidder_id,
            "bidderDisplayName": self.bidder_display_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeleteBidEvent":
        return cls(
            item_id=_require_str(data, "itemId"),
            bid_id=_require_str(data, "bidId"),
            bid_cents=_require_int(data, "bid"),
            bidder_id=_require_str(data, "bidder"),
            bidder_display_name=str(data.get("bidderDisplayName", "")),
        )

    @classmethod
    def from_bid(cls, bid: Bid) -> "DeleteBidEvent":
        return cls(
            item_id=bid.item_id,
            bid_id=bid.id,
            bid_cents=bid.bid_cents,
            bidder_id=bid.bidder_id,
            bidder_display_name=bid.bidder_display_name,
        )


Event = Union[OpenItemEvent, CloseItemEvent, BidEvent, DeleteBidEvent]

_EVENT_CLASSES: dict[str, type[Event]] = {
    EventType.OPEN_ITEM.value: OpenItemEvent,
    EventType.CLOSE_ITEM.value: CloseItemEvent,
    EventType.BID.value: BidEvent,
    EventType.DELETE_BID.value: DeleteBidEvent,
}


class EventDecodeError(ValueError):
    """A published message is not a recognizable auction event."""


def _require_str(data: dict[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str):
        raise EventDecodeError(f"field {field!r} must be a string")
    return value


def _require_int(data: dict[str, Any], field: str) -> int:
    value = data.get(field)
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EventDecodeError(f"field {field!r} must be a number")
    if isinstance(value, float) and not value.is_integer():
        raise EventDecodeError(f"field {field!r} must be a whole number of cents")
    return int(value)


def encode_event(event: Event) -> bytes:
    """Serialize an event to its JSON wire form."""
    return orjson.dumps(event.to_dict())


def decode_event(raw: str | bytes) -> Event:
    """Decode a wire message, dispatching on the `event` discriminator.

    Raises EventDecodeError for malformed JSON, an unknown discriminator or
    missing fields. Callers on the delivery path skip such messages.
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise EventDecodeError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise EventDecodeError("event payload must be a JSON object")
    kind = data.get("event")
    event_cls = _EVENT_CLASSES.get(kind) if isinstance(kind, str) else None
    if event_cls is None:
        raise EventDecodeError(f"unknown event kind {kind!r}")
    return event_cls.from_dict(data)
