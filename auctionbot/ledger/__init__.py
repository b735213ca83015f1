"""Auction ledger and event distribution."""

from auctionbot.ledger.errors import (
    AuctionError,
    BidTooLowError,
    InvalidBidError,
    ItemStateError,
    NoCurrentItemError,
    NotFoundError,
    StoreError,
)
from auctionbot.ledger.models import Bid, Item
from auctionbot.ledger.events import (
    BidEvent,
    CloseItemEvent,
    DeleteBidEvent,
    Event,
    EventType,
    OpenItemEvent,
)
from auctionbot.ledger.store import AuctionLedger, create_redis
from auctionbot.ledger.bus import EventBus, Subscription

__all__ = [
    "AuctionError",
    "AuctionLedger",
    "Bid",
    "BidEvent",
    "BidTooLowError",
    "CloseItemEvent",
    "DeleteBidEvent",
    "Event",
    "EventBus",
    "EventType",
    "InvalidBidError",
    "Item",
    "ItemStateError",
    "NoCurrentItemError",
    "NotFoundError",
    "OpenItemEvent",
    "StoreError",
    "Subscription",
    "create_redis",
]
