"""Stored auction records.

Items and bids are persisted as JSON objects using the camelCase field names
the web front end reads; the Python attributes are snake_case aliases.
"""

from __future__ import annotations

from typing import Any

import orjson
from pydantic import BaseModel, Field


class Item(BaseModel):
    """An auctionable lot."""

    id: str = ""
    title: str = ""
    description: str = ""
    images: list[str] = Field(default_factory=list)
    start_bid_cents: int = Field(default=0, alias="startBid")
    closed: bool = False
    donator: str = ""
    country: str = ""

    model_config = {
        "populate_by_name": True,
    }

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    def to_json(self) -> bytes:
        return orjson.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Item":
        """Decode a stored item; raises on malformed JSON or fields."""
        return cls.model_validate(orjson.loads(raw))


class Bid(BaseModel):
    """A monetary offer against one item. Immutable once recorded."""

    bid_cents: int = Field(alias="bid", ge=0)
    bidder_id: str = Field(alias="bidder")
    bidder_display_name: str = Field(default="", alias="bidderDisplayName")
    id: str
    item_id: str = Field(alias="itemId")

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    def to_json(self) -> bytes:
        return orjson.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Bid":
        """Decode a stored bid; raises on malformed JSON or fields."""
        return cls.model_validate(orjson.loads(raw))
