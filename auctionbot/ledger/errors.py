"""Auction error taxonomy."""

from __future__ import annotations


class AuctionError(Exception):
    """Base class for auction failures surfaced to callers."""


class NotFoundError(AuctionError):
    """An item or bid does not exist."""


class NoCurrentItemError(NotFoundError):
    """No item is currently open for bidding."""

    def __init__(self, message: str = "no item is currently open") -> None:
        super().__init__(message)


class ItemStateError(AuctionError):
    """The item is already in the requested state."""


class InvalidBidError(AuctionError):
    """The bid amount is not a valid number of cents."""


class BidTooLowError(AuctionError):
    """The bid does not beat the previous high bid by the minimum increment."""

    def __init__(self, minimum_cents: int, previous_cents: int, increment_cents: int = 100) -> None:
        self.minimum_cents = minimum_cents
        self.previous_cents = previous_cents
        super().__init__(
            f"you must bid at least {format_cents(increment_cents)} more than the previous "
            f"high bid of {format_cents(previous_cents)}"
        )


class StoreError(AuctionError):
    """The backing store failed to execute a command."""


def format_cents(cents: int) -> str:
    """Render cents as a dollar amount, e.g. 1050 -> "$10.50"."""
    sign = "-" if cents < 0 else ""
    dollars, remainder = divmod(abs(cents), 100)
    return f"{sign}${dollars}.{remainder:02d}"
