"""HTTP API."""

from auctionbot.api.server import create_app

__all__ = ["create_app"]
