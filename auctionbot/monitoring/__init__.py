"""Monitoring utilities."""

from auctionbot.monitoring.logging import configure_logging
from auctionbot.monitoring.metrics import Metrics
from auctionbot.monitoring.event_console import EventConsoleLogger

__all__ = [
    "configure_logging",
    "Metrics",
    "EventConsoleLogger",
]
