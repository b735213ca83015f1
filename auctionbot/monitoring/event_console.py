"""Console logger for auction events."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

import structlog

from auctionbot.ledger.events import Event, EventType

if TYPE_CHECKING:
    from auctionbot.ledger.bus import EventBus


class EventConsoleLogger:
    """Emit selected auction events to stdout via structlog."""

    def __init__(self, include: Iterable[EventType] | None = None) -> None:
        self.include = set(include or EventType)
        self.log = structlog.get_logger("auction_events")

    def handle_event(self, event: Event) -> None:
        if event.event_type not in self.include:
            return
        payload = event.to_dict()
        payload.pop("event", None)
        self.log.info(
            "auction_event",
            event_type=event.event_type.value,
            payload=payload,
        )

    async def run(self, bus: EventBus) -> None:
        """Log events from a fresh subscription until it is closed."""
        async with await bus.subscribe() as subscription:
            async for event in subscription:
                self.handle_event(event)
