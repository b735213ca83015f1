"""Tests for logging setup and the event console consumer."""

from __future__ import annotations

import asyncio
import logging
import logging.handlers
from pathlib import Path

import pytest
import structlog
from structlog.testing import capture_logs

from auctionbot.config.settings import MonitoringConfig
from auctionbot.ledger import AuctionLedger, CloseItemEvent, EventBus, EventType, Item, OpenItemEvent
from auctionbot.monitoring import EventConsoleLogger, configure_logging


def test_console_logger_filters_by_type() -> None:
    logger = EventConsoleLogger(include=[EventType.CLOSE_ITEM])
    with capture_logs() as logs:
        logger.handle_event(OpenItemEvent(item_id="itemA"))
        logger.handle_event(CloseItemEvent(item_id="itemA"))
    assert len(logs) == 1
    assert logs[0]["event"] == "auction_event"
    assert logs[0]["event_type"] == "closeItem"
    assert logs[0]["payload"] == {"itemId": "itemA"}


@pytest.mark.asyncio
async def test_console_logger_runs_until_bus_closes(bus: EventBus, ledger: AuctionLedger) -> None:
    await ledger.put_item(Item(id="itemA", title="Quilt"))
    console = EventConsoleLogger()
    with capture_logs() as logs:
        task = asyncio.create_task(console.run(bus))
        for _ in range(40):
            if bus.active:
                break
            await asyncio.sleep(0.05)
        await ledger.open_item("itemA")
        for _ in range(40):
            if any(entry["event"] == "auction_event" for entry in logs):
                break
            await asyncio.sleep(0.05)
        await bus.close_all()
        await asyncio.wait_for(task, 2.0)

    events = [entry for entry in logs if entry["event"] == "auction_event"]
    assert [entry["event_type"] for entry in events] == ["openItem"]


def test_configure_logging_writes_error_file(tmp_path: Path) -> None:
    try:
        configure_logging(MonitoringConfig(log_level="DEBUG", logs_path=str(tmp_path)))
        structlog.get_logger("test").error("store_request_failed", path="/api/total")
        for handler in logging.getLogger().handlers:
            handler.flush()
        written = (tmp_path / "errors.log").read_text()
        assert "store_request_failed" in written
        assert '"logger": "test"' in written
        assert logging.getLogger("uvicorn.access").level == logging.WARNING
    finally:
        structlog.reset_defaults()
        root = logging.getLogger()
        for handler in list(root.handlers):
            if isinstance(handler, logging.handlers.RotatingFileHandler):
                root.removeHandler(handler)
                handler.close()
