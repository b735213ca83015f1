from __future__ import annotations

import fakeredis
import pytest
import pytest_asyncio
from prometheus_client import CollectorRegistry

from auctionbot.ledger import AuctionLedger, EventBus
from auctionbot.monitoring.metrics import Metrics


@pytest.fixture
def fake_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def metrics() -> Metrics:
    return Metrics(registry=CollectorRegistry())


@pytest_asyncio.fixture
async def redis_client(fake_server: fakeredis.FakeServer):
    client = fakeredis.FakeAsyncRedis(server=fake_server, decode_responses=True)
    try:
        yield client
    finally:
        await client.aclose()


@pytest_asyncio.fixture
async def ledger(redis_client, metrics: Metrics) -> AuctionLedger:
    return AuctionLedger(redis_client, metrics=metrics)


@pytest_asyncio.fixture
async def bus(redis_client, metrics: Metrics):
    event_bus = EventBus(
        redis_client,
        subscribe_timeout_sec=1.0,
        poll_interval_sec=0.05,
        metrics=metrics,
    )
    try:
        yield event_bus
    finally:
        await event_bus.close_all()

