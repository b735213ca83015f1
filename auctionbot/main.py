"""Run the auction API and event console against a Redis store."""

from __future__ import annotations

import argparse
import asyncio

import redis.asyncio as redis
import structlog
import uvicorn

from auctionbot.api.server import create_app
from auctionbot.config.settings import Settings, create_default_config, load_settings
from auctionbot.ledger import AuctionLedger, EventBus, create_redis
from auctionbot.monitoring import EventConsoleLogger, Metrics, configure_logging

log = structlog.get_logger(__name__)


def build_components(
    client: redis.Redis,
    settings: Settings,
    metrics: Metrics | None = None,
) -> tuple[AuctionLedger, EventBus]:
    ledger = AuctionLedger(
        client,
        min_increment_cents=settings.auction.min_increment_cents,
        max_transaction_retries=settings.auction.max_transaction_retries,
        metrics=metrics,
    )
    bus = EventBus(
        client,
        queue_size=settings.auction.subscriber_queue_size,
        subscribe_timeout_sec=settings.auction.subscribe_timeout_sec,
        poll_interval_sec=settings.auction.poll_interval_sec,
        metrics=metrics,
    )
    return ledger, bus


async def main_async(settings: Settings) -> None:
    configure_logging(settings.monitoring)

    metrics = Metrics()
    if settings.monitoring.metrics_port:
        metrics.start_server(settings.monitoring.metrics_port)
        log.info("metrics_server_started", port=settings.monitoring.metrics_port)

    client = create_redis(settings.redis.url)
    ledger, bus = build_components(client, settings, metrics)

    console_task = asyncio.create_task(EventConsoleLogger().run(bus))
    config = uvicorn.Config(
        create_app(ledger, bus, settings.api),
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.monitoring.log_level.lower(),
    )
    server = uvicorn.Server(config)
    log.info("api_server_starting", host=settings.api.host, port=settings.api.port)
    try:
        await server.serve()
    finally:
        await bus.close_all()
        console_task.cancel()
        try:
            await console_task
        except asyncio.CancelledError:
            pass
        except Exception:
            log.exception("event_console_failed")
        await client.aclose()
        log.info("shutdown_complete")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the live auction API.")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument(
        "--init-config",
        metavar="PATH",
        default=None,
        help="Write a default config file to PATH and exit",
    )
    args = parser.parse_args()

    if args.init_config:
        create_default_config(args.init_config)
        print(f"Wrote default config to {args.init_config}")
        return

    asyncio.run(main_async(load_settings(args.config)))


if __name__ == "__main__":
    main()
