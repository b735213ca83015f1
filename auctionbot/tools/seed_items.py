"""CLI to load auction items from a YAML file into the store.

Usage:
    python -m auctionbot.tools.seed_items items.yaml --config config.yaml

The file holds a list of items (or a mapping with an `items` list) using the
stored field names: id, title, description, images, startBid, donator,
country.
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Any

import yaml

from auctionbot.config.settings import load_settings
from auctionbot.ledger import AuctionLedger, Item, create_redis


def load_items(path: str | Path) -> list[Item]:
    """Parse items from YAML; raises ValueError on an unusable document."""
    with open(path) as f:
        data: Any = yaml.safe_load(f) or []
    if isinstance(data, dict):
        data = data.get("items", [])
    if not isinstance(data, list):
        raise ValueError("expected a list of items")
    items = [Item.model_validate(entry) for entry in data]
    missing = [index for index, item in enumerate(items) if not item.id]
    if missing:
        raise ValueError(f"items at positions {missing} have no id")
    return items


async def seed_items(ledger: AuctionLedger, items: list[Item]) -> int:
    for item in items:
        await ledger.put_item(item)
    return len(items)


async def _run(items_path: str, config_path: str | None) -> int:
    settings = load_settings(config_path)
    client = create_redis(settings.redis.url)
    try:
        ledger = AuctionLedger(client)
        return await seed_items(ledger, load_items(items_path))
    finally:
        await client.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Load auction items into the store.")
    parser.add_argument("items", help="Path to a YAML file of items")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    args = parser.parse_args()

    count = asyncio.run(_run(args.items, args.config))
    print(f"Stored {count} item(s).")


if __name__ == "__main__":
    main()
