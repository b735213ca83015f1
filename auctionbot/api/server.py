"""HTTP API for the auction web front end and moderators."""

from __future__ import annotations

import asyncio
import secrets
from collections.abc import AsyncIterator
from typing import Any

import orjson
import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from auctionbot import __version__
from auctionbot.config.settings import ApiConfig
from auctionbot.ledger import (
    AuctionError,
    AuctionLedger,
    BidTooLowError,
    EventBus,
    InvalidBidError,
    ItemStateError,
    NotFoundError,
    StoreError,
)
from auctionbot.ledger.events import Event

log = structlog.get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def event_frame(event: Event) -> str:
    """Render one event as an SSE `data:` frame."""
    payload = event.to_dict()
    payload.pop("event", None)
    data = orjson.dumps({"type": event.event_type.value, "event": payload}).decode()
    return f"data: {data}\n\n"


async def event_stream(bus: EventBus, ping_interval_sec: float) -> AsyncIterator[str]:
    """Yield SSE frames for a fresh subscription, pinging when idle."""
    subscription = await bus.subscribe()
    try:
        yield ": hello\n\n"
        while True:
            try:
                event = await asyncio.wait_for(subscription.get(), timeout=ping_interval_sec)
            except asyncio.TimeoutError:
                yield ": ping\n\n"
                continue
            if event is None:
                break
            yield event_frame(event)
    finally:
        await subscription.close()


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "error": message, **extra},
    )


def create_app(
    ledger: AuctionLedger,
    bus: EventBus,
    api_config: ApiConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = api_config or ApiConfig()

    async def check_password(password: str = Query(default="")) -> None:
        if not config.password:
            return
        if not secrets.compare_digest(password.encode(), config.password.encode()):
            raise HTTPException(status_code=401, detail="Unauthorized.")

    app = FastAPI(
        title="Auction API",
        description="Run a live charity auction",
        version=__version__,
        dependencies=[Depends(check_password)],
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(BidTooLowError)
    async def bid_too_low(request: Request, exc: BidTooLowError) -> JSONResponse:
        return _error(400, str(exc), minimumCents=exc.minimum_cents)

    @app.exception_handler(InvalidBidError)
    @app.exception_handler(ItemStateError)
    async def bad_request(request: Request, exc: AuctionError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(StoreError)
    async def store_failure(request: Request, exc: StoreError) -> JSONResponse:
        log.error("store_request_failed", path=request.url.path, error=str(exc))
        return _error(500, str(exc))

    @app.get("/api/items")
    async def get_items() -> dict[str, Any]:
        items = await ledger.get_items()
        return {"status": "ok", "items": [item.to_dict() for item in items]}

    @app.get("/api/items/{item_id}")
    async def get_item(item_id: str) -> dict[str, Any]:
        item = await ledger.get_item(item_id)
        return {"status": "ok", "item": item.to_dict()}

    @app.get("/api/items/{item_id}/bids")
    async def get_item_bids(item_id: str) -> dict[str, Any]:
        bids = await ledger.get_top_bids(item_id, 0)
        return {"status": "ok", "bids": [bid.to_dict() for bid in bids]}

    @app.delete("/api/items/{item_id}/bids/{bid_id}")
    async def delete_bid(item_id: str, bid_id: str) -> dict[str, Any]:
        await ledger.delete_bid(item_id, bid_id)
        return {"status": "ok"}

    @app.get("/api/currentItem")
    async def get_current_item() -> dict[str, Any]:
        item = await ledger.current_item()
        return {"status": "ok", "item": item.to_dict() if item else None}

    @app.post("/api/openItem")
    async def open_item(item_id: str = Query(default="", alias="itemId")) -> Any:
        if not item_id:
            return _error(400, "no item specified")
        await ledger.open_item(item_id)
        return {"status": "ok"}

    @app.post("/api/closeItem")
    async def close_item() -> dict[str, Any]:
        item_id = await ledger.close_item()
        return {"status": "ok", "itemId": item_id}

    @app.post("/api/bid")
    async def place_bid(
        amount_cents: int = Query(alias="amountCents", ge=0),
        bidder: str = Query(min_length=1),
        display_name: str = Query(default="", alias="displayName"),
    ) -> dict[str, Any]:
        bid = await ledger.bid(amount_cents, bidder, display_name or bidder)
        if bid is None:
            return {"status": "ok", "accepted": False, "reason": "no item is currently open"}
        return {"status": "ok", "accepted": True, "bid": bid.to_dict()}

    @app.get("/api/total")
    async def get_total() -> dict[str, Any]:
        return {"status": "ok", "totalCents": await ledger.total_raised_cents()}

    @app.get("/api/events")
    async def events() -> StreamingResponse:
        return StreamingResponse(
            event_stream(bus, config.ping_interval_sec),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return app
