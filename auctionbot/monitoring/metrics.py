"""Prometheus metrics definitions."""

from __future__ import annotations

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, start_http_server


class Metrics:
    """Expose core auction metrics for monitoring."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or REGISTRY
        self.bids_accepted = Counter(
            "auction_bids_accepted", "Bids accepted", registry=self.registry
        )
        self.bids_rejected = Counter(
            "auction_bids_rejected",
            "Bids rejected by the increment rule",
            registry=self.registry,
        )
        self.transaction_retries = Counter(
            "auction_transaction_retries",
            "Optimistic transactions retried after a concurrent write",
            ["operation"],
            registry=self.registry,
        )
        self.subscriptions_active = Gauge(
            "auction_subscriptions_active", "Open event subscriptions", registry=self.registry
        )
        self.events_delivered = Counter(
            "auction_events_delivered",
            "Events queued for subscribers",
            ["event_type"],
            registry=self.registry,
        )
        self.events_dropped = Counter(
            "auction_events_dropped",
            "Published messages that failed to decode",
            registry=self.registry,
        )

    def start_server(self, port: int) -> None:
        start_http_server(port, registry=self.registry)
