"""
Prometheus metrics for the forwarder.

Metrics live on a per-instance CollectorRegistry rather than the global default
registry, so several Forwarders (or test cases) can coexist in one process.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram


class ForwarderMetrics:
    """Counters for the receive → filter → deliver pipeline and the feed connection gauge."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.messages_received = Counter(
            "p2000_messages_received_total",
            "Total number of P2000 messages received from the WebSocket feed",
            registry=self.registry,
        )
        self.messages_filtered = Counter(
            "p2000_messages_filtered_total",
            "Total number of P2000 messages that matched the capcode filter",
            registry=self.registry,
        )
        self.notifications_sent = Counter(
            "p2000_notifications_sent_total",
            "Total number of notifications successfully sent to ntfy",
            registry=self.registry,
        )
        self.notifications_failed = Counter(
            "p2000_notifications_failed_total",
            "Total number of notifications that failed to send",
            registry=self.registry,
        )
        self.notification_duration = Histogram(
            "p2000_notification_duration_seconds",
            "Duration of notification sending in seconds",
            registry=self.registry,
        )
        self.websocket_connected = Gauge(
            "p2000_websocket_connected",
            "WebSocket connection status (1 = connected, 0 = disconnected)",
            registry=self.registry,
        )

    def record_message_received(self) -> None:
        self.messages_received.inc()

    def record_message_filtered(self) -> None:
        self.messages_filtered.inc()

    def record_notification_sent(self, duration_seconds: float) -> None:
        self.notifications_sent.inc()
        self.notification_duration.observe(duration_seconds)

    def record_notification_failed(self) -> None:
        self.notifications_failed.inc()

    def set_websocket_connected(self, connected: bool) -> None:
        self.websocket_connected.set(1 if connected else 0)
