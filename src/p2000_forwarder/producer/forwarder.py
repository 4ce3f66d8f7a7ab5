"""
Forwarder — wires the P2000 feed through the capcode filter into ntfy.

This is the orchestrator for the forwarder process:
1. Loads the capcode reference table (optional; runs without enrichment on failure)
2. Builds the SubscriptionFilter, NtfyDeliveryClient and ForwarderMetrics
3. Starts the health/metrics HTTP endpoint
4. Runs FeedConnection.run() alongside a task that mirrors connection status
   into the metrics gauge; the health endpoint reads the feed connection directly

Messages are handled on the feed's read loop, one at a time and in socket
order. A delivery failure is logged and counted; the message is not retried
beyond the delivery client's own attempts.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from p2000_forwarder.connectors.feed_connection import FEED_URL, FeedConnection
from p2000_forwarder.connectors.models import Message
from p2000_forwarder.framework.capcode_lookup import CapcodeLookup, CapcodeLookupError
from p2000_forwarder.framework.config_loader import ForwarderConfig
from p2000_forwarder.framework.lineage import generate_correlation_id
from p2000_forwarder.framework.subscription_filter import SubscriptionFilter
from p2000_forwarder.producer.health_server import HealthServer
from p2000_forwarder.producer.metrics import ForwarderMetrics
from p2000_forwarder.producer.ntfy_delivery import DeliveryError, NtfyDeliveryClient

logger = logging.getLogger(__name__)


class Forwarder:
    """
    Owns every pipeline component and runs them until shutdown() is called.

    Usage:
        forwarder = Forwarder(ConfigLoader().load())
        asyncio.run(forwarder.run())     # called from main.py
        forwarder.shutdown()             # called from signal handler
    """

    DELIVERY_TIMEOUT_SECONDS = 30.0

    def __init__(
        self,
        config: ForwarderConfig,
        feed_url: str = FEED_URL,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self.metrics = ForwarderMetrics()
        self.lookup = self.load_lookup(config.capcode_csv_path)
        self.filter = SubscriptionFilter(config.forward_all, config.capcodes)
        self.delivery = NtfyDeliveryClient(
            server=config.ntfy.server,
            topic=config.ntfy.topic,
            token=config.ntfy.token,
            username=config.ntfy.username,
            password=config.ntfy.password,
            lookup=self.lookup,
            priority=config.ntfy.priority,
            http_client=http_client,
        )
        self.feed = FeedConnection(handler=self.handle_message, url=feed_url)
        self.health_server = HealthServer(
            self.health_status,
            self.metrics.registry,
            port=config.server.port,
            health_path=config.server.health_path,
            metrics_path=config.server.metrics_path,
        )
    @staticmethod
    def load_lookup(path: str) -> Optional[CapcodeLookup]:
        """
        Load the capcode table, or return None to run without enrichment.

        A missing or unparsable file is not fatal: notifications then show bare
        capcodes and the default agency label.
        """
        if not path:
            logger.info("No capcode CSV configured, running without enrichment")
            return None
        try:
            return CapcodeLookup.load(path)
        except CapcodeLookupError as exc:
            logger.warning(
                "Failed to load capcode CSV, continuing without lookup | csv_path=%s | error=%s",
                path,
                exc,
            )
            return None

    async def run(self) -> None:
        """
        Main async entry point. Returns once the feed has stopped and every
        resource has been released.
        """
        logger.info(
            "Forwarder starting | ntfy_server=%s | ntfy_topic=%s | forward_all=%s | capcodes=%d",
            self.config.ntfy.server,
            self.config.ntfy.topic,
            self.config.forward_all,
            self.filter.count(),
        )
        loop = asyncio.get_running_loop()
        self.health_server.start()
        monitor = asyncio.create_task(self._monitor_connection_status())
        try:
            await self.feed.run()
        finally:
            monitor.cancel()
            await asyncio.wait({monitor})
            await self.feed.close()
            await self.delivery.aclose()
            # shutdown() blocks until the server thread's poll loop exits.
            await loop.run_in_executor(None, self.health_server.stop)
            logger.info("Forwarder stopped")

    def shutdown(self) -> None:
        """Signal the feed to stop; run() then releases the remaining resources."""
        logger.info("Forwarder shutdown initiated")
        self.feed.shutdown()

    async def handle_message(self, message: Message) -> None:
        """
        Filter one message and deliver it if it matches.

        Runs on the feed's read loop; bounded by DELIVERY_TIMEOUT_SECONDS.
        """
        self.metrics.record_message_received()
        correlation_id = generate_correlation_id(message.kind, message.timestamp, message.capcodes)

        if not self.filter.should_forward(message.capcodes):
            logger.debug("Message filtered out | correlation_id=%s", correlation_id)
            return
        self.metrics.record_message_filtered()

        started = time.monotonic()
        try:
            await self.delivery.send(message, timeout=self.DELIVERY_TIMEOUT_SECONDS)
        except DeliveryError as exc:
            logger.error(
                "Failed to send notification | correlation_id=%s | agency=%s | capcodes=%s | error=%s",
                correlation_id,
                message.agency,
                list(message.capcodes),
                exc,
            )
            self.metrics.record_notification_failed()
            return

        duration = time.monotonic() - started
        self.metrics.record_notification_sent(duration)
        logger.info(
            "Notification forwarded | correlation_id=%s | agency=%s | capcodes=%s | duration=%.3fs",
            correlation_id,
            message.agency,
            list(message.capcodes),
            duration,
        )

    def health_status(self) -> tuple[bool, str]:
        """(healthy, reason) for the health endpoint, read from the feed connection."""
        if not self.feed.is_connected:
            return False, "websocket disconnected"
        if not self.feed.health_check():
            return False, f"no messages received in {self.feed.health_window:.0f}s"
        return True, ""

    async def _monitor_connection_status(self) -> None:
        async for connected in self.feed.status_updates():
            self.metrics.set_websocket_connected(connected)
            if connected:
                logger.info("Feed connection established")
            else:
                logger.warning("Feed connection lost")
