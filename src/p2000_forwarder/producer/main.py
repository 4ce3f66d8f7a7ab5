"""
P2000 Forwarder — process entry point.

Loads configuration, then streams P2000 messages from the public WebSocket
feed to ntfy until SIGTERM / SIGINT.

Environment variables:
    CONFIG_PATH       YAML config file (default: config.yaml)
    LOG_LEVEL         Logging level (default: INFO)
    FORWARD_ALL       Forward every message, ignoring the capcode list
    NTFY_SERVER       ntfy base URL
    NTFY_TOPIC        ntfy topic
    NTFY_TOKEN        Bearer token
    NTFY_USERNAME     Basic auth username
    NTFY_PASSWORD     Basic auth password (takes precedence over NTFY_TOKEN)
    NTFY_PRIORITY     Notification priority 1-5 (default: 3)
    SERVER_PORT       Health/metrics port (default: 8080)
    CAPCODE_CSV_PATH  Capcode reference table (default: capcodelijst.csv)

Shutdown:
    SIGTERM / SIGINT  → graceful shutdown: closes the WebSocket and HTTP clients
"""

import asyncio
import logging
import os
import signal
import sys

from p2000_forwarder.framework.config_loader import DEFAULT_CONFIG_PATH, ConfigError, ConfigLoader
from p2000_forwarder.producer.forwarder import Forwarder

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stdout,
    )


def main() -> None:
    """Start the forwarder and run until SIGTERM/SIGINT."""
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    config_path = os.getenv("CONFIG_PATH", DEFAULT_CONFIG_PATH)
    try:
        config = ConfigLoader(config_path).load()
    except ConfigError as exc:
        logger.error("Failed to load configuration: %s", exc)
        sys.exit(1)
    logging.getLogger().setLevel(getattr(logging, config.log_level, logging.INFO))

    forwarder = Forwarder(config)
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _handle_signal(sig: signal.Signals) -> None:
        logger.info("Received %s, initiating graceful shutdown", sig.name)
        forwarder.shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle_signal, sig)

    try:
        logger.info("P2000 forwarder starting")
        loop.run_until_complete(forwarder.run())
    except Exception as exc:
        logger.exception("Forwarder exited with error: %s", exc)
        sys.exit(1)
    finally:
        loop.close()
        logger.info("Forwarder process stopped")


if __name__ == "__main__":
    main()
