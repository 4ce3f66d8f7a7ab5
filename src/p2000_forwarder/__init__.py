"""
P2000 Forwarder — relays emergency-dispatch pager messages to ntfy.

Subpackages:
- connectors: upstream WebSocket feed ingestion (FeedConnection, Message)
- framework: capcode reference data, subscription filter, config, lineage
- producer: ntfy delivery, metrics, health endpoint, orchestration, entry point
"""

__version__ = "0.1.0"
