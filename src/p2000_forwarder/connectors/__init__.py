"""Upstream feed connectors and the decoded P2000 message types."""

from p2000_forwarder.connectors.base_connector import BaseConnector, MessageHandler
from p2000_forwarder.connectors.feed_connection import ConnectionPhase, ConnectionState, FeedConnection
from p2000_forwarder.connectors.models import Message, MessageDecodeError, Signal

__all__ = [
    "BaseConnector",
    "ConnectionPhase",
    "ConnectionState",
    "FeedConnection",
    "Message",
    "MessageDecodeError",
    "MessageHandler",
    "Signal",
]
