"""
Base connector abstraction for upstream feed integration.

Every feed connector inherits from BaseConnector and implements the standard
interface for:
1. Validating its setup before any network I/O
2. Decoding raw frames into Message objects
3. Health checks for operational monitoring
4. Graceful shutdown

Frame dispatch (decode, drop on failure, hand off to the handler) is shared
here so every connector treats malformed frames the same way.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from p2000_forwarder.connectors.models import Message, MessageDecodeError

logger = logging.getLogger(__name__)

# Handlers may be plain functions or coroutine functions. Either way they run
# on the connector's read loop, so a slow handler delays the next read.
MessageHandler = Callable[[Message], Optional[Awaitable[None]]]


class BaseConnector(ABC):
    """
    Abstract base class for feed connectors.

    Subclasses implement specific transports (FeedConnection for the P2000
    WebSocket feed).
    """

    def __init__(self, url: str, handler: Optional[MessageHandler] = None):
        """
        Initialize the connector.

        Args:
            url: Upstream endpoint the connector reads from
            handler: Callable invoked once per decoded Message, in frame order
        """
        self.url = url
        self.handler = handler

    @abstractmethod
    def connect(self) -> None:
        """
        Validate the connector setup. Performs no network I/O.

        Raises:
            ValueError: If the connector is misconfigured
        """
        pass

    @abstractmethod
    def decode(self, payload: str | bytes) -> Message:
        """
        Decode one raw frame into a Message.

        Raises:
            MessageDecodeError: If the frame is malformed
        """
        pass

    async def dispatch(self, payload: str | bytes) -> Optional[Message]:
        """
        Decode a frame and hand it to the registered handler.

        A malformed frame is logged and dropped; it never propagates to the
        read loop. Handler errors are logged for the same reason.

        Returns:
            The decoded Message, or None if the frame was dropped
        """
        try:
            message = self.decode(payload)
        except MessageDecodeError as exc:
            logger.error("Dropping undecodable frame | error=%s | raw_message=%r", exc, payload)
            return None

        logger.debug(
            "Received P2000 message | type=%s | agency=%s | capcodes=%s | message=%s",
            message.kind,
            message.agency,
            list(message.capcodes),
            message.message,
        )

        if self.handler is None:
            return message
        try:
            result = self.handler(message)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Message handler failed | capcodes=%s", list(message.capcodes))
        return message

    @abstractmethod
    def health_check(self) -> bool:
        """
        Check if the connector is healthy and receiving data.

        Returns:
            True if healthy, False otherwise
        """
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """
        Request a graceful stop.

        The running read loop notices the request and closes its socket.
        """
        pass
