"""
Capcode subscription filter.

Decides whether a message is forwarded, based on an exact match between the
message's capcodes and the configured allow-list. Unlike CapcodeLookup, no
normalization is applied: "0101001" and "101001" are different subscriptions,
and matching is case- and whitespace-sensitive.
"""

import logging
from typing import Iterable, Sequence

logger = logging.getLogger(__name__)


class SubscriptionFilter:
    """
    Allow-list filter over message capcodes, or "forward everything".

    Usage:
        capcode_filter = SubscriptionFilter(forward_all=False, capcodes=["0101001"])
        capcode_filter.should_forward(message.capcodes)
    """

    def __init__(self, forward_all: bool, capcodes: Iterable[str] = ()) -> None:
        self._forward_all = forward_all
        self._allowed: frozenset[str] = frozenset(capcodes)

        if forward_all:
            logger.info("SubscriptionFilter initialized | forward_all=true (all messages forwarded)")
        else:
            logger.info("SubscriptionFilter initialized | capcodes=%d", len(self._allowed))

    @property
    def forward_all(self) -> bool:
        return self._forward_all

    def should_forward(self, capcodes: Sequence[str]) -> bool:
        """
        Return True if the message should be forwarded.

        With forward_all every message passes, even one without capcodes.
        Otherwise at least one capcode must be in the allow-list.
        """
        if self._forward_all:
            logger.debug("Forwarding message (forward_all) | capcodes=%s", list(capcodes))
            return True

        for capcode in capcodes:
            if capcode in self._allowed:
                logger.debug("Capcode match | matched_capcode=%s", capcode)
                return True

        logger.debug("No capcode match | capcodes=%s", list(capcodes))
        return False

    def count(self) -> int:
        """Number of distinct configured capcodes."""
        return len(self._allowed)
