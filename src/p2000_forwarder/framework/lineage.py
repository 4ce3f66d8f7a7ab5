"""
Message lineage for log correlation.

Every P2000 message that enters the forwarder gets a deterministic correlation
ID derived from its type, timestamp and capcodes. The same page received twice
(e.g. after a reconnect replays it) produces the same ID, so log lines for
receive, filter and delivery can be joined across restarts.
"""

import hashlib
import os
from typing import Iterable


def generate_correlation_id(kind: str, timestamp: int, capcodes: Iterable[str]) -> str:
    """
    Generate a deterministic correlation ID from message attributes.

    Args:
        kind: Message type (e.g., "FLEX")
        timestamp: Epoch seconds reported by the feed
        capcodes: Capcodes addressed by the message, in message order

    Returns:
        16-character hex string (sha256[:16])
    """
    combined = f"{kind}:{timestamp}:{','.join(capcodes)}"
    hash_obj = hashlib.sha256(combined.encode("utf-8"))
    return hash_obj.hexdigest()[:16]


def get_forwarder_version() -> str:
    """
    Get the forwarder build version from environment or default to 'dev'.

    In CI/CD, set FORWARDER_VERSION to the git tag or commit SHA.
    """
    return os.getenv("FORWARDER_VERSION", "dev")
