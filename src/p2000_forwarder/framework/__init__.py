"""
Framework for the P2000 forwarder's reference data, filtering and configuration.

- CapcodeLookup: Static capcode → agency/region/station/function reference table
- SubscriptionFilter: Exact-match capcode allow-list (or forward everything)
- ConfigLoader: Reads forwarder configuration from YAML + environment
- Lineage: Deterministic per-message correlation IDs for log tracing

Everything here is built once at startup and read-only afterwards, so it is
safe to share between the feed task and concurrent delivery calls.
"""

from p2000_forwarder.framework.capcode_lookup import (
    CapcodeFileError,
    CapcodeLookup,
    CapcodeLookupError,
    CapcodeParseError,
    CapcodeRecord,
    normalize_capcode,
)
from p2000_forwarder.framework.config_loader import (
    ConfigError,
    ConfigLoader,
    ForwarderConfig,
    NtfyConfig,
    ServerConfig,
)
from p2000_forwarder.framework.lineage import generate_correlation_id, get_forwarder_version
from p2000_forwarder.framework.subscription_filter import SubscriptionFilter

__all__ = [
    "CapcodeFileError",
    "CapcodeLookup",
    "CapcodeLookupError",
    "CapcodeParseError",
    "CapcodeRecord",
    "ConfigError",
    "ConfigLoader",
    "ForwarderConfig",
    "NtfyConfig",
    "ServerConfig",
    "SubscriptionFilter",
    "generate_correlation_id",
    "get_forwarder_version",
    "normalize_capcode",
]
