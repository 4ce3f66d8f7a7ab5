"""Outbound side of the forwarder: ntfy delivery, metrics, health endpoint, orchestration."""
