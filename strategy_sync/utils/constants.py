"""Shared constants: entity names and transient-error markers."""

TRADE_ENTITY = "Trade"
STRATEGY_ENTITY = "Strategy"

# Substrings that mark an untyped exception as transient.
RATE_LIMIT_MARKERS = ("429", "rate limit", "too many requests")
NETWORK_MARKERS = ("network error", "failed to fetch", "timeout", "connection reset")
