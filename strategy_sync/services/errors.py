"""Structured error kinds for entity store calls.

The reconciler's retry policy depends only on the kind: rate-limit and
network failures are requeued, everything else is dropped as a lost update.
"""

from enum import Enum

from strategy_sync.utils.constants import NETWORK_MARKERS, RATE_LIMIT_MARKERS


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


TRANSIENT_KINDS = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.NETWORK})


class StoreError(Exception):
    """Entity store failure with a known kind."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind

    def __repr__(self) -> str:
        return f"StoreError({self.kind.value}, {str(self)!r})"


class AutoOptOutError(Exception):
    """The bulk opt-out call failed; nothing is retried automatically."""


def classify_error(exc: BaseException) -> ErrorKind:
    """Return the error kind, inspecting the message for untyped exceptions."""
    if isinstance(exc, StoreError):
        return exc.kind
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return ErrorKind.NETWORK

    message = str(exc).lower()
    if any(marker in message for marker in RATE_LIMIT_MARKERS):
        return ErrorKind.RATE_LIMITED
    if any(marker in message for marker in NETWORK_MARKERS):
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


def is_transient(exc: BaseException) -> bool:
    return classify_error(exc) in TRANSIENT_KINDS
