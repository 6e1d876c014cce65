"""Tests for store error classification."""

import pytest

from strategy_sync.services.errors import ErrorKind, StoreError, classify_error, is_transient


@pytest.mark.parametrize(
    "exc, kind",
    [
        (StoreError(ErrorKind.REJECTED, "429 in a validation message"), ErrorKind.REJECTED),
        (StoreError(ErrorKind.RATE_LIMITED, "slow down"), ErrorKind.RATE_LIMITED),
        (RuntimeError("Request failed with status code 429"), ErrorKind.RATE_LIMITED),
        (RuntimeError("Rate limit exceeded"), ErrorKind.RATE_LIMITED),
        (RuntimeError("Network Error"), ErrorKind.NETWORK),
        (TypeError("Failed to fetch"), ErrorKind.NETWORK),
        (ConnectionResetError("peer reset"), ErrorKind.NETWORK),
        (TimeoutError(), ErrorKind.NETWORK),
        (ValueError("Object not found"), ErrorKind.UNKNOWN),
    ],
)
def test_classify_error(exc, kind):
    assert classify_error(exc) is kind


def test_only_rate_limit_and_network_are_transient():
    assert is_transient(StoreError(ErrorKind.RATE_LIMITED, ""))
    assert is_transient(StoreError(ErrorKind.NETWORK, ""))
    assert not is_transient(StoreError(ErrorKind.REJECTED, ""))
    assert not is_transient(KeyError("id"))
