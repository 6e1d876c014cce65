"""Test helpers for the strategy-sync test suite"""

from tests.helpers.store_stubs import (
    BASE_TIME,
    FakeClock,
    FakeEntityStore,
    iso,
    make_strategy,
    make_trade,
)

__all__ = [
    "BASE_TIME",
    "FakeClock",
    "FakeEntityStore",
    "iso",
    "make_strategy",
    "make_trade",
]
