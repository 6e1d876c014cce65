"""Decide whether freshly computed stats need to be written."""

from dataclasses import dataclass

from strategy_sync.config import settings
from strategy_sync.schemas.stats import DerivedStats

FLOAT_FIELDS = ("success_rate", "avg_pnl_percent", "profit_factor")
NULLABLE_FIELDS = ("avg_conviction_score", "latest_trade_timestamp")


@dataclass(frozen=True)
class ChangeResult:
    dirty: bool
    target: DerivedStats | None = None  # full record to write when dirty
    changed_fields: tuple[str, ...] = ()


def changed_fields(
    current: DerivedStats | None,
    target: DerivedStats,
    tolerance: float | None = None,
) -> tuple[str, ...]:
    """Names of persisted fields that differ between the two snapshots.

    The tolerance applies to ``FLOAT_FIELDS`` only. ``avg_conviction_score``
    is compared exactly, like the timestamp.
    """
    if current is None:
        current = DerivedStats()
    tolerance = settings.stats_tolerance if tolerance is None else tolerance

    changed = []
    if current.trade_count != target.trade_count:
        changed.append("trade_count")
    for name in FLOAT_FIELDS:
        if abs(getattr(current, name) - getattr(target, name)) > tolerance:
            changed.append(name)
    for name in NULLABLE_FIELDS:
        # None vs None is equal; value vs None is a change
        if getattr(current, name) != getattr(target, name):
            changed.append(name)
    return tuple(changed)


def detect_change(
    current: DerivedStats | None,
    target: DerivedStats,
    tolerance: float | None = None,
) -> ChangeResult:
    fields = changed_fields(current, target, tolerance)
    if not fields:
        return ChangeResult(dirty=False)
    return ChangeResult(dirty=True, target=target, changed_fields=fields)
