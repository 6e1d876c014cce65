"""Tests for stats change detection."""

from datetime import timedelta

from strategy_sync.engine.change_detector import changed_fields, detect_change
from strategy_sync.schemas.stats import DerivedStats
from tests.helpers import BASE_TIME


def _stats(**overrides) -> DerivedStats:
    fields = dict(
        trade_count=12,
        success_rate=58.333333,
        avg_pnl_percent=0.4211,
        profit_factor=1.37,
        avg_conviction_score=61.5,
        total_pnl=88.0,
        latest_trade_timestamp=BASE_TIME,
    )
    fields.update(overrides)
    return DerivedStats(**fields)


def test_identical_stats_are_clean():
    stats = _stats()
    result = detect_change(stats, stats)
    assert result.dirty is False
    assert result.target is None


def test_float_noise_below_tolerance_is_clean():
    current = _stats()
    target = _stats(success_rate=58.3334, avg_pnl_percent=0.42159, profit_factor=1.3705)
    assert detect_change(current, target).dirty is False


def test_float_change_beyond_tolerance_is_dirty():
    result = detect_change(_stats(), _stats(profit_factor=1.372))
    assert result.dirty is True
    assert result.changed_fields == ("profit_factor",)


def test_trade_count_compares_exactly():
    assert changed_fields(_stats(), _stats(trade_count=13)) == ("trade_count",)


def test_nullable_fields():
    assert detect_change(_stats(avg_conviction_score=None), _stats(avg_conviction_score=None)).dirty is False
    assert detect_change(_stats(avg_conviction_score=None), _stats()).dirty is True
    assert detect_change(_stats(), _stats(latest_trade_timestamp=None)).dirty is True
    later = BASE_TIME + timedelta(seconds=1)
    assert changed_fields(_stats(), _stats(latest_trade_timestamp=later)) == ("latest_trade_timestamp",)


def test_naive_stored_timestamp_matches_aware_computed():
    stored = _stats(latest_trade_timestamp=BASE_TIME.replace(tzinfo=None))
    assert detect_change(stored, _stats()).dirty is False


def test_total_pnl_is_not_a_persisted_field():
    assert detect_change(_stats(), _stats(total_pnl=-5.0)).dirty is False


def test_dirty_result_carries_full_target():
    target = _stats(trade_count=20, success_rate=10.0)
    result = detect_change(_stats(), target)
    assert result.target == target
    assert set(result.target.to_patch()) == {
        "real_trade_count",
        "real_success_rate",
        "real_avg_pnl_percent",
        "real_profit_factor",
        "real_avg_conviction_score",
        "latest_trade_timestamp",
    }


def test_unknown_baseline_compares_against_empty_stats():
    assert detect_change(None, DerivedStats()).dirty is False
    assert detect_change(None, _stats()).dirty is True


def test_custom_tolerance():
    assert detect_change(_stats(), _stats(success_rate=58.4), tolerance=0.1).dirty is False


def test_conviction_score_compares_exactly():
    current = _stats(avg_conviction_score=61.5)
    assert changed_fields(current, _stats(avg_conviction_score=61.5004)) == ("avg_conviction_score",)
