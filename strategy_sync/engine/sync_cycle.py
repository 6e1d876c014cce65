"""Stats sync cycle.

This is what the APScheduler job and the API call on each refresh. It
orchestrates: store fetch -> dedup -> aggregation -> change detection ->
reconciler submission -> auto opt-out.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from strategy_sync.config import settings
from strategy_sync.engine.aggregator import aggregate_stats
from strategy_sync.engine.auto_opt_out import (
    AutoDecisionEngine,
    OptOutOutcome,
    opt_in_patch,
    opt_out_patch,
)
from strategy_sync.engine.change_detector import detect_change
from strategy_sync.engine.dedup import deduplicate_trades
from strategy_sync.engine.reconciler import ReconciliationScheduler
from strategy_sync.models.strategy import Strategy
from strategy_sync.models.trade import Trade
from strategy_sync.schemas.stats import DerivedStats, StrategyStatsRead
from strategy_sync.services.errors import AutoOptOutError
from strategy_sync.services.store import BulkUpdateResult, EntityStore
from strategy_sync.services.sync_events import record_sync_event
from strategy_sync.utils.constants import STRATEGY_ENTITY, TRADE_ENTITY

logger = logging.getLogger(__name__)
_service_instance: "StatsSyncService | None" = None


@dataclass
class CycleReport:
    raw_trades: int = 0
    closed_trades: int = 0
    strategies: int = 0
    dirty: list[int] = field(default_factory=list)
    withdrawn: list[int] = field(default_factory=list)
    opt_out: OptOutOutcome | None = None
    skipped: bool = False


class StatsSyncService:
    """Keeps persisted strategy stats in line with the trade history."""

    def __init__(
        self,
        store: EntityStore,
        scheduler: ReconciliationScheduler | None = None,
        decision_engine: AutoDecisionEngine | None = None,
        auto_opt_out_enabled: bool | None = None,
        log_bind=None,
        refresh_debounce_s: float | None = None,
    ):
        self.store = store
        self.log_bind = log_bind
        self.scheduler = scheduler or ReconciliationScheduler(store, on_lost=self._record_lost)
        self.decision_engine = decision_engine or AutoDecisionEngine(store)
        self.auto_opt_out_enabled = (
            settings.auto_opt_out_enabled if auto_opt_out_enabled is None else auto_opt_out_enabled
        )
        self.refresh_debounce_s = (
            settings.trade_refresh_debounce_s if refresh_debounce_s is None else refresh_debounce_s
        )

        self.strategies: list[Strategy] = []
        self.trades: list[Trade] = []
        self.stats: dict[int, DerivedStats] = {}
        self._refresh_lock = asyncio.Lock()
        self._refresh_task: asyncio.Task | None = None

    # -- refresh --------------------------------------------------------------

    async def refresh(self, run_auto_opt_out: bool = True) -> CycleReport:
        """Recompute stats from the store, skipping if a refresh is in flight.

        Raises AutoOptOutError when the opt-out bulk call fails; the stats
        part of the cycle has already been queued by then.
        """
        if self._refresh_lock.locked():
            logger.warning("Skipping overlapping refresh")
            return CycleReport(skipped=True)

        async with self._refresh_lock:
            strategies = await self.store.list(STRATEGY_ENTITY, sort="-created_at")
            raw_trades = await self.store.list(TRADE_ENTITY, sort="-exit_timestamp")

            trades = deduplicate_trades(raw_trades)
            stats = aggregate_stats(trades, strategies)
            report = CycleReport(
                raw_trades=len(raw_trades),
                closed_trades=len(trades),
                strategies=len(strategies),
            )
            self._propose(strategies, stats, report)

            self.strategies = strategies
            self.trades = trades
            self.stats = stats

            if report.dirty:
                logger.info(f"Refresh queued {len(report.dirty)} strategy stat updates")

            if run_auto_opt_out and self.auto_opt_out_enabled:
                report.opt_out = await self._run_auto_opt_out()
            return report

    def _propose(self, strategies: list[Strategy], stats: dict[int, DerivedStats], report: CycleReport):
        for strategy in strategies:
            target = stats[strategy.id]
            self.scheduler.seed_persisted(strategy.id, DerivedStats.from_strategy(strategy))

            if not self.scheduler.in_flight(strategy.id):
                stored = detect_change(self.scheduler.last_persisted(strategy.id), target)
                if not stored.dirty:
                    # Pending value went stale: stats are back to what is stored
                    if self.scheduler.withdraw(strategy.id):
                        report.withdrawn.append(strategy.id)
                    continue

            # Compare with the newest accepted value, which may still be in flight
            change = detect_change(self.scheduler.baseline(strategy.id), target)
            if change.dirty:
                self.scheduler.submit_dirty(strategy.id, change.target)
                report.dirty.append(strategy.id)

    def notify_trades_changed(self):
        """Schedule a refresh once trade writes have settled."""
        if self._refresh_task is not None:
            self._refresh_task.cancel()
        self._refresh_task = asyncio.create_task(self._delayed_refresh())

    async def _delayed_refresh(self):
        await asyncio.sleep(self.refresh_debounce_s)
        self._refresh_task = None
        try:
            await self.refresh()
        except Exception as e:
            logger.error(f"Background refresh failed: {e}")
            record_sync_event(self.log_bind, "refresh", "error", str(e))

    # -- opt-out --------------------------------------------------------------

    async def _run_auto_opt_out(self) -> OptOutOutcome:
        try:
            outcome = await self.decision_engine.evaluate(
                self.strategies, self.stats, self.auto_opt_out_enabled
            )
        except AutoOptOutError as e:
            record_sync_event(self.log_bind, "auto_opt_out", "error", str(e))
            raise

        if outcome.status == "opted_out":
            self._mark_opted_out(outcome.succeeded, True)
            record_sync_event(
                self.log_bind,
                "auto_opt_out",
                "warning" if outcome.failed else "success",
                f"Auto opted out {len(outcome.succeeded)} strategies",
                details={"succeeded": outcome.succeeded, "failed": outcome.failed},
            )
        return outcome

    async def run_auto_opt_out(self) -> OptOutOutcome:
        """Explicit evaluation against the latest in-memory stats."""
        if not self.stats:
            await self.refresh(run_auto_opt_out=False)
        return await self._run_auto_opt_out()

    async def set_auto_opt_out(self, enabled: bool) -> OptOutOutcome | None:
        """Toggle the policy; enabling runs an immediate evaluation."""
        self.auto_opt_out_enabled = enabled
        logger.info(f"Auto opt-out {'enabled' if enabled else 'disabled'}")
        if not enabled:
            return None
        return await self.run_auto_opt_out()

    async def opt_out(self, strategy_ids: list[int]) -> BulkUpdateResult:
        return await self._bulk_state_change("opt_out", strategy_ids, opt_out_patch())

    async def opt_in(self, strategy_ids: list[int]) -> BulkUpdateResult:
        return await self._bulk_state_change("opt_in", strategy_ids, opt_in_patch())

    async def _bulk_state_change(self, action: str, strategy_ids: list[int], patch: dict) -> BulkUpdateResult:
        result = await self.store.bulk_update(STRATEGY_ENTITY, strategy_ids, patch)
        record_sync_event(
            self.log_bind,
            action,
            "warning" if result.failed else "success",
            f"{action}: {len(result.succeeded)} updated, {len(result.failed)} failed",
            details={"succeeded": result.succeeded, "failed": result.failed},
        )
        self._mark_opted_out(result.succeeded, patch["opted_out_globally"])
        return result

    def _mark_opted_out(self, strategy_ids: list[int], value: bool):
        ids = set(strategy_ids)
        for strategy in self.strategies:
            if strategy.id in ids:
                strategy.opted_out_globally = value

    # -- reads / lifecycle ----------------------------------------------------

    def latest_stats(self) -> list[StrategyStatsRead]:
        return [
            StrategyStatsRead(
                id=s.id,
                combination_name=s.combination_name,
                coin=s.coin,
                timeframe=s.timeframe,
                opted_out_globally=s.opted_out_globally,
                live=self.stats.get(s.id, DerivedStats()),
                backtest_trade_count=s.occurrences or 0,
                backtest_success_rate=s.success_rate or 0.0,
                backtest_profit_factor=s.profit_factor or 0.0,
                backtest_avg_price_move=s.avg_price_move or 0.0,
            )
            for s in self.strategies
        ]

    def status(self) -> dict:
        return {
            "strategies": len(self.strategies),
            "closed_trades": len(self.trades),
            "auto_opt_out_enabled": self.auto_opt_out_enabled,
            "auto_opt_out_cooldown_s": round(self.decision_engine.cooldown_remaining(), 1),
            "reconciler": self.scheduler.status(),
        }

    async def shutdown(self):
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None
        await self.scheduler.shutdown()

    def _record_lost(self, strategy_id: int, stats: DerivedStats, error: BaseException):
        record_sync_event(
            self.log_bind,
            "stats_update",
            "lost",
            f"Stats update dropped: {error}",
            strategy_id=strategy_id,
            details=stats.model_dump(mode="json"),
        )


def init_service(store: EntityStore | None = None, log_bind=None) -> StatsSyncService:
    """Initialize and return the service singleton."""
    global _service_instance
    if store is None:
        from strategy_sync.database import engine
        from strategy_sync.services.store import SQLEntityStore

        store = SQLEntityStore(engine)
        log_bind = log_bind or engine
    _service_instance = StatsSyncService(store, log_bind=log_bind)
    return _service_instance


def get_service() -> StatsSyncService | None:
    """Get the service singleton, or None if not initialized."""
    return _service_instance


async def run_sync_cycle():
    """Periodic job entry point."""
    service = get_service()
    if service is None:
        logger.warning("Sync cycle: service not initialized, skipping")
        return
    try:
        report = await service.refresh()
    except Exception as e:
        logger.error(f"Sync cycle failed: {e}")
        record_sync_event(service.log_bind, "refresh", "error", str(e))
        return
    if not report.skipped:
        logger.info(
            f"Sync cycle: {report.closed_trades}/{report.raw_trades} trades kept, "
            f"{len(report.dirty)} dirty of {report.strategies} strategies"
        )
