"""Debounced, rate-limited persistence of derived strategy stats.

The scheduler owns the pending-update map and the last-known-persisted
cache. Other components only propose entries through ``submit_dirty``.

State machine for the whole pipeline:

    IDLE -> FLUSHING -> (IDLE | COOLDOWN) -> IDLE

A flush drains a snapshot of the pending map in small batches. Updates that
arrive during a flush land in a fresh map for the next pass; the values being
written stay visible through ``baseline`` until their write completes. Items
that fail with a rate-limit or network error are put back (a newer value for
the same strategy wins) and retried after the longer retry cooldown; any other
error drops the item as a lost update.

Only one flush ever runs at a time. All timers are a single cancellable task.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from strategy_sync.config import settings
from strategy_sync.schemas.stats import DerivedStats
from strategy_sync.services.errors import TRANSIENT_KINDS, classify_error
from strategy_sync.services.store import EntityStore
from strategy_sync.utils.constants import STRATEGY_ENTITY

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    FLUSHING = "flushing"
    COOLDOWN = "cooldown"


@dataclass(frozen=True)
class FlushPolicy:
    min_interval_s: float = 10.0
    retry_cooldown_s: float = 15.0
    debounce_s: float = 2.0
    item_delay_s: float = 0.5
    batch_delay_s: float = 2.0
    batch_size: int = 3

    @classmethod
    def from_settings(cls, s=None) -> "FlushPolicy":
        s = s or settings
        return cls(
            min_interval_s=s.flush_min_interval_s,
            retry_cooldown_s=s.flush_retry_cooldown_s,
            debounce_s=s.flush_debounce_s,
            item_delay_s=s.flush_item_delay_s,
            batch_delay_s=s.flush_batch_delay_s,
            batch_size=max(1, s.flush_batch_size),
        )


@dataclass
class FlushReport:
    written: list[int] = field(default_factory=list)
    requeued: list[int] = field(default_factory=list)
    lost: list[int] = field(default_factory=list)
    interrupted: list[int] = field(default_factory=list)  # put back on shutdown


LostUpdateHandler = Callable[[int, DerivedStats, BaseException], None]


class ReconciliationScheduler:
    """Coalescing write-behind queue for strategy stats."""

    def __init__(
        self,
        store: EntityStore,
        policy: FlushPolicy | None = None,
        entity: str = STRATEGY_ENTITY,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_lost: LostUpdateHandler | None = None,
    ):
        self.store = store
        self.policy = policy or FlushPolicy.from_settings()
        self.entity = entity
        self._clock = clock
        self._sleep = sleep
        self._on_lost = on_lost

        self._pending: dict[int, DerivedStats] = {}
        self._persisted: dict[int, DerivedStats] = {}
        self._in_flight: dict[int, DerivedStats] = {}
        self._state = SchedulerState.IDLE
        self._flush_lock = asyncio.Lock()
        self._timer: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._last_flush_started: float | None = None
        self._closed = False
        self.lost_count = 0

    # -- public API ---------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def pending(self) -> dict[int, DerivedStats]:
        return dict(self._pending)

    def last_persisted(self, strategy_id: int) -> DerivedStats | None:
        return self._persisted.get(strategy_id)

    def seed_persisted(self, strategy_id: int, stats: DerivedStats):
        """Remember the stored value for a strategy not seen before.

        Once a strategy is known, only successful writes update the cache.
        """
        self._persisted.setdefault(strategy_id, stats)

    def in_flight(self, strategy_id: int) -> bool:
        """True while the current flush still holds a value for the strategy."""
        return strategy_id in self._in_flight

    def baseline(self, strategy_id: int) -> DerivedStats | None:
        """Latest value accepted for the strategy: pending, then in flight, then persisted."""
        for source in (self._pending, self._in_flight, self._persisted):
            if strategy_id in source:
                return source[strategy_id]
        return None

    def submit_dirty(self, strategy_id: int, stats: DerivedStats):
        """Queue the latest stats for a strategy, replacing any pending value."""
        self._pending[strategy_id] = stats
        if self._closed:
            logger.warning(f"Scheduler is shut down; update for strategy {strategy_id} not scheduled")
            return
        if self._state is not SchedulerState.FLUSHING and self._timer is None:
            self._arm(self.policy.debounce_s)

    def withdraw(self, strategy_id: int) -> bool:
        """Drop a pending update that is no longer needed."""
        return self._pending.pop(strategy_id, None) is not None

    async def flush(self) -> FlushReport | None:
        """Run one flush pass now. Returns None if a flush is already running."""
        if self._flush_lock.locked():
            logger.warning("Skipping flush: previous flush is still in progress")
            return None
        async with self._flush_lock:
            return await self._flush_once()

    async def drain(self, max_passes: int = 10) -> list[FlushReport]:
        """Flush until nothing is pending, honouring the inter-flush interval."""
        self._cancel_timer()
        reports = []
        for _ in range(max_passes):
            if not self._pending or self._closed:
                break
            wait = self._cooldown_remaining()
            if wait > 0:
                await self._sleep(wait)
            report = await self.flush()
            if report is not None:
                reports.append(report)
                self._cancel_timer()
        return reports

    async def shutdown(self):
        """Stop scheduling; an in-flight flush finishes its current item first."""
        self._closed = True
        self._cancel_timer()
        async with self._flush_lock:
            self._state = SchedulerState.IDLE
        logger.info(f"Reconciliation scheduler stopped ({len(self._pending)} updates still pending)")

    def status(self) -> dict:
        return {
            "state": self._state.value,
            "pending": len(self._pending),
            "pending_ids": list(self._pending),
            "in_flight": len(self._in_flight),
            "timer_armed": self._timer is not None,
            "lost_updates": self.lost_count,
            "closed": self._closed,
        }

    # -- timers -------------------------------------------------------------

    def _cooldown_remaining(self) -> float:
        if self._last_flush_started is None:
            return 0.0
        elapsed = self._clock() - self._last_flush_started
        return max(0.0, self.policy.min_interval_s - elapsed)

    def _arm(self, delay: float):
        self._cancel_timer()
        task = asyncio.create_task(self._timer_fired(delay))
        self._timer = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _timer_fired(self, delay: float):
        await self._sleep(delay)
        self._timer = None
        if self._closed:
            return

        wait = self._cooldown_remaining()
        if wait > 0:
            logger.debug(f"Flush deferred {wait:.1f}s by minimum interval")
            self._arm(wait)
            return
        await self.flush()

    # -- flushing -----------------------------------------------------------

    async def _flush_once(self) -> FlushReport:
        report = FlushReport()
        if not self._pending:
            self._state = SchedulerState.IDLE
            return report

        self._state = SchedulerState.FLUSHING
        self._last_flush_started = self._clock()
        snapshot = list(self._pending.items())
        self._in_flight = dict(self._pending)
        self._pending = {}
        logger.info(f"Flushing {len(snapshot)} strategy stat updates")

        try:
            await self._write_batches(snapshot, report)
        finally:
            self._in_flight = {}
            self._after_flush(report)

        logger.info(
            f"Flush complete: {len(report.written)} written, {len(report.requeued)} requeued, "
            f"{len(report.lost)} lost"
        )
        return report

    async def _write_batches(self, snapshot: list[tuple[int, DerivedStats]], report: FlushReport):
        size = self.policy.batch_size
        for index, (strategy_id, stats) in enumerate(snapshot):
            # Shutdown is checked before and after each pacing delay
            if index and not self._closed:
                gap = self.policy.batch_delay_s if index % size == 0 else self.policy.item_delay_s
                await self._sleep(gap)
            if self._closed:
                self._put_back(snapshot[index:], report)
                return
            try:
                await self._write_one(strategy_id, stats, report)
            finally:
                self._in_flight.pop(strategy_id, None)

    async def _write_one(self, strategy_id: int, stats: DerivedStats, report: FlushReport):
        try:
            await self.store.update(self.entity, strategy_id, stats.to_patch())
        except Exception as e:
            kind = classify_error(e)
            if kind in TRANSIENT_KINDS:
                # A newer value queued during this flush takes precedence
                self._pending.setdefault(strategy_id, stats)
                report.requeued.append(strategy_id)
                logger.warning(f"Requeued stats for strategy {strategy_id} ({kind.value}): {e}")
                return
            report.lost.append(strategy_id)
            self.lost_count += 1
            logger.error(f"Lost stats update for strategy {strategy_id} ({kind.value}): {e}")
            if self._on_lost is not None:
                self._on_lost(strategy_id, stats, e)
            return

        self._persisted[strategy_id] = stats
        report.written.append(strategy_id)

    def _put_back(self, remaining: list[tuple[int, DerivedStats]], report: FlushReport):
        for strategy_id, stats in remaining:
            self._pending.setdefault(strategy_id, stats)
            report.interrupted.append(strategy_id)

    def _after_flush(self, report: FlushReport):
        if self._closed:
            self._state = SchedulerState.IDLE
            return
        if not self._pending:
            self._state = SchedulerState.IDLE
            return

        if report.requeued:
            self._state = SchedulerState.COOLDOWN
            delay = self.policy.retry_cooldown_s
        else:
            # Only fresh submissions arrived during the flush
            self._state = SchedulerState.IDLE
            delay = max(self.policy.debounce_s, self._cooldown_remaining())
        logger.debug(f"{len(self._pending)} updates pending; next flush in {delay:.1f}s")
        self._arm(delay)
