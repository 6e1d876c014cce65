"""Automatic opt-out of underperforming strategies.

Strategies with enough live trades and a profit factor below the threshold
are marked ``opted_out_globally`` in a single bulk call. Evaluations are
rate-limited and a failed bulk call is raised to the caller, never retried.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping

from strategy_sync.config import settings
from strategy_sync.models.strategy import Strategy
from strategy_sync.schemas.stats import DerivedStats
from strategy_sync.services.errors import AutoOptOutError
from strategy_sync.services.store import EntityStore
from strategy_sync.utils.constants import STRATEGY_ENTITY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptOutPolicy:
    min_trades: int = 20
    max_profit_factor: float = 1.0
    cooldown_s: float = 30.0

    @classmethod
    def from_settings(cls, s=None) -> "OptOutPolicy":
        s = s or settings
        return cls(
            min_trades=s.auto_opt_out_min_trades,
            max_profit_factor=s.auto_opt_out_max_profit_factor,
            cooldown_s=s.auto_opt_out_cooldown_s,
        )


@dataclass
class OptOutOutcome:
    status: str  # "rate_limited", "disabled", "no_candidates", "opted_out"
    selected: list[int] = field(default_factory=list)
    succeeded: list[int] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)
    retry_after_s: float = 0.0


def opt_out_patch(now: datetime | None = None) -> dict:
    return {
        "opted_out_globally": True,
        "opted_out_date": now or datetime.now(timezone.utc),
    }


def opt_in_patch() -> dict:
    return {"opted_out_globally": False, "opted_out_date": None}


def select_candidates(
    strategies: Iterable[Strategy],
    stats: Mapping[int, DerivedStats],
    policy: OptOutPolicy,
) -> list[Strategy]:
    """Strategies that meet the opt-out rule and are not already opted out."""
    selected = []
    for strategy in strategies:
        if strategy.opted_out_globally:
            continue
        current = stats.get(strategy.id)
        if current is None:
            continue
        if current.trade_count >= policy.min_trades and current.profit_factor < policy.max_profit_factor:
            selected.append(strategy)
    return selected


class AutoDecisionEngine:
    def __init__(
        self,
        store: EntityStore,
        policy: OptOutPolicy | None = None,
        entity: str = STRATEGY_ENTITY,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.policy = policy or OptOutPolicy.from_settings()
        self.entity = entity
        self._clock = clock
        self._last_completed: float | None = None

    def cooldown_remaining(self) -> float:
        if self._last_completed is None:
            return 0.0
        return max(0.0, self.policy.cooldown_s - (self._clock() - self._last_completed))

    async def evaluate(
        self,
        strategies: Iterable[Strategy],
        stats: Mapping[int, DerivedStats],
        enabled: bool,
    ) -> OptOutOutcome:
        """Opt out every qualifying strategy in one bulk call.

        ``stats`` must be the freshly computed values, not the persisted copy.
        Raises AutoOptOutError if the bulk call fails.
        """
        wait = self.cooldown_remaining()
        if wait > 0:
            logger.info(f"Auto opt-out skipped: last evaluation finished {self.policy.cooldown_s - wait:.0f}s ago")
            return OptOutOutcome(status="rate_limited", retry_after_s=wait)
        if not enabled:
            return OptOutOutcome(status="disabled")

        try:
            return await self._evaluate(strategies, stats)
        finally:
            self._last_completed = self._clock()

    async def _evaluate(self, strategies, stats) -> OptOutOutcome:
        candidates = select_candidates(strategies, stats, self.policy)
        if not candidates:
            logger.info("Auto opt-out: no new underperforming strategies")
            return OptOutOutcome(status="no_candidates")

        ids = [s.id for s in candidates]
        names = ", ".join(s.combination_name for s in candidates)
        logger.warning(f"Auto opt-out: opting out {len(ids)} strategies: {names}")

        try:
            result = await self.store.bulk_update(self.entity, ids, opt_out_patch())
        except Exception as e:
            logger.error(f"Auto opt-out failed for {len(ids)} strategies: {e}")
            raise AutoOptOutError(f"Failed to opt out {len(ids)} strategies: {e}") from e

        if result.failed:
            logger.error(f"Auto opt-out: {len(result.failed)} of {len(ids)} strategies not updated")
        return OptOutOutcome(
            status="opted_out",
            selected=ids,
            succeeded=list(result.succeeded),
            failed=list(result.failed),
        )
