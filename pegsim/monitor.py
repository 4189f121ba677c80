from __future__ import annotations
from typing import Literal, Optional, Tuple
import logging

from .config import StabilizerConfig
from .core import (
    BPS, InterventionRecord, Stance, SwapResult, UnknownPool,
    UintArithmeticError, mul_div, wad_to_float,
)
from .intervention import InterventionEngine
from .ledger import Journal
from .oracle import FairValueOracle
from .pool import TradingPool

logger = logging.getLogger(__name__)

MonitorState = Literal["idle", "intervening"]

def deviation_bps(pool_price: int, fair_value: int) -> Tuple[int, Stance]:
    """|price - fair| * 10000 / fair, and the side the pool sits on."""
    if fair_value == 0:
        raise UintArithmeticError("fair value is zero")
    if pool_price < fair_value:
        return mul_div(fair_value - pool_price, BPS, fair_value), "buy_support"
    return mul_div(pool_price - fair_value, BPS, fair_value), "sell_cap"

class StabilizationMonitor:
    """
    Post-trade observer closing the peg loop: pool swap -> deviation check ->
    engine intervention -> nested pool swap.

    ``state`` is a reentrancy guard, not persistent state. While an intervention is
    running the nested swap's callback is a no-op, which bounds correction to one
    intervention per originating swap. The guard is released in ``finally``.
    """
    def __init__(
        self,
        cfg: StabilizerConfig,
        pool: TradingPool,
        oracle: FairValueOracle,
        engine: InterventionEngine,
        journal: Journal,
    ) -> None:
        self.address = cfg.monitor_id
        self.threshold_bps = cfg.threshold_bps
        self.pool = pool
        self.oracle = oracle
        self.engine = engine
        self.journal = journal
        self.state: MonitorState = "idle"

    def _require_pool(self, pool_id: str) -> None:
        if pool_id != self.pool.pool_id:
            raise UnknownPool(pool_id)

    def _evaluate(self) -> Tuple[bool, Stance, int, int, int]:
        pool_price = self.pool.get_price()
        fair_value, _risk = self.oracle.read()
        dev, stance = deviation_bps(pool_price, fair_value)
        return dev > self.threshold_bps, stance, dev, pool_price, fair_value

    def check_stabilization(self, pool_id: str) -> Tuple[bool, Stance, int]:
        self._require_pool(pool_id)
        should_trigger, stance, dev, _, _ = self._evaluate()
        return should_trigger, stance, dev

    def on_swap(self, pool_id: str, result: SwapResult) -> None:
        if self.state == "intervening":
            return
        self._require_pool(pool_id)
        should_trigger, stance, dev, pool_price, fair_value = self._evaluate()
        if not should_trigger:
            return

        self.state = "intervening"
        try:
            with self.journal.atomic():
                self._intervene(stance, dev, pool_price, fair_value)
        except Exception as exc:
            # best effort: the originating swap must stand
            logger.warning(
                "intervention failed pool=%s stance=%s deviation_bps=%d: %s: %s",
                pool_id, stance, dev, type(exc).__name__, exc,
            )
            self.journal.emit(
                "INTERVENTION_FAILED",
                actor_id=self.address,
                pool_id=pool_id,
                meta={
                    "direction": stance,
                    "deviation_bps": dev,
                    "error": type(exc).__name__,
                    "reason": str(exc),
                    "trigger": result.to_dict(),
                },
            )
        finally:
            self.state = "idle"

    def stabilize(self, pool_id: str) -> Optional[InterventionRecord]:
        """
        Manual trigger without a preceding swap. Same decision as ``on_swap``, but
        engine failures propagate to the caller.
        """
        self._require_pool(pool_id)
        if self.state == "intervening":
            return None
        with self.journal.atomic():
            should_trigger, stance, dev, pool_price, fair_value = self._evaluate()
            if not should_trigger:
                return None
            self.state = "intervening"
            try:
                return self._intervene(stance, dev, pool_price, fair_value)
            finally:
                self.state = "idle"

    def _intervene(self, stance: Stance, dev: int, pool_price: int, fair_value: int) -> InterventionRecord:
        logger.info(
            "stabilizing pool=%s price=%.6f nav=%.6f deviation_bps=%d stance=%s",
            self.pool.pool_id, wad_to_float(pool_price), wad_to_float(fair_value), dev, stance,
        )
        return self.engine.intervene(self.address, stance, dev)
