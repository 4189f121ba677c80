from __future__ import annotations
from typing import Dict, List, Optional, Tuple
import logging
import math
import numpy as np
import random

from .config import NAV_PRESETS, StabilizerConfig
from .core import BPS, StabilizerError, SwapDirection, to_units, wad_to_float
from .factory import StabilizerSystem, bootstrap, build_system
from .metrics import MetricsStore
from .monitor import deviation_bps

logger = logging.getLogger(__name__)

class SimulationEngine:
    """
    Drives one wired stabilizer tick by tick: the oracle follows a NAV path, random
    traders hit the pool, and the monitor reacts inside each swap.
    """
    def __init__(self, cfg: StabilizerConfig, seed: int = 1) -> None:
        self.cfg = cfg
        self.rng = random.Random(seed)
        np.random.seed(seed)

        self.tick: int = 0
        self.metrics = MetricsStore()
        self.system: StabilizerSystem = bootstrap(build_system(cfg))
        self.traders: List[str] = []

        self._swaps_tick: int = 0
        self._swap_failures_tick: int = 0
        self._volume_a_tick: int = 0
        self._volume_b_tick: int = 0
        self._preset_index: Optional[int] = None
        self._last_metrics_tick: int = -1

        self._bootstrap()

    def _bootstrap(self) -> None:
        cfg = self.cfg
        for idx in range(cfg.trader_count):
            trader_id = f"trader_{idx + 1:04d}"
            self.system.tokens.mint(trader_id, cfg.asset_a, self.system.units_a(cfg.trader_initial_a))
            self.system.tokens.mint(trader_id, cfg.asset_b, self.system.units_b(cfg.trader_initial_b))
            self.traders.append(trader_id)
        self.snapshot_metrics()

    # -----------------------------
    # NAV path
    # -----------------------------
    def _update_nav(self) -> None:
        cfg = self.cfg
        oracle = self.system.oracle
        updater = oracle.updater
        if cfg.nav_mode == "fixed":
            return
        if cfg.nav_mode == "presets":
            stride = max(1, int(cfg.nav_preset_stride_ticks or 1))
            idx = ((self.tick - 1) // stride) % len(NAV_PRESETS)
            if idx == self._preset_index:
                return
            self._preset_index = idx
            name, nav, risk_bps = NAV_PRESETS[idx]
            oracle.update(updater, to_units(nav, 18), risk_bps)
            logger.info("tick=%d nav regime=%s nav=%.2f risk_bps=%d", self.tick, name, nav, risk_bps)
            return
        fair_value, risk_bps = oracle.read()
        move_bps = float(np.random.normal(cfg.nav_drift_bps_per_tick, cfg.nav_vol_bps_per_tick))
        new_value = int(fair_value * (1.0 + move_bps / BPS))
        oracle.update(updater, max(1, new_value), risk_bps)

    # -----------------------------
    # Trade flow
    # -----------------------------
    def _sample_trade_size(self) -> float:
        sigma = max(0.0, float(self.cfg.trade_size_sigma))
        mean = max(1e-9, float(self.cfg.trade_size_mean))
        # lognormal parameterized so the sample mean is trade_size_mean
        return float(np.random.lognormal(mean=math.log(mean) - (sigma ** 2) / 2.0, sigma=sigma))

    def _sample_trade(self) -> Tuple[str, SwapDirection, int]:
        trader = self.rng.choice(self.traders)
        size = self._sample_trade_size()
        if self.rng.random() < self.cfg.p_buy:
            return trader, "b_to_a", self.system.units_b(size)
        return trader, "a_to_b", self.system.units_a(size)

    def _execute_trade(self, trader: str, direction: SwapDirection, amount_in: int) -> bool:
        if amount_in <= 0:
            return False
        try:
            result = self.system.pool.swap(trader, direction, amount_in)
        except StabilizerError as exc:
            self._swap_failures_tick += 1
            self.system.journal.emit(
                "TRADE_FAILED",
                actor_id=trader,
                pool_id=self.system.pool.pool_id,
                amount=amount_in,
                meta={"direction": direction, "error": type(exc).__name__, "reason": str(exc)},
            )
            logger.debug("trade failed trader=%s %s amount=%d: %s", trader, direction, amount_in, exc)
            return False
        self._swaps_tick += 1
        if direction == "a_to_b":
            self._volume_a_tick += result.amount_in
            self._volume_b_tick += result.amount_out
        else:
            self._volume_b_tick += result.amount_in
            self._volume_a_tick += result.amount_out
        return True

    def _apply_shock(self) -> None:
        size = float(self.cfg.shock_size)
        if size == 0.0 or not self.traders:
            return
        trader = self.traders[0]
        if size > 0:
            self._execute_trade(trader, "b_to_a", self.system.units_b(size))
        else:
            self._execute_trade(trader, "a_to_b", self.system.units_a(-size))
        self.system.journal.emit("PRICE_SHOCK", actor_id=trader, meta={"size": size})

    def step(self, n_ticks: int = 1) -> None:
        for _ in range(n_ticks):
            self.tick += 1
            self.system.journal.tick = self.tick
            self._swaps_tick = 0
            self._swap_failures_tick = 0
            self._volume_a_tick = 0
            self._volume_b_tick = 0

            self._update_nav()

            if self.cfg.shock_tick is not None and self.tick == self.cfg.shock_tick:
                self._apply_shock()

            for _ in range(max(0, int(self.cfg.trades_per_tick))):
                trader, direction, amount_in = self._sample_trade()
                self._execute_trade(trader, direction, amount_in)

            self.snapshot_metrics()

    # -----------------------------
    # Metrics
    # -----------------------------
    def snapshot_metrics(self) -> None:
        cfg = self.cfg
        stride = int(cfg.metrics_stride or 0)
        if stride <= 0 or self.tick % stride != 0:
            return
        pool = self.system.pool
        engine = self.system.engine
        price = pool.get_price()
        fair_value, risk_bps = self.system.oracle.read()
        dev, stance = deviation_bps(price, fair_value)

        interventions = 0
        failures = 0
        intervention_rows: List[Dict[str, object]] = []
        for e in reversed(self.system.log.events):
            if e.tick <= self._last_metrics_tick:
                break
            if e.event_type == "INTERVENTION_EXECUTED":
                interventions += 1
                row = {"tick": e.tick, "seq": e.seq}
                row.update(e.meta)
                intervention_rows.append(row)
            elif e.event_type == "INTERVENTION_FAILED":
                failures += 1
        intervention_rows.reverse()
        self.metrics.add_intervention_rows(intervention_rows)
        self._last_metrics_tick = self.tick

        reserve_a, reserve_b = pool.get_reserves()
        balance_a, balance_b = engine.get_balances()
        self.metrics.add_tick({
            "tick": self.tick,
            "pool_price": wad_to_float(price),
            "fair_value": wad_to_float(fair_value),
            "risk_bps": int(risk_bps),
            "deviation_bps": int(dev),
            "stance": stance,
            "reserve_a": reserve_a / 10**cfg.asset_a_decimals,
            "reserve_b": reserve_b / 10**cfg.asset_b_decimals,
            "engine_balance_a": balance_a / 10**cfg.asset_a_decimals,
            "engine_balance_b": balance_b / 10**cfg.asset_b_decimals,
            "accumulated_fees_a": engine.get_accumulated_fees() / 10**cfg.asset_a_decimals,
            "swaps_tick": int(self._swaps_tick),
            "swap_failures_tick": int(self._swap_failures_tick),
            "volume_a_tick": self._volume_a_tick / 10**cfg.asset_a_decimals,
            "volume_b_tick": self._volume_b_tick / 10**cfg.asset_b_decimals,
            "interventions_tick": int(interventions),
            "intervention_failures_tick": int(failures),
        })
