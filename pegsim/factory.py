from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from .config import StabilizerConfig
from .core import EventLog, to_units
from .intervention import InterventionEngine
from .ledger import Journal, TokenLedger
from .monitor import StabilizationMonitor
from .oracle import FairValueOracle
from .pool import TradingPool
from .primary import PrimaryMarket

@dataclass
class StabilizerSystem:
    cfg: StabilizerConfig
    log: EventLog
    journal: Journal
    tokens: TokenLedger
    oracle: FairValueOracle
    pool: TradingPool
    engine: InterventionEngine
    monitor: StabilizationMonitor
    primary: PrimaryMarket

    def units_a(self, whole: int | float) -> int:
        return to_units(whole, self.cfg.asset_a_decimals)

    def units_b(self, whole: int | float) -> int:
        return to_units(whole, self.cfg.asset_b_decimals)

def build_system(cfg: Optional[StabilizerConfig] = None, *, observe: bool = True) -> StabilizerSystem:
    """
    Wire one pool, one oracle, one engine and its monitor. With ``observe=False`` the
    pool keeps its no-op observer and never triggers the monitor.
    """
    cfg = cfg or StabilizerConfig()
    log = EventLog(maxlen=cfg.event_log_maxlen)
    journal = Journal(log)
    tokens = TokenLedger(journal, debug=cfg.debug_ledger)
    oracle = FairValueOracle(
        journal,
        updater=cfg.oracle_updater_id,
        fair_value=cfg.initial_fair_value_wad,
        risk_bps=cfg.initial_risk_bps,
    )
    pool = TradingPool(cfg, tokens, journal)
    engine = InterventionEngine(cfg, pool, tokens, journal)
    monitor = StabilizationMonitor(cfg, pool, oracle, engine, journal)
    engine.attach_monitor(monitor)
    if observe:
        pool.set_observer(monitor)
    primary = PrimaryMarket(cfg, oracle)
    return StabilizerSystem(
        cfg=cfg,
        log=log,
        journal=journal,
        tokens=tokens,
        oracle=oracle,
        pool=pool,
        engine=engine,
        monitor=monitor,
        primary=primary,
    )

def bootstrap(system: StabilizerSystem) -> StabilizerSystem:
    """Seed the pool and the engine from the config's whole-unit amounts."""
    cfg = system.cfg
    lp = cfg.liquidity_provider_id
    reserve_a = system.units_a(cfg.initial_reserve_a)
    reserve_b = system.units_b(cfg.initial_reserve_b)
    fund_a = system.units_a(cfg.engine_fund_a)
    fund_b = system.units_b(cfg.engine_fund_b)
    system.tokens.mint(lp, cfg.asset_a, reserve_a + fund_a)
    system.tokens.mint(lp, cfg.asset_b, reserve_b + fund_b)
    system.pool.initialize(lp, reserve_a, reserve_b)
    if fund_a:
        system.engine.fund_a(lp, fund_a)
    if fund_b:
        system.engine.fund_b(lp, fund_b)
    return system
