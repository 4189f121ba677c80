import pytest

from pegsim.config import StabilizerConfig
from pegsim.factory import bootstrap, build_system


class SpyEngine:
    """Counts intervene() calls while delegating to the real engine."""

    def __init__(self, engine):
        self.engine = engine
        self.calls = []

    def intervene(self, caller, direction, deviation_bps):
        self.calls.append((caller, direction, deviation_bps))
        return self.engine.intervene(caller, direction, deviation_bps)


@pytest.fixture
def cfg():
    return StabilizerConfig()


@pytest.fixture
def system(cfg):
    """Pool at 100k/100k (price 1.00), NAV 1.00, engine funded with 20k of each asset."""
    return bootstrap(build_system(cfg))


@pytest.fixture
def unfunded_system():
    cfg = StabilizerConfig(engine_fund_a=0, engine_fund_b=0)
    return bootstrap(build_system(cfg))


@pytest.fixture
def detached_system(cfg):
    """Same as ``system`` but the pool keeps its no-op observer."""
    return bootstrap(build_system(cfg, observe=False))


@pytest.fixture
def spy(system):
    spy = SpyEngine(system.engine)
    system.monitor.engine = spy
    return spy


def fund_trader(system, trader="alice", whole=1_000_000):
    system.tokens.mint(trader, system.cfg.asset_a, system.units_a(whole))
    system.tokens.mint(trader, system.cfg.asset_b, system.units_b(whole))
    return trader


@pytest.fixture
def alice(system):
    return fund_trader(system, "alice")
