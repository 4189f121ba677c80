import pytest

from pegsim.core import WAD, InsufficientBalance, UintArithmeticError, UnknownPool
from pegsim.monitor import deviation_bps

from conftest import SpyEngine, fund_trader


class TestDeviation:
    def test_magnitude_ignores_which_side_is_larger(self):
        fair = WAD
        above, stance_above = deviation_bps(fair + WAD // 10, fair)
        below, stance_below = deviation_bps(fair - WAD // 10, fair)
        assert above == below == 1000
        assert stance_above == "sell_cap"
        assert stance_below == "buy_support"

    def test_denominator_is_fair_value(self):
        # swapping the arguments changes the denominator, so the numbers differ
        assert deviation_bps(2 * WAD, WAD)[0] == 10_000
        assert deviation_bps(WAD, 2 * WAD)[0] == 5_000

    def test_at_peg(self):
        assert deviation_bps(WAD, WAD) == (0, "sell_cap")

    def test_zero_fair_value(self):
        with pytest.raises(UintArithmeticError):
            deviation_bps(WAD, 0)


class TestBelowThreshold:
    def test_small_swap_never_intervenes(self, system, alice, spy):
        balances = system.engine.get_balances()
        system.pool.swap(alice, "a_to_b", system.units_a(1000))
        assert spy.calls == []
        assert system.engine.get_balances() == balances
        assert system.engine.get_accumulated_fees() == 0
        assert system.log.of_type("INTERVENTION_EXECUTED") == []

    def test_threshold_is_inclusive(self, detached_system):
        trader = fund_trader(detached_system)
        detached_system.pool.swap(trader, "a_to_b", detached_system.units_a(5000))
        monitor = detached_system.monitor
        pool_id = detached_system.pool.pool_id
        _, _, dev = monitor.check_stabilization(pool_id)
        monitor.threshold_bps = dev
        assert monitor.check_stabilization(pool_id)[0] is False
        monitor.threshold_bps = dev - 1
        assert monitor.check_stabilization(pool_id)[0] is True


class TestScenarioA:
    """100k/100k pool at NAV 1.00; 30,000 A sold into it."""

    def test_buy_support_intervention(self, system, alice, spy):
        engine = system.engine
        balance_a0, balance_b0 = engine.get_balances()

        system.pool.swap(alice, "a_to_b", system.units_a(30_000))

        assert len(spy.calls) == 1
        caller, direction, dev = spy.calls[0]
        assert caller == system.monitor.address
        assert direction == "buy_support"
        assert dev > system.cfg.threshold_bps

        balance_a1, balance_b1 = engine.get_balances()
        assert balance_b1 < balance_b0
        assert balance_a1 > balance_a0
        assert engine.get_accumulated_fees() > 0

    def test_exactly_one_intervention_despite_residual(self, system, alice, spy):
        system.pool.swap(alice, "a_to_b", system.units_a(30_000))
        assert len(spy.calls) == 1
        assert len(system.log.of_type("INTERVENTION_EXECUTED")) == 1
        # the counter-swap did not restore the peg; no second round followed
        should_trigger, _, residual = system.monitor.check_stabilization(system.pool.pool_id)
        assert should_trigger
        assert residual > system.cfg.threshold_bps
        assert system.monitor.state == "idle"

    def test_intervention_pushes_price_toward_fair_value(self, detached_system):
        system = detached_system
        trader = fund_trader(system)
        system.pool.swap(trader, "a_to_b", system.units_a(30_000))
        _, _, before = system.monitor.check_stabilization(system.pool.pool_id)
        system.monitor.stabilize(system.pool.pool_id)
        _, _, after = system.monitor.check_stabilization(system.pool.pool_id)
        assert after < before


class TestSellCap:
    def test_overpriced_pool_is_capped(self, system, alice, spy):
        system.pool.swap(alice, "b_to_a", system.units_b(30_000))
        assert [c[1] for c in spy.calls] == ["sell_cap"]
        balance_a, _ = system.engine.get_balances()
        assert balance_a < system.units_a(system.cfg.engine_fund_a)

    def test_nav_move_triggers_on_next_swap(self, system, alice, spy):
        system.oracle.update(system.cfg.oracle_updater_id, 80 * WAD // 100, 0)
        assert spy.calls == []
        system.pool.swap(alice, "a_to_b", system.units_a(10))
        assert [c[1] for c in spy.calls] == ["sell_cap"]


class TestScenarioC:
    """Unfunded engine: the failed intervention is swallowed and the swap stands."""

    def test_swap_persists(self, unfunded_system):
        system = unfunded_system
        trader = fund_trader(system)
        expected_out = system.pool.quote("a_to_b", system.units_a(30_000))
        reserves = system.pool.get_reserves()

        result = system.pool.swap(trader, "a_to_b", system.units_a(30_000))

        assert result.amount_out == expected_out
        assert system.pool.get_reserves() == (
            reserves[0] + system.units_a(30_000),
            reserves[1] - expected_out,
        )
        assert system.engine.get_balances() == (0, 0)
        failed = system.log.of_type("INTERVENTION_FAILED")
        assert len(failed) == 1
        assert failed[0].meta["error"] == "InsufficientBalance"
        assert failed[0].meta["direction"] == "buy_support"
        assert system.monitor.state == "idle"

    def test_failure_is_logged(self, unfunded_system, caplog):
        trader = fund_trader(unfunded_system)
        with caplog.at_level("WARNING", logger="pegsim.monitor"):
            unfunded_system.pool.swap(trader, "a_to_b", unfunded_system.units_a(30_000))
        assert "intervention failed" in caplog.text


class TestPartialFailure:
    def test_failure_after_counter_swap_undoes_only_the_intervention(self, system, alice, monkeypatch):
        def broken_booking(asset_id, fee):
            raise UintArithmeticError("booking failed")

        monkeypatch.setattr(system.engine, "_book_fee", broken_booking)
        amount = system.units_a(30_000)
        expected_out = system.pool.quote("a_to_b", amount)
        reserves = system.pool.get_reserves()
        engine_tokens = system.tokens.inventory(system.engine.address)
        balances = system.engine.get_balances()

        system.pool.swap(alice, "a_to_b", amount)

        assert system.pool.get_reserves() == (reserves[0] + amount, reserves[1] - expected_out)
        assert system.tokens.inventory(system.engine.address) == engine_tokens
        assert system.engine.get_balances() == balances
        assert len(system.log.of_type("SWAP_EXECUTED")) == 1
        assert system.log.of_type("INTERVENTION_FAILED")[0].meta["error"] == "UintArithmeticError"


class TestGuard:
    def test_callback_is_noop_while_intervening(self, system, alice):
        spy = SpyEngine(system.engine)
        system.monitor.engine = spy
        system.monitor.state = "intervening"
        system.pool.swap(alice, "a_to_b", system.units_a(30_000))
        assert spy.calls == []
        system.monitor.state = "idle"


class TestCheckStabilization:
    def test_read_only(self, detached_system):
        system = detached_system
        trader = fund_trader(system)
        system.pool.swap(trader, "a_to_b", system.units_a(30_000))
        reserves = system.pool.get_reserves()
        balances = system.engine.get_balances()
        events = len(system.log.events)

        should_trigger, direction, dev = system.monitor.check_stabilization(system.pool.pool_id)

        assert should_trigger is True
        assert direction == "buy_support"
        assert dev > 500
        assert system.pool.get_reserves() == reserves
        assert system.engine.get_balances() == balances
        assert len(system.log.events) == events

    def test_unknown_pool(self, system):
        with pytest.raises(UnknownPool):
            system.monitor.check_stabilization("pool_9999")
        with pytest.raises(KeyError):
            system.monitor.check_stabilization("pool_9999")


class TestManualStabilize:
    def test_returns_record_when_off_peg(self, detached_system):
        system = detached_system
        trader = fund_trader(system)
        system.pool.swap(trader, "a_to_b", system.units_a(30_000))
        record = system.monitor.stabilize(system.pool.pool_id)
        assert record is not None
        assert record.direction == "buy_support"
        assert record.fee_charged > 0

    def test_returns_none_at_peg(self, system):
        assert system.monitor.stabilize(system.pool.pool_id) is None
        assert system.log.of_type("INTERVENTION_EXECUTED") == []

    def test_errors_propagate(self):
        from pegsim.config import StabilizerConfig
        from pegsim.factory import bootstrap, build_system

        system = bootstrap(build_system(StabilizerConfig(engine_fund_a=0, engine_fund_b=0), observe=False))
        trader = fund_trader(system)
        system.pool.swap(trader, "a_to_b", system.units_a(30_000))
        reserves = system.pool.get_reserves()
        with pytest.raises(InsufficientBalance):
            system.monitor.stabilize(system.pool.pool_id)
        assert system.pool.get_reserves() == reserves
        assert system.monitor.state == "idle"
