import pytest

from pegsim.core import (
    UINT256_MAX, WAD, Event, EventLog, UintArithmeticError, add, as_uint, bps_of,
    div, from_wad, mul, mul_div, sub, swap_direction_for, to_units, to_wad,
)


class TestCheckedArithmetic:
    """Unsigned 256-bit arithmetic never wraps."""

    def test_overflow_raises(self):
        with pytest.raises(UintArithmeticError):
            add(UINT256_MAX, 1)
        with pytest.raises(UintArithmeticError):
            mul(2**200, 2**100)

    def test_underflow_raises(self):
        with pytest.raises(UintArithmeticError, match="underflow"):
            sub(0, 1)

    def test_division_by_zero_raises(self):
        with pytest.raises(UintArithmeticError, match="division by zero"):
            div(1, 0)

    def test_error_is_a_builtin_arithmetic_error(self):
        with pytest.raises(ArithmeticError):
            sub(1, 2)

    def test_mul_div_floors(self):
        assert mul_div(10, 3, 4) == 7
        assert bps_of(10_000, 50) == 50
        assert bps_of(199, 50) == 0

    def test_as_uint_rejects_non_ints(self):
        with pytest.raises(TypeError):
            as_uint(1.5)
        with pytest.raises(TypeError):
            as_uint(True)
        with pytest.raises(UintArithmeticError):
            as_uint(-1)


class TestDecimalScales:
    """Native-decimal amounts against the 18-decimal comparison scale."""

    def test_six_decimal_asset_to_wad(self):
        assert to_wad(1_000_000, 6) == WAD
        assert from_wad(WAD, 6) == 1_000_000

    def test_eighteen_decimal_asset_is_identity(self):
        assert to_wad(123 * 10**18, 18) == 123 * 10**18
        assert from_wad(7, 18) == 7

    def test_more_than_eighteen_decimals(self):
        assert to_wad(10**24, 24) == WAD
        assert from_wad(WAD, 24) == 10**24

    def test_from_wad_truncates_dust(self):
        # 1.5e-12 of a 6-decimal token is below one native unit
        assert from_wad(1_500_000, 6) == 0

    def test_to_units(self):
        assert to_units(1, 6) == 1_000_000
        assert to_units(1.5, 6) == 1_500_000
        assert to_units(100_000, 18) == 100_000 * 10**18


class TestEventLog:
    def test_tail_and_of_type(self):
        log = EventLog()
        for i in range(5):
            log.add(Event(i, "A" if i % 2 else "B"))
        assert [e.tick for e in log.tail(2)] == [3, 4]
        assert len(log.of_type("A")) == 2
        assert log.tail(0) == []

    def test_restore_drops_newer_events(self):
        log = EventLog()
        log.add(Event(0, "KEEP"))
        mark = log.snapshot()
        log.add(Event(0, "DROP"))
        log.add(Event(0, "DROP"))
        log.restore(mark)
        assert [e.event_type for e in log.events] == ["KEEP"]
        assert log.added == 1

    def test_restore_with_bounded_log(self):
        log = EventLog(maxlen=2)
        log.add(Event(0, "X"))
        log.add(Event(1, "Y"))
        mark = log.snapshot()
        log.add(Event(2, "Z"))
        log.restore(mark)
        # X was evicted by Z and stays evicted
        assert [e.event_type for e in log.events] == ["Y"]
        assert log.added == 2


class TestDirections:
    def test_stance_maps_to_swap_direction(self):
        assert swap_direction_for("buy_support") == "b_to_a"
        assert swap_direction_for("sell_cap") == "a_to_b"
        with pytest.raises(ValueError):
            swap_direction_for("hold")
