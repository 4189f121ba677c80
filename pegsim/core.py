from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional, Literal, List
from collections import deque
import logging

logger = logging.getLogger(__name__)

SwapDirection = Literal["a_to_b", "b_to_a"]
Stance = Literal["buy_support", "sell_cap"]

UINT256_MAX = 2**256 - 1
BPS = 10_000
WAD_DECIMALS = 18
WAD = 10**WAD_DECIMALS

def format_inventory(inv: Dict[str, int]) -> str:
    if not inv:
        return "(empty)"
    items = sorted(inv.items(), key=lambda kv: kv[0])
    return ", ".join(f"{asset}:{amount}" for asset, amount in items)

# -----------------------------
# Errors
# -----------------------------
class StabilizerError(Exception):
    """Base class for every failure raised by the stabilizer components."""

class AuthorizationError(StabilizerError):
    pass

class InsufficientLiquidity(StabilizerError):
    pass

class InsufficientBalance(StabilizerError):
    pass

class AlreadyInitialized(StabilizerError):
    pass

class UintArithmeticError(StabilizerError, ArithmeticError):
    """Unsigned 256-bit overflow, underflow or division by zero."""

class UnknownPool(StabilizerError, KeyError):
    pass


# -----------------------------
# Checked uint256 arithmetic
# -----------------------------
def as_uint(value: int, name: str = "value") -> int:
    # bool is an int subclass; reject it along with floats and Decimals
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    return _checked(value)

def _checked(value: int) -> int:
    if value < 0:
        raise UintArithmeticError(f"uint256 underflow: {value}")
    if value > UINT256_MAX:
        raise UintArithmeticError("uint256 overflow")
    return value

def add(a: int, b: int) -> int:
    return _checked(a + b)

def sub(a: int, b: int) -> int:
    return _checked(a - b)

def mul(a: int, b: int) -> int:
    return _checked(a * b)

def div(a: int, b: int) -> int:
    if b == 0:
        raise UintArithmeticError("division by zero")
    return _checked(a // b)

def mul_div(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator) with the product itself overflow-checked."""
    return div(mul(a, b), denominator)

def bps_of(amount: int, bps: int) -> int:
    return mul_div(amount, bps, BPS)


# -----------------------------
# Decimal scales
# -----------------------------
# Amounts live in each asset's native decimals. Prices and fair values are wads
# (18 decimals). Every crossing between the two goes through these helpers.
def to_wad(amount: int, decimals: int) -> int:
    if decimals <= WAD_DECIMALS:
        return mul(amount, 10 ** (WAD_DECIMALS - decimals))
    return div(amount, 10 ** (decimals - WAD_DECIMALS))

def from_wad(wad: int, decimals: int) -> int:
    if decimals <= WAD_DECIMALS:
        return div(wad, 10 ** (WAD_DECIMALS - decimals))
    return mul(wad, 10 ** (decimals - WAD_DECIMALS))

def to_units(whole: int | float, decimals: int) -> int:
    """Whole-token amount to native units, e.g. 1.5 with 6 decimals -> 1_500_000."""
    if isinstance(whole, int):
        return mul(whole, 10**decimals)
    return as_uint(int(round(whole * 10**decimals)), "amount")

def wad_to_float(wad: int) -> float:
    return wad / WAD


# -----------------------------
# Events
# -----------------------------
@dataclass
class Event:
    tick: int
    event_type: str
    actor_id: Optional[str] = None
    pool_id: Optional[str] = None
    asset_id: Optional[str] = None
    amount: Optional[int] = None
    meta: dict = field(default_factory=dict)
    seq: int = 0

class EventLog:
    def __init__(self, maxlen: Optional[int] = None) -> None:
        self.events = deque(maxlen=maxlen)
        self.added: int = 0

    def add(self, e: Event) -> None:
        self.events.append(e)
        self.added += 1

    def tail(self, n: int = 200) -> List[Event]:
        if n <= 0:
            return []
        if n >= len(self.events):
            return list(self.events)
        return list(self.events)[-n:]

    def of_type(self, event_type: str) -> List[Event]:
        return [e for e in self.events if e.event_type == event_type]

    def snapshot(self) -> int:
        return self.added

    def restore(self, added: int) -> None:
        drop = min(self.added - added, len(self.events))
        for _ in range(drop):
            self.events.pop()
        self.added = added


# -----------------------------
# Results / records
# -----------------------------
@dataclass(frozen=True)
class SwapResult:
    amount_in: int
    amount_out: int
    direction: SwapDirection

    def to_dict(self) -> dict:
        return {
            "amount_in": int(self.amount_in),
            "amount_out": int(self.amount_out),
            "direction": self.direction,
        }

@dataclass(frozen=True)
class InterventionRecord:
    direction: Stance
    amount_in: int
    amount_out: int
    fee_charged: int
    deviation_bps: int
    intervention_amount: int = 0
    fee_value_a: int = 0

    def to_dict(self) -> dict:
        return {
            "direction": self.direction,
            "amount_in": int(self.amount_in),
            "amount_out": int(self.amount_out),
            "fee_charged": int(self.fee_charged),
            "deviation_bps": int(self.deviation_bps),
            "intervention_amount": int(self.intervention_amount),
            "fee_value_a": int(self.fee_value_a),
        }

def swap_direction_for(stance: Stance) -> SwapDirection:
    # buy-support pays asset B into the pool (buys A); sell-cap pays A in
    if stance == "buy_support":
        return "b_to_a"
    if stance == "sell_cap":
        return "a_to_b"
    raise ValueError(f"Invalid stance: {stance}")
