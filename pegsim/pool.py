from __future__ import annotations
from typing import Protocol, Tuple
import logging

from .config import StabilizerConfig
from .core import (
    AlreadyInitialized, BPS, InsufficientLiquidity, SwapDirection, SwapResult, WAD,
    add, as_uint, bps_of, mul, mul_div, sub, to_wad, wad_to_float,
)
from .ledger import Journal, TokenLedger

logger = logging.getLogger(__name__)

class PostTradeObserver(Protocol):
    def on_swap(self, pool_id: str, result: SwapResult) -> None: ...

class NullObserver:
    def on_swap(self, pool_id: str, result: SwapResult) -> None:
        return None

class TradingPool:
    """
    Constant-product pool for a single (A, B) pair with a fixed input fee.

    The fee stays in the pool (the full ``amount_in`` joins the input reserve), so
    ``reserve_a * reserve_b`` never decreases across a swap. After every swap the
    registered observer is called synchronously, before ``swap`` returns.
    """
    def __init__(
        self,
        cfg: StabilizerConfig,
        tokens: TokenLedger,
        journal: Journal,
        observer: PostTradeObserver | None = None,
    ) -> None:
        self.pool_id = cfg.pool_id
        self.asset_a = cfg.asset_a
        self.asset_b = cfg.asset_b
        self.decimals_a = cfg.asset_a_decimals
        self.decimals_b = cfg.asset_b_decimals
        self.fee_bps = cfg.pool_fee_bps
        self.tokens = tokens
        self.journal = journal
        self.observer: PostTradeObserver = observer or NullObserver()

        self.reserve_a: int = 0
        self.reserve_b: int = 0
        self.initialized: bool = False
        journal.register(self)

    @property
    def address(self) -> str:
        return f"pool:{self.pool_id}"

    def set_observer(self, observer: PostTradeObserver | None) -> None:
        self.observer = observer or NullObserver()

    def snapshot(self) -> Tuple[int, int, bool]:
        return self.reserve_a, self.reserve_b, self.initialized

    def restore(self, state: Tuple[int, int, bool]) -> None:
        self.reserve_a, self.reserve_b, self.initialized = state

    # -----------------------------
    # Liquidity
    # -----------------------------
    def initialize(self, caller: str, reserve_a0: int, reserve_b0: int) -> None:
        reserve_a0 = as_uint(reserve_a0, "reserve_a0")
        reserve_b0 = as_uint(reserve_b0, "reserve_b0")
        with self.journal.atomic():
            if self.initialized:
                raise AlreadyInitialized(f"pool {self.pool_id} already initialized")
            if reserve_a0 == 0 or reserve_b0 == 0:
                raise InsufficientLiquidity(f"pool {self.pool_id} needs both reserves to start")
            self.tokens.transfer(caller, self.address, self.asset_a, reserve_a0)
            self.tokens.transfer(caller, self.address, self.asset_b, reserve_b0)
            self.reserve_a = reserve_a0
            self.reserve_b = reserve_b0
            self.initialized = True
            self.journal.emit(
                "POOL_INITIALIZED",
                actor_id=caller,
                pool_id=self.pool_id,
                meta={"reserve_a": reserve_a0, "reserve_b": reserve_b0},
            )

    def add_liquidity(self, caller: str, amount_a: int, amount_b: int) -> None:
        amount_a = as_uint(amount_a, "amount_a")
        amount_b = as_uint(amount_b, "amount_b")
        with self.journal.atomic():
            if not self.initialized:
                raise InsufficientLiquidity(f"pool {self.pool_id} is not initialized")
            self.tokens.transfer(caller, self.address, self.asset_a, amount_a)
            self.tokens.transfer(caller, self.address, self.asset_b, amount_b)
            self.reserve_a = add(self.reserve_a, amount_a)
            self.reserve_b = add(self.reserve_b, amount_b)
            self.journal.emit(
                "LIQUIDITY_ADDED",
                actor_id=caller,
                pool_id=self.pool_id,
                meta={"amount_a": amount_a, "amount_b": amount_b},
            )

    # -----------------------------
    # Swaps
    # -----------------------------
    def _sides(self, direction: SwapDirection) -> Tuple[str, str, int, int]:
        if direction == "a_to_b":
            return self.asset_a, self.asset_b, self.reserve_a, self.reserve_b
        if direction == "b_to_a":
            return self.asset_b, self.asset_a, self.reserve_b, self.reserve_a
        raise ValueError(f"Invalid direction: {direction}")

    def quote(self, direction: SwapDirection, amount_in: int) -> int:
        _, _, reserve_in, reserve_out = self._sides(direction)
        return self._amount_out(amount_in, reserve_in, reserve_out)

    def _amount_out(self, amount_in: int, reserve_in: int, reserve_out: int) -> int:
        if reserve_out == 0:
            raise InsufficientLiquidity(f"pool {self.pool_id} has no output reserve")
        amount_in_net = bps_of(amount_in, BPS - self.fee_bps)
        denominator = add(reserve_in, amount_in_net)
        if denominator == 0:
            raise InsufficientLiquidity(f"pool {self.pool_id} has no input reserve")
        amount_out = mul_div(reserve_out, amount_in_net, denominator)
        if amount_out >= reserve_out:
            raise InsufficientLiquidity(f"swap would exhaust pool {self.pool_id}")
        return amount_out

    def swap(self, caller: str, direction: SwapDirection, amount_in: int) -> SwapResult:
        amount_in = as_uint(amount_in, "amount_in")
        if amount_in == 0:
            raise ValueError("Invalid amount")
        with self.journal.atomic():
            asset_in, asset_out, reserve_in, reserve_out = self._sides(direction)
            amount_out = self._amount_out(amount_in, reserve_in, reserve_out)

            self.tokens.transfer(caller, self.address, asset_in, amount_in)
            self.tokens.transfer(self.address, caller, asset_out, amount_out)
            if direction == "a_to_b":
                self.reserve_a = add(self.reserve_a, amount_in)
                self.reserve_b = sub(self.reserve_b, amount_out)
            else:
                self.reserve_b = add(self.reserve_b, amount_in)
                self.reserve_a = sub(self.reserve_a, amount_out)

            result = SwapResult(amount_in=amount_in, amount_out=amount_out, direction=direction)
            self.journal.emit(
                "SWAP_EXECUTED",
                actor_id=caller,
                pool_id=self.pool_id,
                asset_id=asset_in,
                amount=amount_in,
                meta=result.to_dict(),
            )
            logger.debug(
                "swap pool=%s caller=%s %s in=%d out=%d reserves=(%d, %d)",
                self.pool_id, caller, direction, amount_in, amount_out,
                self.reserve_a, self.reserve_b,
            )
            self.observer.on_swap(self.pool_id, result)
        return result

    # -----------------------------
    # Views
    # -----------------------------
    def get_reserves(self) -> Tuple[int, int]:
        return self.reserve_a, self.reserve_b

    def get_price(self) -> int:
        """Price of one A in B as a wad; both reserves are normalized to 18 decimals first."""
        if self.reserve_a == 0 or self.reserve_b == 0:
            raise InsufficientLiquidity(f"pool {self.pool_id} has an empty reserve")
        return mul_div(
            to_wad(self.reserve_b, self.decimals_b),
            WAD,
            to_wad(self.reserve_a, self.decimals_a),
        )

    def price_float(self) -> float:
        return wad_to_float(self.get_price())

    @property
    def k(self) -> int:
        return mul(self.reserve_a, self.reserve_b)
