from __future__ import annotations
from typing import TYPE_CHECKING, Dict, Optional, Tuple
import logging

from .config import StabilizerConfig
from .core import (
    AuthorizationError, InsufficientBalance, InterventionRecord, Stance,
    add, as_uint, bps_of, format_inventory, mul_div, sub, swap_direction_for,
)
from .ledger import Journal, TokenLedger
from .pool import TradingPool

if TYPE_CHECKING:
    from .monitor import StabilizationMonitor

logger = logging.getLogger(__name__)

class InterventionEngine:
    """
    Intervention warchest plus the corrective counter-swap.

    ``balance_a`` / ``balance_b`` are what the engine may deploy. Fees are carved out
    of each intervention into ``fee_holdings`` (raw tokens, per asset) and valued in
    asset A units in ``accumulated_fees``. The engine account in the token ledger
    always holds ``balance_x + fee_holdings[x]`` of each asset.
    """
    def __init__(
        self,
        cfg: StabilizerConfig,
        pool: TradingPool,
        tokens: TokenLedger,
        journal: Journal,
    ) -> None:
        self.cfg = cfg
        self.address = cfg.engine_id
        self.operator = cfg.operator_id
        self.monitor_id = cfg.monitor_id
        self.pool = pool
        self.tokens = tokens
        self.journal = journal

        self.balance_a: int = 0
        self.balance_b: int = 0
        self.accumulated_fees: int = 0
        self.fee_holdings: Dict[str, int] = {}
        self.monitor: Optional[StabilizationMonitor] = None
        journal.register(self)

    def attach_monitor(self, monitor: StabilizationMonitor) -> None:
        self.monitor = monitor

    def snapshot(self) -> Tuple[int, int, int, Dict[str, int]]:
        return self.balance_a, self.balance_b, self.accumulated_fees, dict(self.fee_holdings)

    def restore(self, state: Tuple[int, int, int, Dict[str, int]]) -> None:
        self.balance_a, self.balance_b, self.accumulated_fees, self.fee_holdings = state

    def _ledger_view(self) -> Dict[str, int]:
        return {
            self.cfg.asset_a: self.balance_a,
            self.cfg.asset_b: self.balance_b,
            "fees_in_a": self.accumulated_fees,
        }

    def _debug_ledger_change(self, action: str, counterparty: str, asset: str, amount: int,
                             before: Dict[str, int]) -> None:
        if not self.cfg.debug_ledger or not logger.isEnabledFor(logging.DEBUG):
            return
        logger.debug(
            "[INV] engine=%s action=%s counterparty=%s asset=%s amount=%d before={ %s } after={ %s }",
            self.address,
            action,
            counterparty,
            asset,
            amount,
            format_inventory(before),
            format_inventory(self._ledger_view()),
        )

    # -----------------------------
    # Funding
    # -----------------------------
    def fund_a(self, caller: str, amount: int) -> None:
        self._fund(caller, self.cfg.asset_a, amount)

    def fund_b(self, caller: str, amount: int) -> None:
        self._fund(caller, self.cfg.asset_b, amount)

    def _fund(self, caller: str, asset_id: str, amount: int) -> None:
        # no per-depositor attribution: deposits become the operator's warchest
        amount = as_uint(amount, "amount")
        before = self._ledger_view()
        with self.journal.atomic():
            self.tokens.transfer(caller, self.address, asset_id, amount)
            if asset_id == self.cfg.asset_a:
                self.balance_a = add(self.balance_a, amount)
            else:
                self.balance_b = add(self.balance_b, amount)
            self.journal.emit("ENGINE_FUNDED", actor_id=caller, asset_id=asset_id, amount=amount)
        self._debug_ledger_change("fund", caller, asset_id, amount, before)

    # -----------------------------
    # Sizing
    # -----------------------------
    def size_intervention(self, held: int, deviation_bps: int) -> int:
        if self.cfg.sizing_policy == "half_balance":
            return held // 2
        # proportional: larger deviation commits a larger share, capped at everything held
        return min(held, mul_div(held, deviation_bps, self.cfg.sizing_divisor_bps))

    # -----------------------------
    # Intervention
    # -----------------------------
    def intervene(self, caller: str, direction: Stance, deviation_bps: int) -> InterventionRecord:
        deviation_bps = as_uint(deviation_bps, "deviation_bps")
        before = self._ledger_view()
        with self.journal.atomic():
            if caller != self.monitor_id:
                raise AuthorizationError(f"{caller} may not trigger interventions")
            # caller ids are self-declared; the attached monitor must also be mid-intervention
            if self.monitor is not None and self.monitor.state != "intervening":
                raise AuthorizationError("interventions only run from the monitor's own trigger")
            swap_direction = swap_direction_for(direction)
            if direction == "buy_support":
                supplied, received = self.cfg.asset_b, self.cfg.asset_a
                held = self.balance_b
            else:
                supplied, received = self.cfg.asset_a, self.cfg.asset_b
                held = self.balance_a

            if held == 0:
                raise InsufficientBalance(f"engine holds no {supplied}")
            amount = self.size_intervention(held, deviation_bps)
            if amount == 0:
                raise InsufficientBalance(
                    f"intervention size rounds to zero (held={held}, deviation_bps={deviation_bps})"
                )

            fee = bps_of(amount, self.cfg.intervention_fee_bps)
            net_amount = sub(amount, fee)
            result = self.pool.swap(self.address, swap_direction, net_amount)

            fee_value_a = self._book_fee(supplied, fee)
            if supplied == self.cfg.asset_b:
                self.balance_b = sub(self.balance_b, amount)
                self.balance_a = add(self.balance_a, result.amount_out)
            else:
                self.balance_a = sub(self.balance_a, amount)
                self.balance_b = add(self.balance_b, result.amount_out)

            record = InterventionRecord(
                direction=direction,
                amount_in=result.amount_in,
                amount_out=result.amount_out,
                fee_charged=fee,
                deviation_bps=deviation_bps,
                intervention_amount=amount,
                fee_value_a=fee_value_a,
            )
            self.journal.emit(
                "INTERVENTION_EXECUTED",
                actor_id=self.address,
                pool_id=self.pool.pool_id,
                asset_id=supplied,
                amount=amount,
                meta=record.to_dict(),
            )
        logger.info(
            "intervention %s supplied=%d %s received=%d %s fee=%d (=%d %s)",
            direction, result.amount_in, supplied, result.amount_out, received,
            fee, fee_value_a, self.cfg.asset_a,
        )
        self._debug_ledger_change("intervene", self.pool.address, supplied, amount, before)
        return record

    def _book_fee(self, asset_id: str, fee: int) -> int:
        """
        Keep the raw fee tokens and add their asset A value to ``accumulated_fees``.

        A fee paid in B is valued with the pool's reserve ratio right after the
        counter-swap. Both reserves are native units, so the ratio already carries the
        decimal difference. This is a point-in-time valuation, not a settlement
        rate: whoever moves the pool just before an intervention moves it too.
        """
        self.fee_holdings[asset_id] = add(self.fee_holdings.get(asset_id, 0), fee)
        if asset_id == self.cfg.asset_a:
            value_a = fee
        else:
            reserve_a, reserve_b = self.pool.get_reserves()
            value_a = mul_div(fee, reserve_a, reserve_b)
        self.accumulated_fees = add(self.accumulated_fees, value_a)
        return value_a

    # -----------------------------
    # Fees
    # -----------------------------
    def withdraw_fees(self, caller: str) -> int:
        """
        Pay the operator exactly ``accumulated_fees`` in asset A.

        Fee tokens held in A are paid out directly. Fee tokens held in B rejoin the
        deployable ``balance_b`` and the A they were valued at is drawn from
        ``balance_a`` instead. Raises ``InsufficientBalance`` if ``balance_a`` cannot
        cover that, leaving everything untouched.
        """
        asset_a, asset_b = self.cfg.asset_a, self.cfg.asset_b
        before = self._ledger_view()
        with self.journal.atomic():
            if caller != self.operator:
                raise AuthorizationError(f"{caller} is not the engine operator")
            amount = self.accumulated_fees
            held_a = self.fee_holdings.get(asset_a, 0)
            held_b = self.fee_holdings.get(asset_b, 0)
            drawn_a = sub(amount, held_a)
            if drawn_a > self.balance_a:
                raise InsufficientBalance(
                    f"engine holds {self.balance_a} {asset_a}, needs {drawn_a} to settle fees"
                )
            self.accumulated_fees = 0
            self.fee_holdings = {}
            self.balance_a = sub(self.balance_a, drawn_a)
            self.balance_b = add(self.balance_b, held_b)
            self.tokens.transfer(self.address, self.operator, asset_a, amount)
            self.journal.emit(
                "FEES_WITHDRAWN",
                actor_id=caller,
                asset_id=asset_a,
                amount=amount,
                meta={"from_fees_a": held_a, "from_balance_a": drawn_a, "returned_b": held_b},
            )
        if amount:
            self._debug_ledger_change("withdraw_fees", caller, self.cfg.asset_a, amount, before)
        return amount

    def get_balances(self) -> Tuple[int, int]:
        return self.balance_a, self.balance_b

    def get_accumulated_fees(self) -> int:
        return self.accumulated_fees
