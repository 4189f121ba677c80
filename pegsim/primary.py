from __future__ import annotations
from typing import Tuple

from .config import StabilizerConfig
from .core import BPS, WAD, as_uint, bps_of, from_wad, mul_div, sub, to_wad
from .oracle import FairValueOracle

class PrimaryMarket:
    """
    Mint/redeem quotes at NAV. Quotes only: moving tokens through the mint/burn
    gate is left to whoever owns that gate.
    """
    def __init__(self, cfg: StabilizerConfig, oracle: FairValueOracle) -> None:
        self.cfg = cfg
        self.oracle = oracle

    def redemption_penalty_bps(self) -> int:
        _nav, risk_bps = self.oracle.read()
        cfg = self.cfg
        penalty = cfg.redeem_penalty_base_bps + risk_bps // cfg.redeem_penalty_risk_divisor
        return min(penalty, cfg.redeem_penalty_cap_bps)

    def quote_redeem(self, amount_a: int) -> Tuple[int, int]:
        """A in (native units) -> (B out in native units, penalty bps)."""
        amount_a = as_uint(amount_a, "amount_a")
        nav, _risk = self.oracle.read()
        penalty = self.redemption_penalty_bps()
        value_wad = mul_div(to_wad(amount_a, self.cfg.asset_a_decimals), nav, WAD)
        net_wad = bps_of(value_wad, BPS - penalty)
        return from_wad(net_wad, self.cfg.asset_b_decimals), penalty

    def quote_mint(self, amount_b: int) -> Tuple[int, int]:
        """B in (native units) -> (A out in native units, operator fee in B)."""
        amount_b = as_uint(amount_b, "amount_b")
        nav, _risk = self.oracle.read()
        fee = bps_of(amount_b, self.cfg.mint_fee_bps)
        net_wad = to_wad(sub(amount_b, fee), self.cfg.asset_b_decimals)
        amount_a_wad = mul_div(net_wad, WAD, nav)
        return from_wad(amount_a_wad, self.cfg.asset_a_decimals), fee
