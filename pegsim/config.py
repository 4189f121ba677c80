from dataclasses import dataclass

SIZING_POLICIES = ("proportional", "half_balance")
NAV_MODES = ("fixed", "random_walk", "presets")

# Oracle regimes the demo walks through: (name, NAV in whole quote units, risk bps)
NAV_PRESETS = (
    ("launch", 1.00, 1000),
    ("revenue", 1.15, 700),
    ("stress", 0.85, 3500),
    ("recovery", 1.30, 400),
)

@dataclass
class StabilizerConfig:
    # Assets (A = synthetic, B = quote); amounts are in native decimals
    asset_a: str = "SYN"
    asset_a_decimals: int = 6
    asset_b: str = "USDQ"
    asset_b_decimals: int = 18

    # Identities
    pool_id: str = "pool_0001"
    operator_id: str = "operator"
    oracle_updater_id: str = "oracle_updater"
    monitor_id: str = "monitor"
    engine_id: str = "engine"
    liquidity_provider_id: str = "lp"

    # Pool
    pool_fee_bps: int = 30            # 0.30%

    # Oracle (wad = 18-decimal fixed point)
    initial_fair_value_wad: int = 10**18
    initial_risk_bps: int = 0

    # Monitor
    threshold_bps: int = 500          # 5%

    # Intervention
    intervention_fee_bps: int = 50    # 0.5%
    sizing_policy: str = "proportional"  # "proportional" or "half_balance"
    sizing_divisor_bps: int = 100_000    # proportional: held * deviation / divisor

    # Primary market quotes
    mint_fee_bps: int = 100           # 1% to operator
    redeem_penalty_base_bps: int = 300
    redeem_penalty_risk_divisor: int = 10
    redeem_penalty_cap_bps: int = 5000

    # Simulation bootstrap (whole units)
    initial_reserve_a: int = 100_000
    initial_reserve_b: int = 100_000
    engine_fund_a: int = 20_000
    engine_fund_b: int = 20_000
    trader_count: int = 10
    trader_initial_a: int = 1_000_000
    trader_initial_b: int = 1_000_000

    # Simulation trade flow
    trades_per_tick: int = 4
    trade_size_mean: float = 500.0    # whole units of the asset paid in
    trade_size_sigma: float = 1.0     # lognormal shape
    p_buy: float = 0.5                # probability a trade pays B in for A
    shock_tick: int | None = None
    shock_size: float = 0.0           # signed, whole units; > 0 buys A, < 0 sells A

    # Simulation NAV path
    nav_mode: str = "fixed"           # "fixed", "random_walk" or "presets"
    nav_drift_bps_per_tick: float = 0.0
    nav_vol_bps_per_tick: float = 50.0
    nav_preset_stride_ticks: int = 25

    # Bookkeeping
    event_log_maxlen: int | None = None
    metrics_stride: int = 1

    # Debug
    debug_ledger: bool = False

    def __post_init__(self) -> None:
        if self.sizing_policy not in SIZING_POLICIES:
            raise ValueError(f"Unknown sizing_policy: {self.sizing_policy}")
        if self.nav_mode not in NAV_MODES:
            raise ValueError(f"Unknown nav_mode: {self.nav_mode}")
        for name in ("pool_fee_bps", "threshold_bps", "intervention_fee_bps", "mint_fee_bps", "redeem_penalty_cap_bps"):
            value = getattr(self, name)
            if not 0 <= value <= 10_000:
                raise ValueError(f"{name} must be within 0..10000 bps, got {value}")
        if self.sizing_divisor_bps <= 0:
            raise ValueError("sizing_divisor_bps must be positive")
        if self.initial_fair_value_wad <= 0:
            raise ValueError("initial_fair_value_wad must be positive")
        if self.asset_a == self.asset_b:
            raise ValueError("asset_a and asset_b must differ")
