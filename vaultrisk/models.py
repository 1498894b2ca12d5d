"""Pydantic models for the vault risk read model."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

TimeRangeKey = Literal["30D", "60D", "90D", "YTD", "ALL"]

IDLE_COLLATERAL_SYMBOL = "Idle"


def market_label(collateral_symbol: str | None, loan_symbol: str) -> str:
    """Human readable market label, e.g. 'wstETH/WETH' or 'Idle/USDC'."""
    return f"{collateral_symbol or IDLE_COLLATERAL_SYMBOL}/{loan_symbol}"


class FrozenModel(BaseModel):
    """Base for read-model types: immutable once constructed."""

    model_config = ConfigDict(frozen=True)


class TimeseriesInterval(str, Enum):
    """Bucket interval accepted by the Morpho historical state API."""

    HOUR = "HOUR"
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"


class TimeRangeConfig(FrozenModel):
    """Time window and interval requested for chart series."""

    start_timestamp: int = Field(description="Range start (unix seconds)")
    end_timestamp: int = Field(description="Range end (unix seconds)")
    interval: TimeseriesInterval = Field(description="Series bucket interval")


class TimeseriesPoint(FrozenModel):
    """One point of a time series. y=None marks a gap."""

    x: float = Field(description="Timestamp (unix seconds)")
    y: float | None = Field(default=None, description="Value, None for a gap")


class VaultSnapshot(FrozenModel):
    """Point-in-time vault state."""

    name: str = Field(default="", description="Vault name")
    symbol: str = Field(default="", description="Vault share symbol")
    address: str = Field(description="Vault contract address")
    chain_id: int = Field(description="Chain id")
    chain_network: str = Field(default="", description="Chain network name")
    total_assets_usd: float = Field(default=0.0, description="Total assets (USD)")
    net_apy: float = Field(default=0.0, description="Net APY after fees")
    performance_fee: float = Field(default=0.0, description="Performance fee ratio")
    liquidity_usd: float = Field(default=0.0, description="Withdrawable liquidity (USD)")
    as_of_timestamp: int = Field(default=0, description="State timestamp (unix seconds)")


class VaultAllocationRow(FrozenModel):
    """Vault allocation to one underlying market."""

    market_key: str = Field(description="Market unique key")
    collateral_symbol: str = Field(description="Collateral asset symbol ('Idle' if none)")
    loan_symbol: str = Field(description="Loan asset symbol")
    allocation_usd: float = Field(description="Vault supply in this market (USD)")
    allocation_pct: float = Field(description="allocation_usd / vault total assets")
    lltv: float | None = Field(default=None, description="Liquidation LTV ratio")
    market_total_supply_usd: float = Field(default=0.0, description="Market total supply (USD)")
    market_liquidity_usd: float = Field(default=0.0, description="Market liquidity (USD)")
    market_utilization: float = Field(default=0.0, description="Market utilization ratio")
    market_net_apy: float = Field(default=0.0, description="Market net supply APY")
    utilization_history: tuple[TimeseriesPoint, ...] = Field(
        default=(), description="Market utilization over the display range"
    )

    @property
    def is_idle(self) -> bool:
        return self.collateral_symbol == IDLE_COLLATERAL_SYMBOL

    @property
    def market_label(self) -> str:
        return market_label(self.collateral_symbol, self.loan_symbol)


class RiskPosition(FrozenModel):
    """One borrower position in one market."""

    id: str = Field(description="Position id")
    user_address: str = Field(description="Borrower address (position id if unknown)")
    market_key: str = Field(description="Market unique key")
    market_label: str = Field(description="Market label")
    lltv: float | None = Field(default=None, description="Market liquidation LTV")
    health_factor: float | None = Field(default=None, description="Position health factor")
    borrow_usd: float = Field(default=0.0, description="Borrowed assets (USD)")
    collateral_usd: float = Field(default=0.0, description="Collateral (USD)")
    margin_usd: float = Field(default=0.0, description="Margin (USD)")


class LiquidationIncident(FrozenModel):
    """One liquidation transaction."""

    id: str = Field(description="Transaction id")
    timestamp: int = Field(description="Block timestamp (unix seconds)")
    hash: str = Field(description="Transaction hash")
    market_key: str = Field(description="Market unique key")
    market_label: str = Field(description="Market label")
    repaid_usd: float = Field(default=0.0, description="Repaid assets (USD)")
    seized_usd: float = Field(default=0.0, description="Seized collateral (USD)")
    bad_debt_usd: float = Field(default=0.0, description="Realized bad debt (USD)")


class CollateralAtRiskPoint(FrozenModel):
    """Collateral value at a given collateral price ratio."""

    collateral_price_ratio: float = Field(description="Collateral price relative to current")
    collateral_usd: float = Field(description="Collateral at risk (USD)")


class CollateralAtRiskSeries(FrozenModel):
    """Collateral-at-risk curve for one market."""

    market_key: str = Field(description="Market unique key")
    label: str = Field(description="Market label")
    points: tuple[CollateralAtRiskPoint, ...] = Field(default=(), description="Curve points")


class RiskScorecard(FrozenModel):
    """
    Headline risk metrics.

    A None ratio means the metric is undefined (zero denominator), which is
    distinct from a computed 0.
    """

    weighted_lltv: float | None = Field(description="Allocation-weighted LLTV")
    weighted_borrow_ltv: float | None = Field(description="Pool borrow / collateral")
    lltv_headroom: float | None = Field(description="weighted_lltv - weighted_borrow_ltv")
    collateral_coverage_ratio: float | None = Field(description="Collateral / borrow")
    liquidity_coverage: float | None = Field(description="Vault liquidity / total assets")
    top_market_concentration: float = Field(description="Largest allocation share")
    concentration_hhi: float = Field(description="Herfindahl index of allocation shares")
    near_liquidation_borrow_usd: float = Field(description="Borrow close to liquidation (USD)")
    stress_collateral_at_risk_15pct_usd: float = Field(
        description="Collateral at risk after a 15% collateral price drop (USD)"
    )
    total_borrow_usd: float = Field(description="Vault-scaled borrow (USD)")
    total_collateral_usd: float = Field(description="Vault-scaled collateral (USD)")
    active_borrowers: int = Field(description="Borrowers with positive scaled borrow")
    active_positions: int = Field(description="Positions with positive scaled borrow")


class RiskHealthBucket(FrozenModel):
    """Borrowers grouped by worst-case health factor."""

    label: str = Field(description="Bucket label")
    borrower_count: int = Field(description="Unique borrowers in bucket")
    borrow_usd: float = Field(description="Aggregate scaled borrow (USD)")
    share_of_borrow: float = Field(description="Share of total scaled borrow")


class LiquidationSummary(FrozenModel):
    """Liquidation totals over a lookback window."""

    window_days: int = Field(description="Lookback window in days")
    incident_count: int = Field(description="Number of liquidations in window")
    repaid_usd: float = Field(description="Scaled repaid assets (USD)")
    seized_usd: float = Field(description="Scaled seized collateral (USD)")
    bad_debt_usd: float = Field(description="Scaled bad debt (USD)")


class VaultRiskAnalysis(FrozenModel):
    """Output of the risk analyzer."""

    scorecard: RiskScorecard
    health_buckets: tuple[RiskHealthBucket, ...]
    liquidation_summary_30d: LiquidationSummary
    liquidation_summary_90d: LiquidationSummary
    recent_liquidations: tuple[LiquidationIncident, ...]
    methodology_notes: tuple[str, ...]


class VaultReadModel(FrozenModel):
    """Everything the dashboard renders for one vault and range."""

    snapshot: VaultSnapshot
    allocations: tuple[VaultAllocationRow, ...]
    performance_series: tuple[TimeseriesPoint, ...]
    net_apy_series: tuple[TimeseriesPoint, ...]
    supply_series: tuple[TimeseriesPoint, ...]
    utilization_series: tuple[TimeseriesPoint, ...]
    collateral_at_risk: tuple[CollateralAtRiskSeries, ...]
    risk: VaultRiskAnalysis
