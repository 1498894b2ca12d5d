"""Vault risk analysis: scorecard, borrower health buckets and liquidations."""

import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass

import numpy as np
from loguru import logger

from vaultrisk.models import (
    CollateralAtRiskPoint,
    CollateralAtRiskSeries,
    LiquidationIncident,
    LiquidationSummary,
    RiskHealthBucket,
    RiskPosition,
    RiskScorecard,
    VaultAllocationRow,
    VaultRiskAnalysis,
    VaultSnapshot,
)

# Risk policy constants. Changing risk appetite is a code change.
STRESS_COLLATERAL_RATIO = 0.85
NEAR_LIQUIDATION_HF = 1.10
NEAR_LIQUIDATION_LLTV_FACTOR = 0.90
RECENT_LIQUIDATIONS_LIMIT = 20
LIQUIDATION_SUMMARY_WINDOWS = (30, 90)
SECONDS_PER_DAY = 24 * 60 * 60

METHODOLOGY_NOTES = (
    "Borrower buckets use Morpho market position health factors.",
    "Near-liquidation exposure uses HF <= 1.10 or LTV >= 90% of market LLTV.",
    "Borrower exposures use current vault share of each underlying market.",
    "Liquidation exposures use timestamp-aligned vault share estimates from vault allocation history and market supply history.",
    "Stress collateral-at-risk scales market collateral-at-risk by vault share of each market.",
    "Utilization chart uses historical vault allocation weights at each timestamp.",
)

ShareResolver = Callable[[str, float], float]


@dataclass(frozen=True)
class HealthBand:
    """Health factor band; bands are evaluated in order, first match wins."""

    label: str
    lower: float | None = None  # exclusive
    upper: float | None = None  # inclusive
    unscored: bool = False

    def matches(self, health_factor: float | None) -> bool:
        if health_factor is None:
            return self.unscored
        if self.unscored:
            return False
        if self.lower is not None and health_factor <= self.lower:
            return False
        if self.upper is not None and health_factor > self.upper:
            return False
        return True


HEALTH_BANDS = (
    HealthBand("Critical (HF <= 1.05)", upper=1.05),
    HealthBand("Elevated (1.05 < HF <= 1.20)", lower=1.05, upper=1.20),
    HealthBand("Watch (1.20 < HF <= 1.50)", lower=1.20, upper=1.50),
    HealthBand("Healthy (HF > 1.50)", lower=1.50),
    HealthBand("Unscored", unscored=True),
)


def interpolate_collateral_usd_at_ratio(
    points: Iterable[CollateralAtRiskPoint], target_ratio: float
) -> float | None:
    """
    Linearly interpolate collateral at risk at a collateral price ratio.

    Ratios outside the curve clamp to the nearest endpoint. Points sharing a
    ratio collapse to the first of them in curve order.

    Args:
        points: Curve points in any order
        target_ratio: Collateral price ratio (e.g. 0.85 for a 15% drop)

    Returns:
        Interpolated collateral USD, or None for an empty curve
    """
    ordered = sorted(points, key=lambda p: p.collateral_price_ratio)
    if not ordered:
        return None

    ratios = np.array([p.collateral_price_ratio for p in ordered], dtype=float)
    values = np.array([p.collateral_usd for p in ordered], dtype=float)
    # np.interp picks the last of duplicate xp; keep the first
    ratios, first_index = np.unique(ratios, return_index=True)
    return float(np.interp(target_ratio, ratios, values[first_index]))


def summarize_liquidations(
    incidents: Iterable[LiquidationIncident], now_timestamp: float, window_days: int
) -> LiquidationSummary:
    """Totals for incidents with timestamp >= now - window."""
    lower_bound = now_timestamp - window_days * SECONDS_PER_DAY
    in_window = [i for i in incidents if i.timestamp >= lower_bound]

    return LiquidationSummary(
        window_days=window_days,
        incident_count=len(in_window),
        repaid_usd=sum(i.repaid_usd for i in in_window),
        seized_usd=sum(i.seized_usd for i in in_window),
        bad_debt_usd=sum(i.bad_debt_usd for i in in_window),
    )


def _scale_positions(
    positions: Iterable[RiskPosition], current_share_by_market: Mapping[str, float]
) -> list[RiskPosition]:
    scaled = []
    for position in positions:
        share = current_share_by_market.get(position.market_key, 0.0)
        scaled.append(
            position.model_copy(
                update={
                    "borrow_usd": position.borrow_usd * share,
                    "collateral_usd": position.collateral_usd * share,
                    "margin_usd": position.margin_usd * share,
                }
            )
        )
    return scaled


def _scale_liquidations(
    liquidations: Iterable[LiquidationIncident], historical_share: ShareResolver
) -> list[LiquidationIncident]:
    scaled = []
    for incident in liquidations:
        share = historical_share(incident.market_key, incident.timestamp)
        scaled.append(
            incident.model_copy(
                update={
                    "repaid_usd": incident.repaid_usd * share,
                    "seized_usd": incident.seized_usd * share,
                    "bad_debt_usd": incident.bad_debt_usd * share,
                }
            )
        )
    return scaled


def calculate_weighted_lltv(allocations: Iterable[VaultAllocationRow]) -> float | None:
    """
    Allocation-weighted LLTV over non-idle markets.

    Formula: Σ(allocation_i × lltv_i) / Σ(allocation_i)
    """
    inputs = [
        a
        for a in allocations
        if a.allocation_usd > 0 and a.lltv is not None and a.lltv > 0 and not a.is_idle
    ]
    denominator = sum(a.allocation_usd for a in inputs)
    if denominator <= 0:
        return None
    return sum(a.allocation_usd * a.lltv for a in inputs) / denominator


def calculate_concentration(allocations: Iterable[VaultAllocationRow]) -> tuple[float, float]:
    """
    Largest allocation share and Herfindahl-Hirschman index.

    Formula: HHI = Σ(allocation_pct_i²), idle included

    Returns:
        Tuple of (top_market_concentration, concentration_hhi)
    """
    shares = np.array([a.allocation_pct for a in allocations], dtype=float)
    if shares.size == 0:
        return 0.0, 0.0
    return max(float(shares.max()), 0.0), float(np.sum(shares**2))


def is_near_liquidation(position: RiskPosition) -> bool:
    """HF <= 1.10 or position LTV >= 90% of market LLTV."""
    if position.borrow_usd <= 0:
        return False

    if position.health_factor is not None and position.health_factor <= NEAR_LIQUIDATION_HF:
        return True

    if position.collateral_usd <= 0 or position.lltv is None or position.lltv <= 0:
        return False

    position_ltv = position.borrow_usd / position.collateral_usd
    return position_ltv >= position.lltv * NEAR_LIQUIDATION_LLTV_FACTOR


def calculate_stress_collateral_at_risk(
    collateral_at_risk: Iterable[CollateralAtRiskSeries],
    allocations: Iterable[VaultAllocationRow],
    current_share_by_market: Mapping[str, float],
    target_ratio: float = STRESS_COLLATERAL_RATIO,
) -> float:
    """Vault-scaled collateral at risk at the stress price ratio, summed over markets."""
    allocated_markets = {a.market_key for a in allocations}
    total = 0.0

    for series in collateral_at_risk:
        if series.market_key not in allocated_markets:
            continue

        collateral_usd = interpolate_collateral_usd_at_ratio(series.points, target_ratio)
        if collateral_usd is None:
            continue

        share = current_share_by_market.get(series.market_key, 0.0)
        if share <= 0:
            continue

        total += collateral_usd * share

    return total


def build_health_buckets(
    positions: Iterable[RiskPosition], total_borrow_usd: float
) -> tuple[list[RiskHealthBucket], int]:
    """
    Bucket borrowers by their worst (minimum) health factor.

    Args:
        positions: Vault-scaled positions
        total_borrow_usd: Total scaled borrow, used for share_of_borrow

    Returns:
        Tuple of (buckets in band order, number of borrowers with positive borrow)
    """
    borrowers: dict[str, dict] = {}
    for position in positions:
        borrower = borrowers.setdefault(
            position.user_address, {"borrow_usd": 0.0, "min_health_factor": None}
        )
        borrower["borrow_usd"] += position.borrow_usd

        hf = position.health_factor
        if hf is not None:
            current = borrower["min_health_factor"]
            borrower["min_health_factor"] = hf if current is None else min(current, hf)

    totals = {band.label: {"borrow_usd": 0.0, "addresses": set()} for band in HEALTH_BANDS}
    for address, borrower in borrowers.items():
        band = next(
            (b for b in HEALTH_BANDS if b.matches(borrower["min_health_factor"])),
            HEALTH_BANDS[0],
        )
        totals[band.label]["borrow_usd"] += borrower["borrow_usd"]
        totals[band.label]["addresses"].add(address)

    buckets = [
        RiskHealthBucket(
            label=band.label,
            borrower_count=len(totals[band.label]["addresses"]),
            borrow_usd=totals[band.label]["borrow_usd"],
            share_of_borrow=(
                totals[band.label]["borrow_usd"] / total_borrow_usd if total_borrow_usd > 0 else 0.0
            ),
        )
        for band in HEALTH_BANDS
    ]
    active_borrowers = sum(1 for b in borrowers.values() if b["borrow_usd"] > 0)
    return buckets, active_borrowers


def compute_risk_analysis(
    snapshot: VaultSnapshot,
    allocations: Iterable[VaultAllocationRow],
    collateral_at_risk: Iterable[CollateralAtRiskSeries],
    positions: Iterable[RiskPosition],
    liquidations: Iterable[LiquidationIncident],
    current_share_by_market: Mapping[str, float],
    historical_share: ShareResolver,
    now: int | None = None,
) -> VaultRiskAnalysis:
    """
    Compute the vault risk analysis.

    Borrower positions are scaled by the vault's current share of each
    market; liquidations by the share at the incident timestamp.

    Args:
        snapshot: Vault snapshot
        allocations: Vault allocation rows
        collateral_at_risk: Collateral-at-risk curves per market
        positions: Unscaled borrower positions
        liquidations: Unscaled liquidation incidents, newest first
        current_share_by_market: Current vault share per market
        historical_share: Callable (market_key, timestamp) -> share
        now: Reference time for liquidation windows when the snapshot has
            no timestamp (defaults to wall clock)

    Returns:
        VaultRiskAnalysis
    """
    allocations = list(allocations)
    scaled_positions = _scale_positions(positions, current_share_by_market)
    scaled_liquidations = _scale_liquidations(liquidations, historical_share)

    weighted_lltv = calculate_weighted_lltv(allocations)

    total_borrow_usd = sum(p.borrow_usd for p in scaled_positions)
    total_collateral_usd = sum(p.collateral_usd for p in scaled_positions)

    weighted_borrow_ltv = total_borrow_usd / total_collateral_usd if total_collateral_usd > 0 else None
    lltv_headroom = (
        weighted_lltv - weighted_borrow_ltv
        if weighted_lltv is not None and weighted_borrow_ltv is not None
        else None
    )
    collateral_coverage_ratio = total_collateral_usd / total_borrow_usd if total_borrow_usd > 0 else None
    liquidity_coverage = (
        snapshot.liquidity_usd / snapshot.total_assets_usd if snapshot.total_assets_usd > 0 else None
    )

    top_market_concentration, concentration_hhi = calculate_concentration(allocations)

    near_liquidation_borrow_usd = sum(p.borrow_usd for p in scaled_positions if is_near_liquidation(p))

    stress_collateral_at_risk = calculate_stress_collateral_at_risk(
        collateral_at_risk, allocations, current_share_by_market
    )

    health_buckets, active_borrowers = build_health_buckets(scaled_positions, total_borrow_usd)
    active_positions = sum(1 for p in scaled_positions if p.borrow_usd > 0)

    if snapshot.as_of_timestamp > 0:
        now_timestamp = snapshot.as_of_timestamp
    else:
        now_timestamp = now if now is not None else int(time.time())

    scorecard = RiskScorecard(
        weighted_lltv=weighted_lltv,
        weighted_borrow_ltv=weighted_borrow_ltv,
        lltv_headroom=lltv_headroom,
        collateral_coverage_ratio=collateral_coverage_ratio,
        liquidity_coverage=liquidity_coverage,
        top_market_concentration=top_market_concentration,
        concentration_hhi=concentration_hhi,
        near_liquidation_borrow_usd=near_liquidation_borrow_usd,
        stress_collateral_at_risk_15pct_usd=stress_collateral_at_risk,
        total_borrow_usd=total_borrow_usd,
        total_collateral_usd=total_collateral_usd,
        active_borrowers=active_borrowers,
        active_positions=active_positions,
    )

    logger.info(
        f"Risk analysis: borrow=${total_borrow_usd:,.2f}, collateral=${total_collateral_usd:,.2f}, "
        f"near-liquidation=${near_liquidation_borrow_usd:,.2f}, {active_borrowers} borrowers"
    )

    summary_30d, summary_90d = (
        summarize_liquidations(scaled_liquidations, now_timestamp, window_days)
        for window_days in LIQUIDATION_SUMMARY_WINDOWS
    )

    return VaultRiskAnalysis(
        scorecard=scorecard,
        health_buckets=tuple(health_buckets),
        liquidation_summary_30d=summary_30d,
        liquidation_summary_90d=summary_90d,
        recent_liquidations=tuple(scaled_liquidations[:RECENT_LIQUIDATIONS_LIMIT]),
        methodology_notes=METHODOLOGY_NOTES,
    )
