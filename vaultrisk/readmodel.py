"""Vault read-model orchestration: fetch, normalize, analyze."""

import asyncio
import time
from typing import Any

from loguru import logger

from vaultrisk.analysis.numeric import normalize_series, parse_ratio, to_finite_number
from vaultrisk.analysis.risk import compute_risk_analysis
from vaultrisk.analysis.series import build_performance_series, build_weighted_utilization_series
from vaultrisk.analysis.shares import (
    HistoricalShareResolver,
    build_allocation_history_by_market,
    build_current_share_by_market,
)
from vaultrisk.config import settings
from vaultrisk.exceptions import VaultNotFoundError
from vaultrisk.fetch.collateral import fetch_collateral_at_risk
from vaultrisk.fetch.liquidations import fetch_liquidations
from vaultrisk.fetch.pagination import GraphQLExecutor
from vaultrisk.fetch.positions import fetch_market_positions
from vaultrisk.fetch.queries import VAULT_DASHBOARD_QUERY
from vaultrisk.models import (
    IDLE_COLLATERAL_SYMBOL,
    TimeRangeConfig,
    VaultAllocationRow,
    VaultReadModel,
    VaultSnapshot,
)

SECONDS_PER_DAY = 24 * 60 * 60


def build_snapshot(vault: dict[str, Any]) -> VaultSnapshot:
    """Build the vault snapshot from a raw `vaultByAddress` payload."""
    state = vault.get("state") or {}
    chain = vault.get("chain") or {}

    return VaultSnapshot(
        name=vault.get("name") or "",
        symbol=vault.get("symbol") or "",
        address=vault["address"],
        chain_id=int(to_finite_number(chain.get("id"))),
        chain_network=chain.get("network") or "",
        total_assets_usd=to_finite_number(state.get("totalAssetsUsd")),
        net_apy=to_finite_number(state.get("netApy")),
        performance_fee=to_finite_number(state.get("fee")),
        liquidity_usd=to_finite_number((vault.get("liquidity") or {}).get("usd")),
        as_of_timestamp=int(to_finite_number(state.get("timestamp"))),
    )


def build_allocation_row(allocation: dict[str, Any], total_assets_usd: float) -> VaultAllocationRow:
    """Build one allocation row from a raw `state.allocation` entry."""
    market = allocation["market"]
    market_state = market.get("state") or {}
    historical = market.get("historicalState") or {}
    allocation_usd = to_finite_number(allocation.get("supplyAssetsUsd"))

    net_apy = market_state.get("netSupplyApy")
    if net_apy is None:
        net_apy = market_state.get("supplyApy")

    return VaultAllocationRow(
        market_key=market["uniqueKey"],
        collateral_symbol=(market.get("collateralAsset") or {}).get("symbol") or IDLE_COLLATERAL_SYMBOL,
        loan_symbol=market["loanAsset"]["symbol"],
        allocation_usd=allocation_usd,
        allocation_pct=0.0 if total_assets_usd == 0 else allocation_usd / total_assets_usd,
        lltv=parse_ratio(market.get("lltv")),
        market_total_supply_usd=to_finite_number(market_state.get("supplyAssetsUsd")),
        market_liquidity_usd=to_finite_number(market_state.get("liquidityAssetsUsd")),
        market_utilization=to_finite_number(market_state.get("utilization")),
        market_net_apy=to_finite_number(net_apy),
        utilization_history=tuple(normalize_series(historical.get("utilizationRange"))),
    )


def build_allocation_rows(vault: dict[str, Any], total_assets_usd: float) -> list[VaultAllocationRow]:
    """Allocation rows sorted by allocation USD, largest first."""
    rows = [
        build_allocation_row(allocation, total_assets_usd)
        for allocation in (vault.get("state") or {}).get("allocation") or []
    ]
    return sorted(rows, key=lambda row: row.allocation_usd, reverse=True)


def build_market_supply_history(vault: dict[str, Any]) -> dict[str, list]:
    """Market total supply series (risk window) keyed by market."""
    history = {}
    for allocation in (vault.get("state") or {}).get("allocation") or []:
        market = allocation["market"]
        historical = market.get("historicalState") or {}
        history[market["uniqueKey"]] = normalize_series(historical.get("supplyAssetsUsd"))
    return history


def risk_market_keys(allocations: list[VaultAllocationRow]) -> list[str]:
    """Markets with an active, non-idle allocation."""
    return [a.market_key for a in allocations if a.allocation_usd > 0 and not a.is_idle]


async def build_vault_read_model(
    client: GraphQLExecutor,
    vault_address: str,
    chain_id: int,
    time_range: TimeRangeConfig,
    now: int | None = None,
) -> VaultReadModel:
    """
    Build the read model for one vault and display range.

    Chart series follow the requested range. Risk inputs (market supply
    history, liquidations) always look back a fixed window regardless of
    the display range.

    Args:
        client: GraphQL client
        vault_address: Vault contract address
        chain_id: Chain id
        time_range: Display range for chart series
        now: Current time (unix seconds, defaults to wall clock)

    Returns:
        VaultReadModel

    Raises:
        VaultNotFoundError: If the vault does not exist at the source
        MorphoAPIError: If the vault, position or liquidation queries fail
    """
    now = now if now is not None else int(time.time())
    lookback_days = settings.risk_lookback_days
    risk_start_timestamp = now - lookback_days * SECONDS_PER_DAY

    logger.info(
        f"Building read model for {vault_address} on chain {chain_id} "
        f"({time_range.start_timestamp} -> {time_range.end_timestamp}, {time_range.interval.value})"
    )

    data = await client.execute(
        VAULT_DASHBOARD_QUERY,
        {
            "address": vault_address,
            "chainId": chain_id,
            "startTimestamp": time_range.start_timestamp,
            "endTimestamp": time_range.end_timestamp,
            "interval": time_range.interval.value,
            "riskStartTimestamp": risk_start_timestamp,
            "riskEndTimestamp": time_range.end_timestamp,
        },
    )

    vault = data.get("vaultByAddress")
    if not vault:
        raise VaultNotFoundError(vault_address, chain_id)

    snapshot = build_snapshot(vault)
    allocations = build_allocation_rows(vault, snapshot.total_assets_usd)
    historical_state = vault.get("historicalState") or {}

    allocation_history = build_allocation_history_by_market(historical_state.get("allocation"))
    current_share_by_market = build_current_share_by_market(allocations)
    historical_share = HistoricalShareResolver(
        current_share_by_market,
        allocation_history,
        build_market_supply_history(vault),
    )
    market_keys = risk_market_keys(allocations)

    logger.info(
        f"Vault {snapshot.name or snapshot.address}: ${snapshot.total_assets_usd:,.2f} across "
        f"{len(allocations)} markets ({len(market_keys)} with risk exposure)"
    )

    collateral_at_risk, positions, liquidations = await asyncio.gather(
        fetch_collateral_at_risk(client, allocations, chain_id),
        fetch_market_positions(client, market_keys, chain_id),
        fetch_liquidations(client, market_keys, chain_id, lookback_days=lookback_days, now=now),
    )

    risk = compute_risk_analysis(
        snapshot=snapshot,
        allocations=allocations,
        collateral_at_risk=collateral_at_risk,
        positions=positions,
        liquidations=liquidations,
        current_share_by_market=current_share_by_market,
        historical_share=historical_share,
        now=now,
    )

    return VaultReadModel(
        snapshot=snapshot,
        allocations=tuple(allocations),
        performance_series=tuple(build_performance_series(historical_state.get("sharePriceUsd"))),
        net_apy_series=tuple(normalize_series(historical_state.get("netApy"))),
        supply_series=tuple(normalize_series(historical_state.get("totalAssetsUsd"))),
        utilization_series=tuple(build_weighted_utilization_series(allocations, allocation_history)),
        collateral_at_risk=tuple(collateral_at_risk),
        risk=risk,
    )
