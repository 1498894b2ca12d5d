"""Per-market collateral-at-risk curves."""

import asyncio
from collections.abc import Iterable

from loguru import logger

from vaultrisk.analysis.numeric import to_finite_number
from vaultrisk.config import settings
from vaultrisk.exceptions import VaultRiskError
from vaultrisk.fetch.pagination import GraphQLExecutor
from vaultrisk.fetch.queries import COLLATERAL_AT_RISK_QUERY
from vaultrisk.models import (
    CollateralAtRiskPoint,
    CollateralAtRiskSeries,
    VaultAllocationRow,
    market_label,
)


async def fetch_market_collateral_at_risk(
    client: GraphQLExecutor, market_key: str, chain_id: int, number_of_points: int
) -> CollateralAtRiskSeries:
    """Fetch the collateral-at-risk curve of a single market."""
    data = await client.execute(
        COLLATERAL_AT_RISK_QUERY,
        {"uniqueKey": market_key, "chainId": chain_id, "numberOfPoints": number_of_points},
    )
    payload = data["marketCollateralAtRisk"]
    market = payload["market"]

    return CollateralAtRiskSeries(
        market_key=market["uniqueKey"],
        label=market_label(
            (market.get("collateralAsset") or {}).get("symbol"),
            market["loanAsset"]["symbol"],
        ),
        points=tuple(
            CollateralAtRiskPoint(
                collateral_price_ratio=to_finite_number(point.get("collateralPriceRatio")),
                collateral_usd=to_finite_number(point.get("collateralUsd")),
            )
            for point in payload.get("collateralAtRisk") or []
        ),
    )


async def fetch_collateral_at_risk(
    client: GraphQLExecutor,
    allocations: Iterable[VaultAllocationRow],
    chain_id: int,
    number_of_points: int | None = None,
) -> list[CollateralAtRiskSeries]:
    """
    Fetch collateral-at-risk curves for every allocated, non-idle market.

    Markets are fetched concurrently. A market whose request fails is
    logged and omitted; partial coverage does not fail the build.

    Args:
        client: GraphQL client
        allocations: Vault allocation rows
        chain_id: Chain id
        number_of_points: Stress points per curve (defaults to config)

    Returns:
        Curves for the markets that could be fetched, in allocation order
    """
    if number_of_points is None:
        number_of_points = settings.collateral_at_risk_points
    targets = [
        a for a in allocations if a.allocation_usd > 0 and a.lltv is not None and not a.is_idle
    ]
    if not targets:
        return []

    async def fetch_one(allocation: VaultAllocationRow) -> CollateralAtRiskSeries | None:
        try:
            return await fetch_market_collateral_at_risk(
                client, allocation.market_key, chain_id, number_of_points
            )
        except (VaultRiskError, KeyError, TypeError, AttributeError, ValueError) as e:
            logger.warning(f"Collateral-at-risk unavailable for {allocation.market_label}: {e}")
            return None

    results = await asyncio.gather(*(fetch_one(a) for a in targets))
    series = [s for s in results if s is not None]

    logger.info(f"Fetched collateral-at-risk for {len(series)}/{len(targets)} markets")
    return series
