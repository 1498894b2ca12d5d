"""Liquidation transactions in the vault's markets."""

import time

from loguru import logger

from vaultrisk.analysis.numeric import to_finite_number
from vaultrisk.config import settings
from vaultrisk.exceptions import MorphoAPIError
from vaultrisk.fetch.pagination import GraphQLExecutor, paginate
from vaultrisk.fetch.queries import LIQUIDATIONS_QUERY
from vaultrisk.models import LiquidationIncident, market_label

SECONDS_PER_DAY = 24 * 60 * 60


def parse_liquidation(item: dict) -> LiquidationIncident | None:
    """Convert a raw transaction item; None if it carries no liquidation data."""
    data = item.get("data")
    if not data:
        return None

    market = data["market"]
    return LiquidationIncident(
        id=item["id"],
        timestamp=int(to_finite_number(item.get("timestamp"))),
        hash=item.get("hash") or "",
        market_key=market["uniqueKey"],
        market_label=market_label(
            (market.get("collateralAsset") or {}).get("symbol"),
            market["loanAsset"]["symbol"],
        ),
        repaid_usd=to_finite_number(data.get("repaidAssetsUsd")),
        seized_usd=to_finite_number(data.get("seizedAssetsUsd")),
        bad_debt_usd=to_finite_number(data.get("badDebtAssetsUsd")),
    )


async def fetch_liquidations(
    client: GraphQLExecutor,
    market_keys: list[str],
    chain_id: int,
    lookback_days: int | None = None,
    page_size: int | None = None,
    now: int | None = None,
) -> list[LiquidationIncident]:
    """
    Fetch liquidation transactions within the lookback window.

    Args:
        client: GraphQL client
        market_keys: Market unique keys
        chain_id: Chain id
        lookback_days: Window length in days (defaults to config)
        page_size: Items per page (defaults to config)
        now: Window end (unix seconds, defaults to wall clock)

    Returns:
        Unscaled incidents sorted newest first
    """
    if not market_keys:
        return []

    if lookback_days is None:
        lookback_days = settings.risk_lookback_days
    now = now if now is not None else int(time.time())

    items = await paginate(
        client,
        LIQUIDATIONS_QUERY,
        {
            "marketKeys": market_keys,
            "chainIds": [chain_id],
            "timestampGte": now - lookback_days * SECONDS_PER_DAY,
        },
        root_field="transactions",
        page_size=settings.liquidations_page_size if page_size is None else page_size,
    )

    try:
        parsed = [parse_liquidation(item) for item in items]
    except (KeyError, TypeError, AttributeError, ValueError) as e:
        raise MorphoAPIError(f"Morpho API returned malformed liquidations: {e}") from e

    incidents = [i for i in parsed if i is not None]
    incidents.sort(key=lambda i: i.timestamp, reverse=True)

    logger.info(f"Fetched {len(incidents)} liquidations over {lookback_days} days")
    return incidents
