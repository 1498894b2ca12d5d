"""Borrower positions in the vault's markets."""

from loguru import logger

from vaultrisk.analysis.numeric import parse_ratio, to_finite_number
from vaultrisk.config import settings
from vaultrisk.exceptions import MorphoAPIError
from vaultrisk.fetch.pagination import GraphQLExecutor, paginate
from vaultrisk.fetch.queries import MARKET_POSITIONS_QUERY
from vaultrisk.models import RiskPosition, market_label


def parse_position(item: dict) -> RiskPosition:
    """Convert a raw `marketPositions` item into a RiskPosition."""
    market = item["market"]
    state = item.get("state") or {}
    health_factor = item.get("healthFactor")

    return RiskPosition(
        id=item["id"],
        user_address=(item.get("user") or {}).get("address") or item["id"],
        market_key=market["uniqueKey"],
        market_label=market_label(
            (market.get("collateralAsset") or {}).get("symbol"),
            market["loanAsset"]["symbol"],
        ),
        lltv=parse_ratio(market.get("lltv")),
        health_factor=None if health_factor is None else to_finite_number(health_factor),
        borrow_usd=to_finite_number(state.get("borrowAssetsUsd")),
        collateral_usd=to_finite_number(state.get("collateralUsd")),
        margin_usd=to_finite_number(state.get("marginUsd")),
    )


async def fetch_market_positions(
    client: GraphQLExecutor,
    market_keys: list[str],
    chain_id: int,
    page_size: int | None = None,
) -> list[RiskPosition]:
    """
    Fetch all borrowing positions (borrow shares >= 1) in the given markets.

    Args:
        client: GraphQL client
        market_keys: Market unique keys
        chain_id: Chain id
        page_size: Items per page (defaults to config)

    Returns:
        Positions with positive borrow USD, unscaled
    """
    if not market_keys:
        return []

    items = await paginate(
        client,
        MARKET_POSITIONS_QUERY,
        {"marketKeys": market_keys, "chainIds": [chain_id]},
        root_field="marketPositions",
        page_size=settings.positions_page_size if page_size is None else page_size,
    )

    try:
        parsed = [parse_position(item) for item in items]
    except (KeyError, TypeError, AttributeError, ValueError) as e:
        raise MorphoAPIError(f"Morpho API returned malformed market positions: {e}") from e

    positions = [p for p in parsed if p.borrow_usd > 0]
    logger.info(
        f"Fetched {len(positions)} borrowing positions across {len(market_keys)} markets "
        f"({len(items)} raw)"
    )
    return positions
