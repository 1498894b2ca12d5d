"""Vault share of each underlying market, current and historical."""

import math
from collections.abc import Iterable, Mapping
from typing import Any

from vaultrisk.analysis.numeric import normalize_series, step_lookup, to_non_null_series
from vaultrisk.models import TimeseriesPoint, VaultAllocationRow


def _clamp_share(share: float) -> float:
    return max(0.0, min(1.0, share))


def build_current_share_by_market(allocations: Iterable[VaultAllocationRow]) -> dict[str, float]:
    """
    Current vault share of each market's total supply.

    Markets with non-positive supply or allocation get no entry.

    Args:
        allocations: Vault allocation rows

    Returns:
        Dict mapping market key to share in [0, 1]
    """
    shares = {}
    for allocation in allocations:
        if allocation.market_total_supply_usd <= 0 or allocation.allocation_usd <= 0:
            continue
        share = allocation.allocation_usd / allocation.market_total_supply_usd
        shares[allocation.market_key] = _clamp_share(share)
    return shares


def build_allocation_history_by_market(
    history_rows: Iterable[Mapping[str, Any]] | None,
) -> dict[str, list[TimeseriesPoint]]:
    """
    Index the vault's historical allocation series by market key.

    Args:
        history_rows: Raw `historicalState.allocation` rows from the API

    Returns:
        Dict mapping market key to normalized allocation series (USD)
    """
    history = {}
    for row in history_rows or []:
        market = row.get("market") or {}
        market_key = market.get("uniqueKey")
        if not market_key:
            continue
        history[market_key] = normalize_series(row.get("supplyAssetsUsd"))
    return history


class HistoricalShareResolver:
    """
    Vault share of a market at a point in time.

    Divides the step-looked-up vault allocation by the step-looked-up market
    supply. Falls back to the current share, then 0, whenever either series
    is missing or the ratio is undefined.
    """

    def __init__(
        self,
        current_share_by_market: Mapping[str, float],
        allocation_history_by_market: Mapping[str, list[TimeseriesPoint]],
        market_supply_history_by_market: Mapping[str, list[TimeseriesPoint]],
    ):
        self.current_share_by_market = dict(current_share_by_market)
        self._allocation_series = {
            key: to_non_null_series(series) for key, series in allocation_history_by_market.items()
        }
        self._market_supply_series = {
            key: to_non_null_series(series)
            for key, series in market_supply_history_by_market.items()
        }

    def __call__(self, market_key: str, timestamp: float) -> float:
        fallback = self.current_share_by_market.get(market_key, 0.0)
        allocation_series = self._allocation_series.get(market_key)
        supply_series = self._market_supply_series.get(market_key)

        if allocation_series is None or supply_series is None:
            return fallback

        allocation = step_lookup(allocation_series, timestamp)
        supply = step_lookup(supply_series, timestamp)
        if allocation is None or supply is None or supply <= 0:
            return fallback

        share = allocation / supply
        if not math.isfinite(share):
            return fallback
        return _clamp_share(share)
