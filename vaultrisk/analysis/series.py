"""Derived chart series: performance index and weighted utilization."""

from collections.abc import Iterable, Mapping
from typing import Any

import pandas as pd
from loguru import logger

from vaultrisk.analysis.numeric import normalize_series, step_lookup, to_non_null_series
from vaultrisk.models import TimeseriesPoint, VaultAllocationRow

PERFORMANCE_INDEX_BASE = 1000.0


def build_performance_series(
    share_price_series: Iterable[TimeseriesPoint | Mapping[str, Any]] | None,
) -> list[TimeseriesPoint]:
    """
    Rebase the vault share price to a growth-of-1000 index.

    Formula: index_t = share_price_t / share_price_0 × 1000, where
    share_price_0 is the first non-null value.

    Args:
        share_price_series: Raw share price series (USD)

    Returns:
        Indexed series; the normalized series unscaled if the baseline is 0
    """
    series = normalize_series(share_price_series)
    baseline = next((p.y for p in series if p.y is not None), 1.0)

    if not baseline:
        return series

    return [
        TimeseriesPoint(x=p.x, y=None if p.y is None else p.y / baseline * PERFORMANCE_INDEX_BASE)
        for p in series
    ]


def build_weighted_utilization_series(
    allocations: Iterable[VaultAllocationRow],
    allocation_history_by_market: Mapping[str, list[TimeseriesPoint]],
) -> list[TimeseriesPoint]:
    """
    Allocation-weighted average utilization across the vault's markets.

    Weights are re-evaluated at every timestamp from the vault's historical
    allocation to each market, falling back to the current allocation when
    the market has no allocation history.

    Formula: u_t = Σ(u_m,t × w_m,t) / Σ(w_m,t)

    Args:
        allocations: Allocation rows with utilization history
        allocation_history_by_market: Vault allocation series per market (USD)

    Returns:
        Weighted utilization series sorted by timestamp
    """
    rows = []
    for allocation in allocations:
        history = to_non_null_series(allocation_history_by_market.get(allocation.market_key, []))

        for point in allocation.utilization_history:
            if point.y is None:
                continue

            weight = step_lookup(history, point.x)
            if weight is None:
                weight = max(allocation.allocation_usd, 0.0)
            if weight <= 0:
                continue

            rows.append({"x": point.x, "weighted": point.y * weight, "weight": weight})

    if not rows:
        return []

    grouped = pd.DataFrame(rows).groupby("x", sort=True)[["weighted", "weight"]].sum()
    logger.debug(f"Weighted utilization: {len(rows)} market points -> {len(grouped)} timestamps")

    return [
        TimeseriesPoint(
            x=float(x),
            y=None if row.weight == 0 else float(row.weighted / row.weight),
        )
        for x, row in grouped.iterrows()
    ]
