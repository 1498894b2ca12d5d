"""Numeric coercion and time series helpers shared by the analysis modules."""

import math
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

import numpy as np

from vaultrisk.models import TimeseriesPoint

WAD = 10**18
RATIO_DECIMALS = 6


def _coerce_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    return numeric if math.isfinite(numeric) else None


def to_finite_number(value: Any) -> float:
    """
    Coerce a value to a float, returning 0.0 for anything not finite.

    Args:
        value: Number, numeric string, None or anything else

    Returns:
        Finite float (0.0 on failure)
    """
    numeric = _coerce_float(value)
    return 0.0 if numeric is None else numeric


def _wad_to_ratio(raw: int) -> float:
    # Integer arithmetic, truncated to RATIO_DECIMALS digits
    micro = abs(raw) * 10**RATIO_DECIMALS // WAD
    ratio = float(Decimal(micro).scaleb(-RATIO_DECIMALS))
    return -ratio if raw < 0 else ratio


def parse_ratio(value: Any) -> float | None:
    """
    Parse a ratio that may be WAD-scaled (1e18 fixed point).

    Integer strings are always treated as WAD-scaled. Plain numbers and
    decimal strings are ratios unless greater than 1, in which case they are
    assumed to be WAD-scaled as well.

    Args:
        value: Raw ratio from the API (e.g. "860000000000000000" or 0.86)

    Returns:
        Ratio as float, or None if the input cannot be parsed
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return _wad_to_ratio(value) if value > 1 else float(value)

    if isinstance(value, str):
        text = value.strip()
        try:
            return _wad_to_ratio(int(text))
        except ValueError:
            pass
        numeric = _coerce_float(text)
    else:
        numeric = _coerce_float(value)

    if numeric is None:
        return None
    return numeric / 1e18 if numeric > 1 else numeric


def _point_fields(point: TimeseriesPoint | Mapping[str, Any]) -> tuple[Any, Any]:
    if isinstance(point, TimeseriesPoint):
        return point.x, point.y
    return point.get("x"), point.get("y")


def normalize_series(
    points: Iterable[TimeseriesPoint | Mapping[str, Any]] | None,
) -> list[TimeseriesPoint]:
    """
    Coerce, filter and sort a raw API series.

    Points with a non-finite timestamp are dropped. Gaps (y=None) are kept;
    a y value that cannot be coerced to a finite number becomes a gap.

    Args:
        points: Raw points as dicts with x/y keys or TimeseriesPoint models

    Returns:
        Points sorted ascending by timestamp
    """
    normalized = []
    for point in points or []:
        raw_x, raw_y = _point_fields(point)
        x = _coerce_float(raw_x)
        if x is None:
            continue
        normalized.append(TimeseriesPoint(x=x, y=_coerce_float(raw_y)))

    return sorted(normalized, key=lambda p: p.x)


def to_non_null_series(points: Iterable[TimeseriesPoint]) -> list[TimeseriesPoint]:
    """Drop gaps and sort ascending by timestamp."""
    return sorted((p for p in points if p.y is not None), key=lambda p: p.x)


def step_lookup(series: list[TimeseriesPoint], timestamp: float) -> float | None:
    """
    Last observed value at a timestamp (step function semantics).

    Args:
        series: Non-null points sorted ascending by timestamp
        timestamp: Lookup time (unix seconds)

    Returns:
        Value of the last point with x <= timestamp, the first value if the
        timestamp precedes the series, or None for an empty series
    """
    if not series:
        return None

    xs = np.fromiter((p.x for p in series), dtype=float, count=len(series))
    index = int(np.searchsorted(xs, timestamp, side="right")) - 1
    return series[max(index, 0)].y
