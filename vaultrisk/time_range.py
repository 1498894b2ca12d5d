"""Chart range presets."""

from datetime import datetime, timezone

from vaultrisk.models import TimeRangeConfig, TimeRangeKey, TimeseriesInterval

DAY_IN_SECONDS = 24 * 60 * 60
HOUR_IN_SECONDS = 60 * 60

RANGE_DAYS = {"30D": 30, "60D": 60, "90D": 90}
ALL_RANGE_START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def get_time_range_config(range_key: TimeRangeKey, now: int | None = None) -> TimeRangeConfig:
    """
    Resolve a range preset into timestamps and a series interval.

    Fixed-day ranges start at UTC midnight N days ago. YTD starts on January
    1st UTC. ALL starts at 2024-01-01 UTC with weekly points and ends one
    hour after now.

    Args:
        range_key: One of 30D, 60D, 90D, YTD, ALL
        now: Current time (unix seconds, defaults to wall clock)

    Returns:
        TimeRangeConfig

    Raises:
        ValueError: If range_key is unknown
    """
    now_dt = datetime.fromtimestamp(now, tz=timezone.utc) if now is not None else datetime.now(timezone.utc)
    now_ts = int(now_dt.timestamp())
    start_of_today = int(now_dt.replace(hour=0, minute=0, second=0, microsecond=0).timestamp())

    if range_key in RANGE_DAYS:
        return TimeRangeConfig(
            start_timestamp=start_of_today - RANGE_DAYS[range_key] * DAY_IN_SECONDS,
            end_timestamp=now_ts,
            interval=TimeseriesInterval.DAY,
        )

    if range_key == "YTD":
        year_start = datetime(now_dt.year, 1, 1, tzinfo=timezone.utc)
        return TimeRangeConfig(
            start_timestamp=int(year_start.timestamp()),
            end_timestamp=now_ts,
            interval=TimeseriesInterval.DAY,
        )

    if range_key == "ALL":
        return TimeRangeConfig(
            start_timestamp=int(ALL_RANGE_START.timestamp()),
            end_timestamp=now_ts + HOUR_IN_SECONDS,
            interval=TimeseriesInterval.WEEK,
        )

    raise ValueError(f"Invalid time range: {range_key}")
