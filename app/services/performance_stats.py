"""
Performance Stats — query windows and chart aggregation for telemetry rows.

Pure functions over dates and row dicts; the routes in
app/api/performance.py do the Supabase I/O.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from pydantic import TypeAdapter, ValidationError

FILTER_TYPES = ("day", "weekend", "week", "range")
GROUP_BY_OPTIONS = ("hour", "day", "week", "month")
METRIC_OPTIONS = ("rpm", "speed", "temperature")
AGGREGATION_TYPES = ("avg", "min", "max", "all")

# metric name -> vehicle_performance_data column
METRIC_COLUMNS = {
    "rpm": "rpm",
    "speed": "speed",
    "temperature": "coolantTemp",
}


def _day_bounds(start: date, end: date) -> tuple[str, str]:
    return (
        f"{start.isoformat()}T00:00:00.000Z",
        f"{end.isoformat()}T23:59:59.999Z",
    )


def _parse_day(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise ValueError(f"{name} must be a valid date (YYYY-MM-DD)")


def resolve_date_window(
    filter_type: Optional[str],
    target_date: Optional[str] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
    today: Optional[date] = None,
) -> tuple[str, str]:
    """
    Turn the history filter into an inclusive [start, end] ISO timestamp pair.

    - day (and unknown/missing): the whole of target_date, default today
    - weekend: Monday..Sunday of the week containing target_date
    - range / week: from_date..to_date, both required

    Raises:
        ValueError: Missing range bounds or unparseable dates.
    """
    today = today or datetime.now(timezone.utc).date()

    if filter_type == "weekend":
        anchor = _parse_day(target_date, "date") if target_date else today
        monday = anchor - timedelta(days=anchor.weekday())
        return _day_bounds(monday, monday + timedelta(days=6))

    if filter_type in ("range", "week"):
        if not from_date or not to_date:
            raise ValueError("fromDate and toDate are required for range filtering")
        start = _parse_day(from_date, "fromDate")
        end = _parse_day(to_date, "toDate")
        if end < start:
            raise ValueError("toDate must be on or after fromDate")
        return _day_bounds(start, end)

    day = _parse_day(target_date, "date") if target_date else today
    return _day_bounds(day, day)


def strip_nulls(record: dict) -> dict:
    """Drop null columns from a stored row."""
    return {key: value for key, value in record.items() if value is not None}


_timestamp_adapter = TypeAdapter(datetime)


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        return _timestamp_adapter.validate_python(value)
    except ValidationError:
        return None


def period_key(ts: datetime, group_by: str) -> str:
    """Bucket label for a timestamp, sortable as a string."""
    if group_by == "hour":
        return ts.strftime("%Y-%m-%d %H:00:00")
    if group_by == "week":
        iso_year, iso_week, _ = ts.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if group_by == "month":
        return ts.strftime("%Y-%m")
    return ts.strftime("%Y-%m-%d")


def aggregate_by_period(
    rows: Iterable[dict],
    group_by: str = "day",
    metrics: Iterable[str] = METRIC_OPTIONS,
    aggregation_type: str = "all",
) -> list[dict]:
    """
    Group telemetry rows by period and summarise each requested metric.

    Each bucket has `period`, `data_points`, and per metric
    avg_<metric> / max_<metric> / min_<metric> (only the requested ones).
    Missing readings are ignored; a metric with no readings in a bucket
    yields None. Rows with a missing or unreadable timestamp are skipped.
    Average RPM is a whole number, other averages keep two decimals.
    Buckets come back in chronological order.
    """
    metrics = [m for m in metrics if m in METRIC_COLUMNS]
    wanted = ("avg", "max", "min") if aggregation_type == "all" else (aggregation_type,)

    buckets: dict[str, list[dict]] = {}
    for row in rows:
        ts = _parse_timestamp(row["timestamp"]) if row.get("timestamp") else None
        if ts is None:
            continue
        key = period_key(ts, group_by)
        buckets.setdefault(key, []).append(row)

    summary = []
    for key in sorted(buckets):
        bucket = buckets[key]
        entry: dict = {"period": key, "data_points": len(bucket)}
        for metric in metrics:
            column = METRIC_COLUMNS[metric]
            values = [r[column] for r in bucket if r.get(column) is not None]
            if "avg" in wanted:
                if values:
                    avg = sum(values) / len(values)
                    entry[f"avg_{metric}"] = round(avg) if metric == "rpm" else round(avg, 2)
                else:
                    entry[f"avg_{metric}"] = None
            if "max" in wanted:
                entry[f"max_{metric}"] = max(values) if values else None
            if "min" in wanted:
                entry[f"min_{metric}"] = min(values) if values else None
        summary.append(entry)

    return summary
