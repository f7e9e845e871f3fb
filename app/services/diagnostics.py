"""
Diagnostics helpers — DTC summaries shared by the vehicle and DTC routes.
"""

from typing import Iterable

IMPACT_LEVELS = ("low", "mid", "high")
DTC_STATUSES = ("active", "resolved", "ignored")

_SEVERITY = {"high": 0, "mid": 1, "low": 2}


def vehicle_dtc_statistics(dtcs: Iterable[dict]) -> dict:
    """
    Counts shown on a vehicle card.

    high_impact counts only DTCs that are both high impact and still active.
    """
    dtcs = list(dtcs)
    return {
        "total_dtcs": len(dtcs),
        "active_dtcs": sum(1 for d in dtcs if d.get("status") == "active"),
        "resolved_dtcs": sum(1 for d in dtcs if d.get("status") == "resolved"),
        "high_impact": sum(
            1 for d in dtcs
            if d.get("impact_level") == "high" and d.get("status") == "active"
        ),
    }


def impact_breakdown(dtcs: Iterable[dict]) -> dict:
    """Number of DTCs per impact level (high, mid, low)."""
    counts = {"high": 0, "mid": 0, "low": 0}
    for dtc in dtcs:
        level = dtc.get("impact_level")
        if level in counts:
            counts[level] += 1
    return counts


def sort_by_severity(dtcs: Iterable[dict]) -> list[dict]:
    """High impact first, then most recent occurrence first within a level."""
    by_recency = sorted(dtcs, key=lambda d: d.get("occurred_at") or "", reverse=True)
    return sorted(by_recency, key=lambda d: _SEVERITY.get(d.get("impact_level"), len(_SEVERITY)))
