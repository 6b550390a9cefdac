"""Earnings rollup arithmetic for a settled fare"""

from datetime import datetime
from typing import Any, Dict, List
from fareflow_gateway.domain.models import EarningsSnapshot
from fareflow_gateway.utils.date_utils import day_key, month_key


def _add_to_bucket(entries: List[Dict[str, Any]], key_field: str, key: str, amount: int) -> List[Dict[str, Any]]:
    """Return a copy of entries with amount added to the entry for key (appended if missing)"""
    updated = [dict(entry) for entry in entries]
    for entry in updated:
        if entry.get(key_field) == key:
            entry["amount"] = int(entry.get("amount", 0)) + amount
            return updated

    updated.append({key_field: key, "amount": amount})
    return updated


def accrue_earnings(
    snapshot: EarningsSnapshot,
    fare_amount: int,
    settled_at: datetime,
    tz_name: str = "UTC",
) -> EarningsSnapshot:
    """
    Roll one settled fare into a bus's earnings.

    Invariants:
    - At most one weekly entry per calendar day
    - At most one monthly entry per month label
    - Weekly, monthly and lifetime totals each grow by exactly fare_amount

    The input snapshot is not modified.
    """
    return EarningsSnapshot(
        weekly_earnings=_add_to_bucket(
            snapshot.weekly_earnings, "day", day_key(settled_at, tz_name), fare_amount
        ),
        monthly_earnings=_add_to_bucket(
            snapshot.monthly_earnings, "month", month_key(settled_at, tz_name), fare_amount
        ),
        total_earnings=(snapshot.total_earnings or 0) + fare_amount,
    )
