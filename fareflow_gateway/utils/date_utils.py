"""Date and key helpers for settlements and earnings rollups"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_local(moment: datetime, tz_name: str) -> datetime:
    """Convert a moment to the service timezone (naive values are taken as UTC)"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz_name))


def day_key(moment: datetime, tz_name: str = "UTC") -> str:
    """Calendar day key, e.g. "2025-05-26" """
    return to_local(moment, tz_name).date().isoformat()


def month_key(moment: datetime, tz_name: str = "UTC") -> str:
    """Month label, e.g. "May 2025" """
    return to_local(moment, tz_name).strftime("%b %Y")


def epoch_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def make_transaction_id(card_uid: str, moment: datetime) -> str:
    """Transaction ids are "{cardUID}-{epochMillis}" """
    return f"{card_uid}-{epoch_millis(moment)}"


def format_transaction_date(moment: datetime, tz_name: str = "UTC") -> str:
    return to_local(moment, tz_name).strftime("%d/%m/%Y, %H:%M:%S")
