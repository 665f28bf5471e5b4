"""
Timestamp Alignment Utilities

Provides functions for aligning timestamps to interval boundaries.
The aligned timestamp is the time bucket of a polling cycle: the natural
key of every row that cycle writes.

Example:
    A cycle triggered at 14:30:20.134 with a 60-second granularity writes
    its rows under 14:30:00, so a duplicate trigger at 14:30:20.900 maps
    to the same bucket and is ignored.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

BUCKET_FORMAT = "%Y-%m-%d %H:%M:%S"


def align_timestamp(ts: datetime, interval_seconds: float) -> datetime:
    """
    Align timestamp to the previous interval boundary.

    Rounds DOWN, so all instants within the same interval share an
    identical, deterministic bucket.

    Args:
        ts: The timestamp to align (timezone-aware recommended)
        interval_seconds: The interval in seconds (1, 30, 60, ...)

    Returns:
        Aligned datetime, preserving the original timezone

    Examples:
        14:30:17 with 1s  -> 14:30:17
        14:30:45 with 30s -> 14:30:30
        14:30:17 with 60s -> 14:30:00
    """
    if interval_seconds <= 0:
        return ts

    epoch = ts.timestamp()
    aligned_epoch = (epoch // interval_seconds) * interval_seconds

    tz = ts.tzinfo or timezone.utc
    return datetime.fromtimestamp(aligned_epoch, tz)



def format_bucket(bucket: datetime, tz_name: str) -> str:
    """
    Format a bucket for storage in the site's local time.

    Args:
        bucket: Aligned, timezone-aware timestamp
        tz_name: IANA zone name, e.g. "America/Tegucigalpa"

    Returns:
        "YYYY-MM-DD HH:MM:SS" in the given zone
    """
    if bucket.tzinfo is None:
        bucket = bucket.replace(tzinfo=timezone.utc)
    return bucket.astimezone(ZoneInfo(tz_name)).strftime(BUCKET_FORMAT)
