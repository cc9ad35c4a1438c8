"""Display helpers for the query feed."""

import re
from datetime import datetime

TIME_PATTERN = re.compile(r'(?:T|\s)(\d{2}:\d{2}:\d{2}(?:\.\d{1,3})?)')


def format_duration(ms: int) -> str:
    """Format milliseconds as ``850ms``, ``1.5s`` or ``2.0m``."""
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60000:
        return f"{ms / 1000:.1f}s"
    return f"{ms / 60000:.1f}m"


def format_time(value: str) -> str:
    """Time-of-day part of a timestamp, or ``-`` when there is none."""
    if not value:
        return "-"

    match = TIME_PATTERN.search(value)
    if match:
        return match.group(1)

    try:
        return datetime.fromisoformat(value).strftime("%H:%M:%S")
    except ValueError:
        return value


def format_event_type(event_name: str) -> str:
    if "rpc" in event_name:
        return "RPC"
    if "batch" in event_name:
        return "BATCH"
    return event_name


def clean_sql(sql: str) -> str:
    """Collapse whitespace so a statement fits on one line."""
    return re.sub(r'\s+', ' ', sql).strip()


def format_count(value: int) -> str:
    return f"{value:,}"
