"""Timestamp helpers.

Everything is UTC and timezone-aware. Rows are written with ``iso_now()``;
rows read back from either record store go through ``parse_timestamp()``.
Scheduler and alert clocks are plain epoch seconds.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_now() -> str:
    """``created_at`` value for a new row, e.g. ``2024-05-01T12:00:00.123456+00:00``."""
    return utc_now().isoformat()


def epoch_millis(now: float | None = None) -> int:
    """Wall-clock milliseconds; ``now`` is epoch seconds from an injected clock."""
    seconds = time.time() if now is None else now
    return int(seconds * 1000)


def from_epoch_seconds(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a stored ``created_at`` into an aware UTC datetime.

    SQLite rows hold our own ISO strings; PostgREST returns Postgres
    ``timestamptz`` text such as ``2024-05-01 12:00:00.12+00``, which
    ``fromisoformat`` rejects before Python 3.11 and dateutil handles.
    Naive values are taken as UTC. Anything unparseable gives ``None``.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            try:
                parsed = date_parser.isoparse(raw)
            except (ValueError, OverflowError):
                return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
