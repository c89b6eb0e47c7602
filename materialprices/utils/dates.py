"""Datetime helpers."""

from __future__ import annotations

import os
from datetime import date, datetime, timezone

import pendulum

DEFAULT_TZ = "America/Chicago"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_in_tz() -> pendulum.DateTime:
    tz = pendulum.timezone(timezone_name())
    return pendulum.now(tz)


def today_in_tz() -> date:
    return now_in_tz().date()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")
