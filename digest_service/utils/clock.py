"""Injectable time source for expiry and day-bucketed counters."""

from __future__ import annotations

import datetime
from typing import Protocol


class Clock(Protocol):
  """Anything that can report the current UTC time."""

  def now(self) -> datetime.datetime:
    """Return a timezone-aware UTC timestamp."""
    ...


class SystemClock:
  """Wall-clock time in UTC."""

  def now(self) -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def utc_day(now: datetime.datetime) -> str:
  """Return the UTC calendar day for a timestamp as YYYY-MM-DD."""
  if now.tzinfo is None:
    raise ValueError("now must be timezone-aware (UTC).")
  return now.astimezone(datetime.UTC).date().isoformat()


def isoformat_z(now: datetime.datetime) -> str:
  """Format a timestamp the way job records store it."""
  return now.astimezone(datetime.UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
