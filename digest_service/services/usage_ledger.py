"""Daily per-user, per-action usage counters for quota enforcement."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from digest_service.storage.kv_store import KeyValueStore
from digest_service.utils.clock import Clock, SystemClock, utc_day

logger = logging.getLogger(__name__)

# Counters outlive their day by a margin so late reads near midnight still see them.
_COUNTER_TTL_SECONDS = 60 * 60 * 48


class QuotaExceededError(RuntimeError):
  """Raised when a user has no remaining daily quota for an action."""


@dataclass(frozen=True)
class UsageSnapshot:
  """Usage of a single action for the current UTC day."""

  action: str
  day: str
  limit: int
  used: int
  remaining: int


def usage_key(user_id: str, action: str, day: str) -> str:
  return f"usage:{user_id}:{action}:{day}"


class UsageLedger:
  """Check-before, record-after-success counters bucketed by UTC day.

  The day comes from the injected clock, so a new day simply means a new key
  and yesterday's count stops mattering without any reset.
  """

  def __init__(self, store: KeyValueStore, clock: Clock | None = None) -> None:
    self._store = store
    self._clock = clock or SystemClock()

  def _key(self, user_id: str, action: str) -> tuple[str, str]:
    day = utc_day(self._clock.now())
    return usage_key(user_id, action, day), day

  async def snapshot(self, user_id: str, action: str, limit: int) -> UsageSnapshot:
    if limit < 0:
      raise ValueError("limit must be >= 0")
    key, day = self._key(user_id, action)
    raw = await self._store.get(key)
    used = int(raw) if raw is not None else 0
    return UsageSnapshot(action=action, day=day, limit=limit, used=used, remaining=max(limit - used, 0))

  async def check_quota(self, user_id: str, action: str, limit: int) -> bool:
    """Return True while today's count for the action is below the limit."""
    snapshot = await self.snapshot(user_id, action, limit)
    return snapshot.remaining > 0

  async def record_usage(self, user_id: str, action: str) -> int:
    """Count one completed action; call only once the action has succeeded."""
    key, _day = self._key(user_id, action)
    count = await self._store.incr(key, _COUNTER_TTL_SECONDS)
    logger.debug("Recorded usage user=%s action=%s count=%s", user_id, action, count)
    return count

  @asynccontextmanager
  async def guard(self, user_id: str, action: str, limit: int) -> AsyncIterator[UsageSnapshot]:
    """Wrap a quota-gated action.

    Raises QuotaExceededError before the body runs when nothing remains, and
    records usage only if the body exits without an exception.
    """
    snapshot = await self.snapshot(user_id, action, limit)
    if snapshot.remaining <= 0:
      logger.info("Quota exhausted user=%s action=%s limit=%s", user_id, action, limit)
      raise QuotaExceededError(f"daily quota exceeded for {action} ({limit} per day)")
    yield snapshot
    await self.record_usage(user_id, action)
