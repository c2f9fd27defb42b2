"""Keyed store with expiry used for digest job records and usage counters."""

from __future__ import annotations

import asyncio
import datetime
from dataclasses import dataclass
from typing import Protocol

from digest_service.utils.clock import Clock, SystemClock


class KeyValueStore(Protocol):
  """Repository contract for a namespaced key/value store with per-key expiry."""

  async def get(self, key: str) -> str | None:
    """Return the live value for a key, or None when missing or expired."""

  async def set(self, key: str, value: str, ttl_seconds: int) -> None:
    """Store a value, replacing any previous one, and reset its expiry."""

  async def incr(self, key: str, ttl_seconds: int) -> int:
    """Atomically add one to an integer counter and return the new count.

    A missing or expired key starts over at 1 and gets a fresh expiry; a live
    key keeps its original expiry.
    """


@dataclass
class _Entry:
  value: str
  expires_at: datetime.datetime


class InMemoryKeyValueStore(KeyValueStore):
  """Process-local store for development and tests."""

  def __init__(self, clock: Clock | None = None) -> None:
    self._clock = clock or SystemClock()
    self._entries: dict[str, _Entry] = {}
    self._lock = asyncio.Lock()

  def _live(self, key: str) -> _Entry | None:
    entry = self._entries.get(key)
    if entry is None:
      return None
    if entry.expires_at <= self._clock.now():
      # Expired keys behave exactly like missing ones.
      del self._entries[key]
      return None
    return entry

  async def get(self, key: str) -> str | None:
    entry = self._live(key)
    return entry.value if entry else None

  async def set(self, key: str, value: str, ttl_seconds: int) -> None:
    if ttl_seconds <= 0:
      raise ValueError("ttl_seconds must be positive.")
    expires_at = self._clock.now() + datetime.timedelta(seconds=ttl_seconds)
    self._entries[key] = _Entry(value=value, expires_at=expires_at)

  async def incr(self, key: str, ttl_seconds: int) -> int:
    if ttl_seconds <= 0:
      raise ValueError("ttl_seconds must be positive.")
    async with self._lock:
      entry = self._live(key)
      if entry is None:
        expires_at = self._clock.now() + datetime.timedelta(seconds=ttl_seconds)
        self._entries[key] = _Entry(value="1", expires_at=expires_at)
        return 1
      count = int(entry.value) + 1
      entry.value = str(count)
      return count
