"""Postgres-backed keyed store with expiry using SQLAlchemy."""

from __future__ import annotations

import datetime
import logging

from sqlalchemy import BigInteger, Text, case, cast, delete, select
from sqlalchemy.dialects.postgresql import Insert, insert

from digest_service.core.database import get_session_factory
from digest_service.schema.kv import KeyValueEntry
from digest_service.storage.kv_store import KeyValueStore
from digest_service.utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class PostgresKeyValueStore(KeyValueStore):
  """Persist keyed values to the `kv_entries` table.

  Expired rows are invisible to reads and are overwritten in place by the next
  write; `purge_expired` only reclaims space.
  """

  def __init__(self, clock: Clock | None = None) -> None:
    self._clock = clock or SystemClock()
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  def _expiry(self, ttl_seconds: int) -> tuple[datetime.datetime, datetime.datetime]:
    if ttl_seconds <= 0:
      raise ValueError("ttl_seconds must be positive.")
    now = self._clock.now()
    return now, now + datetime.timedelta(seconds=ttl_seconds)

  async def get(self, key: str) -> str | None:
    now = self._clock.now()
    async with self._session_factory() as session:
      stmt = select(KeyValueEntry.value).where(KeyValueEntry.key == key, KeyValueEntry.expires_at > now)
      result = await session.execute(stmt)
      return result.scalar_one_or_none()

  async def set(self, key: str, value: str, ttl_seconds: int) -> None:
    _now, expires_at = self._expiry(ttl_seconds)
    async with self._session_factory() as session:
      stmt = insert(KeyValueEntry).values(key=key, value=value, expires_at=expires_at)
      stmt = stmt.on_conflict_do_update(index_elements=["key"], set_={"value": stmt.excluded.value, "expires_at": stmt.excluded.expires_at})
      await session.execute(stmt)
      await session.commit()

  async def incr(self, key: str, ttl_seconds: int) -> int:
    now, expires_at = self._expiry(ttl_seconds)
    stmt = build_incr_statement(key, now=now, expires_at=expires_at)
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      value = result.scalar_one()
      await session.commit()
    return int(value)

  async def purge_expired(self) -> int:
    """Delete expired rows and return how many were removed."""
    now = self._clock.now()
    async with self._session_factory() as session:
      result = await session.execute(delete(KeyValueEntry).where(KeyValueEntry.expires_at <= now))
      await session.commit()
    removed = int(result.rowcount or 0)
    if removed:
      logger.info("Purged %s expired kv entries", removed)
    return removed


def build_incr_statement(key: str, *, now: datetime.datetime, expires_at: datetime.datetime) -> Insert:
  """Build the single-statement counter upsert.

  A live row is incremented in place and keeps its expiry; an expired row
  restarts at 1 with the new expiry. One statement keeps the increment atomic
  per key under concurrent requests.
  """
  expired = KeyValueEntry.expires_at <= now
  stmt = insert(KeyValueEntry).values(key=key, value="1", expires_at=expires_at)
  return stmt.on_conflict_do_update(
    index_elements=["key"],
    set_={
      "value": case((expired, "1"), else_=cast(cast(KeyValueEntry.value, BigInteger) + 1, Text)),
      "expires_at": case((expired, stmt.excluded.expires_at), else_=KeyValueEntry.expires_at),
    },
  ).returning(KeyValueEntry.value)
