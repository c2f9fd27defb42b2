from __future__ import annotations

import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from digest_service.storage.postgres_kv_store import PostgresKeyValueStore, build_incr_statement

NOW = datetime.datetime(2026, 3, 10, 12, 0, 0, tzinfo=datetime.UTC)


class _FixedClock:
  def now(self) -> datetime.datetime:
    return NOW


def _compiled_sql(stmt) -> str:
  return " ".join(str(stmt.compile(dialect=postgresql.dialect())).split())


def test_incr_statement_is_single_atomic_upsert():
  stmt = build_incr_statement("usage:u1:digest.create:2026-03-10", now=NOW, expires_at=NOW + datetime.timedelta(hours=48))
  sql = _compiled_sql(stmt)

  assert sql.startswith("INSERT INTO kv_entries (key, value, expires_at) VALUES")
  assert "ON CONFLICT (key) DO UPDATE SET" in sql
  assert "RETURNING kv_entries.value" in sql
  assert "CAST(CAST(kv_entries.value AS BIGINT) +" in sql
  # Both the value and the expiry reset when the stored row has expired.
  assert sql.count("CASE WHEN (kv_entries.expires_at <=") == 2
  assert "excluded.expires_at" in sql


def test_incr_statement_binds_key_and_times():
  expires_at = NOW + datetime.timedelta(hours=48)
  params = build_incr_statement("usage:u1:a:2026-03-10", now=NOW, expires_at=expires_at).compile(dialect=postgresql.dialect()).params

  assert params["key"] == "usage:u1:a:2026-03-10"
  assert params["value"] == "1"
  assert params["expires_at"] == expires_at
  assert NOW in params.values()


@pytest.fixture
def session():
  return AsyncMock()


@pytest.fixture
def store(monkeypatch, session):
  factory = MagicMock()
  factory.return_value.__aenter__.return_value = session
  monkeypatch.setattr("digest_service.storage.postgres_kv_store.get_session_factory", lambda: factory)
  return PostgresKeyValueStore(clock=_FixedClock())


@pytest.mark.anyio
async def test_incr_returns_counter_and_commits(store, session):
  result = MagicMock()
  result.scalar_one.return_value = "3"
  session.execute.return_value = result

  assert await store.incr("usage:u1:digest.create:2026-03-10", 60) == 3
  session.commit.assert_awaited_once()
  sql = _compiled_sql(session.execute.await_args.args[0])
  assert "ON CONFLICT (key) DO UPDATE" in sql


@pytest.mark.anyio
async def test_get_filters_out_expired_rows(store, session):
  result = MagicMock()
  result.scalar_one_or_none.return_value = None
  session.execute.return_value = result

  assert await store.get("digest:u1") is None
  sql = _compiled_sql(session.execute.await_args.args[0])
  assert "kv_entries.expires_at >" in sql


@pytest.mark.anyio
async def test_set_upserts_value_and_expiry(store, session):
  await store.set("digest:u1", "{}", 60)

  sql = _compiled_sql(session.execute.await_args.args[0])
  assert "ON CONFLICT (key) DO UPDATE SET value = excluded.value, expires_at = excluded.expires_at" in sql
  session.commit.assert_awaited_once()


def test_missing_database_is_reported(monkeypatch):
  monkeypatch.setattr("digest_service.storage.postgres_kv_store.get_session_factory", lambda: None)
  with pytest.raises(RuntimeError):
    PostgresKeyValueStore()


@pytest.mark.anyio
async def test_non_positive_ttl_is_rejected(store):
  with pytest.raises(ValueError):
    await store.incr("usage:u1:a:2026-03-10", 0)
