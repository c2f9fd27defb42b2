from __future__ import annotations

from functools import lru_cache

from digest_service.config import Settings
from digest_service.storage.kv_store import InMemoryKeyValueStore, KeyValueStore


@lru_cache(maxsize=1)
def _get_kv_store(settings: Settings) -> KeyValueStore:
  """Build the configured keyed store once per process."""
  if settings.kv_backend == "memory":
    return InMemoryKeyValueStore()

  from digest_service.storage.postgres_kv_store import PostgresKeyValueStore

  return PostgresKeyValueStore()
