import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from digest_service.core.firebase import initialize_firebase
from digest_service.core.logging import _initialize_logging
from digest_service.storage.factory import _get_kv_store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, Firebase and the keyed store before serving requests."""
  from digest_service.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("digest_service.core.lifespan")

  _initialize_logging(settings)
  logger.info("Startup complete - logging verified. environment=%s kv_backend=%s", settings.environment, settings.kv_backend)

  initialize_firebase()

  if settings.kv_backend == "postgres":
    logger.info("Using Postgres keyed store at %s", _redact_dsn(settings.pg_dsn))
    store = _get_kv_store(settings)
    try:
      await store.purge_expired()
    except Exception:  # noqa: BLE001
      # Expired rows are already invisible to reads; a failed sweep is not fatal.
      logger.warning("Failed to purge expired kv entries at startup.", exc_info=True)

  yield


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
