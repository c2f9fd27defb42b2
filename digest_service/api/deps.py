"""Shared FastAPI dependencies wiring services to configured collaborators."""

from __future__ import annotations

from fastapi import Depends

from digest_service.config import Settings, get_settings
from digest_service.services.analytics import AnalyticsClient, get_analytics_client
from digest_service.services.digest import DigestController
from digest_service.services.digest_store import DigestStore
from digest_service.services.tasks.factory import get_task_enqueuer
from digest_service.services.usage_ledger import UsageLedger
from digest_service.storage.factory import _get_kv_store


def get_digest_controller(settings: Settings = Depends(get_settings)) -> DigestController:  # noqa: B008
  """Build the digest controller over the configured store and task queue."""
  store = _get_kv_store(settings)
  digest_store = DigestStore(store, retention_seconds=settings.digest_retention_seconds)
  return DigestController(digest_store, get_task_enqueuer(settings), UsageLedger(store), daily_limit=settings.digest_daily_limit)


def get_analytics(settings: Settings = Depends(get_settings)) -> AnalyticsClient:  # noqa: B008
  return get_analytics_client(settings)
