"""Fire-and-forget product analytics capture."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Protocol

import httpx

from digest_service.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalyticsEvent:
  distinct_id: str
  event: str
  properties: dict[str, Any] = field(default_factory=dict)


class AnalyticsClient(Protocol):
  """Analytics sink contract; `capture` must never raise."""

  async def capture(self, event: AnalyticsEvent) -> None:
    ...


class LoggingAnalyticsClient(AnalyticsClient):
  """Used when no analytics key is configured; events only reach the logs."""

  async def capture(self, event: AnalyticsEvent) -> None:
    logger.info("Analytics disabled; dropping event=%s distinct_id=%s", event.event, event.distinct_id)


class HttpAnalyticsClient(AnalyticsClient):
  """Sends events to a PostHog-compatible `/capture/` endpoint."""

  def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
    if not settings.analytics_api_key:
      raise ValueError("ANALYTICS_API_KEY must be set for HttpAnalyticsClient.")
    self._api_key = settings.analytics_api_key
    self._url = f"{settings.analytics_host}/capture/"
    self._timeout = settings.analytics_timeout_seconds
    self._transport = transport

  async def capture(self, event: AnalyticsEvent) -> None:
    body = {"api_key": self._api_key, "event": event.event, "distinct_id": event.distinct_id, "properties": event.properties}
    try:
      async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
        response = await client.post(self._url, json=body)
        response.raise_for_status()
    except httpx.HTTPError as exc:
      # Analytics outages must never surface to users.
      logger.warning("Analytics capture failed event=%s distinct_id=%s error=%s", event.event, event.distinct_id, exc)


@lru_cache(maxsize=1)
def get_analytics_client(settings: Settings) -> AnalyticsClient:
  if settings.analytics_api_key:
    return HttpAnalyticsClient(settings)
  return LoggingAnalyticsClient()
