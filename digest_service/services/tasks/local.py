from __future__ import annotations

import logging

import httpx

from digest_service.config import Settings
from digest_service.jobs.models import DigestSchedule, DigestTaskPayload
from digest_service.services.tasks._body import encode_task_body, task_headers, worker_url
from digest_service.services.tasks.interface import TaskEnqueuer, TaskEnqueueError

logger = logging.getLogger(__name__)

# The worker only has to acknowledge the job, not produce the digest.
_DISPATCH_TIMEOUT_SECONDS = 10.0


class LocalHttpEnqueuer(TaskEnqueuer):
  """Hands digest jobs straight to the worker over HTTP, standing in for Cloud Tasks locally."""

  def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self.settings = settings
    self._transport = transport

  async def enqueue_digest(self, payload: DigestTaskPayload, schedule: DigestSchedule | None = None) -> None:
    """Enqueue a digest job by POSTing it to the worker."""
    try:
      url = worker_url(self.settings)
    except RuntimeError as exc:
      raise TaskEnqueueError(str(exc)) from exc

    # Never trust environment proxy variables for internal task dispatch.
    async with httpx.AsyncClient(transport=self._transport, trust_env=False, timeout=_DISPATCH_TIMEOUT_SECONDS) as client:
      try:
        logger.info("Dispatching digest job %s locally to %s", payload.id, url)
        response = await client.post(url, content=encode_task_body(payload, schedule), headers=task_headers(self.settings))
        response.raise_for_status()
      except httpx.HTTPStatusError as e:
        logger.error("Local digest dispatch returned %s for job %s: %s", e.response.status_code, payload.id, e.response.text)
        raise TaskEnqueueError(f"worker rejected digest job {payload.id}") from e
      except httpx.RequestError as e:
        logger.error("Failed to dispatch digest job %s: %s", payload.id, e)
        raise TaskEnqueueError(f"worker unreachable for digest job {payload.id}") from e
