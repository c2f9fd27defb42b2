from __future__ import annotations

import logging

from google.api_core import exceptions as google_exceptions
from google.cloud import tasks_v2
from starlette.concurrency import run_in_threadpool

from digest_service.config import Settings
from digest_service.jobs.models import DigestSchedule, DigestTaskPayload
from digest_service.services.tasks._body import encode_task_body, task_headers, worker_url
from digest_service.services.tasks.interface import TaskEnqueuer, TaskEnqueueError

logger = logging.getLogger(__name__)


class CloudTasksEnqueuer(TaskEnqueuer):
  """Enqueues digest jobs to Google Cloud Tasks."""

  def __init__(self, settings: Settings, client: tasks_v2.CloudTasksClient | None = None) -> None:
    self.settings = settings
    self.client = client or tasks_v2.CloudTasksClient()

  def _build_task(self, payload: DigestTaskPayload, schedule: DigestSchedule | None) -> dict:
    http_request: dict = {
      "http_method": tasks_v2.HttpMethod.POST,
      "url": worker_url(self.settings),
      "headers": task_headers(self.settings),
      "body": encode_task_body(payload, schedule),
    }
    # Cloud Run workers require an OIDC token minted for the invoker account.
    if self.settings.cloud_run_invoker_service_account:
      http_request["oidc_token"] = {"service_account_email": self.settings.cloud_run_invoker_service_account, "audience": self.settings.worker_base_url}
    return {"http_request": http_request}

  async def enqueue_digest(self, payload: DigestTaskPayload, schedule: DigestSchedule | None = None) -> None:
    """Enqueue a digest job to Cloud Tasks."""
    parent = self.settings.cloud_tasks_queue_path
    if not parent:
      raise TaskEnqueueError("Cloud Tasks queue path not configured.")

    try:
      task = self._build_task(payload, schedule)
    except RuntimeError as exc:
      raise TaskEnqueueError(str(exc)) from exc

    try:
      response = await run_in_threadpool(self.client.create_task, request={"parent": parent, "task": task})
    except google_exceptions.GoogleAPIError as e:
      logger.error("Failed to enqueue task for digest job %s: %s", payload.id, e, exc_info=True)
      raise TaskEnqueueError(f"Cloud Tasks rejected digest job {payload.id}") from e

    logger.info("Enqueued task %s for digest job %s", response.name, payload.id)
