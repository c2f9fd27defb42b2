from __future__ import annotations

import dataclasses
import json
from unittest.mock import MagicMock

import httpx
import pytest
from google.api_core import exceptions as google_exceptions

from digest_service.config import get_settings
from digest_service.jobs.models import DigestSchedule, DigestTaskPayload
from digest_service.services.tasks._body import TASK_SECRET_HEADER
from digest_service.services.tasks.gcp import CloudTasksEnqueuer
from digest_service.services.tasks.interface import TaskEnqueueError
from digest_service.services.tasks.local import LocalHttpEnqueuer

PAYLOAD = DigestTaskPayload(id="job-1", user_id="u1", voices=["v1"], library_item_ids=["item-1"])


def _settings(**overrides):
  base = {"worker_base_url": "http://worker.test/", "task_secret": "s3cret"}
  base.update(overrides)
  return dataclasses.replace(get_settings(), **base)


@pytest.mark.anyio
async def test_local_enqueuer_posts_job_to_worker():
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    return httpx.Response(202)

  enqueuer = LocalHttpEnqueuer(_settings(), transport=httpx.MockTransport(handler))
  await enqueuer.enqueue_digest(PAYLOAD, DigestSchedule(cron="0 7 * * *"))

  request = seen[0]
  assert str(request.url) == "http://worker.test/tasks/create-digest"
  assert request.headers[TASK_SECRET_HEADER] == "s3cret"
  body = json.loads(request.content)
  assert body["job"] == {"id": "job-1", "userId": "u1", "voices": ["v1"], "libraryItemIds": ["item-1"]}
  assert body["schedule"] == {"cron": "0 7 * * *"}


@pytest.mark.anyio
async def test_local_enqueuer_wraps_worker_rejection():
  enqueuer = LocalHttpEnqueuer(_settings(), transport=httpx.MockTransport(lambda request: httpx.Response(500, text="nope")))
  with pytest.raises(TaskEnqueueError):
    await enqueuer.enqueue_digest(PAYLOAD)


@pytest.mark.anyio
async def test_local_enqueuer_requires_worker_url():
  enqueuer = LocalHttpEnqueuer(_settings(worker_base_url=None))
  with pytest.raises(TaskEnqueueError):
    await enqueuer.enqueue_digest(PAYLOAD)


@pytest.mark.anyio
async def test_cloud_tasks_enqueuer_builds_oidc_task():
  client = MagicMock()
  client.create_task.return_value = MagicMock(name="task")
  settings = _settings(cloud_tasks_queue_path="projects/p/locations/l/queues/q", cloud_run_invoker_service_account="invoker@p.iam.gserviceaccount.com")
  enqueuer = CloudTasksEnqueuer(settings, client=client)

  await enqueuer.enqueue_digest(PAYLOAD)

  request = client.create_task.call_args.kwargs["request"]
  assert request["parent"] == "projects/p/locations/l/queues/q"
  http_request = request["task"]["http_request"]
  assert http_request["url"] == "http://worker.test/tasks/create-digest"
  assert http_request["oidc_token"]["service_account_email"] == "invoker@p.iam.gserviceaccount.com"
  assert json.loads(http_request["body"])["job"]["id"] == "job-1"


@pytest.mark.anyio
async def test_cloud_tasks_enqueuer_wraps_api_errors():
  client = MagicMock()
  client.create_task.side_effect = google_exceptions.ServiceUnavailable("queue down")
  enqueuer = CloudTasksEnqueuer(_settings(cloud_tasks_queue_path="projects/p/locations/l/queues/q"), client=client)

  with pytest.raises(TaskEnqueueError):
    await enqueuer.enqueue_digest(PAYLOAD)


@pytest.mark.anyio
async def test_cloud_tasks_enqueuer_requires_queue_path():
  enqueuer = CloudTasksEnqueuer(_settings(cloud_tasks_queue_path=None), client=MagicMock())
  with pytest.raises(TaskEnqueueError):
    await enqueuer.enqueue_digest(PAYLOAD)
