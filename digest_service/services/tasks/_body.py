from __future__ import annotations

import msgspec

from digest_service.config import Settings
from digest_service.jobs.models import DigestSchedule, DigestTaskPayload

CREATE_DIGEST_PATH = "/tasks/create-digest"
TASK_SECRET_HEADER = "X-Digest-Task-Secret"


class DigestTaskBody(msgspec.Struct, omit_defaults=True):
  """Envelope posted to the worker for every digest job."""

  job: DigestTaskPayload
  schedule: DigestSchedule | None = None


def encode_task_body(payload: DigestTaskPayload, schedule: DigestSchedule | None) -> bytes:
  return msgspec.json.encode(DigestTaskBody(job=payload, schedule=schedule))


def worker_url(settings: Settings) -> str:
  """Resolve the worker endpoint that receives digest jobs."""
  if not settings.worker_base_url:
    raise RuntimeError("DIGEST_WORKER_BASE_URL is not configured.")
  return f"{settings.worker_base_url.rstrip('/')}{CREATE_DIGEST_PATH}"


def task_headers(settings: Settings) -> dict[str, str]:
  headers = {"Content-Type": "application/json"}
  if settings.task_secret:
    headers[TASK_SECRET_HEADER] = settings.task_secret
  return headers
