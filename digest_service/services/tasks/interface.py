from __future__ import annotations

from typing import Protocol

from digest_service.jobs.models import DigestSchedule, DigestTaskPayload


class TaskEnqueueError(RuntimeError):
  """Raised when the task queue did not accept a digest job."""


class TaskEnqueuer(Protocol):
  """Interface for handing digest jobs to the external worker."""

  async def enqueue_digest(self, payload: DigestTaskPayload, schedule: DigestSchedule | None = None) -> None:
    """Enqueue one digest job; raise TaskEnqueueError when it was not accepted."""
    ...
