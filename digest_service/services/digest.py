"""Digest job lifecycle: submission, status polling and worker state reports."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import msgspec

from digest_service.jobs.models import DigestJob, DigestJobStatus, DigestRequest, DigestState, DigestStateReport, DigestTaskPayload, ensure_transition, is_in_flight
from digest_service.services.digest_store import DigestStore, DigestStoreError
from digest_service.services.tasks.interface import TaskEnqueuer
from digest_service.services.usage_ledger import QuotaExceededError, UsageLedger
from digest_service.utils.clock import Clock, SystemClock, isoformat_z
from digest_service.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

DIGEST_ACTION = "digest.create"
ENQUEUE_FAILED = "enqueue_failed"


class SubmitStatus(str, Enum):
  ACCEPTED = "accepted"
  ALREADY_RUNNING = "already_running"


@dataclass(frozen=True)
class SubmitOutcome:
  status: SubmitStatus
  job: DigestJob


class DigestNotFoundError(LookupError):
  """Raised when a user has no live digest record."""


class StaleJobError(ValueError):
  """Raised when a worker reports on a job that is no longer the user's current one."""


class DigestController:
  """Single authority over digest submission and status.

  Authentication and entitlement are resolved before the controller is
  called; it receives the id of an active, entitled user.

  Submit writes the PENDING record first and enqueues second. If the queue
  refuses the job the record is flipped to FAILED so it does not block the next
  submission. If that compensating write also fails, the PENDING record stays
  until the retention window expires. Usage is recorded after the enqueue; if
  that write fails the job is still accepted and the day's count is one short.
  """

  def __init__(self, store: DigestStore, enqueuer: TaskEnqueuer, ledger: UsageLedger, *, daily_limit: int | None = None, clock: Clock | None = None, id_factory: Callable[[], str] = generate_job_id) -> None:
    self._store = store
    self._enqueuer = enqueuer
    self._ledger = ledger
    self._daily_limit = daily_limit
    self._clock = clock or SystemClock()
    self._id_factory = id_factory

  def _timestamp(self) -> str:
    return isoformat_z(self._clock.now())

  async def submit(self, user_id: str, request: DigestRequest) -> SubmitOutcome:
    """Create a digest job unless one is already in flight for the user."""
    existing = await self._store.get_digest(user_id)
    if existing is not None and is_in_flight(existing.state):
      logger.info("Digest job is running: user=%s job=%s state=%s", user_id, existing.id, existing.state.value)
      return SubmitOutcome(status=SubmitStatus.ALREADY_RUNNING, job=existing)

    if self._daily_limit is not None and not await self._ledger.check_quota(user_id, DIGEST_ACTION, self._daily_limit):
      raise QuotaExceededError(f"daily quota exceeded for {DIGEST_ACTION} ({self._daily_limit} per day)")

    now = self._timestamp()
    job = DigestJob(id=self._id_factory(), state=DigestState.PENDING, created_at=now, updated_at=now, request=request)
    # Supersedes any SUCCEEDED or FAILED record left from an earlier job.
    await self._store.write_digest(user_id, job)

    task = DigestTaskPayload(id=job.id, user_id=user_id, voices=request.voices, language=request.language, rate=request.rate, library_item_ids=request.library_item_ids)
    try:
      await self._enqueuer.enqueue_digest(task, request.schedule)
    except Exception:
      # No enqueue failure may leave a PENDING record behind.
      await self._mark_enqueue_failed(user_id, job)
      raise

    if self._daily_limit is not None:
      try:
        await self._ledger.record_usage(user_id, DIGEST_ACTION)
      except Exception:  # noqa: BLE001
        # The job is already queued; a lost count only under-reports usage.
        logger.error("Failed to record usage for accepted digest job %s user=%s", job.id, user_id, exc_info=True)

    logger.info("Digest job accepted: user=%s job=%s", user_id, job.id)
    return SubmitOutcome(status=SubmitStatus.ACCEPTED, job=job)

  async def _mark_enqueue_failed(self, user_id: str, job: DigestJob) -> None:
    failed = msgspec.structs.replace(job, state=DigestState.FAILED, error=ENQUEUE_FAILED, updated_at=self._timestamp())
    try:
      await self._store.write_digest(user_id, failed)
    except DigestStoreError:
      logger.error("Digest job %s left PENDING for user %s after enqueue failure; it will expire with the retention window", job.id, user_id)

  async def get_status(self, user_id: str) -> DigestJob | DigestJobStatus:
    """Return the job id and state while running, otherwise the whole record."""
    digest = await self._store.get_digest(user_id)
    if digest is None:
      raise DigestNotFoundError(f"Digest not found: {user_id}")

    if digest.state == DigestState.RUNNING:
      return DigestJobStatus(job_id=digest.id, state=digest.state)

    return digest

  async def report_state(self, user_id: str, report: DigestStateReport) -> DigestJob:
    """Apply a worker-reported transition to the user's current job."""
    current = await self._store.get_digest(user_id)
    if current is None:
      raise DigestNotFoundError(f"Digest not found: {user_id}")
    if current.id != report.id:
      raise StaleJobError(f"job {report.id} is not the current digest job for user {user_id}")

    ensure_transition(current.state, report.state)

    changes: dict = {"state": report.state, "updated_at": self._timestamp()}
    if report.state == DigestState.SUCCEEDED:
      changes.update(
        title=report.title,
        description=report.description,
        byline=report.byline,
        url=report.url,
        content=report.content,
        chapters=report.chapters,
        urls_to_audio=report.urls_to_audio,
        speech_files=report.speech_files,
      )
    elif report.state == DigestState.FAILED:
      changes["error"] = report.error

    updated = msgspec.structs.replace(current, **changes)
    await self._store.write_digest(user_id, updated)
    logger.info("Digest job %s moved %s -> %s for user %s", current.id, current.state.value, report.state.value, user_id)
    return updated
