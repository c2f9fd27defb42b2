from __future__ import annotations

from unittest.mock import AsyncMock

import msgspec
import pytest

from digest_service.jobs.models import Chapter, DigestJob, DigestJobStatus, DigestRequest, DigestSchedule, DigestState, DigestStateReport, InvalidTransitionError
from digest_service.services.digest import DigestController, DigestNotFoundError, StaleJobError, SubmitStatus
from digest_service.services.digest_store import DigestStoreError, digest_key
from digest_service.services.tasks.interface import TaskEnqueueError
from digest_service.services.usage_ledger import QuotaExceededError

ONE_WEEK_SECONDS = 60 * 60 * 24 * 7


@pytest.mark.anyio
async def test_submit_then_status_returns_same_job(controller, enqueuer):
  request = DigestRequest(voices=["en-US-1"], language="en", library_item_ids=["item-1"], schedule=DigestSchedule(cron="0 7 * * *"))
  outcome = await controller.submit("u1", request)

  assert outcome.status == SubmitStatus.ACCEPTED
  assert outcome.job.state == DigestState.PENDING
  assert outcome.job.created_at == "2026-03-10T12:00:00Z"

  status = await controller.get_status("u1")
  assert isinstance(status, DigestJob)
  assert status.id == outcome.job.id

  payload, schedule = enqueuer.calls[0]
  assert payload.id == outcome.job.id
  assert payload.user_id == "u1"
  assert payload.library_item_ids == ["item-1"]
  assert schedule == DigestSchedule(cron="0 7 * * *")


@pytest.mark.anyio
async def test_second_submit_while_in_flight_does_not_enqueue(controller, enqueuer):
  first = await controller.submit("u1", DigestRequest())
  second = await controller.submit("u1", DigestRequest(language="de"))

  assert second.status == SubmitStatus.ALREADY_RUNNING
  assert second.job.id == first.job.id
  assert len(enqueuer.calls) == 1


@pytest.mark.anyio
async def test_submit_after_terminal_state_replaces_record(controller, enqueuer):
  first = await controller.submit("u1", DigestRequest())
  await controller.report_state("u1", DigestStateReport(id=first.job.id, state=DigestState.FAILED, error="tts_failed"))

  second = await controller.submit("u1", DigestRequest())

  assert second.status == SubmitStatus.ACCEPTED
  assert second.job.id != first.job.id
  assert (await controller.get_status("u1")).id == second.job.id
  assert len(enqueuer.calls) == 2


@pytest.mark.anyio
async def test_running_job_status_is_partial(controller):
  outcome = await controller.submit("u1", DigestRequest())
  await controller.report_state("u1", DigestStateReport(id=outcome.job.id, state=DigestState.RUNNING))

  status = await controller.get_status("u1")
  assert status == DigestJobStatus(job_id=outcome.job.id, state=DigestState.RUNNING)


@pytest.mark.anyio
async def test_succeeded_job_is_returned_whole(controller, clock):
  outcome = await controller.submit("u1", DigestRequest())
  await controller.report_state("u1", DigestStateReport(id=outcome.job.id, state=DigestState.RUNNING))
  clock.advance(minutes=5)
  chapters = [Chapter(title="One", id="c1", url="https://example.com/1", word_count=420)]
  report = DigestStateReport(id=outcome.job.id, state=DigestState.SUCCEEDED, title="Your digest", content="<p>hi</p>", chapters=chapters, urls_to_audio=["https://cdn/a.mp3"])
  await controller.report_state("u1", report)

  status = await controller.get_status("u1")
  assert isinstance(status, DigestJob)
  assert status.state == DigestState.SUCCEEDED
  assert status.title == "Your digest"
  assert status.chapters == chapters
  assert status.urls_to_audio == ["https://cdn/a.mp3"]
  assert status.created_at == "2026-03-10T12:00:00Z"
  assert status.updated_at == "2026-03-10T12:05:00Z"


@pytest.mark.anyio
async def test_status_for_unknown_user_raises(controller):
  with pytest.raises(DigestNotFoundError):
    await controller.get_status("nobody")


@pytest.mark.anyio
async def test_record_expires_after_retention_window(controller, clock):
  await controller.submit("u1", DigestRequest())
  clock.advance(seconds=ONE_WEEK_SECONDS)

  with pytest.raises(DigestNotFoundError):
    await controller.get_status("u1")


@pytest.mark.anyio
async def test_stuck_job_unblocks_after_expiry(controller, enqueuer, clock):
  first = await controller.submit("u1", DigestRequest())
  await controller.report_state("u1", DigestStateReport(id=first.job.id, state=DigestState.RUNNING))
  clock.advance(seconds=ONE_WEEK_SECONDS + 1)

  second = await controller.submit("u1", DigestRequest())
  assert second.status == SubmitStatus.ACCEPTED
  assert len(enqueuer.calls) == 2


@pytest.mark.anyio
async def test_enqueue_failure_marks_job_failed(controller, enqueuer):
  enqueuer.fail = True
  with pytest.raises(TaskEnqueueError):
    await controller.submit("u1", DigestRequest())

  status = await controller.get_status("u1")
  assert status.state == DigestState.FAILED
  assert status.error == "enqueue_failed"

  # A failed enqueue must not block the next attempt.
  enqueuer.fail = False
  outcome = await controller.submit("u1", DigestRequest())
  assert outcome.status == SubmitStatus.ACCEPTED


@pytest.mark.anyio
async def test_unreadable_record_raises_store_error(controller, kv_store):
  await kv_store.set(digest_key("u1"), "not json", 60)
  with pytest.raises(DigestStoreError):
    await controller.get_status("u1")


@pytest.mark.anyio
async def test_daily_limit_gates_submission(digest_store, enqueuer, ledger, clock):
  controller = DigestController(digest_store, enqueuer, ledger, daily_limit=1, clock=clock)
  first = await controller.submit("u1", DigestRequest())
  await controller.report_state("u1", DigestStateReport(id=first.job.id, state=DigestState.FAILED, error="boom"))

  with pytest.raises(QuotaExceededError):
    await controller.submit("u1", DigestRequest())
  assert len(enqueuer.calls) == 1

  clock.advance(days=1)
  outcome = await controller.submit("u1", DigestRequest())
  assert outcome.status == SubmitStatus.ACCEPTED


@pytest.mark.anyio
async def test_failed_enqueue_does_not_consume_quota(digest_store, enqueuer, ledger, clock):
  controller = DigestController(digest_store, enqueuer, ledger, daily_limit=1, clock=clock)
  enqueuer.fail = True
  with pytest.raises(TaskEnqueueError):
    await controller.submit("u1", DigestRequest())

  assert (await ledger.snapshot("u1", "digest.create", 1)).used == 0


@pytest.mark.anyio
async def test_report_for_stale_job_is_rejected(controller):
  await controller.submit("u1", DigestRequest())
  with pytest.raises(StaleJobError):
    await controller.report_state("u1", DigestStateReport(id="some-other-job", state=DigestState.RUNNING))


@pytest.mark.anyio
async def test_report_illegal_transition_is_rejected(controller):
  outcome = await controller.submit("u1", DigestRequest())
  await controller.report_state("u1", DigestStateReport(id=outcome.job.id, state=DigestState.SUCCEEDED))

  with pytest.raises(InvalidTransitionError):
    await controller.report_state("u1", DigestStateReport(id=outcome.job.id, state=DigestState.RUNNING))


@pytest.mark.anyio
async def test_report_without_record_raises_not_found(controller):
  with pytest.raises(DigestNotFoundError):
    await controller.report_state("u1", DigestStateReport(id="j1", state=DigestState.RUNNING))


@pytest.mark.anyio
async def test_stored_record_is_camel_case_json(controller, kv_store):
  outcome = await controller.submit("u1", DigestRequest(library_item_ids=["x"]))
  stored = msgspec.json.decode(await kv_store.get(digest_key("u1")))

  assert stored["id"] == outcome.job.id
  assert stored["createdAt"] == "2026-03-10T12:00:00Z"
  assert stored["request"] == {"libraryItemIds": ["x"]}


@pytest.mark.anyio
async def test_unexpected_enqueue_error_still_marks_job_failed(controller, enqueuer):
  enqueuer.error = RuntimeError("credentials refresh failed")
  with pytest.raises(RuntimeError):
    await controller.submit("u1", DigestRequest())

  status = await controller.get_status("u1")
  assert status.state == DigestState.FAILED
  assert status.error == "enqueue_failed"

  enqueuer.error = None
  outcome = await controller.submit("u1", DigestRequest())
  assert outcome.status == SubmitStatus.ACCEPTED
  assert len(enqueuer.calls) == 1


@pytest.mark.anyio
async def test_usage_write_failure_still_accepts_job(digest_store, enqueuer, ledger, clock, monkeypatch):
  monkeypatch.setattr(ledger, "record_usage", AsyncMock(side_effect=RuntimeError("counter store down")))
  controller = DigestController(digest_store, enqueuer, ledger, daily_limit=1, clock=clock)

  outcome = await controller.submit("u1", DigestRequest())

  assert outcome.status == SubmitStatus.ACCEPTED
  assert len(enqueuer.calls) == 1
  assert (await controller.get_status("u1")).state == DigestState.PENDING
