"""Shared fixtures for the digest service tests."""

from __future__ import annotations

import datetime
import os

os.environ.setdefault("DIGEST_ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.setdefault("DIGEST_KV_BACKEND", "memory")
os.environ.setdefault("DIGEST_TASK_SECRET", "test-task-secret")
os.environ.setdefault("DIGEST_WORKER_BASE_URL", "http://worker.test")

from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402

from digest_service.jobs.models import DigestSchedule, DigestTaskPayload  # noqa: E402
from digest_service.services.digest import DigestController  # noqa: E402
from digest_service.services.digest_store import DigestStore  # noqa: E402
from digest_service.services.tasks.interface import TaskEnqueueError  # noqa: E402
from digest_service.services.usage_ledger import UsageLedger  # noqa: E402
from digest_service.storage.kv_store import InMemoryKeyValueStore  # noqa: E402

ONE_WEEK_SECONDS = 60 * 60 * 24 * 7


class FakeClock:
  """Clock that only moves when a test advances it."""

  def __init__(self, start: datetime.datetime | None = None) -> None:
    self.current = start or datetime.datetime(2026, 3, 10, 12, 0, 0, tzinfo=datetime.UTC)

  def now(self) -> datetime.datetime:
    return self.current

  def advance(self, **kwargs: float) -> None:
    self.current = self.current + datetime.timedelta(**kwargs)


class RecordingEnqueuer:
  """Task enqueuer that remembers what it was given and can be told to fail."""

  def __init__(self) -> None:
    self.calls: list[tuple[DigestTaskPayload, DigestSchedule | None]] = []
    self.fail = False
    self.error: Exception | None = None

  async def enqueue_digest(self, payload: DigestTaskPayload, schedule: DigestSchedule | None = None) -> None:
    if self.error is not None:
      raise self.error
    if self.fail:
      raise TaskEnqueueError("queue unavailable")
    self.calls.append((payload, schedule))


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
  return FakeClock()


@pytest.fixture
def kv_store(clock) -> InMemoryKeyValueStore:
  return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def enqueuer() -> RecordingEnqueuer:
  return RecordingEnqueuer()


@pytest.fixture
def digest_store(kv_store) -> DigestStore:
  return DigestStore(kv_store, retention_seconds=ONE_WEEK_SECONDS)


@pytest.fixture
def ledger(kv_store, clock) -> UsageLedger:
  return UsageLedger(kv_store, clock=clock)


@pytest.fixture
def controller(digest_store, enqueuer, ledger, clock) -> DigestController:
  return DigestController(digest_store, enqueuer, ledger, clock=clock)


@pytest.fixture
def mock_db_session():
  return AsyncMock()


@pytest.fixture
def override_get_db(mock_db_session):
  async def _get_db():
    yield mock_db_session

  return _get_db
