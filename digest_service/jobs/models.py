"""Domain models and state machine for asynchronous digest jobs."""

from __future__ import annotations

from enum import Enum
from typing import Any

import msgspec


class DigestState(str, Enum):
  PENDING = "PENDING"
  RUNNING = "RUNNING"
  SUCCEEDED = "SUCCEEDED"
  FAILED = "FAILED"


IN_FLIGHT_STATES = frozenset({DigestState.PENDING, DigestState.RUNNING})

# Terminal states have no outgoing edges; a new submission replaces the record instead.
_TRANSITIONS: dict[DigestState, frozenset[DigestState]] = {
  DigestState.PENDING: frozenset({DigestState.RUNNING, DigestState.SUCCEEDED, DigestState.FAILED}),
  DigestState.RUNNING: frozenset({DigestState.SUCCEEDED, DigestState.FAILED}),
  DigestState.SUCCEEDED: frozenset(),
  DigestState.FAILED: frozenset(),
}


class InvalidTransitionError(ValueError):
  """Raised when a worker reports a state the current job cannot move to."""


def is_in_flight(state: DigestState) -> bool:
  """Return True for states that block a new submission."""
  return state in IN_FLIGHT_STATES


def can_transition(current: DigestState, target: DigestState) -> bool:
  return target in _TRANSITIONS[current]


def ensure_transition(current: DigestState, target: DigestState) -> None:
  if not can_transition(current, target):
    raise InvalidTransitionError(f"cannot move digest job from {current.value} to {target.value}")


class DigestSchedule(msgspec.Struct, rename="camel", omit_defaults=True):
  """Recurring schedule handed to the task queue alongside the request."""

  cron: str
  timezone: str | None = None


class DigestRequest(msgspec.Struct, rename="camel", omit_defaults=True, forbid_unknown_fields=True):
  """Client-supplied generation parameters, immutable once a job exists."""

  voices: list[str] | None = None
  language: str | None = None
  rate: str | None = None
  schedule: DigestSchedule | None = None
  library_item_ids: list[str] | None = None


class Chapter(msgspec.Struct, rename="camel", omit_defaults=True):
  title: str
  id: str
  url: str
  word_count: int
  thumbnail: str | None = None


class DigestJob(msgspec.Struct, rename="camel", omit_defaults=True):
  """The single digest record stored per user.

  Result fields are only populated once the worker reports SUCCEEDED; `error`
  only when it reports FAILED.
  """

  id: str
  state: DigestState
  created_at: str
  request: DigestRequest = msgspec.field(default_factory=DigestRequest)
  updated_at: str | None = None
  title: str | None = None
  description: str | None = None
  byline: str | None = None
  url: str | None = None
  content: str | None = None
  chapters: list[Chapter] | None = None
  urls_to_audio: list[str] | None = None
  speech_files: list[dict[str, Any]] | None = None
  error: str | None = None


class DigestJobStatus(msgspec.Struct, rename="camel"):
  """Partial view returned while a job is still running."""

  job_id: str
  state: DigestState


class DigestStateReport(msgspec.Struct, rename="camel", omit_defaults=True, forbid_unknown_fields=True):
  """State change reported by the digest worker for the job it is processing."""

  id: str
  state: DigestState
  title: str | None = None
  description: str | None = None
  byline: str | None = None
  url: str | None = None
  content: str | None = None
  chapters: list[Chapter] | None = None
  urls_to_audio: list[str] | None = None
  speech_files: list[dict[str, Any]] | None = None
  error: str | None = None


class DigestTaskPayload(msgspec.Struct, rename="camel", omit_defaults=True):
  """Body delivered to the worker for one accepted submission."""

  id: str
  user_id: str
  voices: list[str] | None = None
  language: str | None = None
  rate: str | None = None
  library_item_ids: list[str] | None = None
