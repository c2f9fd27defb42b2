"""Digest feedback validation and forwarding to analytics."""

from __future__ import annotations

from typing import Any

from digest_service.services.analytics import AnalyticsEvent

FEEDBACK_EVENT = "digest_feedback"
REQUIRED_RATINGS = ("digestRating", "rankingRating", "summaryRating", "voiceRating", "musicRating")


class InvalidFeedbackError(ValueError):
  """Raised when a feedback payload is missing a required rating."""


def is_feedback(data: Any) -> bool:
  """Return True when every required rating field is present."""
  return isinstance(data, dict) and all(key in data for key in REQUIRED_RATINGS)


def build_feedback_event(data: Any, *, user_id: str, api_env: str) -> AnalyticsEvent:
  """Validate a feedback payload and turn it into the analytics event to send.

  Only presence of the five ratings is checked. The free-text comment is
  dropped here and is never forwarded or stored.
  """
  if not is_feedback(data):
    missing = [key for key in REQUIRED_RATINGS if not isinstance(data, dict) or key not in data]
    raise InvalidFeedbackError(f"Invalid feedback format; missing {', '.join(missing)}")

  properties = {key: value for key, value in data.items() if key != "comment"}
  properties["env"] = api_env
  return AnalyticsEvent(distinct_id=user_id, event=FEEDBACK_EVENT, properties=properties)
