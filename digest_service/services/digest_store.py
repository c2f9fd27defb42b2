"""Per-user digest job records on top of the keyed store."""

from __future__ import annotations

import logging

import msgspec

from digest_service.jobs.models import DigestJob
from digest_service.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

_encoder = msgspec.json.Encoder()
_decoder = msgspec.json.Decoder(DigestJob)


class DigestStoreError(RuntimeError):
  """Raised when a digest record cannot be read or written."""


def digest_key(user_id: str) -> str:
  return f"digest:{user_id}"


class DigestStore:
  """Read and write the single digest record kept for each user.

  Every write resets the retention window, so a record that stops changing
  (including a RUNNING job whose worker died) disappears after
  `retention_seconds` and the user may submit again.
  """

  def __init__(self, store: KeyValueStore, *, retention_seconds: int) -> None:
    if retention_seconds <= 0:
      raise ValueError("retention_seconds must be positive.")
    self._store = store
    self._retention_seconds = retention_seconds

  async def get_digest(self, user_id: str) -> DigestJob | None:
    raw = await self._store.get(digest_key(user_id))
    if raw is None:
      return None
    try:
      return _decoder.decode(raw)
    except msgspec.DecodeError as exc:
      logger.error("Stored digest for user %s is unreadable: %s", user_id, exc)
      raise DigestStoreError(f"Error while reading digest: {user_id}") from exc

  async def write_digest(self, user_id: str, digest: DigestJob) -> None:
    payload = _encoder.encode(digest).decode("utf-8")
    try:
      await self._store.set(digest_key(user_id), payload, self._retention_seconds)
    except Exception as exc:
      logger.error("Error while writing digest for user %s", user_id, exc_info=True)
      raise DigestStoreError(f"Error while writing digest: {user_id}") from exc
