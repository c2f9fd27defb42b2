"""Feature grant lookups used to gate digest endpoints."""

from __future__ import annotations

import datetime
import re
import uuid

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from digest_service.schema.features import Feature

_FEATURE_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_.:-]{0,127}$")


def validate_feature_name(name: str) -> str:
  """Validate and normalize a feature name."""
  normalized = (name or "").strip().lower()
  if not normalized or not _FEATURE_NAME_RE.match(normalized):
    raise ValueError("Invalid feature name format.")
  return normalized


async def find_granted_feature(session: AsyncSession, *, name: str, user_id: uuid.UUID, now: datetime.datetime | None = None) -> Feature | None:
  """Return the user's grant for a feature when it is granted and not expired."""
  normalized = validate_feature_name(name)
  current = now or datetime.datetime.now(datetime.UTC)
  stmt = select(Feature).where(
    Feature.user_id == user_id,
    Feature.name == normalized,
    Feature.granted_at.is_not(None),
    or_(Feature.expires_at.is_(None), Feature.expires_at > current),
  )
  result = await session.execute(stmt)
  return result.scalar_one_or_none()


async def has_feature(session: AsyncSession, *, user_id: uuid.UUID, name: str) -> bool:
  return await find_granted_feature(session, name=name, user_id=user_id) is not None
