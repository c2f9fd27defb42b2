"""User lookups for the authentication path."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from digest_service.schema.sql import User, UserStatus


async def find_active_user(session: AsyncSession, firebase_uid: str) -> User | None:
  """Return the user for a Firebase UID only when the account is approved."""
  # Pending, disabled and rejected accounts are treated as unknown callers.
  stmt = select(User).where(User.firebase_uid == firebase_uid, User.status == UserStatus.APPROVED)
  result = await session.execute(stmt)
  return result.scalar_one_or_none()
