"""SQLAlchemy model backing the keyed store with expiry."""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from digest_service.core.database import Base


class KeyValueEntry(Base):
  """One namespaced key (`digest:<user>`, `usage:<user>:<action>:<day>`) and its serialized value."""

  __tablename__ = "kv_entries"

  key: Mapped[str] = mapped_column(Text, primary_key=True)
  value: Mapped[str] = mapped_column(Text, nullable=False)
  expires_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
