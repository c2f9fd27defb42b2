"""SQLAlchemy model for per-user feature grants."""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from digest_service.core.database import Base


class Feature(Base):
  """A named capability granted to one user, optionally time-boxed."""

  __tablename__ = "features"
  __table_args__ = (UniqueConstraint("user_id", "name", name="ux_features_user_name"),)

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False, index=True)
  granted_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
