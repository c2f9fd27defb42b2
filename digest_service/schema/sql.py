from __future__ import annotations

import datetime
import uuid
from enum import Enum

from sqlalchemy import DateTime, String, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from digest_service.core.database import Base
from digest_service.schema.features import Feature  # noqa: F401
from digest_service.schema.kv import KeyValueEntry  # noqa: F401


class UserStatus(str, Enum):
  PENDING = "PENDING"
  APPROVED = "APPROVED"
  DISABLED = "DISABLED"
  REJECTED = "REJECTED"


class User(Base):
  __tablename__ = "users"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  firebase_uid: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
  email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
  full_name: Mapped[str | None] = mapped_column(String, nullable=True)
  status: Mapped[UserStatus] = mapped_column(SAEnum(UserStatus, name="user_status"), default=UserStatus.PENDING, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
