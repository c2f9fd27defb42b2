from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from digest_service.config import Settings, get_settings
from digest_service.core.database import get_db
from digest_service.core.firebase import verify_id_token
from digest_service.schema.sql import User
from digest_service.services.features import has_feature
from digest_service.services.users import find_active_user

logger = logging.getLogger(__name__)

_UNAUTHORIZED_HEADERS = {"WWW-Authenticate": "Bearer"}


def get_token_from_request(request: Request, settings: Settings) -> str | None:
  """Return the caller's ID token from the auth cookie or the Authorization header."""
  cookie_token = request.cookies.get(settings.auth_cookie_name)
  if cookie_token:
    return cookie_token

  header = request.headers.get("authorization")
  if not header:
    return None
  scheme, _, credentials = header.partition(" ")
  # Mobile clients send the raw token without a scheme.
  if not credentials:
    return scheme.strip() or None
  if scheme.lower() != "bearer":
    return None
  return credentials.strip() or None


async def get_current_claims(request: Request, settings: Settings = Depends(get_settings)) -> dict[str, Any]:  # noqa: B008
  """Verify the caller's Firebase ID token and return its claims."""
  token = get_token_from_request(request, settings)
  if not token:
    logger.info("Token not found")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated", headers=_UNAUTHORIZED_HEADERS)

  decoded_claims = await run_in_threadpool(verify_id_token, token)
  if not decoded_claims:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication credentials", headers=_UNAUTHORIZED_HEADERS)

  if not decoded_claims.get("uid"):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims", headers=_UNAUTHORIZED_HEADERS)

  return decoded_claims


async def get_current_active_user(claims: dict[str, Any] = Depends(get_current_claims), db: AsyncSession = Depends(get_db)) -> User:  # noqa: B008
  """Resolve the approved account behind the verified claims."""
  firebase_uid = str(claims["uid"])
  user = await find_active_user(db, firebase_uid)
  if user is None:
    logger.info("User not found: %s", firebase_uid)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found", headers=_UNAUTHORIZED_HEADERS)
  return user


def require_feature(feature_name: str | None = None):  # noqa: ANN201
  """Build a dependency that rejects users without a grant for the feature.

  When no name is given the configured digest feature is used.
  """

  async def _dependency(current_user: User = Depends(get_current_active_user), db: AsyncSession = Depends(get_db), settings: Settings = Depends(get_settings)) -> User:  # noqa: B008
    name = feature_name or settings.digest_feature_name
    if not await has_feature(db, user_id=current_user.id, name=name):
      logger.info("%s not granted: %s", name, current_user.id)
      raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"error": "FEATURE_NOT_GRANTED", "feature": name})
    return current_user

  return _dependency


require_digest_feature = require_feature()
