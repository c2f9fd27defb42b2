from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from starlette.responses import Response

from digest_service.api.deps import get_digest_controller
from digest_service.api.msgspec_utils import decode_msgspec_request, encode_msgspec_response
from digest_service.config import Settings, get_settings
from digest_service.jobs.models import DigestStateReport, InvalidTransitionError
from digest_service.services.digest import DigestController, DigestNotFoundError, StaleJobError

router = APIRouter(prefix="/digest", tags=["worker"])
logger = logging.getLogger(__name__)


def require_task_secret(
  settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None), x_digest_task_secret: str | None = Header(default=None)
) -> None:
  """Allow only the digest worker, identified by the shared task secret."""
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  # Cloud Tasks OIDC occupies Authorization on Cloud Run, so the dedicated header is checked first.
  shared_secret_valid = secrets.compare_digest((x_digest_task_secret or ""), settings.task_secret)
  bearer_valid = secrets.compare_digest((authorization or ""), f"Bearer {settings.task_secret}")
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to worker digest endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")


@router.post("/{user_id}", dependencies=[Depends(require_task_secret)])
async def report_digest_state(
  user_id: str,
  request: Request,
  controller: Annotated[DigestController, Depends(get_digest_controller)],
) -> Response:
  """Record a state change reported by the worker for the user's current job."""
  report = await decode_msgspec_request(request, DigestStateReport)
  try:
    updated = await controller.report_state(user_id, report)
  except DigestNotFoundError as exc:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Digest not found") from exc
  except (StaleJobError, InvalidTransitionError) as exc:
    logger.warning("Rejected digest state report user=%s job=%s state=%s: %s", user_id, report.id, report.state.value, exc)
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

  return encode_msgspec_response(updated)
