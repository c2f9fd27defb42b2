import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from starlette.responses import Response

from digest_service.api.deps import get_analytics, get_digest_controller
from digest_service.api.msgspec_utils import decode_json_request, decode_msgspec_request, encode_msgspec_response
from digest_service.config import Settings, get_settings
from digest_service.core.security import require_digest_feature
from digest_service.jobs.models import DigestRequest
from digest_service.schema.sql import User
from digest_service.services.analytics import AnalyticsClient
from digest_service.services.digest import DIGEST_ACTION, DigestController, DigestNotFoundError, SubmitStatus
from digest_service.services.digest_store import DigestStoreError
from digest_service.services.feedback import InvalidFeedbackError, build_feedback_event
from digest_service.services.tasks.interface import TaskEnqueueError
from digest_service.services.usage_ledger import QuotaExceededError

router = APIRouter()
logger = logging.getLogger("digest_service.api.routes.digest")


@router.post("/v1", status_code=status.HTTP_201_CREATED)
async def create_digest(  # noqa: B008
  request: Request,
  current_user: User = Depends(require_digest_feature),  # noqa: B008
  controller: DigestController = Depends(get_digest_controller),  # noqa: B008
) -> Response:
  """Start a digest job, or return the one already in flight with 202."""
  payload = await decode_msgspec_request(request, DigestRequest, allow_empty=True)
  try:
    outcome = await controller.submit(str(current_user.id), payload)
  except QuotaExceededError as exc:
    raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail={"error": "QUOTA_EXCEEDED", "action": DIGEST_ACTION}) from exc
  except (TaskEnqueueError, DigestStoreError) as exc:
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error while enqueuing create digest task") from exc

  if outcome.status == SubmitStatus.ALREADY_RUNNING:
    return encode_msgspec_response(outcome.job, status_code=status.HTTP_202_ACCEPTED)
  return encode_msgspec_response(outcome.job, status_code=status.HTTP_201_CREATED)


@router.get("/v1")
async def get_digest(  # noqa: B008
  current_user: User = Depends(require_digest_feature),  # noqa: B008
  controller: DigestController = Depends(get_digest_controller),  # noqa: B008
) -> Response:
  """Return the running job's id and state, or the full digest record."""
  try:
    result = await controller.get_status(str(current_user.id))
  except DigestNotFoundError as exc:
    logger.info("Digest not found: %s", current_user.id)
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Digest not found") from exc
  except DigestStoreError as exc:
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error while getting digest") from exc

  return encode_msgspec_response(result)


@router.post("/v1/feedback")
async def send_feedback(  # noqa: B008
  request: Request,
  background_tasks: BackgroundTasks,
  current_user: User = Depends(require_digest_feature),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
  analytics: AnalyticsClient = Depends(get_analytics),  # noqa: B008
) -> dict[str, str]:
  """Forward digest ratings to analytics without the free-text comment."""
  data = await decode_json_request(request)
  try:
    event = build_feedback_event(data, user_id=str(current_user.id), api_env=settings.api_env)
  except InvalidFeedbackError as exc:
    logger.info("Invalid feedback format from user %s", current_user.id)
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

  # The response does not wait for, or depend on, the analytics call.
  background_tasks.add_task(analytics.capture, event)
  return {"status": "ok"}
