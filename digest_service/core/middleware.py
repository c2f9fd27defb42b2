import json
import logging
import time
import uuid
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

from digest_service.config import get_settings

logger = logging.getLogger("digest_service.core.middleware")

# Feedback comments are free text and never reach the logs.
_SENSITIVE_KEYS = {"password", "token", "key", "authorization", "cookie", "secret", "email", "full_name", "fullname", "name", "comment"}


def _redact_sensitive_keys(data: Any) -> Any:
  """Redact sensitive keys from a dictionary or list recursively."""
  if isinstance(data, dict):
    return {k: ("***" if k.lower() in _SENSITIVE_KEYS else _redact_sensitive_keys(v)) for k, v in data.items()}
  if isinstance(data, list):
    return [_redact_sensitive_keys(item) for item in data]
  return data


def _build_request_url(scope: Scope) -> str:
  path = scope.get("path", "")
  query_string = scope.get("query_string", b"")
  if query_string:
    return f"{path}?{query_string.decode('latin-1')}"

  return path


def _format_body_for_log(body: bytes, content_type: str | None, max_bytes: int) -> str:
  """Format a JSON request body for logging with redaction."""
  if not body:
    return "<empty>"

  if not content_type or "application/json" not in content_type.lower():
    return f"<non-json body {len(body)} bytes>"

  if len(body) > max_bytes:
    return f"{body[:max_bytes].decode('utf-8', errors='replace')}...(truncated)"

  text = body.decode("utf-8", errors="replace")
  try:
    parsed = json.loads(text)
  except json.JSONDecodeError:
    return text

  return json.dumps(_redact_sensitive_keys(parsed), ensure_ascii=True)


class RequestLoggingMiddleware:
  """Log request/response metadata and tag every response with a request id."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    settings = get_settings()
    request_id = str(uuid.uuid4())
    scope.setdefault("state", {})["request_id"] = request_id

    start_time = time.time()
    method = scope.get("method", "UNKNOWN")
    logger.info("Incoming request request_id=%s %s %s", request_id, method, _build_request_url(scope))

    receive_wrapper = receive
    if settings.log_http_bodies:
      # Drain the body for logging, then replay it to downstream handlers.
      body_chunks: list[bytes] = []
      more_body = True
      while more_body:
        message = await receive()
        if message.get("type") != "http.request":
          break
        body_chunks.append(message.get("body", b""))
        more_body = message.get("more_body", False)

      request_body = b"".join(body_chunks)
      body_sent = False

      async def receive_wrapper() -> dict[str, Any]:
        nonlocal body_sent
        if body_sent:
          return {"type": "http.request", "body": b"", "more_body": False}

        body_sent = True
        return {"type": "http.request", "body": request_body, "more_body": False}

      headers = {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope.get("headers", [])}
      logger.info("Request body request_id=%s body=%s", request_id, _format_body_for_log(request_body, headers.get("content-type"), settings.log_http_body_bytes))

    status_code: int | None = None

    async def send_wrapper(message: dict[str, Any]) -> None:
      nonlocal status_code
      if message.get("type") == "http.response.start":
        status_code = message.get("status")
        response_headers = MutableHeaders(scope=message)
        if "x-request-id" not in response_headers:
          response_headers["x-request-id"] = request_id

      await send(message)

    await self.app(scope, receive_wrapper, send_wrapper)

    process_time = (time.time() - start_time) * 1000
    logger.info("Response request_id=%s status=%s (took %.2fms)", request_id, status_code or 0, process_time)


class SecurityHeadersMiddleware:
  """Middleware to strip sensitive headers from responses."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    async def send_wrapper(message: dict[str, Any]) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        if "x-powered-by" in headers:
          del headers["x-powered-by"]
        if "server" in headers:
          del headers["server"]

      await send(message)

    await self.app(scope, receive, send_wrapper)
