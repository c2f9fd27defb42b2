"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from digest_service.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_ONE_WEEK_SECONDS = 60 * 60 * 24 * 7
_KV_BACKENDS = {"postgres", "memory"}
_TASK_PROVIDERS = {"gcp", "local-http"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the digest service."""

  environment: str
  api_env: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  log_http_bodies: bool
  log_http_body_bytes: int
  pg_dsn: str | None
  pg_connect_timeout: int
  kv_backend: str
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None
  auth_cookie_name: str
  digest_feature_name: str
  digest_retention_seconds: int
  digest_daily_limit: int | None
  task_service_provider: str
  cloud_tasks_queue_path: str | None
  worker_base_url: str | None
  task_secret: str | None
  cloud_run_invoker_service_account: str | None
  analytics_api_key: str | None
  analytics_host: str
  analytics_timeout_seconds: float


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("DIGEST_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("DIGEST_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("DIGEST_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("DIGEST_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("DIGEST_DEBUG"))

  log_max_bytes = _positive_int("DIGEST_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("DIGEST_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("DIGEST_LOG_BACKUP_COUNT must be zero or a positive integer.")

  log_http_4xx = _parse_bool(os.getenv("DIGEST_LOG_HTTP_4XX"))
  log_http_bodies = _parse_bool(os.getenv("DIGEST_LOG_HTTP_BODIES"))
  log_http_body_bytes = _positive_int("DIGEST_LOG_HTTP_BODY_BYTES", "2048")

  kv_backend = (os.getenv("DIGEST_KV_BACKEND") or "postgres").strip().lower()
  if kv_backend not in _KV_BACKENDS:
    raise ValueError(f"DIGEST_KV_BACKEND must be one of {sorted(_KV_BACKENDS)}.")

  task_service_provider = (os.getenv("DIGEST_TASK_SERVICE_PROVIDER") or "local-http").strip().lower()
  if task_service_provider not in _TASK_PROVIDERS:
    raise ValueError(f"DIGEST_TASK_SERVICE_PROVIDER must be one of {sorted(_TASK_PROVIDERS)}.")

  digest_retention_seconds = _positive_int("DIGEST_RETENTION_SECONDS", str(_ONE_WEEK_SECONDS))
  # A missing daily limit leaves digest submission ungated.
  digest_daily_limit = _parse_optional_int(os.getenv("DIGEST_DAILY_LIMIT"))

  analytics_timeout_seconds = float(os.getenv("ANALYTICS_TIMEOUT_SECONDS", "5"))
  if analytics_timeout_seconds <= 0:
    raise ValueError("ANALYTICS_TIMEOUT_SECONDS must be positive.")

  return Settings(
    environment=environment,
    api_env=(os.getenv("API_ENV") or environment).strip().lower(),
    allowed_origins=_parse_origins(os.getenv("DIGEST_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    log_http_bodies=log_http_bodies,
    log_http_body_bytes=log_http_body_bytes,
    pg_dsn=os.getenv("DIGEST_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("DIGEST_PG_CONNECT_TIMEOUT", "5"),
    kv_backend=kv_backend,
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
    auth_cookie_name=(os.getenv("DIGEST_AUTH_COOKIE_NAME") or "auth").strip(),
    digest_feature_name=(os.getenv("DIGEST_FEATURE_NAME") or "ai-digest").strip(),
    digest_retention_seconds=digest_retention_seconds,
    digest_daily_limit=digest_daily_limit,
    task_service_provider=task_service_provider,
    cloud_tasks_queue_path=_optional_str(os.getenv("DIGEST_CLOUD_TASKS_QUEUE_PATH")),
    worker_base_url=_optional_str(os.getenv("DIGEST_WORKER_BASE_URL")),
    task_secret=_optional_str(os.getenv("DIGEST_TASK_SECRET")),
    cloud_run_invoker_service_account=_optional_str(os.getenv("DIGEST_CLOUD_RUN_INVOKER_SERVICE_ACCOUNT")),
    analytics_api_key=_optional_str(os.getenv("ANALYTICS_API_KEY")),
    analytics_host=(os.getenv("ANALYTICS_HOST") or "https://app.posthog.com").strip().rstrip("/"),
    analytics_timeout_seconds=analytics_timeout_seconds,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  debug = _parse_bool(os.getenv("DIGEST_DEBUG"))
  pg_connect_timeout = _positive_int("DIGEST_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = os.getenv("DIGEST_PG_DSN") or os.getenv("DATABASE_URL")
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _parse_optional_int(raw: str | None) -> int | None:
  if raw is None or raw.strip() == "":
    return None

  value = int(raw)

  if value <= 0:
    raise ValueError("Optional limits must be positive when provided.")

  return value
