from __future__ import annotations

from functools import lru_cache

from digest_service.config import Settings
from digest_service.services.tasks.interface import TaskEnqueuer
from digest_service.services.tasks.local import LocalHttpEnqueuer


@lru_cache(maxsize=1)
def get_task_enqueuer(settings: Settings) -> TaskEnqueuer:
  """Factory to get the configured task enqueuer."""
  if settings.task_service_provider == "gcp":
    from digest_service.services.tasks.gcp import CloudTasksEnqueuer

    return CloudTasksEnqueuer(settings)
  return LocalHttpEnqueuer(settings)
