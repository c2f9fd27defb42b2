"""Schema package exports."""

from .features import Feature
from .kv import KeyValueEntry
from .sql import User, UserStatus

__all__ = ["Feature", "KeyValueEntry", "User", "UserStatus"]
