from . import digest, worker

__all__ = ["digest", "worker"]
