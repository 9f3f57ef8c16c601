"""Record lock manager."""

from .lock_manager import LockManager

__all__ = ["LockManager"]
