"""Lock data model."""

from dataclasses import dataclass


@dataclass
class Lock:
    """A time-bounded claim on a resource key.

    Times are clock readings in seconds (see LockManager's clock).
    """

    resource_key: str
    holder_id: str
    acquired_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at
