"""Lease records and local leadership state."""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta

from leaderlease.types import Role


@dataclass(frozen=True)
class LeaseRecord:
    """One row of the lease table."""

    id: int
    leader_id: str
    expires_at: datetime  # timezone-aware
    created_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Check if the lease has expired at ``now``."""
        return self.expires_at <= now

    def is_reclaimable(self, now: datetime, grace: float) -> bool:
        """Check if the lease has been expired for longer than ``grace`` seconds."""
        return self.expires_at < now - timedelta(seconds=grace)

    def is_held_by(self, instance_id: str, now: datetime) -> bool:
        """Check if ``instance_id`` owns the lease and it is still valid."""
        return self.leader_id == instance_id and not self.is_expired(now)


@dataclass(frozen=True)
class Leadership:
    """
    Local view of the election, replaced as a whole after every lease operation.

    ``deadline`` is a monotonic timestamp after which a leader must stop trusting
    its last confirmed claim even if no new attempt has completed.
    """

    role: Role = "follower"
    deadline: float = 0.0
    lease: LeaseRecord | None = None

    @classmethod
    def follower(cls) -> "Leadership":
        return cls()

    @classmethod
    def leader(cls, lease: LeaseRecord, deadline: float) -> "Leadership":
        return cls(role="leader", deadline=deadline, lease=lease)

    @property
    def is_leader(self) -> bool:
        return self.role == "leader"

    def is_valid(self, now: float | None = None) -> bool:
        """Check if this is a leader state whose deadline has not passed."""
        if not self.is_leader:
            return False
        if now is None:
            now = time.monotonic()
        return now < self.deadline
