"""Type definitions for leaderlease."""

from typing import Literal, TypeAlias

# Local view of this instance in the election
Role: TypeAlias = Literal["follower", "leader"]

# Which instances run the stale lease reclaimer
ReclaimScope: TypeAlias = Literal["all", "leader"]
