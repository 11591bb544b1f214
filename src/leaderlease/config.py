"""Elector configuration."""

import os
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any

from leaderlease.types import ReclaimScope

_RECLAIM_SCOPES = ("all", "leader")
_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _new_instance_id() -> str:
    return uuid.uuid4().hex[:6]


@dataclass(frozen=True)
class ElectorConfig:
    """
    Configuration for a LeaderElector.

    All durations are in seconds. ``renewal_interval`` defaults to a third of
    ``lease_duration`` and ``cleanup_interval`` to six lease durations. Keeping
    ``lease_duration`` strictly above ``renewal_interval`` (2-3x) is up to the caller.

    Attributes:
        lease_duration: How long a successful claim keeps the lease valid.
        renewal_interval: Base delay between acquire/renew attempts.
        cleanup_interval: Base delay between reclaimer passes.
        jitter_range: Width of the uniform random offset added to every delay,
            drawn from ``[-jitter_range / 2, +jitter_range / 2]``.
        lock_id: Row identifier partitioning independent leases in one table.
        instance_id: Identifier written as ``leader_id`` when this instance wins.
        schema: Database schema holding the lease table (None for the default).
            SQLite has no schemas and needs None.
        create_table_on_init: Create the table on start instead of requiring it.
        reclaim_grace: Rows are reclaimed only once expired for longer than this.
        reclaim_scope: "all" to reclaim on every instance, "leader" to reclaim
            only while holding the lease.
        unique_owner_index: Also create a unique index on ``(id, leader_id)``.
    """

    lease_duration: float = 10.0
    renewal_interval: float | None = None
    cleanup_interval: float | None = None
    jitter_range: float = 2.0
    lock_id: int = 1
    instance_id: str | None = None
    schema: str | None = "public"
    create_table_on_init: bool = True
    reclaim_grace: float = 5.0
    reclaim_scope: ReclaimScope = "all"
    unique_owner_index: bool = False
    _derived: frozenset[str] = field(default=frozenset(), init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Resolve derived defaults and validate values."""
        if self.lease_duration <= 0:
            raise ValueError(f"lease_duration must be positive, got {self.lease_duration!r}")
        derived: set[str] = set()
        if self.renewal_interval is None:
            object.__setattr__(self, "renewal_interval", self.lease_duration / 3)
            derived.add("renewal_interval")
        if self.cleanup_interval is None:
            object.__setattr__(self, "cleanup_interval", self.lease_duration * 6)
            derived.add("cleanup_interval")
        object.__setattr__(self, "_derived", frozenset(derived))
        if self.instance_id is None:
            object.__setattr__(self, "instance_id", _new_instance_id())

        if self.renewal_interval <= 0:  # type: ignore[operator]
            raise ValueError(f"renewal_interval must be positive, got {self.renewal_interval!r}")
        if self.cleanup_interval <= 0:  # type: ignore[operator]
            raise ValueError(f"cleanup_interval must be positive, got {self.cleanup_interval!r}")
        if self.jitter_range < 0:
            raise ValueError(f"jitter_range must not be negative, got {self.jitter_range!r}")
        if self.reclaim_grace < 0:
            raise ValueError(f"reclaim_grace must not be negative, got {self.reclaim_grace!r}")
        if self.reclaim_scope not in _RECLAIM_SCOPES:
            raise ValueError(f"reclaim_scope must be one of {_RECLAIM_SCOPES}, got {self.reclaim_scope!r}")
        if not self.instance_id:
            raise ValueError("instance_id must not be empty")

    def with_overrides(self, **changes: Any) -> "ElectorConfig":
        """
        Return a copy with the given fields replaced.

        Intervals that were derived from ``lease_duration`` are derived again
        unless given explicitly.
        """
        for name in self._derived:
            changes.setdefault(name, None)
        return replace(self, **changes)

    @classmethod
    def from_env(
        cls,
        prefix: str = "LEADER_LEASE_",
        environ: Mapping[str, str] | None = None,
    ) -> "ElectorConfig":
        """
        Build a config from environment variables.

        Each field maps to ``<prefix><FIELD_NAME_UPPER>``, e.g.
        ``LEADER_LEASE_LEASE_DURATION=15``. Unset variables keep their defaults.
        An empty ``..._SCHEMA`` selects the connection's default schema.

        Args:
            prefix: Variable name prefix
            environ: Mapping to read from (defaults to ``os.environ``)

        Raises:
            ValueError: If a variable cannot be parsed or a value is invalid
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}
        for field_ in fields(cls):
            if not field_.init:
                continue
            raw = env.get(prefix + field_.name.upper())
            if raw is None:
                continue
            raw = raw.strip()
            if field_.name in ("lease_duration", "renewal_interval", "cleanup_interval",
                              "jitter_range", "reclaim_grace"):
                kwargs[field_.name] = float(raw)
            elif field_.name == "lock_id":
                kwargs[field_.name] = int(raw)
            elif field_.name in ("create_table_on_init", "unique_owner_index"):
                value = raw.lower()
                if value not in _TRUE_VALUES + _FALSE_VALUES:
                    raise ValueError(f"{prefix}{field_.name.upper()} must be a boolean, got {raw!r}")
                kwargs[field_.name] = value in _TRUE_VALUES
            elif field_.name == "schema":
                kwargs[field_.name] = raw or None
            else:
                kwargs[field_.name] = raw
        return cls(**kwargs)
