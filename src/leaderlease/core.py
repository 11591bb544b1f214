"""Main LeaderElector implementation."""

import asyncio
import logging
import random
import time
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncEngine

from leaderlease.config import ElectorConfig
from leaderlease.errors import (
    ElectorClosedError,
    LeaderLeaseError,
    ReclaimFailure,
    TransientStoreFailure,
    WriteRejected,
)
from leaderlease.lease import LeaseRecord, Leadership
from leaderlease.schema import lease_table
from leaderlease.store import LeaseStore
from leaderlease.types import Role

logger = logging.getLogger(__name__)


class LeaderElector:
    """
    Lease-based leader election over a shared relational table.

    Every instance periodically tries to claim one row keyed by ``lock_id``. The
    claim succeeds only if the row is absent, expired, or already owned by this
    instance, so at most one instance holds a valid lease at a time. The local
    leadership flag is set only right after a confirmed write and cleared on any
    rejected or failed attempt.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        config: ElectorConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize the elector. Nothing touches the store until start().

        Args:
            engine: Async engine bound to the shared database
            config: Election settings (defaults to ElectorConfig())
            clock: Returns the current timezone-aware time used for expiries
        """
        self._config = config if config is not None else ElectorConfig()
        table = lease_table(self._config.schema, unique_owner_index=self._config.unique_owner_index)
        self._store = LeaseStore(engine, table, clock=clock)
        self._lock = asyncio.Lock()
        self._state = Leadership.follower()
        self._renewal_task: asyncio.Task[None] | None = None
        self._reclaim_task: asyncio.Task[None] | None = None
        self._started = False
        self._closed = False

    @classmethod
    async def create(
        cls,
        engine: AsyncEngine,
        config: ElectorConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> "LeaderElector":
        """
        Construct and start an elector.

        Raises:
            TransientStoreFailure: If the store cannot be reached
            SchemaMissing: If the lease table is absent and auto-creation is disabled
        """
        elector = cls(engine, config, clock=clock)
        await elector.start()
        return elector

    @property
    def config(self) -> ElectorConfig:
        return self._config

    @property
    def instance_id(self) -> str:
        return self._config.instance_id  # type: ignore[return-value]

    @property
    def lock_id(self) -> int:
        return self._config.lock_id

    @property
    def store(self) -> LeaseStore:
        return self._store

    @property
    def leadership(self) -> Leadership:
        """The last known outcome of a lease operation."""
        return self._state

    @property
    def role(self) -> Role:
        return "leader" if self.am_i_leader() else "follower"

    def am_i_leader(self) -> bool:
        """
        Return whether this instance currently holds the lease.

        Pure in-memory read. May lag the store by up to one renewal interval,
        but never outlives the lease duration of the last confirmed claim.
        """
        return self._state.is_valid()

    async def start(self) -> None:
        """
        Start the election.

        Prepares the lease table, starts the reclaimer, runs the first
        acquisition attempt and arms the renewal loop. Calling it again after
        release() resumes campaigning.

        Raises:
            ElectorClosedError: If the elector was shut down
            TransientStoreFailure: If the store cannot be reached
            SchemaMissing: If the lease table is absent and auto-creation is disabled
        """
        # Checks and task creation happen under the lock so overlapping calls
        # arm at most one renewal loop and one reclaimer.
        async with self._lock:
            if self._closed:
                raise ElectorClosedError("Cannot start a shut down elector")

            if not self._started:
                await self._store.ensure_schema(self._config.create_table_on_init)
                self._started = True
                self._reclaim_task = asyncio.create_task(self._reclaim_loop())
                logger.debug(
                    "Elector %s started for lock %s (lease %.3fs, renewal %.3fs)",
                    self.instance_id,
                    self.lock_id,
                    self._config.lease_duration,
                    self._config.renewal_interval,
                )

            if self._renewal_task is None or self._renewal_task.done():
                await self._attempt_renew_or_acquire()
                if not self._closed:
                    self._renewal_task = asyncio.create_task(self._renewal_loop())

    async def release(self) -> None:
        """
        Give up leadership.

        If this instance is leader, deletes its own lease row, clears the local
        flag and stops the renewal loop. A no-op while follower. Store failures
        are logged; the row is then left to expire.
        """
        async with self._lock:
            if not self._state.is_leader:
                return
            self._cancel_renewal()
            await self._release_row()

    async def shutdown(self) -> None:
        """Stop all background activity and release the lease. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        for task in (self._reclaim_task, self._renewal_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if not self._started:
            return

        # An attempt cancelled mid-flight may have committed, so delete
        # regardless of the local flag. The delete is scoped to this instance.
        try:
            await asyncio.wait_for(self._release_row(), timeout=self._config.renewal_interval)
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out releasing lock %s as %s; the lease will expire on its own",
                self.lock_id,
                self.instance_id,
            )
            self._state = Leadership.follower()

    async def __aenter__(self) -> "LeaderElector":
        """Context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Context manager exit."""
        await self.shutdown()

    async def current_lease(self) -> LeaseRecord | None:
        """
        Read the lease row for this lock from the store.

        Raises:
            TransientStoreFailure: If the store cannot be reached
        """
        return await self._store.get(self.lock_id)

    async def reclaim_expired(self) -> int:
        """
        Delete rows that have been expired for longer than the grace period.

        Returns:
            Number of rows deleted

        Raises:
            ReclaimFailure: If the delete failed
        """
        try:
            deleted = await self._store.reclaim(self._config.reclaim_grace)
        except LeaderLeaseError as exc:
            raise ReclaimFailure(f"Reclaiming expired leases failed: {exc}") from exc
        if deleted:
            logger.info("Reclaimed %d expired lease(s)", deleted)
        return deleted

    async def _attempt_renew_or_acquire(self) -> bool:
        """One acquire-or-renew round (must be called with lock held)."""
        cfg = self._config
        started = time.monotonic()
        try:
            lease = await self._store.claim(self.lock_id, self.instance_id, cfg.lease_duration)
        except WriteRejected as exc:
            logger.debug("Lock %s not acquired by %s: %s", self.lock_id, self.instance_id, exc)
            self._step_down("lease is held by another instance")
            return False
        except TransientStoreFailure as exc:
            logger.warning("Lease attempt on lock %s by %s failed: %s", self.lock_id, self.instance_id, exc)
            self._step_down("store failure")
            return False

        if not self._state.is_leader:
            logger.info(
                "Acquired leadership of lock %s as %s until %s",
                self.lock_id,
                self.instance_id,
                lease.expires_at.isoformat(),
            )
        # Deadline counts from before the write so it never outlasts the row
        self._state = Leadership.leader(lease, started + cfg.lease_duration)
        return True

    def _step_down(self, reason: str) -> None:
        if self._state.is_leader:
            logger.warning("Lost leadership of lock %s as %s: %s", self.lock_id, self.instance_id, reason)
        self._state = Leadership.follower()

    async def _release_row(self) -> None:
        was_leader = self._state.is_leader
        self._state = Leadership.follower()
        try:
            deleted = await self._store.release(self.lock_id, self.instance_id)
        except LeaderLeaseError as exc:
            logger.warning(
                "Could not delete lease row of lock %s for %s, leaving it to expire: %s",
                self.lock_id,
                self.instance_id,
                exc,
            )
            return
        if was_leader or deleted:
            logger.info("Released leadership of lock %s as %s", self.lock_id, self.instance_id)

    def _cancel_renewal(self) -> None:
        if self._renewal_task is not None and self._renewal_task is not asyncio.current_task():
            self._renewal_task.cancel()
        self._renewal_task = None

    def _next_delay(self, base: float) -> float:
        """Base delay plus a uniform offset in [-jitter/2, +jitter/2], never negative."""
        half = self._config.jitter_range / 2
        return max(0.0, base + random.uniform(-half, half))

    async def _renewal_loop(self) -> None:
        """Rearm-after-completion loop driving the acquire/renew attempts."""
        while not self._closed:
            try:
                await asyncio.sleep(self._next_delay(self._config.renewal_interval))  # type: ignore[arg-type]
                async with self._lock:
                    if self._closed:
                        break
                    await self._attempt_renew_or_acquire()

            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Unexpected error during lease attempt on lock %s", self.lock_id)
                self._step_down("unexpected error")

    async def _reclaim_loop(self) -> None:
        """Background task that periodically deletes long-expired lease rows."""
        while not self._closed:
            try:
                await asyncio.sleep(self._next_delay(self._config.cleanup_interval))  # type: ignore[arg-type]
                if self._config.reclaim_scope == "leader" and not self.am_i_leader():
                    continue
                await self.reclaim_expired()

            except asyncio.CancelledError:
                break
            except ReclaimFailure as exc:
                logger.warning("%s", exc)
            except Exception:
                logger.exception("Unexpected error in lease reclaimer")
