"""Example demonstrating automatic failover between two instances."""

import asyncio
import tempfile
from pathlib import Path

from sqlalchemy.ext.asyncio import create_async_engine

from leaderlease import ElectorConfig, LeaderElector


def status(*electors: LeaderElector) -> str:
    return ", ".join(f"{e.instance_id}={e.role}" for e in electors)


async def main() -> None:
    """Start two electors, crash the leader, and watch the other take over."""
    with tempfile.TemporaryDirectory() as tmp:
        engine = create_async_engine(f"sqlite+aiosqlite:///{Path(tmp) / 'leases.db'}")
        config = ElectorConfig(
            lease_duration=1.5,
            renewal_interval=0.5,
            jitter_range=0.2,
            schema=None,  # SQLite has no schemas
        )

        print("=== Failover Example ===\n")
        a = await LeaderElector.create(engine, config.with_overrides(instance_id="alpha"))
        b = await LeaderElector.create(engine, config.with_overrides(instance_id="bravo"))
        print(f"Started: {status(a, b)}")

        # Simulated crash: renewals stop but the row stays behind
        leader, follower = (a, b) if a.am_i_leader() else (b, a)
        if leader._renewal_task is not None:
            leader._renewal_task.cancel()
        print(f"{leader.instance_id} stopped renewing\n")

        for second in range(1, 6):
            await asyncio.sleep(1.0)
            print(f"  t+{second}s: {status(a, b)}")
            if follower.am_i_leader():
                print(f"\n✓ {follower.instance_id} took over")
                break

        await a.shutdown()
        await b.shutdown()
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
