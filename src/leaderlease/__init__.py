"""leaderlease - Lease-based leader election over a shared SQL table."""

from leaderlease.config import ElectorConfig
from leaderlease.core import LeaderElector
from leaderlease.errors import (
    ElectorClosedError,
    LeaderLeaseError,
    ReclaimFailure,
    SchemaMissing,
    TransientStoreFailure,
    WriteRejected,
)
from leaderlease.lease import LeaseRecord, Leadership
from leaderlease.schema import create_lease_table, drop_lease_table, lease_table
from leaderlease.store import LeaseStore
from leaderlease.types import ReclaimScope, Role

__version__ = "0.1.0"

__all__ = [
    "LeaderElector",
    "ElectorConfig",
    "LeaseStore",
    "LeaseRecord",
    "Leadership",
    "lease_table",
    "create_lease_table",
    "drop_lease_table",
    "LeaderLeaseError",
    "WriteRejected",
    "TransientStoreFailure",
    "SchemaMissing",
    "ReclaimFailure",
    "ElectorClosedError",
    "ReclaimScope",
    "Role",
]
