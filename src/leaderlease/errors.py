"""Exception classes for leaderlease."""


class LeaderLeaseError(Exception):
    """Base exception for all leaderlease errors."""


class WriteRejected(LeaderLeaseError):
    """Raised when another instance currently holds a valid lease on the row."""


class TransientStoreFailure(LeaderLeaseError):
    """Raised when the store is unreachable, times out, deadlocks or otherwise fails."""


class SchemaMissing(LeaderLeaseError):
    """Raised at startup when the lease table is absent and auto-creation is disabled."""


class ReclaimFailure(LeaderLeaseError):
    """Raised when a pass of the stale lease reclaimer fails."""


class ElectorClosedError(LeaderLeaseError):
    """Raised when operations are attempted on an elector that was shut down."""
