"""ORM models exposed by the CaneMap offline client."""
from .queue_entry import QueueEntry
from .sync_lease import SyncLease

__all__ = ["QueueEntry", "SyncLease"]
