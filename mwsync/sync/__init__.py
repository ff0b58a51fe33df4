"""Synchronization components for replicating wiki changes."""

from mwsync.sync.change_resolver import ChangeResolver
from mwsync.sync.checkpoint_store import CheckpointStore
from mwsync.sync.models import ChangeSet, ItemResult, SyncReport
from mwsync.sync.provenance import ProvenanceRecord, format_provenance, parse_provenance
from mwsync.sync.sync_coordinator import SyncCoordinator

__all__ = [
    "ChangeResolver",
    "ChangeSet",
    "CheckpointStore",
    "ItemResult",
    "ProvenanceRecord",
    "SyncCoordinator",
    "SyncReport",
    "format_provenance",
    "parse_provenance",
]
