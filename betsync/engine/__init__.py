"""Reconciliation engine for the local account/batch/bet view.

This package provides:
- EntityStore: in-memory ordered collections with identity deduplication
- Reconciler: the single writer applying snapshots, events and mutation results
- SnapshotLoader / MutationGateway: REST reads and writes routed through it
- BettingEngine: owned lifecycle (start/teardown) and the UI projection
"""

from .engine import BettingEngine
from .exceptions import EngineError, MutationError, SnapshotLoadError
from .gateway import MutationGateway
from .loader import SnapshotLoader
from .projection import Projection, build_projection
from .reconciler import Focus, LoadTicket, ReconcileResult, Reconciler
from .resolver import ReferenceResolver
from .store import EntityStore

__all__ = [
    "BettingEngine",
    "EngineError",
    "MutationError",
    "SnapshotLoadError",
    "MutationGateway",
    "SnapshotLoader",
    "Projection",
    "build_projection",
    "Focus",
    "LoadTicket",
    "ReconcileResult",
    "Reconciler",
    "ReferenceResolver",
    "EntityStore",
]
