"""Persisted install queue and its stability-gated sequencer."""
from __future__ import annotations

from nupm.queue.operations import InstallOperation, OperationKind, OperationRecord, OperationState
from nupm.queue.sequencer import InstallSequencer, SequencerEvents, SequencerState
from nupm.queue.store import QUEUE_KEY, QueueStore

__all__ = [
    "InstallOperation",
    "InstallSequencer",
    "OperationKind",
    "OperationRecord",
    "OperationState",
    "QUEUE_KEY",
    "QueueStore",
    "SequencerEvents",
    "SequencerState",
]
