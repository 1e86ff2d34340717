"""Persistence of the pending install queue."""
from __future__ import annotations

import logging
from collections.abc import Iterable

from pydantic import ValidationError

from nupm.queue.operations import InstallOperation
from nupm.storage import KeyValueStore

logger = logging.getLogger(__name__)

#: Fixed storage key for the queue.
QUEUE_KEY = "nupm.install_queue.v1"


class QueueStore:
    """Reads and writes the queue as ``{"items": [...]}`` under one key.

    Loading is tolerant: unreadable data yields an empty queue and
    individual malformed items are dropped, each with a warning.
    """

    def __init__(self, store: KeyValueStore, key: str = QUEUE_KEY) -> None:
        self._store = store
        self._key = key

    def load(self) -> list[InstallOperation]:
        raw = self._store.get(self._key)
        if raw is None:
            return []
        items = raw.get("items") if isinstance(raw, dict) else None
        if not isinstance(items, list):
            logger.warning("Discarding persisted queue under %r: unexpected format", self._key)
            return []

        operations: list[InstallOperation] = []
        for item in items:
            try:
                operation = InstallOperation.model_validate(item)
            except ValidationError as exc:
                logger.warning("Dropping malformed queued operation %r: %s", item, exc)
                continue
            if operation.is_valid:
                operations.append(operation)
        return operations

    def save(self, operations: Iterable[InstallOperation]) -> None:
        self._store.set(
            self._key,
            {"items": [operation.model_dump(mode="json") for operation in operations]},
        )

    def clear(self) -> None:
        self.save([])


__all__ = ["QUEUE_KEY", "QueueStore"]
