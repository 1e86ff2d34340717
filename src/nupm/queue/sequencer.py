"""Stability-gated install sequencer.

Drains the persisted install queue one operation at a time.  The host
calls :meth:`InstallSequencer.tick` periodically (or runs
:meth:`InstallSequencer.run`); each tick decides whether the next
operation may start.

States
------
IDLE        Queue empty, nothing in flight.
PENDING     Operations queued, waiting for the host to settle.
INSTALLING  Exactly one operation in flight.

Gating
------
An operation starts only when all of the following hold:

- nothing else is in flight;
- the post-reload cooldown has elapsed since the last host reload;
- the host has reported "not busy" continuously for the stability window.

The dequeued operation is removed from the persisted queue *before* it
runs, so a crash mid-install never replays it.  After the backend call
the sequencer optionally waits until the package is observably present
(or absent, for uninstalls) and the host is stable again, bounded by the
install timeout; running out of time there is logged and the queue moves
on.

Events
------
``on_enqueued(ops)``, ``on_started(op)``, ``on_succeeded(op)``,
``on_failed(op, error)`` and ``on_idle()``.  ``on_idle`` fires exactly once
per transition from busy to idle, after the last operation has finished.
"""
from __future__ import annotations

import asyncio
import datetime
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

from nupm.backend.base import HostEnvironment, PackageInstaller
from nupm.config import NupmSettings
from nupm.errors import BackendUnavailableError, OperationTimeoutError
from nupm.installed.snapshot import InstalledSnapshot
from nupm.queue.operations import InstallOperation, OperationKind, OperationRecord, OperationState
from nupm.queue.store import QueueStore
from nupm.storage import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)


class SequencerState(str, Enum):
    """Coarse state of the sequencer."""

    IDLE = "idle"
    PENDING = "pending"
    INSTALLING = "installing"


@dataclass
class SequencerEvents:
    """Observer callbacks, one list per lifecycle event."""

    on_enqueued: list[Callable[[list[InstallOperation]], None]] = field(default_factory=list)
    on_started: list[Callable[[InstallOperation], None]] = field(default_factory=list)
    on_succeeded: list[Callable[[InstallOperation], None]] = field(default_factory=list)
    on_failed: list[Callable[[InstallOperation, str], None]] = field(default_factory=list)
    on_idle: list[Callable[[], None]] = field(default_factory=list)


class InstallSequencer:
    """Single-flight, persisted install/uninstall queue.

    Parameters
    ----------
    installer:
        Issues the backend install/uninstall requests.
    snapshot:
        Used to confirm that an operation's effect is visible.
    host:
        Reports whether the host is mid-reload or mid-build.
    store:
        Durable key-value store for the queue.  Defaults to an in-memory store.
    settings:
        Timing settings.
    clock:
        Monotonic clock in seconds.
    sleep:
        Coroutine used for every wait; injectable for tests.

    Example
    -------
    ::

        sequencer = InstallSequencer(installer, snapshot, host, store=JsonFileStore(path))
        sequencer.enqueue([InstallOperation.install(descriptor)])
        await sequencer.drain()
    """

    def __init__(
        self,
        installer: PackageInstaller,
        snapshot: InstalledSnapshot,
        host: HostEnvironment,
        store: KeyValueStore | None = None,
        settings: NupmSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._installer = installer
        self._snapshot = snapshot
        self._host = host
        self._queue_store = QueueStore(store if store is not None else MemoryStore())
        self._settings = settings or NupmSettings()
        self._clock = clock
        self._sleep = sleep

        self._queue: deque[InstallOperation] = deque(self._queue_store.load())
        self._processing = False
        self._idle_start: float | None = None
        self._was_empty = not self._queue
        self._last_reload_at = clock()
        self._current_task: asyncio.Task[None] | None = None
        self._history: dict[str, OperationRecord] = {}
        self.events = SequencerEvents()

        for operation in self._queue:
            self._record(operation, OperationState.PENDING)
        if self._queue:
            logger.info("Restored %d pending operation(s) from storage", len(self._queue))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SequencerState:
        if self._processing:
            return SequencerState.INSTALLING
        if self._queue:
            return SequencerState.PENDING
        return SequencerState.IDLE

    @property
    def is_busy(self) -> bool:
        """True while anything is queued or in flight."""
        return self._processing or bool(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def installer(self) -> PackageInstaller:
        return self._installer

    @property
    def current_task(self) -> asyncio.Task[None] | None:
        """Task of the operation in flight, or of the last one started."""
        return self._current_task

    def pending(self) -> list[InstallOperation]:
        """Snapshot of queued operations, in execution order."""
        return list(self._queue)

    @property
    def history(self) -> list[OperationRecord]:
        """Latest outcome per operation target."""
        return list(self._history.values())

    def record_for(self, target: str) -> OperationRecord | None:
        return self._history.get(target.strip().lower())

    # ------------------------------------------------------------------
    # Queue mutation
    # ------------------------------------------------------------------

    def enqueue(self, operations: Iterable[InstallOperation | None]) -> list[InstallOperation]:
        """Append valid operations to the queue and persist it.

        Operations naming neither an identity nor a source locator are
        rejected and never reach storage.

        Returns
        -------
        list[InstallOperation]
            The accepted operations.
        """
        accepted: list[InstallOperation] = []
        for operation in operations:
            if operation is None:
                continue
            if not operation.is_valid:
                logger.warning("Rejecting invalid queue operation %r", operation)
                continue
            self._queue.append(operation)
            accepted.append(operation)

        if accepted:
            self._persist()
            self._was_empty = False
            for operation in accepted:
                self._record(operation, OperationState.PENDING)
            logger.debug("Enqueued %d operation(s); %d pending", len(accepted), len(self._queue))
            self._emit(self.events.on_enqueued, list(accepted))
        return accepted

    def clear(self) -> None:
        """Drop every queued operation.

        An operation already in flight is not cancelled; when the queue was
        non-empty the idle event fires once that operation has finished
        (immediately when nothing is in flight).
        """
        self._queue.clear()
        self._persist()
        self._maybe_emit_idle()

    def notify_reload(self) -> None:
        """Record a host reload; restarts the cooldown and the stability window."""
        self._last_reload_at = self._clock()
        self._idle_start = None

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def tick(self) -> None:
        """Advance the state machine by one step.

        Must be called from inside the running event loop; starting an
        operation schedules it as a task on that loop.
        """
        if self._processing:
            return
        if not self._queue:
            self._maybe_emit_idle()
            return

        self._was_empty = False
        now = self._clock()

        if now - self._last_reload_at < self._settings.effective_cooldown_seconds:
            self._idle_start = None
            return

        if self._host.is_busy():
            self._idle_start = None
            return

        if self._idle_start is None:
            self._idle_start = now
            return
        if now - self._idle_start < self._settings.effective_idle_stable_seconds:
            return

        operation = self._queue.popleft()
        self._persist()
        self._processing = True
        self._record(operation, OperationState.INSTALLING)
        logger.info("Starting %s of %s", operation.kind.value, operation.label)
        self._emit(self.events.on_started, operation)
        self._current_task = asyncio.get_running_loop().create_task(self._run(operation))

    async def run(self, stop: asyncio.Event) -> None:
        """Tick at the configured poll interval until *stop* is set."""
        while not stop.is_set():
            self.tick()
            await self._sleep(self._settings.effective_poll_interval)

    async def drain(self, timeout: float | None = None) -> None:
        """Tick until the queue is empty and nothing is in flight.

        Raises
        ------
        OperationTimeoutError
            If *timeout* seconds pass before the queue drains.
        """
        deadline = None if timeout is None else self._clock() + timeout
        while True:
            self.tick()
            if not self.is_busy:
                break
            if deadline is not None and self._clock() >= deadline:
                raise OperationTimeoutError(
                    f"Install queue did not drain within {timeout:.0f}s "
                    f"({len(self._queue)} pending)"
                )
            await self._sleep(self._settings.effective_poll_interval)
        if self._current_task is not None:
            await self._current_task

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run(self, operation: InstallOperation) -> None:
        try:
            if operation.kind == OperationKind.UNINSTALL:
                await self._installer.uninstall(operation.identity)
            else:
                await self._installer.install(operation.identity, operation.source_locator)

            if self._settings.wait_for_presence and operation.identity:
                await self._wait_until_settled(
                    operation.identity,
                    expect_present=operation.kind == OperationKind.INSTALL,
                )

            grace = self._settings.effective_grace_delay
            if grace > 0:
                await self._sleep(grace)
        except Exception as exc:
            logger.error("%s of %s failed: %s", operation.kind.value.capitalize(), operation.label, exc)
            self._record(operation, OperationState.FAILED, str(exc))
            self._emit(self.events.on_failed, operation, str(exc))
        else:
            logger.info("%s of %s succeeded", operation.kind.value.capitalize(), operation.label)
            self._record(operation, OperationState.SUCCEEDED)
            self._emit(self.events.on_succeeded, operation)
        finally:
            self._processing = False
            self._idle_start = None
            self._maybe_emit_idle()

    async def _wait_until_settled(self, identity: str, expect_present: bool) -> bool:
        """Wait until *identity* is (or is no longer) installed and the host is stable.

        Returns False, after logging a warning, when the install timeout
        runs out first.
        """
        deadline = self._clock() + self._settings.effective_install_timeout
        idle_needed = self._settings.effective_idle_stable_seconds
        poll = self._settings.effective_poll_interval
        key = identity.lower()
        idle_start: float | None = None

        while self._clock() < deadline:
            try:
                installed = await self._snapshot.snapshot()
                settled = (key in installed) == expect_present
            except BackendUnavailableError as exc:
                logger.debug("Snapshot failed while waiting for %s: %s", identity, exc)
                settled = False

            if settled and not self._host.is_busy():
                now = self._clock()
                if idle_start is None:
                    idle_start = now
                if now - idle_start >= idle_needed:
                    return True
            else:
                idle_start = None

            await self._sleep(poll)

        logger.warning("Presence/idle wait for %r exceeded timeout; continuing.", identity)
        return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _maybe_emit_idle(self) -> None:
        if self._queue or self._processing or self._was_empty:
            return
        self._was_empty = True
        logger.debug("Install queue is idle")
        self._emit(self.events.on_idle)

    def _persist(self) -> None:
        self._queue_store.save(self._queue)

    def _record(
        self, operation: InstallOperation, state: OperationState, error: str | None = None
    ) -> None:
        self._history[operation.key] = OperationRecord(
            operation=operation,
            state=state,
            error=error,
            updated_at=datetime.datetime.now(datetime.timezone.utc).isoformat(),
        )

    @staticmethod
    def _emit(callbacks: list[Callable[..., None]], *args: object) -> None:
        for callback in list(callbacks):
            try:
                callback(*args)
            except Exception:
                logger.exception("Install queue observer %r raised", callback)

    def __repr__(self) -> str:
        return f"InstallSequencer(state={self.state.value!r}, pending={len(self._queue)})"


__all__ = ["InstallSequencer", "SequencerEvents", "SequencerState"]
