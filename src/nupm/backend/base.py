"""Boundary to the host's package-manager backend.

The backend performs the real installs; nupm only issues requests and
polls them.  Every request returns a handle that is polled until
``is_completed``; :func:`wait_for` wraps that polling with a timeout.

Protocols
---------
- PendingRequest    Handle for an in-flight backend request.
- PackageBackend    add / remove / list_packages / resolve primitives.
- HostEnvironment   Reports whether the host is mid-reload or mid-build.

Classes
-------
- BackendPackage     One entry of the backend's installed listing.
- CompletedRequest   Ready-made handle for synchronous backends and tests.
- PackageInstaller   Install/uninstall helpers built on the primitives.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from nupm.errors import BackendOperationError, InvalidArgumentError, OperationTimeoutError

logger = logging.getLogger(__name__)

#: Scheme marker the backend expects in front of git source locators.
GIT_SCHEME = "git+"

#: Default bound for a single backend request.
DEFAULT_REQUEST_TIMEOUT_SECONDS = 120.0


class RequestStatus(str, Enum):
    """Lifecycle of a backend request."""

    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"


class PendingRequest(Protocol):
    """Handle returned by every backend call."""

    @property
    def is_completed(self) -> bool: ...

    @property
    def status(self) -> RequestStatus: ...

    @property
    def error(self) -> str | None: ...

    @property
    def result(self) -> Any: ...


@dataclass(frozen=True)
class BackendPackage:
    """One installed package as reported by the backend.

    Attributes
    ----------
    identity:
        Package identity.
    display_name:
        Human-readable name; may be empty.
    version:
        Installed version string.
    source:
        Backend's source classification, e.g. ``"registry"`` or ``"git"``.
    package_id:
        Backend package id; git installs embed the locator after ``git+``.
    """

    identity: str
    display_name: str = ""
    version: str = ""
    source: str = ""
    package_id: str = ""


@dataclass
class CompletedRequest:
    """A request that is already finished when returned."""

    status: RequestStatus = RequestStatus.SUCCESS
    error: str | None = None
    result: Any = None

    @property
    def is_completed(self) -> bool:
        return self.status != RequestStatus.IN_PROGRESS

    @classmethod
    def failed(cls, error: str) -> CompletedRequest:
        return cls(status=RequestStatus.FAILURE, error=error)


class PackageBackend(Protocol):
    """Install/uninstall/list primitives of the host package manager."""

    def add(self, identifier: str) -> PendingRequest: ...

    def remove(self, identifier: str) -> PendingRequest: ...

    def list_packages(self, include_indirect: bool) -> PendingRequest: ...

    def resolve(self) -> None: ...


class HostEnvironment(Protocol):
    """The editor hosting nupm."""

    def is_busy(self) -> bool:
        """Return True while the host is reloading, compiling or importing."""
        ...


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


async def wait_for(
    request: PendingRequest,
    identity: str,
    operation: str,
    *,
    timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    poll_interval: float = 0.05,
    clock: Callable[[], float] = time.monotonic,
) -> PendingRequest:
    """Poll *request* until it completes.

    Raises
    ------
    OperationTimeoutError
        If the request is still running after *timeout* seconds.
    BackendOperationError
        If the request finished with a failure status.
    """
    deadline = clock() + timeout
    while not request.is_completed:
        if clock() >= deadline:
            raise OperationTimeoutError(f"{operation} {identity} timed out after {timeout:.0f}s.")
        await asyncio.sleep(poll_interval)

    if request.status == RequestStatus.FAILURE:
        raise BackendOperationError(identity, operation, request.error or "unknown error")
    return request


# ---------------------------------------------------------------------------
# Installer
# ---------------------------------------------------------------------------


class PackageInstaller:
    """Issues install and uninstall requests and waits for them.

    Identity-only installs are reserved for builtin packages; everything
    else is installed from its source locator with the ``git+`` marker.

    Parameters
    ----------
    backend:
        The host package backend.
    is_builtin:
        Predicate telling whether an identity is a host builtin.
    request_timeout:
        Bound for each backend request.
    poll_interval:
        Interval between request polls, in seconds.
    """

    def __init__(
        self,
        backend: PackageBackend,
        is_builtin: Callable[[str], bool],
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        poll_interval: float = 0.05,
    ) -> None:
        self._backend = backend
        self._is_builtin = is_builtin
        self._request_timeout = request_timeout
        self._poll_interval = poll_interval

    @property
    def backend(self) -> PackageBackend:
        return self._backend

    @property
    def request_timeout(self) -> float:
        return self._request_timeout

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    async def install(self, identity: str, source_locator: str = "") -> None:
        """Install a package by source locator, or by identity for builtins.

        Raises
        ------
        InvalidArgumentError
            If there is nothing to install, or a non-builtin package has
            no source locator.
        BackendOperationError
            If the backend reports a failure.
        OperationTimeoutError
            If the backend does not finish in time.
        """
        if source_locator:
            identifier = (
                source_locator
                if source_locator.lower().startswith(GIT_SCHEME)
                else GIT_SCHEME + source_locator
            )
        elif not identity:
            raise InvalidArgumentError("install needs an identity or a source locator")
        elif self._is_builtin(identity):
            identifier = identity
        else:
            raise InvalidArgumentError(f"No source locator for {identity}")

        label = identity or source_locator
        logger.info("Installing %s via %s", label, identifier)
        request = self._backend.add(identifier)
        await wait_for(
            request,
            label,
            "Install",
            timeout=self._request_timeout,
            poll_interval=self._poll_interval,
        )
        self._backend.resolve()

    async def uninstall(self, identity: str) -> None:
        """Remove *identity* from the backend."""
        if not identity:
            raise InvalidArgumentError("Package name is empty")
        logger.info("Uninstalling %s", identity)
        request = self._backend.remove(identity)
        await wait_for(
            request,
            identity,
            "Uninstall",
            timeout=self._request_timeout,
            poll_interval=self._poll_interval,
        )
        self._backend.resolve()


__all__ = [
    "BackendPackage",
    "CompletedRequest",
    "DEFAULT_REQUEST_TIMEOUT_SECONDS",
    "GIT_SCHEME",
    "HostEnvironment",
    "PackageBackend",
    "PackageInstaller",
    "PendingRequest",
    "RequestStatus",
    "wait_for",
]
