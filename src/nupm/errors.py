"""Exception hierarchy for nupm.

Every error raised by the core derives from :class:`NupmError` so callers
can catch the whole family in one place.

Classes
-------
- NupmError                Base class.
- InvalidArgumentError     Malformed or empty input to a core operation.
- InvalidLocatorError      Source locator does not match a supported host.
- PackageNotFoundError     A remote descriptor could not be located.
- CycleDetectedError       The dependency graph contains a cycle.
- BackendUnavailableError  The package backend could not be queried.
- BackendOperationError    An install or uninstall call failed.
- OperationTimeoutError    A bounded wait exceeded its budget.
"""
from __future__ import annotations


class NupmError(Exception):
    """Base class for all nupm errors."""


class InvalidArgumentError(NupmError, ValueError):
    """Raised for empty or malformed input (empty locator, empty operation)."""


class InvalidLocatorError(InvalidArgumentError):
    """Raised when a source locator does not match the supported host pattern."""

    def __init__(self, locator: str) -> None:
        super().__init__(f"Unsupported source locator: {locator!r}")
        self.locator = locator


class PackageNotFoundError(NupmError):
    """Raised when no candidate descriptor path resolves on any branch."""

    def __init__(self, locator: str) -> None:
        super().__init__(
            f"package.json not found for {locator} "
            "(try appending '#path=Packages/<folder>')"
        )
        self.locator = locator


class CycleDetectedError(NupmError):
    """Raised when dependency resolution revisits a package on the current path.

    Attributes
    ----------
    identity:
        The identity at which the cycle was detected.
    """

    def __init__(self, identity: str) -> None:
        super().__init__(f"Circular dependency detected involving {identity!r}")
        self.identity = identity


class BackendUnavailableError(NupmError):
    """Raised when the backend's installed-package listing fails."""


class BackendOperationError(NupmError):
    """Raised when the backend reports a failed install or uninstall.

    Attributes
    ----------
    identity:
        Target package identity (or source locator for locator-only installs).
    operation:
        Human-readable operation name, e.g. ``"install"``.
    """

    def __init__(self, identity: str, operation: str, detail: str) -> None:
        super().__init__(f"{operation} {identity} failed: {detail}")
        self.identity = identity
        self.operation = operation
        self.detail = detail


class OperationTimeoutError(NupmError, TimeoutError):
    """Raised when a bounded wait runs past its timeout."""


__all__ = [
    "BackendOperationError",
    "BackendUnavailableError",
    "CycleDetectedError",
    "InvalidArgumentError",
    "InvalidLocatorError",
    "NupmError",
    "OperationTimeoutError",
    "PackageNotFoundError",
]
