"""Install queue operation models.

:class:`InstallOperation` is the persisted unit of work.  It is a pydantic
model so the queue can be written to and read back from the key-value
store without a hand-written codec.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict

from nupm.catalog.descriptor import PackageDescriptor


class OperationKind(str, Enum):
    """What an operation asks the backend to do."""

    INSTALL = "install"
    UNINSTALL = "uninstall"


class OperationState(str, Enum):
    """Observable state of an operation."""

    PENDING = "pending"
    INSTALLING = "installing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class InstallOperation(BaseModel):
    """One queued install or uninstall.

    Attributes
    ----------
    identity:
        Target package identity.  Required for uninstalls.
    display:
        Label shown to the user.
    source_locator:
        Locator to install from.  Empty means install by identity.
    kind:
        Install or uninstall.
    """

    model_config = ConfigDict(frozen=True)

    identity: str = ""
    display: str = ""
    source_locator: str = ""
    kind: OperationKind = OperationKind.INSTALL

    @property
    def is_valid(self) -> bool:
        """False for operations that name neither an identity nor a locator."""
        if self.kind == OperationKind.UNINSTALL:
            return bool(self.identity.strip())
        return bool(self.identity.strip() or self.source_locator.strip())

    @property
    def label(self) -> str:
        return self.display or self.identity or "(git)"

    @property
    def key(self) -> str:
        """Case-insensitive key used to track this operation's outcome."""
        return (self.identity or self.source_locator).strip().lower()

    @classmethod
    def install(cls, package: PackageDescriptor) -> InstallOperation:
        return cls(
            identity=package.identity,
            display=package.display_name,
            source_locator=package.source_locator,
        )

    @classmethod
    def uninstall(cls, identity: str, display: str = "") -> InstallOperation:
        return cls(identity=identity, display=display, kind=OperationKind.UNINSTALL)


@dataclass
class OperationRecord:
    """Latest known outcome of an operation.

    Attributes
    ----------
    operation:
        The operation itself.
    state:
        Current :class:`OperationState`.
    error:
        Error text when the operation failed.
    updated_at:
        ISO-8601 UTC timestamp of the last state change.
    """

    operation: InstallOperation
    state: OperationState = OperationState.PENDING
    error: str | None = None
    updated_at: str = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc).isoformat()
    )


__all__ = [
    "InstallOperation",
    "OperationKind",
    "OperationRecord",
    "OperationState",
]
