"""Package backend boundary and the file-based adapter."""
from __future__ import annotations

from nupm.backend.base import (
    GIT_SCHEME,
    BackendPackage,
    CompletedRequest,
    HostEnvironment,
    PackageBackend,
    PackageInstaller,
    PendingRequest,
    RequestStatus,
    wait_for,
)
from nupm.backend.manifest import ManifestFileBackend, StaticHost

__all__ = [
    "BackendPackage",
    "CompletedRequest",
    "GIT_SCHEME",
    "HostEnvironment",
    "ManifestFileBackend",
    "PackageBackend",
    "PackageInstaller",
    "PendingRequest",
    "RequestStatus",
    "StaticHost",
    "wait_for",
]
