"""Installed-state snapshot.

Lists everything the backend has installed (direct and indirect) and
attaches, where available, the revision hash recorded in the backend's
lock file.  A snapshot is a point-in-time view: it is rebuilt from scratch
on every call and never patched.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from nupm.backend.base import GIT_SCHEME, BackendPackage, PackageBackend, wait_for
from nupm.errors import BackendUnavailableError, NupmError

logger = logging.getLogger(__name__)


class PackageSource(str, Enum):
    """Where an installed package came from."""

    REGISTRY = "registry"
    GIT = "git"
    EMBEDDED = "embedded"
    LOCAL = "local"
    BUILTIN = "builtin"
    UNKNOWN = "unknown"

    @classmethod
    def from_backend(cls, value: str) -> PackageSource:
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class InstalledRecord:
    """One installed package.

    Attributes
    ----------
    identity:
        Package identity.
    display_name:
        Display name; falls back to the identity.
    version:
        Installed version string.
    source:
        Source classification.
    source_locator:
        Locator for git installs, else None.
    revision:
        Revision hash from the lock file, else None.
    """

    identity: str
    display_name: str
    version: str
    source: PackageSource = PackageSource.UNKNOWN
    source_locator: str | None = None
    revision: str | None = None


def extract_source_locator(package_id: str) -> str | None:
    """Return the locator embedded after ``git+`` in *package_id*, if any."""
    if not package_id:
        return None
    index = package_id.find(GIT_SCHEME)
    if index < 0:
        return None
    return package_id[index + len(GIT_SCHEME):] or None


def read_lock_revisions(path: str | Path | None) -> dict[str, str]:
    """Best-effort identity → revision hash map from a lock file.

    Returns an empty map when the file is absent or cannot be parsed.
    Entries without a string ``hash`` are left out.
    """
    if path is None:
        return {}
    lock_path = Path(path)
    if not lock_path.exists():
        return {}
    try:
        data = json.loads(lock_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Could not read lock file %s: %s", lock_path, exc)
        return {}

    dependencies = data.get("dependencies") if isinstance(data, dict) else None
    if not isinstance(dependencies, dict):
        return {}

    revisions: dict[str, str] = {}
    for identity, entry in dependencies.items():
        if isinstance(entry, dict):
            revision = entry.get("hash")
            if isinstance(revision, str) and revision:
                revisions[identity.lower()] = revision
    return revisions


class InstalledSnapshot:
    """Builds identity → :class:`InstalledRecord` views from the backend.

    Keys of the returned mapping are lower-cased identities so lookups are
    case-insensitive.

    Parameters
    ----------
    backend:
        The host package backend.
    lock_path:
        Path to the backend's resolved-lock file, if any.
    request_timeout:
        Bound for the listing request.
    poll_interval:
        Interval between request polls, in seconds.
    """

    def __init__(
        self,
        backend: PackageBackend,
        lock_path: str | Path | None = None,
        request_timeout: float = 60.0,
        poll_interval: float = 0.05,
    ) -> None:
        self._backend = backend
        self._lock_path = lock_path
        self._request_timeout = request_timeout
        self._poll_interval = poll_interval
        self._last: dict[str, InstalledRecord] = {}

    @property
    def last(self) -> dict[str, InstalledRecord]:
        """The last successful snapshot (empty until one succeeds)."""
        return dict(self._last)

    @property
    def request_timeout(self) -> float:
        return self._request_timeout

    async def snapshot(self) -> dict[str, InstalledRecord]:
        """Query the backend and return the installed set.

        Raises
        ------
        BackendUnavailableError
            If the backend listing fails or times out.
        """
        revisions = read_lock_revisions(self._lock_path)
        try:
            request = self._backend.list_packages(True)
            await wait_for(
                request,
                "installed packages",
                "List",
                timeout=self._request_timeout,
                poll_interval=self._poll_interval,
            )
        except (NupmError, OSError) as exc:
            raise BackendUnavailableError(f"Could not list installed packages: {exc}") from exc

        records: dict[str, InstalledRecord] = {}
        for package in request.result or []:
            record = self._to_record(package, revisions)
            records[record.identity.lower()] = record

        self._last = records
        return dict(records)

    @staticmethod
    def _to_record(package: BackendPackage, revisions: dict[str, str]) -> InstalledRecord:
        return InstalledRecord(
            identity=package.identity,
            display_name=package.display_name or package.identity,
            version=package.version,
            source=PackageSource.from_backend(package.source),
            source_locator=extract_source_locator(package.package_id),
            revision=revisions.get(package.identity.lower()),
        )

    def __repr__(self) -> str:
        return f"InstalledSnapshot(last={len(self._last)})"


__all__ = [
    "InstalledRecord",
    "InstalledSnapshot",
    "PackageSource",
    "extract_source_locator",
    "read_lock_revisions",
]
