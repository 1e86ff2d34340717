"""File-based backend adapter for running nupm outside an editor.

Records installs in a project's ``Packages/manifest.json`` the way the
editor's own package manager does, and lists them back together with the
entries of ``Packages/packages-lock.json``.  Actual package download and
import stay with the editor; this adapter only keeps the manifest.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path

from nupm.backend.base import GIT_SCHEME, BackendPackage, CompletedRequest

logger = logging.getLogger(__name__)

MANIFEST_RELATIVE_PATH = Path("Packages") / "manifest.json"
LOCK_RELATIVE_PATH = Path("Packages") / "packages-lock.json"


class ManifestFileBackend:
    """Package backend that edits ``Packages/manifest.json``.

    Parameters
    ----------
    project_dir:
        Project root containing the ``Packages`` folder.
    name_for_locator:
        Maps a source locator to the package identity it provides.  When
        it returns None the repository name is used.
    """

    def __init__(
        self,
        project_dir: str | Path,
        name_for_locator: Callable[[str], str | None] | None = None,
    ) -> None:
        self._project_dir = Path(project_dir)
        self._name_for_locator = name_for_locator

    @property
    def manifest_path(self) -> Path:
        return self._project_dir / MANIFEST_RELATIVE_PATH

    @property
    def lock_path(self) -> Path:
        return self._project_dir / LOCK_RELATIVE_PATH

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    def add(self, identifier: str) -> CompletedRequest:
        if not identifier:
            return CompletedRequest.failed("identifier is empty")
        try:
            manifest = self._read_manifest()
        except ValueError as exc:
            return CompletedRequest.failed(str(exc))

        if identifier.lower().startswith(GIT_SCHEME):
            locator = identifier[len(GIT_SCHEME):]
            identity = self._identity_for(locator)
            value = locator
        else:
            identity, _, version = identifier.partition("@")
            value = version or "latest"

        manifest.setdefault("dependencies", {})[identity] = value
        self._write_manifest(manifest)
        logger.debug("Manifest: added %s = %s", identity, value)
        return CompletedRequest(result=identity)

    def remove(self, identifier: str) -> CompletedRequest:
        try:
            manifest = self._read_manifest()
        except ValueError as exc:
            return CompletedRequest.failed(str(exc))
        dependencies = manifest.get("dependencies", {})
        if identifier not in dependencies:
            return CompletedRequest.failed(f"Package {identifier} is not in the manifest")
        del dependencies[identifier]
        self._write_manifest(manifest)
        logger.debug("Manifest: removed %s", identifier)
        return CompletedRequest(result=identifier)

    def list_packages(self, include_indirect: bool) -> CompletedRequest:
        try:
            manifest = self._read_manifest()
        except ValueError as exc:
            return CompletedRequest.failed(str(exc))
        lock = self._read_lock()

        packages: list[BackendPackage] = []
        for identity, value in manifest.get("dependencies", {}).items():
            packages.append(self._package_entry(identity, str(value), lock.get(identity)))
        if include_indirect:
            direct = set(manifest.get("dependencies", {}))
            for identity, entry in lock.items():
                if identity not in direct and isinstance(entry, dict):
                    packages.append(
                        self._package_entry(identity, str(entry.get("version", "")), entry)
                    )
        return CompletedRequest(result=packages)

    def resolve(self) -> None:
        """Nothing to resolve for a plain manifest file."""

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _identity_for(self, locator: str) -> str:
        if self._name_for_locator is not None:
            identity = self._name_for_locator(locator)
            if identity:
                return identity
        tail = locator.split("#", 1)[0].rstrip("/").rsplit("/", 1)[-1]
        return tail.removesuffix(".git")

    @staticmethod
    def _package_entry(identity: str, value: str, lock_entry: object) -> BackendPackage:
        is_remote = "://" in value
        source = "git" if is_remote else "registry"
        version = "" if is_remote else value
        if isinstance(lock_entry, dict):
            source = str(lock_entry.get("source", source))
            locked_version = str(lock_entry.get("version", ""))
            if locked_version and "://" not in locked_version:
                version = locked_version
        package_id = f"{identity}@{GIT_SCHEME}{value}" if is_remote else f"{identity}@{value}"
        return BackendPackage(
            identity=identity,
            display_name=identity,
            version=version,
            source=source,
            package_id=package_id,
        )

    def _read_manifest(self) -> dict:
        if not self.manifest_path.exists():
            return {"dependencies": {}}
        try:
            data = json.loads(self.manifest_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Failed to read manifest {self.manifest_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Manifest {self.manifest_path} is not a JSON object")
        if not isinstance(data.get("dependencies"), dict):
            data["dependencies"] = {}
        return data

    def _read_lock(self) -> dict:
        if not self.lock_path.exists():
            return {}
        try:
            data = json.loads(self.lock_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return {}
        dependencies = data.get("dependencies") if isinstance(data, dict) else None
        return dependencies if isinstance(dependencies, dict) else {}

    def _write_manifest(self, manifest: dict) -> None:
        self.manifest_path.parent.mkdir(parents=True, exist_ok=True)
        self.manifest_path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")

    def __repr__(self) -> str:
        return f"ManifestFileBackend(project_dir={str(self._project_dir)!r})"


class StaticHost:
    """Host environment whose busy state is set by the caller."""

    def __init__(self, busy: bool = False) -> None:
        self.busy = busy

    def is_busy(self) -> bool:
        return self.busy


__all__ = [
    "LOCK_RELATIVE_PATH",
    "MANIFEST_RELATIVE_PATH",
    "ManifestFileBackend",
    "StaticHost",
]
