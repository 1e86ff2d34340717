"""Tests for the installed-state snapshot and the manifest file backend.

Covers:
- Listing direct and indirect packages
- Source locator extraction from package ids
- Revision hashes read from the lock file
- Backend failures surfaced as BackendUnavailableError
"""
from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from nupm.backend.base import BackendPackage, CompletedRequest
from nupm.backend.manifest import ManifestFileBackend
from nupm.errors import BackendUnavailableError
from nupm.installed.snapshot import (
    InstalledSnapshot,
    PackageSource,
    extract_source_locator,
    read_lock_revisions,
)

SHA = "0123456789abcdef0123456789abcdef01234567"


class ListingBackend:
    def __init__(self, packages: list[BackendPackage] | None = None, error: str | None = None):
        self.packages = packages or []
        self.error = error
        self.include_indirect: list[bool] = []

    def list_packages(self, include_indirect: bool) -> CompletedRequest:
        self.include_indirect.append(include_indirect)
        if self.error is not None:
            return CompletedRequest.failed(self.error)
        return CompletedRequest(result=list(self.packages))


def _write_project(root: Path, manifest: dict, lock: dict | None = None) -> None:
    packages = root / "Packages"
    packages.mkdir(parents=True, exist_ok=True)
    (packages / "manifest.json").write_text(json.dumps(manifest), encoding="utf-8")
    if lock is not None:
        (packages / "packages-lock.json").write_text(json.dumps(lock), encoding="utf-8")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestExtractSourceLocator:
    def test_git_package_id(self) -> None:
        assert (
            extract_source_locator("com.neko.lib@git+https://github.com/neko/lib.git")
            == "https://github.com/neko/lib.git"
        )

    def test_registry_package_id(self) -> None:
        assert extract_source_locator("com.unity.ugui@1.0.0") is None

    def test_empty(self) -> None:
        assert extract_source_locator("") is None


class TestReadLockRevisions:
    def test_reads_hashes_case_insensitively(self, tmp_path: Path) -> None:
        lock = tmp_path / "lock.json"
        lock.write_text(
            json.dumps(
                {"dependencies": {"Com.Neko.Lib": {"hash": SHA}, "com.unity.ugui": {"version": "1"}}}
            ),
            encoding="utf-8",
        )
        assert read_lock_revisions(lock) == {"com.neko.lib": SHA}

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert read_lock_revisions(tmp_path / "absent.json") == {}

    def test_corrupt_file_is_empty(self, tmp_path: Path) -> None:
        lock = tmp_path / "lock.json"
        lock.write_text("{not json", encoding="utf-8")
        assert read_lock_revisions(lock) == {}


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class TestInstalledSnapshot:
    def test_builds_records_keyed_by_lowercase_identity(self) -> None:
        backend = ListingBackend(
            [
                BackendPackage(
                    identity="Com.Neko.Lib",
                    display_name="Neko Lib",
                    version="1.0.0",
                    source="git",
                    package_id="Com.Neko.Lib@git+https://github.com/neko/lib.git",
                ),
                BackendPackage(identity="com.unity.ugui", version="2.0.0", source="builtin"),
            ]
        )
        installed = asyncio.run(InstalledSnapshot(backend).snapshot())

        assert set(installed) == {"com.neko.lib", "com.unity.ugui"}
        lib = installed["com.neko.lib"]
        assert lib.source is PackageSource.GIT
        assert lib.source_locator == "https://github.com/neko/lib.git"
        assert installed["com.unity.ugui"].display_name == "com.unity.ugui"
        assert backend.include_indirect == [True]

    def test_attaches_lock_revisions(self, tmp_path: Path) -> None:
        lock = tmp_path / "lock.json"
        lock.write_text(json.dumps({"dependencies": {"com.neko.lib": {"hash": SHA}}}), "utf-8")
        backend = ListingBackend([BackendPackage(identity="com.neko.lib", version="1.0.0")])
        installed = asyncio.run(InstalledSnapshot(backend, lock_path=lock).snapshot())
        assert installed["com.neko.lib"].revision == SHA

    def test_unknown_source_classification(self) -> None:
        backend = ListingBackend([BackendPackage(identity="x", source="somewhere")])
        installed = asyncio.run(InstalledSnapshot(backend).snapshot())
        assert installed["x"].source is PackageSource.UNKNOWN

    def test_backend_failure_raises_unavailable(self) -> None:
        snapshot = InstalledSnapshot(ListingBackend(error="package manager offline"))
        with pytest.raises(BackendUnavailableError, match="offline"):
            asyncio.run(snapshot.snapshot())

    def test_last_keeps_previous_successful_snapshot(self) -> None:
        backend = ListingBackend([BackendPackage(identity="com.neko.lib")])
        snapshot = InstalledSnapshot(backend)
        asyncio.run(snapshot.snapshot())
        backend.error = "gone"
        with pytest.raises(BackendUnavailableError):
            asyncio.run(snapshot.snapshot())
        assert set(snapshot.last) == {"com.neko.lib"}


# ---------------------------------------------------------------------------
# Manifest backend
# ---------------------------------------------------------------------------


class TestManifestFileBackend:
    def test_lists_direct_and_indirect_packages(self, tmp_path: Path) -> None:
        _write_project(
            tmp_path,
            {"dependencies": {"com.neko.signal": "https://github.com/neko/signal.git"}},
            {
                "dependencies": {
                    "com.neko.signal": {"version": "https://github.com/neko/signal.git",
                                        "source": "git", "hash": SHA},
                    "com.neko.lib": {"version": "1.0.0", "source": "registry"},
                }
            },
        )
        backend = ManifestFileBackend(tmp_path)
        installed = asyncio.run(InstalledSnapshot(backend, lock_path=backend.lock_path).snapshot())

        assert set(installed) == {"com.neko.signal", "com.neko.lib"}
        signal = installed["com.neko.signal"]
        assert signal.source_locator == "https://github.com/neko/signal.git"
        assert signal.revision == SHA

        direct_only = backend.list_packages(False).result
        assert [package.identity for package in direct_only] == ["com.neko.signal"]

    def test_add_git_uses_name_callback(self, tmp_path: Path) -> None:
        backend = ManifestFileBackend(tmp_path, name_for_locator=lambda locator: "com.neko.lib")
        request = backend.add("git+https://github.com/neko/unity-nekolib.git")

        assert request.result == "com.neko.lib"
        manifest = json.loads(backend.manifest_path.read_text(encoding="utf-8"))
        assert manifest["dependencies"] == {"com.neko.lib": "https://github.com/neko/unity-nekolib.git"}

    def test_add_git_falls_back_to_repo_name(self, tmp_path: Path) -> None:
        backend = ManifestFileBackend(tmp_path)
        assert backend.add("git+https://github.com/neko/flow.git").result == "flow"

    def test_add_by_identity(self, tmp_path: Path) -> None:
        backend = ManifestFileBackend(tmp_path)
        backend.add("com.unity.ugui@2.0.0")
        manifest = json.loads(backend.manifest_path.read_text(encoding="utf-8"))
        assert manifest["dependencies"]["com.unity.ugui"] == "2.0.0"

    def test_remove_unknown_fails(self, tmp_path: Path) -> None:
        request = ManifestFileBackend(tmp_path).remove("com.neko.lib")
        assert request.error is not None
        assert "not in the manifest" in request.error

    def test_corrupt_manifest_fails_listing(self, tmp_path: Path) -> None:
        (tmp_path / "Packages").mkdir()
        (tmp_path / "Packages" / "manifest.json").write_text("{oops", encoding="utf-8")
        snapshot = InstalledSnapshot(ManifestFileBackend(tmp_path))
        with pytest.raises(BackendUnavailableError):
            asyncio.run(snapshot.snapshot())
