"""Tests for update detection and the dependency-version advisory.

Covers:
- Version rule with permissive parsing
- Revision rule for source-backed packages
- UNKNOWN when only one side carries a revision
- Suspicious dependency versions
"""
from __future__ import annotations

import asyncio
import json

import pytest
from packaging.version import Version

from nupm.catalog.descriptor import PackageDescriptor
from nupm.errors import PackageNotFoundError
from nupm.installed.snapshot import InstalledRecord, PackageSource
from nupm.updates.advisory import find_suspicious_dependency_version, is_suspicious_version
from nupm.updates.detector import UpdateState, check_update, has_update, parse_version

LOCATOR = "https://github.com/neko/lib.git"


def _entry(version: str, locator: str = "", revision: str | None = None) -> PackageDescriptor:
    return PackageDescriptor(
        identity="com.neko.lib", version=version, source_locator=locator, latest_revision=revision
    )


def _record(version: str, locator: str | None = None, revision: str | None = None) -> InstalledRecord:
    return InstalledRecord(
        identity="com.neko.lib",
        display_name="Neko Lib",
        version=version,
        source=PackageSource.GIT if locator else PackageSource.REGISTRY,
        source_locator=locator,
        revision=revision,
    )


# ---------------------------------------------------------------------------
# Version parsing
# ---------------------------------------------------------------------------


class TestParseVersion:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("1.2.3", "1.2.3"),
            ("1.2.3-preview.4", "1.2.3"),
            ("2.0.0+build.7", "2.0.0"),
            ("3.1 beta", "3.1"),
            ("not-a-version", "0.0.0"),
            ("", "0.0.0"),
            (None, "0.0.0"),
        ],
    )
    def test_parse(self, text, expected) -> None:
        assert parse_version(text) == Version(expected)


# ---------------------------------------------------------------------------
# Update rules
# ---------------------------------------------------------------------------


class TestHasUpdate:
    def test_newer_catalog_version(self) -> None:
        assert has_update(_entry("1.2.0"), _record("1.1.9"))

    def test_older_catalog_version(self) -> None:
        assert not has_update(_entry("1.0.0"), _record("1.1.0"))

    def test_differing_revisions_on_source_package(self) -> None:
        entry = _entry("1.0.0", LOCATOR, "abc123")
        record = _record("1.0.0", LOCATOR, "def456")
        assert has_update(entry, record)

    def test_revision_compare_is_case_insensitive(self) -> None:
        entry = _entry("1.0.0", LOCATOR, "ABC123")
        assert not has_update(entry, _record("1.0.0", LOCATOR, "abc123"))

    def test_locator_on_installed_side_is_enough(self) -> None:
        assert has_update(_entry("1.0.0", "", "abc"), _record("1.0.0", LOCATOR, "def"))

    def test_revisions_ignored_without_locator(self) -> None:
        assert check_update(_entry("1.0.0", "", "abc"), _record("1.0.0", None, "def")) is (
            UpdateState.UP_TO_DATE
        )

    def test_identical_and_no_revisions(self) -> None:
        assert check_update(_entry("1.0.0", LOCATOR), _record("1.0.0", LOCATOR)) is (
            UpdateState.UP_TO_DATE
        )

    def test_malformed_versions_do_not_crash(self) -> None:
        assert not has_update(_entry("not-a-version"), _record("1.0.0"))
        assert has_update(_entry("1.0.0"), _record("not-a-version"))

    def test_zero_versions_equal(self) -> None:
        assert not has_update(_entry("0.0.0"), _record("0.0.0"))


class TestUnknownState:
    def test_only_catalog_revision_known(self) -> None:
        state = check_update(_entry("1.0.0", LOCATOR, "abc123"), _record("1.0.0", LOCATOR))
        assert state is UpdateState.UNKNOWN

    def test_only_installed_revision_known(self) -> None:
        state = check_update(_entry("1.0.0", LOCATOR), _record("1.0.0", LOCATOR, "abc123"))
        assert state is UpdateState.UNKNOWN

    def test_unknown_is_not_an_update(self) -> None:
        assert not has_update(_entry("1.0.0", LOCATOR, "abc123"), _record("1.0.0", LOCATOR))

    def test_version_rule_wins_over_unknown(self) -> None:
        state = check_update(_entry("2.0.0", LOCATOR, "abc123"), _record("1.0.0", LOCATOR))
        assert state is UpdateState.UPDATE_AVAILABLE


# ---------------------------------------------------------------------------
# Advisory
# ---------------------------------------------------------------------------


class RawFetcher:
    def __init__(self, text: str | None) -> None:
        self.text = text

    async def fetch_raw(self, locator: str) -> str:
        if self.text is None:
            raise PackageNotFoundError(locator)
        return self.text


class TestSuspiciousVersion:
    @pytest.mark.parametrize(
        "value", ["1.0.0", "^1.2.3", "~2.1", ">=1.0.0", "1.2.3-preview.1", "v3.0.0", "4"]
    )
    def test_versions_are_fine(self, value: str) -> None:
        assert not is_suspicious_version(value)

    @pytest.mark.parametrize(
        "value",
        [
            "https://github.com/neko/lib.git",
            "git+https://github.com/neko/lib",
            "git@github.com:neko/lib",
            "lib-1.0.0.zip",
            "release.tar.gz",
            "latest",
        ],
    )
    def test_non_versions_are_flagged(self, value: str) -> None:
        assert is_suspicious_version(value)


class TestFindSuspiciousDependencyVersion:
    def test_returns_first_offending_entry(self) -> None:
        text = json.dumps(
            {
                "name": "com.neko.flow",
                "dependencies": {
                    "com.neko.lib": "1.0.0",
                    "com.neko.signal": "https://github.com/neko/signal.git",
                    "com.neko.other": "other.zip",
                },
            }
        )
        finding = asyncio.run(find_suspicious_dependency_version(LOCATOR, RawFetcher(text)))
        assert finding == "com.neko.signal:https://github.com/neko/signal.git"

    def test_all_versions_fine(self) -> None:
        text = json.dumps({"name": "x", "dependencies": {"a": "1.0.0", "b": "^2.0"}})
        assert asyncio.run(find_suspicious_dependency_version(LOCATOR, RawFetcher(text))) is None

    def test_fetch_failure_returns_none(self) -> None:
        assert asyncio.run(find_suspicious_dependency_version(LOCATOR, RawFetcher(None))) is None
