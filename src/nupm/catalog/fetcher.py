"""Remote package metadata fetcher.

Downloads a package's ``package.json`` descriptor from a hosted git
repository and turns it into a :class:`PackageDescriptor`.

Source locators look like::

    https://github.com/<owner>/<repo>.git
    https://github.com/<owner>/<repo>.git#path=Packages/com.example.tool

The fetcher tries the ``main`` branch first and then ``master``; for each
branch it tries the descriptor at the repository root, or under the
``#path=`` fragment when one is given.  The latest head revision is looked
up on a best-effort basis: a failure there never fails the fetch.

Parsing is tolerant.  A well-formed JSON document is read with the JSON
parser; anything else falls back to a line-oriented key scan so that a
trailing comma or a stray comment does not hide the package.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from types import TracebackType

import httpx

from nupm.catalog.descriptor import UNRELEASED_VERSION, PackageDescriptor
from nupm.config import NupmSettings
from nupm.errors import InvalidArgumentError, InvalidLocatorError, PackageNotFoundError

logger = logging.getLogger(__name__)

BRANCHES: tuple[str, ...] = ("main", "master")
DESCRIPTOR_FILENAME = "package.json"
RAW_CONTENT_BASE = "https://raw.githubusercontent.com"
API_BASE = "https://api.github.com"
USER_AGENT = "nupm"

_SOURCE_RX = re.compile(
    r"^https?://github\.com/(?P<owner>[^/]+)/(?P<repo>[^/#]+?)(?:\.git)?(?P<frag>(?:[/#].*)?)$",
    re.IGNORECASE,
)
_PATH_FRAGMENT = "#path="
_REVISION_RX = re.compile(r"^[0-9a-fA-F]{40}$")

_PAIR_RX = re.compile(r'"(?P<key>[^"]+)"\s*:\s*"(?P<value>[^"]*)"')
_KEY_RX = re.compile(r'^"(?P<key>[^"]+)"\s*:')


# ---------------------------------------------------------------------------
# Source locators
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceLocator:
    """A parsed source locator.

    Attributes
    ----------
    owner:
        Repository owner.
    repo:
        Repository name without a ``.git`` suffix.
    subpath:
        Folder holding ``package.json`` inside the repository, or None for the root.
    """

    owner: str
    repo: str
    subpath: str | None = None

    def candidate_paths(self) -> list[str]:
        """Return descriptor paths to try, in order."""
        if not self.subpath:
            return [DESCRIPTOR_FILENAME]
        return [f"{self.subpath.rstrip('/')}/{DESCRIPTOR_FILENAME}"]

    def raw_url(self, branch: str, relative_path: str) -> str:
        return f"{RAW_CONTENT_BASE}/{self.owner}/{self.repo}/{branch}/{relative_path}"

    def head_commits_url(self, branch: str) -> str:
        return f"{API_BASE}/repos/{self.owner}/{self.repo}/commits?sha={branch}&per_page=1"


def parse_source_locator(locator: str) -> SourceLocator:
    """Parse *locator* into its owner, repository and optional subpath.

    Raises
    ------
    InvalidArgumentError
        If *locator* is empty.
    InvalidLocatorError
        If *locator* does not point at a supported repository host.
    """
    if not locator or not locator.strip():
        raise InvalidArgumentError("source locator is empty")

    match = _SOURCE_RX.match(locator.strip())
    if match is None:
        raise InvalidLocatorError(locator)

    return SourceLocator(
        owner=match.group("owner"),
        repo=match.group("repo"),
        subpath=_extract_path_fragment(match.group("frag")),
    )


def is_source_locator(value: str) -> bool:
    """Return True if *value* looks like a supported source locator."""
    return bool(value) and _SOURCE_RX.match(value.strip()) is not None


def _extract_path_fragment(fragment: str) -> str | None:
    if not fragment:
        return None
    index = fragment.lower().find(_PATH_FRAGMENT)
    if index < 0:
        return None
    path = fragment[index + len(_PATH_FRAGMENT):].lstrip("/")
    return path or None


# ---------------------------------------------------------------------------
# Descriptor parsing
# ---------------------------------------------------------------------------


def parse_descriptor(text: str, source_locator: str = "") -> PackageDescriptor:
    """Build a :class:`PackageDescriptor` from raw descriptor text.

    Missing display name falls back to the identity, missing version to
    :data:`UNRELEASED_VERSION`, missing description to ``""``.  Dependency
    values that are not strings are stringified rather than rejected.
    """
    fields = _load_mapping(text)
    if fields is None:
        logger.debug("Descriptor for %s is not valid JSON; scanning lines", source_locator)
        fields = _scan_fields(text)

    identity = _as_text(fields.get("name"))
    dependency_versions = _dependency_map(fields.get("dependencies"))

    return PackageDescriptor(
        identity=identity,
        display_name=_as_text(fields.get("displayname")) or identity,
        version=_as_text(fields.get("version")) or UNRELEASED_VERSION,
        description=_as_text(fields.get("description")),
        source_locator=source_locator,
        dependencies=tuple(dependency_versions),
        dependency_versions=dependency_versions,
    )


def dependency_values(text: str) -> dict[str, str]:
    """Return the raw identity → version map declared in descriptor *text*."""
    fields = _load_mapping(text)
    if fields is None:
        fields = _scan_fields(text)
    return _dependency_map(fields.get("dependencies"))


def _load_mapping(text: str) -> dict[str, object] | None:
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    return {str(key).lower(): value for key, value in data.items()}


def _as_text(value: object) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _dependency_map(value: object) -> dict[str, str]:
    dependencies: dict[str, str] = {}
    if isinstance(value, dict):
        for key, raw in value.items():
            name = str(key).strip()
            if not name or name in dependencies:
                continue
            dependencies[name] = raw if isinstance(raw, str) else json.dumps(raw)
    elif isinstance(value, list):
        for item in value:
            if isinstance(item, str) and item.strip():
                dependencies.setdefault(item.strip(), "")
    return dependencies


def _scan_fields(text: str) -> dict[str, object]:
    """Line-oriented extraction of top-level string fields and dependencies."""
    fields: dict[str, object] = {}
    dependencies: dict[str, str] = {}
    depth = 0
    collecting = False
    opened = False
    deps_base = 0

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        line_depth = depth
        depth += line.count("{") - line.count("}")

        if collecting:
            if not opened and not line.startswith("{"):
                collecting = False
            else:
                opened = True
                for match in _PAIR_RX.finditer(line):
                    dependencies.setdefault(match.group("key").strip(), match.group("value"))
                if depth <= deps_base:
                    collecting = False
                continue

        key_match = _KEY_RX.match(line)
        if (
            key_match is not None
            and line_depth <= 1
            and key_match.group("key").lower() == "dependencies"
        ):
            tail = line[key_match.end():].strip()
            deps_base = line_depth
            if tail.startswith("{"):
                for match in _PAIR_RX.finditer(tail):
                    dependencies.setdefault(match.group("key").strip(), match.group("value"))
                opened = True
                collecting = depth > line_depth
            elif not tail:
                opened = False
                collecting = True
            continue

        if line_depth > 1:
            continue
        for match in _PAIR_RX.finditer(line):
            fields.setdefault(match.group("key").lower(), match.group("value"))

    fields["dependencies"] = dependencies
    return fields


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class MetadataFetcher:
    """Fetches package descriptors from hosted repositories.

    Parameters
    ----------
    client:
        Optional ``httpx.AsyncClient``.  When omitted the fetcher creates
        its own and closes it in :meth:`aclose`.
    settings:
        Supplies the per-request timeouts.

    Example
    -------
    ::

        async with MetadataFetcher() as fetcher:
            descriptor = await fetcher.fetch("https://github.com/acme/tool.git")
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        settings: NupmSettings | None = None,
    ) -> None:
        self._settings = settings or NupmSettings()
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> MetadataFetcher:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch(self, locator: str) -> PackageDescriptor:
        """Fetch and parse the descriptor for *locator*.

        Raises
        ------
        InvalidArgumentError
            If *locator* is empty.
        InvalidLocatorError
            If *locator* is not a supported repository URL.
        PackageNotFoundError
            If no candidate path resolves on any branch.
        """
        source = parse_source_locator(locator)
        latest_revision: str | None = None

        for branch in BRANCHES:
            if latest_revision is None:
                latest_revision = await self._try_fetch_head_revision(source, branch)
            text = await self._download_first_candidate(source, branch)
            if text is not None:
                descriptor = parse_descriptor(text, locator.strip())
                return descriptor.with_latest_revision(latest_revision)

        raise PackageNotFoundError(locator)

    async def fetch_raw(self, locator: str) -> str:
        """Return the raw descriptor text for *locator* without parsing it."""
        source = parse_source_locator(locator)
        for branch in BRANCHES:
            text = await self._download_first_candidate(source, branch)
            if text is not None:
                return text
        raise PackageNotFoundError(locator)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            )
        return self._client

    async def _download_first_candidate(self, source: SourceLocator, branch: str) -> str | None:
        for relative_path in source.candidate_paths():
            text = await self._try_download_text(source.raw_url(branch, relative_path))
            if text:
                return text
        return None

    async def _try_download_text(self, url: str) -> str | None:
        try:
            response = await self._get_client().get(
                url, timeout=self._settings.request_timeout_seconds
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("Download of %s failed: %s", url, exc)
            return None
        if not response.is_success:
            logger.debug("Download of %s returned HTTP %d", url, response.status_code)
            return None
        return response.text

    async def _try_fetch_head_revision(self, source: SourceLocator, branch: str) -> str | None:
        url = source.head_commits_url(branch)
        try:
            response = await self._get_client().get(
                url,
                timeout=self._settings.revision_timeout_seconds,
                headers={"User-Agent": USER_AGENT},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("Head revision lookup %s failed: %s", url, exc)
            return None
        if not response.is_success:
            return None
        try:
            commits = response.json()
        except ValueError:
            return None
        if not isinstance(commits, list) or not commits or not isinstance(commits[0], dict):
            return None
        sha = commits[0].get("sha")
        if isinstance(sha, str) and _REVISION_RX.match(sha):
            return sha
        return None

    def __repr__(self) -> str:
        return f"MetadataFetcher(branches={list(BRANCHES)!r})"


__all__ = [
    "BRANCHES",
    "MetadataFetcher",
    "SourceLocator",
    "dependency_values",
    "is_source_locator",
    "parse_descriptor",
    "parse_source_locator",
]
