"""Advisory check for dependency versions that are not versions.

Some published descriptors pin a dependency to a repository URL or an
archive instead of a version.  Those entries usually mean the descriptor is
stale.  The check only reports the first such entry; it never blocks an
install.
"""
from __future__ import annotations

import logging
import re
from typing import Protocol

import httpx

from nupm.catalog.fetcher import dependency_values
from nupm.errors import NupmError

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = (".git", ".zip", ".tar.gz", ".tgz", ".tar")
SCHEME_MARKERS = ("://", "git+", "git@", "file:")

# Optional range prefix, optional "v", one to three numeric parts, then an
# optional pre-release or build tail.
_VERSION_RX = re.compile(r"^[\^~>=<]*\s*v?\d+(\.\d+){0,2}([-+.][0-9A-Za-z.\-+]+)?$")


class RawDescriptorFetcher(Protocol):
    """Anything that can return the unparsed descriptor for a locator."""

    async def fetch_raw(self, locator: str) -> str: ...


def is_suspicious_version(value: str) -> bool:
    """Return True when *value* does not look like a version or range.

    Examples
    --------
    >>> is_suspicious_version("^1.2.3")
    False
    >>> is_suspicious_version("https://github.com/neko/lib.git")
    True
    """
    text = value.strip()
    if not text:
        return True
    lowered = text.lower()
    if any(marker in lowered for marker in SCHEME_MARKERS):
        return True
    if lowered.endswith(ARCHIVE_SUFFIXES):
        return True
    return _VERSION_RX.match(text) is None


async def find_suspicious_dependency_version(
    locator: str, fetcher: RawDescriptorFetcher
) -> str | None:
    """Fetch the descriptor at *locator* and report its first odd dependency version.

    Parameters
    ----------
    locator:
        Source locator of the package to inspect.
    fetcher:
        Usually a :class:`~nupm.catalog.fetcher.MetadataFetcher`.

    Returns
    -------
    str | None
        ``"identity:value"`` for the first offending dependency, or None
        when every value looks like a version or the descriptor cannot be
        fetched.
    """
    try:
        text = await fetcher.fetch_raw(locator)
    except (NupmError, httpx.HTTPError) as exc:
        logger.warning("Advisory check skipped for %s: %s", locator, exc)
        return None

    for identity, value in dependency_values(text).items():
        if value and is_suspicious_version(value):
            return f"{identity}:{value}"
    return None


__all__ = [
    "ARCHIVE_SUFFIXES",
    "RawDescriptorFetcher",
    "find_suspicious_dependency_version",
    "is_suspicious_version",
]
