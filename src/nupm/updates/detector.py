"""Update detection for installed packages.

Two rules decide whether a catalog entry is newer than what is installed:

1. Version: both version strings are parsed permissively (everything from
   the first ``+``, ``-`` or space on is dropped; unparseable input counts
   as ``0.0.0``).  A greater catalog version is an update.
2. Revision: for source-backed packages, differing catalog and installed
   revision identifiers are an update even when the version is unchanged.

When the version rule does not fire and only one side of a source-backed
package carries a revision identifier, the result is
:attr:`UpdateState.UNKNOWN` rather than silently "up to date".
"""
from __future__ import annotations

import logging
import re
from enum import Enum

from packaging.version import InvalidVersion, Version

from nupm.catalog.descriptor import PackageDescriptor
from nupm.installed.snapshot import InstalledRecord

logger = logging.getLogger(__name__)

_ZERO = Version("0.0.0")
_CORE_SPLIT = re.compile(r"[+\- ]")


class UpdateState(str, Enum):
    """Outcome of comparing a catalog entry with its installed record."""

    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    UNKNOWN = "unknown"


def parse_version(text: str | None) -> Version:
    """Parse the ``major.minor.patch`` core of *text*; never raises.

    Parameters
    ----------
    text:
        Version string as published, e.g. ``"1.2.0-preview.3"``.

    Returns
    -------
    Version
        The parsed core version, or ``0.0.0`` when nothing parses.
    """
    if not text:
        return _ZERO
    core = _CORE_SPLIT.split(text.strip(), maxsplit=1)[0]
    try:
        return Version(core)
    except InvalidVersion:
        logger.debug("Unparseable version %r treated as 0.0.0", text)
        return _ZERO


def check_update(entry: PackageDescriptor, record: InstalledRecord) -> UpdateState:
    """Compare a catalog entry against the installed record of the same package."""
    if parse_version(entry.version) > parse_version(record.version):
        return UpdateState.UPDATE_AVAILABLE

    if not (entry.source_locator or record.source_locator):
        return UpdateState.UP_TO_DATE

    latest = (entry.latest_revision or "").strip()
    installed = (record.revision or "").strip()
    if latest and installed:
        if latest.lower() != installed.lower():
            return UpdateState.UPDATE_AVAILABLE
        return UpdateState.UP_TO_DATE
    if latest or installed:
        return UpdateState.UNKNOWN
    return UpdateState.UP_TO_DATE


def has_update(entry: PackageDescriptor, record: InstalledRecord) -> bool:
    """True only when an update is positively detected."""
    return check_update(entry, record) == UpdateState.UPDATE_AVAILABLE


__all__ = ["UpdateState", "check_update", "has_update", "parse_version"]
