"""Installed-state snapshot subpackage."""
from __future__ import annotations

from nupm.installed.snapshot import (
    InstalledRecord,
    InstalledSnapshot,
    PackageSource,
    extract_source_locator,
    read_lock_revisions,
)

__all__ = [
    "InstalledRecord",
    "InstalledSnapshot",
    "PackageSource",
    "extract_source_locator",
    "read_lock_revisions",
]
