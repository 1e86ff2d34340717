"""Update detection and the dependency-version advisory check."""
from __future__ import annotations

from nupm.updates.advisory import find_suspicious_dependency_version, is_suspicious_version
from nupm.updates.detector import UpdateState, check_update, has_update, parse_version

__all__ = [
    "UpdateState",
    "check_update",
    "find_suspicious_dependency_version",
    "has_update",
    "is_suspicious_version",
    "parse_version",
]
