"""Package descriptor value object.

A :class:`PackageDescriptor` is built fresh on every catalog refresh and
never mutated afterwards; helpers such as :meth:`with_dependencies`
return a new instance instead.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field

#: Version reported for descriptors that do not declare one.
UNRELEASED_VERSION = "0.0.0"


@dataclass(frozen=True)
class PackageDescriptor:
    """Metadata for one installable package.

    Attributes
    ----------
    identity:
        Unique package key, e.g. ``"com.neko.lib"``.
    display_name:
        Human-readable name.  Falls back to *identity* when empty.
    version:
        Semantic version string as published.
    description:
        Free-text description.
    source_locator:
        Remote repository locator.  Empty means "install by identity"
        against the backend's own registry.
    dependencies:
        Ordered dependency identities.
    latest_revision:
        Revision identifier of the source's current head, when known.
    dependency_versions:
        Raw identity → version value map as published, kept for the
        advisory check.  Not used for resolution.
    """

    identity: str
    display_name: str = ""
    version: str = UNRELEASED_VERSION
    description: str = ""
    source_locator: str = ""
    dependencies: tuple[str, ...] = ()
    latest_revision: str | None = None
    dependency_versions: dict[str, str] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not self.display_name:
            object.__setattr__(self, "display_name", self.identity)
        if not self.version:
            object.__setattr__(self, "version", UNRELEASED_VERSION)
        if not isinstance(self.dependencies, tuple):
            object.__setattr__(self, "dependencies", tuple(self.dependencies))

    @property
    def is_source_backed(self) -> bool:
        """True when the package is installed from a source locator."""
        return bool(self.source_locator)

    def with_dependencies(self, dependencies: list[str] | tuple[str, ...]) -> PackageDescriptor:
        """Return a copy with *dependencies* replacing the current list."""
        return dataclasses.replace(self, dependencies=tuple(dependencies))

    def with_latest_revision(self, revision: str | None) -> PackageDescriptor:
        return dataclasses.replace(self, latest_revision=revision)

    def __str__(self) -> str:
        return f"{self.display_name} ({self.identity}) v{self.version}"


__all__ = ["PackageDescriptor", "UNRELEASED_VERSION"]
