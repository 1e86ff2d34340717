"""Package dependency resolver for sequenced installation.

Expands a root package into the ordered list of packages that must be
installed, dependencies first.

The resolver performs a depth-first post-order traversal over the
implicit graph formed by each descriptor's dependency list.  Two marker
sets track progress: *visiting* (on the current path) and *visited*
(fully emitted).  Re-entering a visiting node is a cycle and fails the
whole resolution.  Host builtin identities are never looked up and never
emitted; the backend resolves them itself.  Identities that are neither
builtin nor known are passed over with a warning so that one bad entry
does not block the rest of the graph.

Classes
-------
- InstallPlan          Resolved order plus the subset still to install.
- DependencyResolver   Resolve, filter and plan installs.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import ClassVar, Union

from nupm.catalog.descriptor import PackageDescriptor
from nupm.errors import CycleDetectedError

logger = logging.getLogger(__name__)

Lookup = Union[
    Callable[[str], Union[PackageDescriptor, None]],
    Mapping[str, PackageDescriptor],
]


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InstallPlan:
    """Outcome of planning an install.

    Attributes
    ----------
    root:
        The package the user asked for.
    order:
        Full resolved order, dependencies first, root last.
    missing:
        Entries of *order* not yet installed, in the same order.
    """

    root: PackageDescriptor
    order: list[PackageDescriptor] = field(default_factory=list)
    missing: list[PackageDescriptor] = field(default_factory=list)

    @property
    def dependencies(self) -> list[PackageDescriptor]:
        """Resolved entries other than the root."""
        return [package for package in self.order if package.identity != self.root.identity]

    @property
    def is_satisfied(self) -> bool:
        return not self.missing


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class DependencyResolver:
    """Resolves package dependencies into an installation order.

    Parameters
    ----------
    builtin_prefixes:
        Identity prefixes the host backend provides on its own.  Matching
        dependencies are skipped silently.  Defaults to
        :attr:`BUILTIN_PREFIXES`.
    """

    #: Identity prefixes of packages that ship with the host.
    BUILTIN_PREFIXES: ClassVar[tuple[str, ...]] = ("com.unity.",)

    def __init__(self, builtin_prefixes: Iterable[str] | None = None) -> None:
        prefixes = self.BUILTIN_PREFIXES if builtin_prefixes is None else builtin_prefixes
        self._builtin_prefixes: tuple[str, ...] = tuple(p.lower() for p in prefixes)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self, root: PackageDescriptor, lookup: Lookup) -> list[PackageDescriptor]:
        """Return *root* and its resolvable dependencies, dependencies first.

        Order among independent siblings follows the order in which they
        first appear in the dependency lists.

        Parameters
        ----------
        root:
            The package being installed.
        lookup:
            ``identity -> descriptor | None`` callable, or a mapping.

        Returns
        -------
        list[PackageDescriptor]
            Topologically sorted descriptors, root last.

        Raises
        ------
        CycleDetectedError
            If a package is reached again while its own dependencies are
            still being resolved.  No partial list is returned.
        """
        find = self._as_callable(lookup)
        resolved: list[PackageDescriptor] = []
        self._visit(root, find, resolved, visited=set(), visiting=set())
        return resolved

    def missing_from(
        self,
        order: Iterable[PackageDescriptor],
        installed: Iterable[str],
    ) -> list[PackageDescriptor]:
        """Return the entries of *order* whose identity is not in *installed*.

        Comparison is case-insensitive; the order of *order* is kept.
        """
        installed_keys = {identity.lower() for identity in installed}
        return [package for package in order if package.identity.lower() not in installed_keys]

    def plan(
        self,
        root: PackageDescriptor,
        lookup: Lookup,
        installed: Iterable[str] = (),
    ) -> InstallPlan:
        """Resolve *root* and compute what still needs installing."""
        order = self.resolve(root, lookup)
        return InstallPlan(root=root, order=order, missing=self.missing_from(order, installed))

    def is_builtin(self, identity: str) -> bool:
        """Return True if *identity* is provided by the host itself."""
        lowered = identity.lower()
        return any(lowered.startswith(prefix) for prefix in self._builtin_prefixes)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _visit(
        self,
        package: PackageDescriptor,
        find: Callable[[str], PackageDescriptor | None],
        resolved: list[PackageDescriptor],
        visited: set[str],
        visiting: set[str],
    ) -> None:
        if package.identity in visited:
            return
        if package.identity in visiting:
            raise CycleDetectedError(package.identity)

        visiting.add(package.identity)

        for dependency_id in package.dependencies:
            if self.is_builtin(dependency_id):
                continue
            dependency = find(dependency_id)
            if dependency is None:
                logger.warning(
                    "Dependency %r of %r not found; skipping it", dependency_id, package.identity
                )
                continue
            logger.debug("DependencyResolver: %r -> %r", package.identity, dependency_id)
            self._visit(dependency, find, resolved, visited, visiting)

        visiting.discard(package.identity)
        visited.add(package.identity)
        resolved.append(package)

    @staticmethod
    def _as_callable(lookup: Lookup) -> Callable[[str], PackageDescriptor | None]:
        if isinstance(lookup, Mapping):
            return lookup.get
        return lookup

    def __repr__(self) -> str:
        return f"DependencyResolver(builtin_prefixes={list(self._builtin_prefixes)!r})"


__all__ = [
    "DependencyResolver",
    "InstallPlan",
    "Lookup",
]
