"""Catalog builder.

Turns the static registry into a live :class:`Catalog` by fetching every
entry's descriptor, merging in the registry's extra dependencies and
indexing the result.

A catalog is rebuilt from scratch on every refresh; nothing is patched in
place, so a package removed from the registry disappears on the next
refresh instead of lingering in an index.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator
from typing import Protocol

from nupm.catalog.descriptor import PackageDescriptor
from nupm.catalog.fetcher import is_source_locator
from nupm.catalog.registry import DEFAULT_REGISTRY, RegistryEntry

logger = logging.getLogger(__name__)


class DescriptorFetcher(Protocol):
    """Anything that can fetch a descriptor for a source locator."""

    async def fetch(self, locator: str) -> PackageDescriptor: ...


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class Catalog:
    """An immutable, ordered, indexed set of package descriptors.

    Descriptors are deduplicated by identity (first seen wins) and kept
    sorted by display name.  Two indexes are built once at construction:
    identity → descriptor and source locator → descriptor.

    Parameters
    ----------
    packages:
        Descriptors in discovery order.
    locator_index:
        Optional extra locator → descriptor mappings (registry locators
        that differ from the descriptor's own ``source_locator``).
    """

    def __init__(
        self,
        packages: Iterable[PackageDescriptor] = (),
        locator_index: dict[str, PackageDescriptor] | None = None,
    ) -> None:
        by_identity: dict[str, PackageDescriptor] = {}
        for package in packages:
            if package.identity and package.identity not in by_identity:
                by_identity[package.identity] = package

        self._packages: tuple[PackageDescriptor, ...] = tuple(
            sorted(by_identity.values(), key=lambda p: p.display_name.lower())
        )
        self._by_identity = by_identity
        self._by_locator: dict[str, PackageDescriptor] = {}
        for package in self._packages:
            if package.source_locator:
                self._by_locator.setdefault(package.source_locator.lower(), package)
        for locator, package in (locator_index or {}).items():
            kept = by_identity.get(package.identity)
            if kept is not None:
                self._by_locator.setdefault(locator.strip().lower(), kept)

    @property
    def packages(self) -> list[PackageDescriptor]:
        """Descriptors sorted by display name."""
        return list(self._packages)

    def get(self, identity: str) -> PackageDescriptor | None:
        return self._by_identity.get(identity)

    def get_by_locator(self, locator: str) -> PackageDescriptor | None:
        return self._by_locator.get(locator.strip().lower())

    def lookup(self, identity: str) -> PackageDescriptor | None:
        """Resolver-compatible lookup function."""
        return self.get(identity)

    def search(self, text: str) -> list[PackageDescriptor]:
        """Return descriptors whose identity, display name or description contain *text*."""
        needle = text.strip().lower()
        if not needle:
            return self.packages
        return [
            package
            for package in self._packages
            if needle in package.identity.lower()
            or needle in package.display_name.lower()
            or needle in package.description.lower()
        ]

    def __contains__(self, identity: object) -> bool:
        return identity in self._by_identity

    def __iter__(self) -> Iterator[PackageDescriptor]:
        return iter(self._packages)

    def __len__(self) -> int:
        return len(self._packages)

    def __repr__(self) -> str:
        return f"Catalog(packages={len(self._packages)})"


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class CatalogBuilder:
    """Builds a :class:`Catalog` from registry entries.

    Refreshes are single-flight: while one refresh is running, further
    calls to :meth:`refresh` await the same task instead of starting a
    second round of network requests.

    Parameters
    ----------
    fetcher:
        Descriptor source, normally a :class:`~nupm.catalog.fetcher.MetadataFetcher`.
    """

    def __init__(self, fetcher: DescriptorFetcher) -> None:
        self._fetcher = fetcher
        self._catalog = Catalog()
        self._inflight: asyncio.Task[Catalog] | None = None

    @property
    def catalog(self) -> Catalog:
        """The catalog produced by the last completed refresh."""
        return self._catalog

    @property
    def is_refreshing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def refresh(self, entries: Iterable[RegistryEntry] | None = None) -> Catalog:
        """Fetch every entry and return the new catalog.

        A failure to fetch any single entry is logged and that entry is
        skipped; the refresh as a whole never fails because of it.
        """
        task = self._inflight
        if task is None or task.done():
            registry = list(entries) if entries is not None else list(DEFAULT_REGISTRY)
            task = asyncio.get_running_loop().create_task(self._build(registry))
            self._inflight = task
        else:
            logger.debug("Catalog refresh already in progress; joining it")
        return await asyncio.shield(task)

    async def _build(self, entries: list[RegistryEntry]) -> Catalog:
        packages: list[PackageDescriptor] = []
        locator_index: dict[str, PackageDescriptor] = {}
        fetched: dict[str, PackageDescriptor | None] = {}

        for entry in entries:
            descriptor = await self._fetch_cached(entry.source_locator, fetched)
            if descriptor is None:
                continue
            if not descriptor.identity:
                logger.warning(
                    "Skipping %s: descriptor has no package name", entry.source_locator
                )
                continue

            if entry.extra_dependencies:
                descriptor = await self._merge_extra_dependencies(
                    descriptor, entry.extra_dependencies, fetched, packages, locator_index
                )

            packages.append(descriptor)
            locator_index.setdefault(entry.source_locator, descriptor)

        catalog = Catalog(packages, locator_index)
        self._catalog = catalog
        logger.info("Catalog refreshed: %d packages from %d entries", len(catalog), len(entries))
        return catalog

    async def _merge_extra_dependencies(
        self,
        descriptor: PackageDescriptor,
        extras: tuple[str, ...],
        fetched: dict[str, PackageDescriptor | None],
        packages: list[PackageDescriptor],
        locator_index: dict[str, PackageDescriptor],
    ) -> PackageDescriptor:
        dependencies = list(descriptor.dependencies)
        seen = {dep.lower() for dep in dependencies}

        for extra in extras:
            identity = extra
            if is_source_locator(extra):
                dependency = await self._fetch_cached(extra, fetched)
                if dependency is None or not dependency.identity:
                    continue
                packages.append(dependency)
                locator_index.setdefault(extra, dependency)
                identity = dependency.identity
            if identity.lower() not in seen:
                dependencies.append(identity)
                seen.add(identity.lower())

        return descriptor.with_dependencies(dependencies)

    async def _fetch_cached(
        self, locator: str, fetched: dict[str, PackageDescriptor | None]
    ) -> PackageDescriptor | None:
        key = locator.strip().lower()
        if key in fetched:
            return fetched[key]
        try:
            descriptor: PackageDescriptor | None = await self._fetcher.fetch(locator)
        except Exception as exc:
            logger.warning("Failed to fetch package.json from %s: %s", locator, exc)
            descriptor = None
        fetched[key] = descriptor
        return descriptor

    def __repr__(self) -> str:
        return f"CatalogBuilder(catalog={self._catalog!r})"


__all__ = ["Catalog", "CatalogBuilder", "DescriptorFetcher"]
