"""Process-scoped coordinator for the package manager core.

:class:`PackageManager` owns the current catalog and installed snapshot,
both of which are replaced wholesale on refresh, and turns user requests
(install, uninstall, update) into queued operations.  Once the install
queue goes idle the installed snapshot is rebuilt, so "is installed"
answers never rely on state captured before the last operation ran.

:func:`build_manager` wires the default stack for a project directory.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from nupm.backend.base import HostEnvironment, PackageInstaller
from nupm.backend.manifest import ManifestFileBackend, StaticHost
from nupm.catalog.builder import Catalog, CatalogBuilder, DescriptorFetcher
from nupm.catalog.descriptor import PackageDescriptor
from nupm.catalog.fetcher import MetadataFetcher, is_source_locator
from nupm.catalog.registry import DEFAULT_REGISTRY, RegistryEntry, registry_with_sources
from nupm.config import NupmSettings
from nupm.errors import BackendUnavailableError, InvalidArgumentError
from nupm.installed.snapshot import InstalledRecord, InstalledSnapshot
from nupm.queue.operations import InstallOperation
from nupm.queue.sequencer import InstallSequencer
from nupm.resolver.dependency_resolver import DependencyResolver, InstallPlan
from nupm.storage import JsonFileStore, KeyValueStore
from nupm.updates.detector import UpdateState, check_update

logger = logging.getLogger(__name__)

#: Project-relative location of the persisted queue used by :func:`build_manager`.
STATE_RELATIVE_PATH = Path(".nupm") / "state.json"


class PackageManager:
    """Coordinates catalog, installed state, resolution and the install queue.

    Parameters
    ----------
    catalog_builder:
        Produces catalogs from registry entries.
    snapshot:
        Produces installed-state snapshots.
    sequencer:
        Runs queued operations.
    resolver:
        Dependency resolver.  A default one is created when omitted.
    registry:
        Registry entries to build the catalog from.  Defaults to the
        built-in registry.
    """

    def __init__(
        self,
        catalog_builder: CatalogBuilder,
        snapshot: InstalledSnapshot,
        sequencer: InstallSequencer,
        resolver: DependencyResolver | None = None,
        registry: list[RegistryEntry] | None = None,
    ) -> None:
        self._catalog_builder = catalog_builder
        self._snapshot = snapshot
        self._sequencer = sequencer
        self._resolver = resolver or DependencyResolver()
        self._registry = list(registry) if registry is not None else list(DEFAULT_REGISTRY)
        self._installed: dict[str, InstalledRecord] = {}
        self._resnapshot_task: asyncio.Task[dict[str, InstalledRecord]] | None = None
        sequencer.events.on_idle.append(self._schedule_resnapshot)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def catalog(self) -> Catalog:
        return self._catalog_builder.catalog

    @property
    def installed(self) -> dict[str, InstalledRecord]:
        """Last installed snapshot, keyed by lower-cased identity."""
        return dict(self._installed)

    @property
    def snapshot(self) -> InstalledSnapshot:
        return self._snapshot

    @property
    def sequencer(self) -> InstallSequencer:
        return self._sequencer

    @property
    def resolver(self) -> DependencyResolver:
        return self._resolver

    @property
    def resnapshot_task(self) -> asyncio.Task[dict[str, InstalledRecord]] | None:
        """Snapshot refresh scheduled by the last idle transition, if any."""
        return self._resnapshot_task

    async def refresh_catalog(self) -> Catalog:
        return await self._catalog_builder.refresh(self._registry)

    async def refresh_installed(self) -> dict[str, InstalledRecord]:
        """Rebuild the installed snapshot.

        When the backend cannot be queried the previous snapshot is kept
        and returned, and a warning is logged.
        """
        try:
            self._installed = await self._snapshot.snapshot()
        except BackendUnavailableError as exc:
            logger.warning("Keeping previous installed state: %s", exc)
        return dict(self._installed)

    def is_installed(self, identity: str) -> bool:
        return identity.strip().lower() in self._installed

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def find(self, target: str) -> PackageDescriptor | None:
        """Look up a catalog entry by identity or by source locator."""
        cleaned = target.strip()
        if not cleaned:
            return None
        package = self.catalog.get(cleaned)
        if package is None and is_source_locator(cleaned):
            package = self.catalog.get_by_locator(cleaned)
        return package

    def plan_install(self, target: str) -> InstallPlan:
        """Resolve *target* against the current catalog and installed state.

        Raises
        ------
        InvalidArgumentError
            If *target* is empty or not in the catalog.
        CycleDetectedError
            If the dependency graph of *target* has a cycle.
        """
        if not target.strip():
            raise InvalidArgumentError("Package name is empty")
        root = self.find(target)
        if root is None:
            raise InvalidArgumentError(
                f"Unknown package {target!r}; refresh the catalog or add its source"
            )
        return self._resolver.plan(root, self.catalog.lookup, self._installed)

    def install(self, target: str) -> InstallPlan:
        """Plan *target* and enqueue an install for every missing entry."""
        plan = self.plan_install(target)
        if plan.missing:
            self._sequencer.enqueue(InstallOperation.install(package) for package in plan.missing)
        else:
            logger.info("%s and its dependencies are already installed", plan.root.identity)
        return plan

    def uninstall(self, identity: str) -> list[InstallOperation]:
        """Enqueue removal of *identity*.  Dependents are not checked."""
        if not identity.strip():
            raise InvalidArgumentError("Package name is empty")
        record = self._installed.get(identity.strip().lower())
        display = record.display_name if record is not None else ""
        name = record.identity if record is not None else identity.strip()
        return self._sequencer.enqueue([InstallOperation.uninstall(name, display)])

    def update(self, identity: str) -> list[InstallOperation]:
        """Enqueue a reinstall of *identity* from its catalog entry."""
        package = self.find(identity)
        if package is None:
            raise InvalidArgumentError(f"Unknown package {identity!r}")
        return self._sequencer.enqueue([InstallOperation.install(package)])

    def update_states(self) -> dict[str, UpdateState]:
        """Update state of every catalog entry that is installed."""
        states: dict[str, UpdateState] = {}
        for package in self.catalog:
            record = self._installed.get(package.identity.lower())
            if record is not None:
                states[package.identity] = check_update(package, record)
        return states

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _schedule_resnapshot(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Install queue idle outside an event loop; snapshot not refreshed")
            return
        self._resnapshot_task = loop.create_task(self.refresh_installed())

    def __repr__(self) -> str:
        return (
            f"PackageManager(catalog={len(self.catalog)}, installed={len(self._installed)}, "
            f"sequencer={self._sequencer!r})"
        )


def build_manager(
    project_dir: str | Path,
    settings: NupmSettings | None = None,
    fetcher: DescriptorFetcher | None = None,
    host: HostEnvironment | None = None,
    store: KeyValueStore | None = None,
) -> PackageManager:
    """Wire a :class:`PackageManager` for a project directory.

    Installs are recorded through :class:`ManifestFileBackend`; the queue
    is persisted to ``.nupm/state.json`` under *project_dir* unless
    *store* is given.
    """
    settings = settings or NupmSettings()
    project_path = Path(project_dir)
    resolver = DependencyResolver()
    builder = CatalogBuilder(fetcher or MetadataFetcher(settings=settings))

    def name_for_locator(locator: str) -> str | None:
        package = builder.catalog.get_by_locator(locator)
        return package.identity if package is not None else None

    backend = ManifestFileBackend(project_path, name_for_locator=name_for_locator)
    snapshot = InstalledSnapshot(
        backend,
        lock_path=backend.lock_path,
        request_timeout=settings.effective_install_timeout,
        poll_interval=settings.effective_poll_interval,
    )
    installer = PackageInstaller(
        backend,
        resolver.is_builtin,
        request_timeout=settings.effective_install_timeout,
        poll_interval=settings.effective_poll_interval,
    )
    sequencer = InstallSequencer(
        installer,
        snapshot,
        host or StaticHost(),
        store=store if store is not None else JsonFileStore(project_path / STATE_RELATIVE_PATH),
        settings=settings,
    )
    return PackageManager(
        builder,
        snapshot,
        sequencer,
        resolver=resolver,
        registry=registry_with_sources(DEFAULT_REGISTRY, settings.sources),
    )


__all__ = ["PackageManager", "STATE_RELATIVE_PATH", "build_manager"]
