"""nupm: git-sourced package manager core for editor projects.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import nupm
>>> nupm.__version__
'0.1.0'

Catalog
-------
>>> from nupm import CatalogBuilder, MetadataFetcher
>>> async def refresh():
...     async with MetadataFetcher() as fetcher:
...         return await CatalogBuilder(fetcher).refresh()

Resolution
----------
>>> from nupm import DependencyResolver, PackageDescriptor
>>> lib = PackageDescriptor(identity="com.neko.lib")
>>> app = PackageDescriptor(identity="com.neko.app", dependencies=("com.neko.lib",))
>>> [p.identity for p in DependencyResolver().resolve(app, {"com.neko.lib": lib})]
['com.neko.lib', 'com.neko.app']

Install queue
-------------
>>> from nupm import InstallOperation, InstallSequencer

Updates
-------
>>> from nupm import has_update, find_suspicious_dependency_version
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ---------------------------------------------------------------------------
# Errors and settings
# ---------------------------------------------------------------------------
from nupm.config import NupmSettings, load_settings, save_settings
from nupm.errors import (
    BackendOperationError,
    BackendUnavailableError,
    CycleDetectedError,
    InvalidArgumentError,
    InvalidLocatorError,
    NupmError,
    OperationTimeoutError,
    PackageNotFoundError,
)
from nupm.storage import JsonFileStore, KeyValueStore, MemoryStore

# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
from nupm.catalog.builder import Catalog, CatalogBuilder
from nupm.catalog.descriptor import UNRELEASED_VERSION, PackageDescriptor
from nupm.catalog.fetcher import MetadataFetcher, SourceLocator, parse_descriptor, parse_source_locator
from nupm.catalog.registry import DEFAULT_REGISTRY, RegistryEntry, load_registry

# ---------------------------------------------------------------------------
# Resolution and installed state
# ---------------------------------------------------------------------------
from nupm.installed.snapshot import InstalledRecord, InstalledSnapshot, PackageSource
from nupm.resolver.dependency_resolver import DependencyResolver, InstallPlan

# ---------------------------------------------------------------------------
# Backend and queue
# ---------------------------------------------------------------------------
from nupm.backend.base import BackendPackage, CompletedRequest, PackageInstaller, RequestStatus
from nupm.backend.manifest import ManifestFileBackend, StaticHost
from nupm.queue.operations import InstallOperation, OperationKind, OperationRecord, OperationState
from nupm.queue.sequencer import InstallSequencer, SequencerEvents, SequencerState

# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------
from nupm.updates.advisory import find_suspicious_dependency_version, is_suspicious_version
from nupm.updates.detector import UpdateState, check_update, has_update, parse_version

# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------
from nupm.manager import PackageManager, build_manager

__all__ = [
    # Version
    "__version__",
    # Errors
    "BackendOperationError",
    "BackendUnavailableError",
    "CycleDetectedError",
    "InvalidArgumentError",
    "InvalidLocatorError",
    "NupmError",
    "OperationTimeoutError",
    "PackageNotFoundError",
    # Settings and storage
    "NupmSettings",
    "load_settings",
    "save_settings",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    # Catalog
    "Catalog",
    "CatalogBuilder",
    "DEFAULT_REGISTRY",
    "MetadataFetcher",
    "PackageDescriptor",
    "RegistryEntry",
    "SourceLocator",
    "UNRELEASED_VERSION",
    "load_registry",
    "parse_descriptor",
    "parse_source_locator",
    # Resolution
    "DependencyResolver",
    "InstallPlan",
    # Installed state
    "InstalledRecord",
    "InstalledSnapshot",
    "PackageSource",
    # Backend
    "BackendPackage",
    "CompletedRequest",
    "ManifestFileBackend",
    "PackageInstaller",
    "RequestStatus",
    "StaticHost",
    # Queue
    "InstallOperation",
    "InstallSequencer",
    "OperationKind",
    "OperationRecord",
    "OperationState",
    "SequencerEvents",
    "SequencerState",
    # Updates
    "UpdateState",
    "check_update",
    "find_suspicious_dependency_version",
    "has_update",
    "is_suspicious_version",
    "parse_version",
    # Coordinator
    "PackageManager",
    "build_manager",
]
