"""Package catalog: descriptors, remote fetching, static registry and the builder.

Submodules
----------
- ``descriptor``  PackageDescriptor value object
- ``fetcher``     MetadataFetcher: downloads and parses package.json
- ``registry``    RegistryEntry list and its YAML loader
- ``builder``     Catalog and CatalogBuilder
"""
from __future__ import annotations

from nupm.catalog.builder import Catalog, CatalogBuilder
from nupm.catalog.descriptor import UNRELEASED_VERSION, PackageDescriptor
from nupm.catalog.fetcher import MetadataFetcher, SourceLocator, parse_descriptor, parse_source_locator
from nupm.catalog.registry import DEFAULT_REGISTRY, RegistryEntry, load_registry

__all__ = [
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
]
