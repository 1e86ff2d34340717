"""Tests for the Catalog, CatalogBuilder and the static registry.

Covers:
- Partial-failure refresh (failed entries skipped, others kept)
- Display-name ordering and identity deduplication
- Registry extra dependencies, including locator extras
- Single-flight refresh
- Registry YAML loading and user sources
"""
from __future__ import annotations

import asyncio

import httpx
import pytest

from nupm.catalog.builder import Catalog, CatalogBuilder
from nupm.catalog.descriptor import PackageDescriptor
from nupm.catalog.fetcher import MetadataFetcher
from nupm.catalog.registry import (
    DEFAULT_REGISTRY,
    RegistryEntry,
    load_registry,
    registry_with_sources,
)
from nupm.errors import PackageNotFoundError

LIB = "https://github.com/neko/lib.git"
SIGNAL = "https://github.com/neko/signal.git"
FLOW = "https://github.com/neko/flow.git"
BROKEN = "https://github.com/neko/broken.git"


class FakeFetcher:
    """Serves descriptors from a dict; unknown locators are not found."""

    def __init__(self, descriptors: dict[str, PackageDescriptor]) -> None:
        self.descriptors = descriptors
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def fetch(self, locator: str) -> PackageDescriptor:
        self.calls.append(locator)
        if self.gate is not None:
            await self.gate.wait()
        if locator not in self.descriptors:
            raise PackageNotFoundError(locator)
        return self.descriptors[locator]


def _desc(identity: str, display: str, locator: str, *deps: str) -> PackageDescriptor:
    return PackageDescriptor(
        identity=identity, display_name=display, source_locator=locator, dependencies=deps
    )


@pytest.fixture()
def fetcher() -> FakeFetcher:
    return FakeFetcher(
        {
            LIB: _desc("com.neko.lib", "Neko Lib", LIB),
            SIGNAL: _desc("com.neko.signal", "Aardvark Signal", SIGNAL),
            FLOW: _desc("com.neko.flow", "Zebra Flow", FLOW),
        }
    )


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class TestCatalog:
    def test_sorted_by_display_name_case_insensitive(self) -> None:
        catalog = Catalog([_desc("b", "beta", ""), _desc("a", "Alpha", ""), _desc("c", "Gamma", "")])
        assert [p.identity for p in catalog] == ["a", "b", "c"]

    def test_first_seen_identity_wins(self) -> None:
        first = _desc("x", "First", "")
        catalog = Catalog([first, _desc("x", "Second", "")])
        assert len(catalog) == 1
        assert catalog.get("x") is first

    def test_lookup_by_locator_is_case_insensitive(self) -> None:
        catalog = Catalog([_desc("com.neko.lib", "Lib", LIB)])
        assert catalog.get_by_locator(LIB.upper()).identity == "com.neko.lib"

    def test_search_matches_identity_name_and_description(self) -> None:
        catalog = Catalog(
            [
                _desc("com.neko.lib", "Lib", ""),
                PackageDescriptor(identity="com.other", description="signal helpers"),
            ]
        )
        assert [p.identity for p in catalog.search("SIGNAL")] == ["com.other"]
        assert len(catalog.search("")) == 2

    def test_contains(self) -> None:
        catalog = Catalog([_desc("com.neko.lib", "Lib", "")])
        assert "com.neko.lib" in catalog
        assert "com.neko.flow" not in catalog


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class TestCatalogBuilder:
    def test_failed_entry_is_skipped(self, fetcher: FakeFetcher) -> None:
        entries = [RegistryEntry(FLOW), RegistryEntry(BROKEN), RegistryEntry(SIGNAL)]
        catalog = asyncio.run(CatalogBuilder(fetcher).refresh(entries))
        assert [p.identity for p in catalog] == ["com.neko.signal", "com.neko.flow"]

    def test_unencodable_locator_does_not_abort_refresh(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/neko/lib/main/package.json":
                return httpx.Response(200, json={"name": "com.neko.lib", "displayName": "Neko Lib"})
            return httpx.Response(404)

        async def scenario():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                builder = CatalogBuilder(MetadataFetcher(client=client))
                broken = RegistryEntry("https://github.com/ne\x01ko/broken.git")
                entries = [broken, RegistryEntry(LIB)]
                return await builder.refresh(entries)

        assert [p.identity for p in asyncio.run(scenario())] == ["com.neko.lib"]

    def test_unexpected_fetch_error_is_skipped(self, fetcher: FakeFetcher) -> None:
        class ExplodingFetcher(FakeFetcher):
            async def fetch(self, locator: str) -> PackageDescriptor:
                if locator == BROKEN:
                    raise RuntimeError("boom")
                return await super().fetch(locator)

        exploding = ExplodingFetcher(fetcher.descriptors)
        entries = [RegistryEntry(BROKEN), RegistryEntry(LIB)]
        catalog = asyncio.run(CatalogBuilder(exploding).refresh(entries))
        assert [p.identity for p in catalog] == ["com.neko.lib"]

    def test_duplicate_identities_are_collapsed(self, fetcher: FakeFetcher) -> None:
        fetcher.descriptors["https://github.com/neko/lib-mirror.git"] = _desc(
            "com.neko.lib", "Mirror", "https://github.com/neko/lib-mirror.git"
        )
        entries = [RegistryEntry(LIB), RegistryEntry("https://github.com/neko/lib-mirror.git")]
        catalog = asyncio.run(CatalogBuilder(fetcher).refresh(entries))
        assert len(catalog) == 1
        assert catalog.get("com.neko.lib").display_name == "Neko Lib"

    def test_empty_identity_is_skipped(self, fetcher: FakeFetcher) -> None:
        fetcher.descriptors[BROKEN] = PackageDescriptor(identity="", source_locator=BROKEN)
        catalog = asyncio.run(CatalogBuilder(fetcher).refresh([RegistryEntry(BROKEN)]))
        assert len(catalog) == 0

    def test_extra_dependencies_are_merged_without_duplicates(self, fetcher: FakeFetcher) -> None:
        fetcher.descriptors[SIGNAL] = _desc("com.neko.signal", "Signal", SIGNAL, "com.neko.lib")
        entry = RegistryEntry(SIGNAL, ("COM.NEKO.LIB", "com.unity.ugui"))
        catalog = asyncio.run(CatalogBuilder(fetcher).refresh([entry]))
        assert catalog.get("com.neko.signal").dependencies == ("com.neko.lib", "com.unity.ugui")

    def test_locator_extra_is_fetched_and_referenced_by_identity(
        self, fetcher: FakeFetcher
    ) -> None:
        entry = RegistryEntry(SIGNAL, (LIB,))
        catalog = asyncio.run(CatalogBuilder(fetcher).refresh([entry]))
        assert catalog.get("com.neko.signal").dependencies == ("com.neko.lib",)
        assert "com.neko.lib" in catalog

    def test_registry_locator_indexes_descriptor(self, fetcher: FakeFetcher) -> None:
        alias = "https://github.com/neko/lib-alias.git"
        fetcher.descriptors[alias] = fetcher.descriptors[LIB]
        catalog = asyncio.run(CatalogBuilder(fetcher).refresh([RegistryEntry(alias)]))
        assert catalog.get_by_locator(alias).identity == "com.neko.lib"

    def test_refresh_replaces_catalog(self, fetcher: FakeFetcher) -> None:
        builder = CatalogBuilder(fetcher)
        asyncio.run(builder.refresh([RegistryEntry(LIB), RegistryEntry(FLOW)]))
        asyncio.run(builder.refresh([RegistryEntry(FLOW)]))
        assert [p.identity for p in builder.catalog] == ["com.neko.flow"]

    def test_concurrent_refreshes_share_one_build(self, fetcher: FakeFetcher) -> None:
        builder = CatalogBuilder(fetcher)
        entries = [RegistryEntry(LIB)]

        async def scenario():
            fetcher.gate = asyncio.Event()
            first = asyncio.ensure_future(builder.refresh(entries))
            second = asyncio.ensure_future(builder.refresh(entries))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            assert builder.is_refreshing
            fetcher.gate.set()
            return await asyncio.gather(first, second)

        first, second = asyncio.run(scenario())
        assert first is second
        assert fetcher.calls == [LIB]
        assert not builder.is_refreshing


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_default_registry_has_neko_packages(self) -> None:
        assert len(DEFAULT_REGISTRY) == 4
        serialize = DEFAULT_REGISTRY[1]
        assert "com.unity.nuget.newtonsoft-json" in serialize.extra_dependencies

    def test_load_registry_from_text(self) -> None:
        text = (
            "packages:\n"
            "  - source: https://github.com/a/b.git\n"
            "    dependencies: [com.a.core]\n"
            "  - https://github.com/c/d.git\n"
        )
        entries = load_registry(text)
        assert entries[0].extra_dependencies == ("com.a.core",)
        assert entries[1].source_locator == "https://github.com/c/d.git"

    def test_load_registry_from_file(self, tmp_path) -> None:
        path = tmp_path / "registry.yaml"
        path.write_text("packages:\n  - source: https://github.com/a/b.git\n", encoding="utf-8")
        assert load_registry(path)[0].source_locator == "https://github.com/a/b.git"

    def test_missing_packages_list_raises(self) -> None:
        with pytest.raises(ValueError):
            load_registry("version: 1\nother: []\n")

    def test_entry_without_source_raises(self) -> None:
        with pytest.raises(ValueError):
            load_registry("packages:\n  - dependencies: [x]\n")

    def test_empty_locator_rejected(self) -> None:
        with pytest.raises(ValueError):
            RegistryEntry("  ")

    def test_user_sources_appended_once(self) -> None:
        entries = [RegistryEntry(LIB)]
        combined = registry_with_sources(entries, [LIB.upper(), SIGNAL, SIGNAL, " "])
        assert [entry.source_locator for entry in combined] == [LIB, SIGNAL]
