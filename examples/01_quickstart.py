#!/usr/bin/env python3
"""Example: Quickstart for nupm

Minimal working example: build the catalog from the default registry,
resolve a package's install order and queue the missing entries.

Usage:
    python examples/01_quickstart.py [PROJECT_DIR]

Requirements:
    pip install nupm
"""
from __future__ import annotations

import asyncio
import sys

import nupm
from nupm import DEFAULT_REGISTRY, MetadataFetcher, build_manager


async def main(project_dir: str) -> None:
    print(f"nupm version: {nupm.__version__}")

    async with MetadataFetcher() as fetcher:
        manager = build_manager(project_dir, fetcher=fetcher)

        # Step 1: Fetch every registry entry's package.json
        catalog = await manager.refresh_catalog()
        print(f"Catalog: {len(catalog)} packages")
        for package in catalog:
            print(f"  {package.display_name:<24} {package.identity} v{package.version}")

        # Step 2: Resolve dependencies against what is already installed
        await manager.refresh_installed()
        target = DEFAULT_REGISTRY[1].source_locator
        plan = manager.plan_install(target)
        print(f"\nInstall order: {[p.identity for p in plan.order]}")
        print(f"Missing      : {[p.identity for p in plan.missing]}")

        # Step 3: Queue and run the missing installs, one at a time
        manager.sequencer.events.on_succeeded.append(lambda op: print(f"  installed {op.label}"))
        manager.install(target)
        await manager.sequencer.drain()

        # Step 4: Check for updates
        for identity, state in manager.update_states().items():
            print(f"  {identity}: {state.value}")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "."))
