"""Static, operator-maintained package registry.

The registry is metadata only: a list of source locators, each with
extra dependency identifiers that the published descriptor does not
declare (host builtins, or packages the author forgot to list).  An extra
dependency may itself be a source locator; the catalog builder fetches it
and refers to it by identity.

The default registry is embedded as YAML so the tool works without any
external file; :func:`load_registry` reads the same format from disk.
"""
from __future__ import annotations

import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

import yaml

_DEFAULT_REGISTRY_YAML = """\
version: "1.0"
packages:
  # Core lib (no deps)
  - source: "https://github.com/boobosua/unity-nekolib.git"

  # Serialize depends on core lib and the builtin JSON package
  - source: "https://github.com/boobosua/unity-neko-serialize.git"
    dependencies: ["com.neko.lib", "com.unity.nuget.newtonsoft-json"]

  - source: "https://github.com/boobosua/unity-neko-signal.git"
    dependencies: ["com.neko.lib"]

  - source: "https://github.com/boobosua/unity-neko-flow.git"
    dependencies: ["com.neko.lib"]
"""


@dataclass(frozen=True)
class RegistryEntry:
    """One registry row: a source locator plus extra dependency identifiers."""

    source_locator: str
    extra_dependencies: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.source_locator or not self.source_locator.strip():
            raise ValueError("source_locator must not be empty")
        cleaned = tuple(dep.strip() for dep in self.extra_dependencies if dep and dep.strip())
        object.__setattr__(self, "source_locator", self.source_locator.strip())
        object.__setattr__(self, "extra_dependencies", cleaned)


def load_registry(source: Union[str, Path, io.IOBase]) -> list[RegistryEntry]:
    """Load registry entries from a YAML file path, YAML text or a stream.

    Raises
    ------
    ValueError
        If the document does not have a ``packages`` list or an entry has
        no ``source``.
    """
    if isinstance(source, io.IOBase):
        raw = yaml.safe_load(source)
    elif isinstance(source, Path) or (isinstance(source, str) and "\n" not in source):
        raw = yaml.safe_load(Path(source).read_text(encoding="utf-8"))
    else:
        raw = yaml.safe_load(source)
    return _parse_registry(raw)


def _parse_registry(raw: object) -> list[RegistryEntry]:
    if not isinstance(raw, dict) or not isinstance(raw.get("packages"), list):
        raise ValueError("Registry document must contain a 'packages' list")

    entries: list[RegistryEntry] = []
    for index, item in enumerate(raw["packages"]):
        if isinstance(item, str):
            entries.append(RegistryEntry(source_locator=item))
            continue
        if not isinstance(item, dict) or not item.get("source"):
            raise ValueError(f"Registry entry #{index} has no 'source'")
        deps = item.get("dependencies") or []
        if not isinstance(deps, list):
            raise ValueError(f"Registry entry #{index}: 'dependencies' must be a list")
        entries.append(
            RegistryEntry(
                source_locator=str(item["source"]),
                extra_dependencies=tuple(str(dep) for dep in deps),
            )
        )
    return entries


def registry_with_sources(
    entries: list[RegistryEntry], sources: list[str]
) -> list[RegistryEntry]:
    """Return *entries* followed by user *sources* not already listed."""
    known = {entry.source_locator.lower() for entry in entries}
    combined = list(entries)
    for source in sources:
        cleaned = source.strip()
        if cleaned and cleaned.lower() not in known:
            combined.append(RegistryEntry(source_locator=cleaned))
            known.add(cleaned.lower())
    return combined


DEFAULT_REGISTRY: list[RegistryEntry] = _parse_registry(yaml.safe_load(_DEFAULT_REGISTRY_YAML))

__all__ = [
    "DEFAULT_REGISTRY",
    "RegistryEntry",
    "load_registry",
    "registry_with_sources",
]
