"""Dependency resolution subpackage."""
from __future__ import annotations

from nupm.resolver.dependency_resolver import DependencyResolver, InstallPlan

__all__ = ["DependencyResolver", "InstallPlan"]
