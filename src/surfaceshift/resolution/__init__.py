"""Dependency manifests, version ranges and conflict resolution."""

from surfaceshift.resolution.dependency_resolver import DependencyResolver, resolve
from surfaceshift.resolution.manifest import load_manifest, parse_manifest, parse_package_lock
from surfaceshift.resolution.version_range import Version, VersionRange, parse_range

__all__ = [
    "DependencyResolver",
    "resolve",
    "load_manifest",
    "parse_manifest",
    "parse_package_lock",
    "Version",
    "VersionRange",
    "parse_range",
]
