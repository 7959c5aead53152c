"""Loading dependency graphs from manifests and npm lockfiles.

Two inputs are understood:

* a YAML/JSON manifest listing ``name@version`` packages with their
  ``dependencies`` / ``devDependencies`` / ``peerDependencies`` ranges;
* an npm ``package-lock.json`` (v2/v3 ``packages`` map, or the v1
  ``dependencies`` tree with ``requires``).
"""

import json
from pathlib import Path
from typing import Any, Optional

import yaml

from surfaceshift.core.models import DependencyEdge, DependencyGraph, DependencyType, PackageNode
from surfaceshift.errors import ResolutionError
from surfaceshift.utils.logging import get_logger

logger = get_logger(__name__)

_DEPENDENCY_FIELDS = (
    ("dependencies", DependencyType.PROD),
    ("optionalDependencies", DependencyType.PROD),
    ("devDependencies", DependencyType.DEV),
    ("peerDependencies", DependencyType.PEER),
)


def split_package_id(package_id: str) -> tuple[str, str]:
    """Split ``name@version`` (scoped names allowed).

    Raises:
        ResolutionError: If there is no version part.
    """
    name, sep, version = package_id.rpartition("@")
    if not sep or not name or not version:
        raise ResolutionError(package_id, "expected name@version")
    return name, version


def load_manifest(path: Path, include_dev: bool = True) -> DependencyGraph:
    """Load a dependency graph from a file.

    Args:
        path: Manifest or ``package-lock.json``.
        include_dev: Whether dev dependency edges are kept.

    Returns:
        The dependency graph.

    Raises:
        ResolutionError: If the file cannot be read or is malformed.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ResolutionError(str(path), f"cannot read manifest: {e}") from e

    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ResolutionError(str(path), f"invalid manifest: {e}") from e

    if not isinstance(data, dict):
        raise ResolutionError(str(path), "manifest must be a mapping")

    if "lockfileVersion" in data:
        graph = parse_package_lock(data, include_dev=include_dev)
    else:
        graph = parse_manifest(data, include_dev=include_dev)

    logger.debug("Loaded %d packages and %d edges from %s", len(graph.nodes), len(graph.edges), path)
    return graph


def parse_manifest(data: dict[str, Any], include_dev: bool = True) -> DependencyGraph:
    """Build a graph from the ``packages`` mapping of a manifest.

    Raises:
        ResolutionError: If a package id or its dependency map is malformed.
    """
    packages = data.get("packages") or {}
    if not isinstance(packages, dict):
        raise ResolutionError("manifest", "'packages' must be a mapping of name@version to dependencies")

    nodes: list[PackageNode] = []
    edges: list[DependencyEdge] = []

    for package_id, info in packages.items():
        name, version = split_package_id(str(package_id))
        node = PackageNode(name=name, version=version)
        nodes.append(node)
        edges.extend(_edges(node, info or {}, include_dev))

    roots = [PackageNode(name=n, version=v) for n, v in map(split_package_id, data.get("roots") or [])]
    for root in roots:
        if root not in nodes:
            raise ResolutionError(str(root), "root is not listed under packages")

    return DependencyGraph(nodes=tuple(nodes), edges=tuple(edges), roots=tuple(roots))


def parse_package_lock(data: dict[str, Any], include_dev: bool = True) -> DependencyGraph:
    """Build a graph from a parsed ``package-lock.json``."""
    lockfile_version = data.get("lockfileVersion", 1)
    if lockfile_version >= 2 and isinstance(data.get("packages"), dict):
        return _parse_package_lock_v2(data, include_dev)
    return _parse_package_lock_v1(data, include_dev)


def _parse_package_lock_v2(data: dict[str, Any], include_dev: bool) -> DependencyGraph:
    packages: dict[str, Any] = data["packages"]
    root_info = packages.get("", {})
    root = PackageNode(
        name=root_info.get("name") or data.get("name") or "root",
        version=root_info.get("version") or data.get("version") or "0.0.0",
    )
    nodes: list[PackageNode] = [root]
    edges: list[DependencyEdge] = list(_edges(root, root_info, include_dev))

    for pkg_path, info in packages.items():
        if not pkg_path:
            continue
        name = _package_name_from_path(pkg_path)
        version = info.get("version")
        if not name or not version or info.get("link"):
            continue
        if info.get("dev") and not include_dev:
            continue
        node = PackageNode(name=name, version=version)
        if node in nodes:
            continue
        nodes.append(node)
        edges.extend(_edges(node, info, include_dev=False))

    return DependencyGraph(nodes=tuple(nodes), edges=tuple(edges), roots=(root,))


def _parse_package_lock_v1(data: dict[str, Any], include_dev: bool) -> DependencyGraph:
    root = PackageNode(name=data.get("name") or "root", version=data.get("version") or "0.0.0")
    nodes: list[PackageNode] = [root]
    edges: list[DependencyEdge] = []

    def walk(deps: dict[str, Any], parent: Optional[PackageNode]) -> None:
        for name, info in deps.items():
            version = info.get("version")
            if not version or (info.get("dev") and not include_dev):
                continue
            node = PackageNode(name=name, version=version)
            if parent is None:
                dependency_type = DependencyType.DEV if info.get("dev") else DependencyType.PROD
                # v1 lockfiles drop the declared root ranges; pin to the locked version.
                edges.append(DependencyEdge(dependent=root, package=name, range=version, dependency_type=dependency_type))
            if node not in nodes:
                nodes.append(node)
                for required, required_range in (info.get("requires") or {}).items():
                    edges.append(DependencyEdge(dependent=node, package=required, range=str(required_range)))
            walk(info.get("dependencies") or {}, node)

    walk(data.get("dependencies") or {}, None)
    return DependencyGraph(nodes=tuple(nodes), edges=tuple(edges), roots=(root,))


def _edges(node: PackageNode, info: dict[str, Any], include_dev: bool) -> list[DependencyEdge]:
    if not isinstance(info, dict):
        raise ResolutionError(str(node), "dependency declarations must be a mapping")
    edges = []
    for field_name, dependency_type in _DEPENDENCY_FIELDS:
        if dependency_type == DependencyType.DEV and not include_dev:
            continue
        declared = info.get(field_name) or {}
        if not isinstance(declared, dict):
            raise ResolutionError(str(node), f"'{field_name}' must map package names to ranges")
        for package, version_range in declared.items():
            edges.append(
                DependencyEdge(
                    dependent=node,
                    package=str(package),
                    range=str(version_range),
                    dependency_type=dependency_type,
                )
            )
    return edges


def _package_name_from_path(pkg_path: str) -> Optional[str]:
    """Package name of ``node_modules/a/node_modules/@scope/b``."""
    parts = pkg_path.split("node_modules/")
    if len(parts) < 2:
        return None
    name = parts[-1].rstrip("/")
    if "/" in name and not name.startswith("@"):
        name = name.split("/")[0]
    return name or None
