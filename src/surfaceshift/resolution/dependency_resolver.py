"""Range-intersection dependency resolution.

The resolver only proposes: it never mutates the graph and never raises on
malformed input. Unusable data degrades to warnings on the result.
"""

from collections import deque
from typing import Optional

from surfaceshift.core.models import (
    Conflict,
    ConflictReason,
    ConstraintSource,
    DependencyGraph,
    PackageNode,
    Resolution,
    ResolutionResult,
    ResolutionStrategy,
)
from surfaceshift.errors import ResolutionError
from surfaceshift.resolution.version_range import Version, VersionRange, intersect_all
from surfaceshift.utils.logging import get_logger

logger = get_logger(__name__)


class DependencyResolver:
    """Selects one version per package or reports why none fits."""

    def resolve(self, graph: DependencyGraph) -> ResolutionResult:
        """Resolve every package constrained from the graph's roots.

        Args:
            graph: Installed dependency graph.

        Returns:
            Selected versions (None for conflicting packages), conflicts
            and warnings.
        """
        warnings: list[str] = []

        if not graph.edges:
            warnings.append("No dependents declare a version range; nothing to resolve")
            return ResolutionResult(warnings=tuple(warnings))

        roots = sorted(graph.root_nodes(), key=str)
        if not roots:
            warnings.append("Dependency graph has no roots; treating every package as reachable")
            roots = sorted(graph.nodes, key=str)

        chains = self._reachable(graph, roots)
        constraints, parsed = self._collect_constraints(graph, chains, warnings)

        selected: dict[str, Optional[str]] = {}
        conflicts: list[Conflict] = []
        root_names = {root.name for root in roots}
        reached_names = {node.name for node in chains}

        for package in sorted({node.name for node in graph.nodes} | set(constraints)):
            candidates = sorted(set(graph.versions_of(package)), key=_version_sort_key)
            sources = constraints.get(package, [])

            if not sources:
                if package not in root_names and package in reached_names:
                    warnings.append(f"No dependent declares a range for {package}")
                if candidates:
                    selected[package] = candidates[-1]
                continue

            ranges = [parsed[id(source)] for source in sources]
            intersection = intersect_all(ranges)

            if intersection is None or intersection.is_empty:
                selected[package] = None
                conflicts.append(self._conflict(package, ConflictReason.DISJOINT_RANGES, sources, ranges, candidates))
                continue

            if not candidates:
                warnings.append(f"No installed version of {package}; ranges allow {intersection.describe()}")
                continue

            version = intersection.max_satisfying(candidates)
            if version is None:
                selected[package] = None
                conflicts.append(
                    self._conflict(package, ConflictReason.NO_MATCHING_VERSION, sources, ranges, candidates)
                )
                continue
            selected[package] = version

        logger.debug("Resolved %d packages with %d conflicts", len(selected), len(conflicts))
        return ResolutionResult(
            selected_versions=selected,
            conflicts=tuple(conflicts),
            warnings=tuple(warnings),
        )

    def _reachable(
        self,
        graph: DependencyGraph,
        roots: list[PackageNode],
    ) -> dict[PackageNode, tuple[str, ...]]:
        """Breadth-first walk from the roots; each node keeps its shortest chain."""
        chains: dict[PackageNode, tuple[str, ...]] = {root: (str(root),) for root in roots}
        queue = deque(roots)

        while queue:
            node = queue.popleft()
            for edge in sorted(graph.edges_from(node), key=lambda e: (e.package, e.range)):
                try:
                    version_range = VersionRange.parse(edge.range)
                except ResolutionError:
                    version_range = None
                for version in sorted(set(graph.versions_of(edge.package)), key=_version_sort_key):
                    target = PackageNode(name=edge.package, version=version)
                    if target in chains:
                        continue
                    if version_range is not None and not _satisfies(version_range, version):
                        continue
                    chains[target] = chains[node] + (str(target),)
                    queue.append(target)

        return chains

    def _collect_constraints(
        self,
        graph: DependencyGraph,
        chains: dict[PackageNode, tuple[str, ...]],
        warnings: list[str],
    ) -> tuple[dict[str, list[ConstraintSource]], dict[int, VersionRange]]:
        constraints: dict[str, list[ConstraintSource]] = {}
        parsed: dict[int, VersionRange] = {}

        for node in sorted(chains, key=str):
            for edge in graph.edges_from(node):
                try:
                    version_range = VersionRange.parse(edge.range)
                except ResolutionError as e:
                    warnings.append(f"{node} requires {edge.package}@{edge.range}: {e.message}")
                    continue
                source = ConstraintSource(range=edge.range, dependent=node, chain=chains[node])
                constraints.setdefault(edge.package, []).append(source)
                parsed[id(source)] = version_range

        return constraints, parsed

    def _conflict(
        self,
        package: str,
        reason: ConflictReason,
        sources: list[ConstraintSource],
        ranges: list[VersionRange],
        candidates: list[str],
    ) -> Conflict:
        return Conflict(
            package=package,
            reason=reason,
            sources=tuple(sources),
            candidates=tuple(candidates),
            resolutions=tuple(self._propose(package, sources, ranges, candidates)),
        )

    def _propose(
        self,
        package: str,
        sources: list[ConstraintSource],
        ranges: list[VersionRange],
        candidates: list[str],
    ) -> list[Resolution]:
        """Override, alias and upgrade-path proposals for one conflict."""
        resolutions: list[Resolution] = []
        if not candidates:
            return resolutions

        # Override: the candidate satisfying the most ranges, highest first on ties.
        def satisfied(version: str) -> int:
            return sum(1 for r in ranges if _satisfies(r, version))

        target = max(candidates, key=lambda v: (satisfied(v), _version_sort_key(v)))
        resolutions.append(
            Resolution(
                strategy=ResolutionStrategy.OVERRIDE,
                version=target,
                description=(
                    f"Force {package}@{target} for every dependent "
                    f"(satisfies {satisfied(target)} of {len(ranges)} ranges)"
                ),
            )
        )

        per_source = [r.max_satisfying(candidates) for r in ranges]
        distinct = sorted({v for v in per_source if v is not None}, key=_version_sort_key)
        if len(distinct) > 1:
            aliases = tuple(f"{package}-{_alias_suffix(v)}@npm:{package}@{v}" for v in distinct)
            resolutions.append(
                Resolution(
                    strategy=ResolutionStrategy.ALIAS,
                    aliases=aliases,
                    description=f"Install {', '.join(distinct)} side by side under distinct aliases",
                )
            )

        for source, version_range in zip(sources, ranges):
            if _satisfies(version_range, target):
                continue
            resolutions.append(
                Resolution(
                    strategy=ResolutionStrategy.UPGRADE_PATH,
                    version=target,
                    dependent=str(source.dependent),
                    description=(
                        f"Update {source.dependent} so its requirement {package}@{source.range} "
                        f"accepts {target}"
                    ),
                )
            )

        return resolutions


def resolve(graph: DependencyGraph) -> ResolutionResult:
    """Convenience function to resolve a dependency graph."""
    return DependencyResolver().resolve(graph)


def _satisfies(version_range: VersionRange, version: str) -> bool:
    try:
        return version_range.contains(Version.parse(version))
    except ResolutionError:
        return False


def _version_sort_key(version: str) -> tuple:
    try:
        return (1, Version.parse(version)._key())
    except ResolutionError:
        return (0, version)


def _alias_suffix(version: str) -> str:
    try:
        return f"v{Version.parse(version).major}"
    except ResolutionError:
        return version.replace(".", "-")
