"""Tests for the dependency resolver."""

from pathlib import Path

import pytest

from surfaceshift.core.models import (
    ConflictReason,
    DependencyEdge,
    DependencyGraph,
    PackageNode,
    ResolutionStrategy,
)
from surfaceshift.resolution.dependency_resolver import DependencyResolver, resolve
from surfaceshift.resolution.manifest import load_manifest, parse_manifest


def _graph(packages: dict, roots: list[str]) -> DependencyGraph:
    return parse_manifest({"packages": packages, "roots": roots})


class TestDependencyResolver:
    """Tests for DependencyResolver."""

    @pytest.fixture
    def resolver(self) -> DependencyResolver:
        return DependencyResolver()

    def test_compatible_graph(self, resolver: DependencyResolver) -> None:
        """Test that the highest satisfying version is selected."""
        graph = _graph(
            {
                "app@1.0.0": {"dependencies": {"coreLib": "^5.0.0"}},
                "coreLib@5.1.0": {},
                "coreLib@5.2.0": {},
                "coreLib@6.0.0": {},
            },
            ["app@1.0.0"],
        )
        result = resolver.resolve(graph)
        assert result.conflicts == ()
        assert result.selected_versions == {"app": "1.0.0", "coreLib": "5.2.0"}

    def test_disjoint_ranges(self, resolver: DependencyResolver, conflicting_manifest: Path) -> None:
        """Test a conflict between a root and a transitive requirement."""
        result = resolver.resolve(load_manifest(conflicting_manifest))
        assert result.selected_versions == {"app": "1.0.0", "coreLib": None, "uiKit": "2.0.0"}

        conflict = result.conflict_for("coreLib")
        assert conflict is not None
        assert conflict.reason == ConflictReason.DISJOINT_RANGES
        assert conflict.ranges == ["^5.0.0", "^6.0.0"]
        assert [source.chain for source in conflict.sources] == [
            ("app@1.0.0",),
            ("app@1.0.0", "uiKit@2.0.0"),
        ]
        assert conflict.candidates == ("5.2.0", "6.1.0")

    def test_disjoint_proposals(self, resolver: DependencyResolver, conflicting_manifest: Path) -> None:
        """Test override, alias and upgrade-path proposals."""
        conflict = resolver.resolve(load_manifest(conflicting_manifest)).conflict_for("coreLib")
        strategies = [r.strategy for r in conflict.resolutions]
        assert strategies == [
            ResolutionStrategy.OVERRIDE,
            ResolutionStrategy.ALIAS,
            ResolutionStrategy.UPGRADE_PATH,
        ]
        override, alias, upgrade = conflict.resolutions
        assert override.version == "6.1.0"
        assert alias.aliases == ("coreLib-v5@npm:coreLib@5.2.0", "coreLib-v6@npm:coreLib@6.1.0")
        assert upgrade.dependent == "app@1.0.0"

    def test_no_matching_version(self, resolver: DependencyResolver) -> None:
        """Test overlapping ranges with no installed version inside them."""
        graph = _graph(
            {
                "app@1.0.0": {"dependencies": {"coreLib": "^5.0.0", "lib": "^1.0.0"}},
                "lib@1.0.0": {"dependencies": {"coreLib": "^5.4.0"}},
                "coreLib@5.2.0": {},
            },
            ["app@1.0.0"],
        )
        result = resolver.resolve(graph)
        conflict = result.conflict_for("coreLib")
        assert conflict.reason == ConflictReason.NO_MATCHING_VERSION
        assert result.selected_versions["coreLib"] is None
        assert [r.strategy for r in conflict.resolutions] == [
            ResolutionStrategy.OVERRIDE,
            ResolutionStrategy.UPGRADE_PATH,
        ]
        assert conflict.resolutions[0].version == "5.2.0"
        assert conflict.resolutions[1].dependent == "lib@1.0.0"

    def test_package_lock_conflict(self, resolver: DependencyResolver, sample_package_lock: Path) -> None:
        """Test resolution over an npm lockfile."""
        result = resolver.resolve(load_manifest(sample_package_lock))
        assert result.conflict_for("core-lib").reason == ConflictReason.DISJOINT_RANGES
        assert result.selected_versions["ui-kit"] == "2.1.0"
        assert result.selected_versions["jest"] == "29.7.0"

    def test_empty_graph_warns(self, resolver: DependencyResolver) -> None:
        """Test that a graph without edges is not an error."""
        result = resolver.resolve(DependencyGraph())
        assert result.selected_versions == {}
        assert result.warnings

    def test_malformed_range_is_warning(self, resolver: DependencyResolver) -> None:
        """Test that unparsable ranges degrade to warnings."""
        app = PackageNode(name="app", version="1.0.0")
        graph = DependencyGraph(
            nodes=(app, PackageNode(name="coreLib", version="5.0.0")),
            edges=(DependencyEdge(dependent=app, package="coreLib", range="^banana"),),
            roots=(app,),
        )
        result = resolver.resolve(graph)
        assert result.conflicts == ()
        assert any("^banana" in warning for warning in result.warnings)

    def test_resolver_does_not_mutate_graph(self, conflicting_manifest: Path) -> None:
        """Test that resolution is a pure proposal."""
        graph = load_manifest(conflicting_manifest)
        before = graph.model_dump()
        resolve(graph)
        assert graph.model_dump() == before
