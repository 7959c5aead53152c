"""Migration pipeline orchestrator.

Coordinates a full upgrade analysis:
1. Extract the API model of both versions
2. Diff the models
3. Scan the consumer corpus for prevalence
4. Classify changes by severity and impact
5. Resolve dependency-version conflicts
6. Generate transformations from the rewrite catalog
7. Build the phased migration plan
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import BaseModel, Field, ValidationError, computed_field

from surfaceshift.analysis.impact_calculator import ImpactCalculator
from surfaceshift.analysis.surface_extractor import SourceTree, SurfaceExtractor
from surfaceshift.analysis.usage_finder import Corpus, CorpusScanCache, CorpusScanResult, UsageFinder
from surfaceshift.analysis.version_differ import VersionDiffer
from surfaceshift.config import SurfaceshiftConfig
from surfaceshift.core.diagnostics import Diagnostics
from surfaceshift.core.models import (
    APIModel,
    Change,
    ChangeKind,
    ClassifiedChange,
    DependencyGraph,
    GenerationResult,
    MigrationPlan,
    PhaseName,
    RenameHint,
    ResolutionResult,
    Severity,
)
from surfaceshift.errors import ConfigurationError
from surfaceshift.planning.migration_planner import MigrationPlanner
from surfaceshift.resolution.dependency_resolver import DependencyResolver
from surfaceshift.resolution.manifest import load_manifest
from surfaceshift.transforms.catalog import RewriteCatalog, load_catalog
from surfaceshift.transforms.generator import TransformationGenerator
from surfaceshift.utils.logging import get_logger

logger = get_logger(__name__)


class MigrationReport(BaseModel):
    """Everything one pipeline run produced."""

    package: str = ""
    from_version: str
    to_version: str
    old_model: APIModel
    new_model: APIModel
    changes: list[Change] = Field(default_factory=list)
    classified: list[ClassifiedChange] = Field(default_factory=list)
    resolution: ResolutionResult = Field(default_factory=ResolutionResult)
    generation: GenerationResult = Field(default_factory=GenerationResult)
    plan: MigrationPlan
    corpus_files_scanned: int = 0
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def summary(self) -> dict[str, Any]:
        """Counts by severity, change kind and plan phase."""
        by_severity = {severity.value: 0 for severity in Severity}
        for item in self.classified:
            by_severity[item.severity.value] += 1

        by_kind: dict[str, int] = {}
        for change in self.changes:
            by_kind[change.kind.value] = by_kind.get(change.kind.value, 0) + 1

        return {
            "changes": len(self.changes),
            "breaking": sum(1 for c in self.classified if c.severity in (Severity.CRITICAL, Severity.MAJOR)),
            "by_severity": by_severity,
            "by_kind": by_kind,
            "conflicts": len(self.resolution.conflicts),
            "transformations": len(self.generation.transformations),
            "manual": len({m.change_id for m in self.plan.manual_only}),
            "low_risk": len(self.plan.phase(PhaseName.LOW_RISK).entries),
            "high_risk": len(self.plan.phase(PhaseName.HIGH_RISK).entries),
        }


class MigrationEngine:
    """Runs the extract, diff, classify, resolve, generate and plan stages.

    The engine holds configuration and an optional scan cache only; every
    run gets a fresh diagnostics accumulator.
    """

    def __init__(
        self,
        config: SurfaceshiftConfig | None = None,
        cache: CorpusScanCache | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Configuration; defaults apply when omitted.
            cache: Corpus scan cache shared across runs.
        """
        self._config = config or SurfaceshiftConfig()
        self._cache = cache

    @property
    def config(self) -> SurfaceshiftConfig:
        return self._config

    def extract(self, source_tree: SourceTree, version_id: str) -> APIModel:
        """Extract one version's API model."""
        return SurfaceExtractor(self._config.extraction).extract(source_tree, version_id)

    def diff(
        self,
        old_source: SourceTree,
        new_source: SourceTree,
        old_version: str,
        new_version: str,
        rename_hints: Iterable[RenameHint] = (),
        diagnostics: Diagnostics | None = None,
    ) -> tuple[APIModel, APIModel, list[Change]]:
        """Extract both versions and diff them."""
        diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        old_model = self.extract(old_source, old_version)
        new_model = self.extract(new_source, new_version)
        diagnostics.extend_warnings(f"extract {old_version}", old_model.warnings)
        diagnostics.extend_warnings(f"extract {new_version}", new_model.warnings)
        changes = VersionDiffer(diagnostics).diff(old_model, new_model, rename_hints)
        return old_model, new_model, changes

    def resolve(self, manifest: DependencyGraph | Path, include_dev: bool = True) -> ResolutionResult:
        """Resolve a dependency graph or manifest file."""
        graph = manifest if isinstance(manifest, DependencyGraph) else load_manifest(Path(manifest), include_dev)
        return DependencyResolver().resolve(graph)

    def load_catalog(self, catalog: RewriteCatalog | Path | None = None) -> RewriteCatalog:
        """The given catalog, the configured default, or an empty catalog."""
        if isinstance(catalog, RewriteCatalog):
            return catalog
        if catalog is None and self._config.generation.catalog_path:
            catalog = Path(self._config.generation.catalog_path)
        if catalog is None:
            return RewriteCatalog()
        return load_catalog(Path(catalog))

    def scan_corpus(
        self,
        corpus: Corpus,
        changes: list[Change],
        package: str,
        old_version: str,
        new_version: str,
        cancel_event: threading.Event | None = None,
        diagnostics: Diagnostics | None = None,
    ) -> CorpusScanResult:
        """Scan the consumer corpus for the names of changed entities."""
        diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        if self._cache is not None:
            cached = self._cache.get(package, old_version, new_version)
            if cached is not None:
                logger.debug("Using cached corpus scan for %s %s -> %s", package, old_version, new_version)
                return cached

        names = {change.name for change in changes if change.kind != ChangeKind.ADDED}
        result = UsageFinder(self._config.corpus).scan(corpus, names, cancel_event)

        if result.timed_out:
            diagnostics.warn("corpus", "scan timed out; default prevalence weight used")
        elif result.cancelled:
            diagnostics.warn("corpus", "scan cancelled; default prevalence weight used")
        diagnostics.extend_warnings("corpus", result.errors)

        if self._cache is not None:
            self._cache.set(package, old_version, new_version, result)
        return result

    def run(
        self,
        old_source: SourceTree,
        new_source: SourceTree,
        old_version: str,
        new_version: str,
        package: str = "",
        catalog: RewriteCatalog | Path | None = None,
        manifest: DependencyGraph | Path | None = None,
        corpus: Corpus | None = None,
        rename_hints: Iterable[RenameHint] = (),
        cancel_event: threading.Event | None = None,
    ) -> MigrationReport:
        """Run every stage and collect the results.

        Args:
            old_source: Declarations of the current version.
            new_source: Declarations of the target version.
            old_version: Current version id.
            new_version: Target version id.
            package: Package name, used for import rewrites and cache keys.
            catalog: Rewrite catalog or catalog file.
            manifest: Dependency graph or manifest file to resolve.
            corpus: Consumer source directory or mapping of path to text.
            rename_hints: Explicit renames.
            cancel_event: Aborts the corpus scan when set.

        Returns:
            The migration report.

        Raises:
            CatalogError: If the catalog file is invalid.
            ResolutionError: If the manifest file cannot be loaded.
            AmbiguousMatchError: If ``fail_on_ambiguity`` is set and the
                catalog is ambiguous for some change.
        """
        diagnostics = Diagnostics()
        logger.info("Analyzing %s %s -> %s", package or "package", old_version, new_version)

        old_model, new_model, changes = self.diff(
            old_source, new_source, old_version, new_version, rename_hints, diagnostics
        )

        scan: CorpusScanResult | None = None
        if corpus is not None:
            scan = self.scan_corpus(corpus, changes, package, old_version, new_version, cancel_event, diagnostics)

        generator = TransformationGenerator(self.load_catalog(catalog), self._config.generation, package)
        complexities = {change.change_id: generator.complexity_for(change) for change in changes}
        calculator = ImpactCalculator(self._config.scoring, self._config.diff)
        classified = calculator.classify_all(changes, scan, complexities)

        resolution = ResolutionResult()
        if manifest is not None:
            resolution = self.resolve(manifest)
            diagnostics.extend_warnings("resolve", resolution.warnings)

        generation = generator.generate(classified)
        for error in generation.errors:
            diagnostics.error("generate", error)

        plan = MigrationPlanner().build(
            classified,
            generation,
            resolution.conflicts,
            package=package,
            from_version=old_version,
            to_version=new_version,
            warnings=diagnostics.warnings,
        )

        report = MigrationReport(
            package=package,
            from_version=old_version,
            to_version=new_version,
            old_model=old_model,
            new_model=new_model,
            changes=changes,
            classified=classified,
            resolution=resolution,
            generation=generation,
            plan=plan,
            corpus_files_scanned=scan.files_scanned if scan is not None else 0,
            warnings=list(diagnostics.warnings),
            errors=list(diagnostics.errors),
        )
        logger.info(
            "Found %d changes (%d breaking), %d conflicts, %d transformations",
            len(changes),
            report.summary["breaking"],
            len(resolution.conflicts),
            len(generation.transformations),
        )
        return report


def load_rename_hints(path: Path) -> list[RenameHint]:
    """Load rename hints from YAML or JSON.

    Accepts a list of hints or a mapping with a ``renames`` list.

    Raises:
        ConfigurationError: If the file cannot be read or a hint is invalid.
    """
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Cannot read rename hints {path}: {e}",
            hint="Provide a list of {module_path, old_name, new_name} entries.",
        ) from e

    if isinstance(data, dict):
        data = data.get("renames") or []
    if data is None:
        return []
    if not isinstance(data, list):
        raise ConfigurationError(f"Rename hints in {path} must be a list")

    try:
        return [RenameHint.model_validate(entry) for entry in data]
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid rename hint in {path}: {e}",
            hint="Each hint needs module_path, old_name and new_name.",
        ) from e
