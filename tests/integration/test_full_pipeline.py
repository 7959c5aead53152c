"""Integration tests for the full migration pipeline."""

import threading
from pathlib import Path

import pytest

from surfaceshift.analysis.usage_finder import CorpusScanCache
from surfaceshift.config import CorpusConfig, SurfaceshiftConfig
from surfaceshift.core.models import ImpactBand, PhaseName, Severity
from surfaceshift.core.pipeline import MigrationEngine, load_rename_hints
from surfaceshift.errors import ConfigurationError
from surfaceshift.transforms.catalog import parse_catalog
from surfaceshift.transforms.codemod import CodemodRunner


class TestMigrationEngine:
    """Integration tests for MigrationEngine.run."""

    @pytest.fixture
    def report(self, old_library, new_library, rename_hints, catalog_file, conflicting_manifest, consumer_dir):
        return MigrationEngine().run(
            old_library,
            new_library,
            "1.0.0",
            "2.0.0",
            package="ui-kit",
            catalog=catalog_file,
            manifest=conflicting_manifest,
            corpus=consumer_dir,
            rename_hints=rename_hints,
        )

    def test_summary(self, report) -> None:
        """Test the counts of a full run."""
        summary = report.summary
        assert summary["changes"] == 7
        assert summary["breaking"] == 4
        assert summary["conflicts"] == 1
        assert summary["transformations"] == 3
        assert summary["by_kind"]["renamed"] == 1
        assert summary["low_risk"] == 5
        assert summary["high_risk"] == 2
        assert report.errors == []

    def test_corpus_prevalence(self, report) -> None:
        """Test that corpus usage raises the impact of used entities."""
        assert report.corpus_files_scanned == 3
        scores = {c.change.name: c for c in report.classified}
        assert scores["Button"].impact_score == 90
        assert scores["Button"].band == ImpactBand.HIGH
        assert scores["Card"].impact_score == 21
        assert scores["formatDate"].impact_score == 18
        # Unused in the corpus, so only severity and complexity count.
        assert scores["legacyHelper"].impact_score == 30
        assert report.classified[0].change.name == "Button"

    def test_plan(self, report) -> None:
        """Test the phases of the migration plan."""
        plan = report.plan
        assert (plan.package, plan.from_version, plan.to_version) == ("ui-kit", "1.0.0", "2.0.0")
        assert [c.package for c in plan.phase(PhaseName.PREPARATION).conflicts] == ["coreLib"]
        high = [e.classified.change.name for e in plan.phase(PhaseName.HIGH_RISK).entries]
        assert sorted(high) == ["Button", "legacyHelper"]
        low = [e.classified.change.name for e in plan.phase(PhaseName.LOW_RISK).entries]
        assert low[0] == "Card"
        assert len(plan.phase(PhaseName.VALIDATION).verifications) == 3

    def test_report_serializes(self, report) -> None:
        """Test that the report dumps to JSON-compatible data."""
        data = report.model_dump(mode="json")
        assert data["summary"]["changes"] == 7
        assert data["resolution"]["selected_versions"]["coreLib"] is None

    def test_minimal_run(self, old_library, new_library) -> None:
        """Test a run with declarations only."""
        report = MigrationEngine().run(old_library, new_library, "1.0.0", "2.0.0")
        assert report.summary["changes"] == 8
        assert report.summary["transformations"] == 0
        assert report.corpus_files_scanned == 0
        assert report.plan.phase(PhaseName.PREPARATION).conflicts == ()

    def test_codemod_from_report(self, report, consumer_dir: Path) -> None:
        """Test applying the generated transformations to the corpus."""
        runner = CodemodRunner(report.generation.transformations)
        preview = runner.dry_run(consumer_dir)
        applied = runner.apply(consumer_dir, preview.expectations())
        assert applied.failures == []
        assert "<Tile" in (consumer_dir / "src" / "App.tsx").read_text()


class TestCorpusCache:
    """Tests for scan caching across runs."""

    def test_second_run_uses_cache(self, old_library, new_library, rename_hints, consumer_dir: Path) -> None:
        """Test that a repeated upgrade reuses the corpus scan."""
        cache = CorpusScanCache()
        engine = MigrationEngine(cache=cache)
        first = engine.run(
            old_library, new_library, "1.0.0", "2.0.0", package="ui-kit", corpus=consumer_dir, rename_hints=rename_hints
        )
        second = engine.run(
            old_library, new_library, "1.0.0", "2.0.0", package="ui-kit", corpus=consumer_dir, rename_hints=rename_hints
        )
        assert cache.get_stats()["hits"] == 1
        assert [c.impact_score for c in first.classified] == [c.impact_score for c in second.classified]

    def test_cancelled_scan_degrades(self, old_library, new_library, consumer_dir: Path) -> None:
        """Test that a cancelled scan falls back to the default weight."""
        cancel = threading.Event()
        cancel.set()
        cache = CorpusScanCache()
        report = MigrationEngine(cache=cache).run(
            old_library, new_library, "1.0.0", "2.0.0", package="ui-kit", corpus=consumer_dir, cancel_event=cancel
        )
        assert all(c.prevalence_weight == 1 for c in report.classified)
        assert any(w.startswith("corpus:") for w in report.warnings)
        assert cache.get_stats()["entries"] == 0


class TestEngineStages:
    """Tests for the individual engine stages."""

    def test_resolve_manifest(self, conflicting_manifest: Path) -> None:
        """Test resolving a manifest file."""
        result = MigrationEngine().resolve(conflicting_manifest)
        assert [c.package for c in result.conflicts] == ["coreLib"]

    def test_configured_catalog(self, catalog_file: Path) -> None:
        """Test the catalog path from configuration."""
        config = SurfaceshiftConfig()
        config.generation.catalog_path = str(catalog_file)
        catalog = MigrationEngine(config).load_catalog()
        assert "rename-symbol" in [rule.id for rule in catalog.rules]

    def test_manual_rule_scores_as_manual(self, old_library, new_library, rename_hints) -> None:
        """Test that a rule which ends up manual does not lower the impact score."""
        catalog = parse_catalog(
            [
                {
                    "id": "drop-param",
                    "match_pattern": "signature_changed:param_removed",
                    "idempotent": False,
                    "complexity": 1,
                    "rewrite_template": {"action": "remove_prop"},
                }
            ]
        )
        report = MigrationEngine().run(
            old_library, new_library, "1.0.0", "2.0.0", catalog=catalog, rename_hints=rename_hints
        )
        format_date = next(c for c in report.classified if c.change.name == "formatDate")
        assert report.generation.is_manual(format_date.change_id)
        assert format_date.complexity_weight == 3
        assert format_date.impact_score == 9

    def test_strict_config(self, old_library, new_library, rename_hints) -> None:
        """Test that configuration reaches the classifier."""
        config = SurfaceshiftConfig(corpus=CorpusConfig(max_files=10))
        config.diff.strict_optional_removal = True
        report = MigrationEngine(config).run(old_library, new_library, "1.0.0", "2.0.0", rename_hints=rename_hints)
        severities = {c.change.name: c.severity for c in report.classified}
        assert severities["formatDate"] == Severity.MAJOR


class TestLoadRenameHints:
    """Tests for load_rename_hints."""

    def test_yaml_mapping(self, hints_file: Path) -> None:
        """Test the renames mapping form."""
        hints = load_rename_hints(hints_file)
        assert [(h.old_name, h.new_name) for h in hints] == [("Card", "Tile"), ("isInline", "inline")]
        assert hints[1].member_of == "Badge"

    def test_json_list(self, temp_dir: Path) -> None:
        """Test a bare JSON list."""
        path = temp_dir / "renames.json"
        path.write_text('[{"module_path": "index", "old_name": "Card", "new_name": "Tile"}]')
        assert load_rename_hints(path)[0].new_name == "Tile"

    def test_empty_file(self, temp_dir: Path) -> None:
        """Test an empty hints file."""
        path = temp_dir / "renames.yml"
        path.write_text("")
        assert load_rename_hints(path) == []

    def test_invalid_hint(self, temp_dir: Path) -> None:
        """Test a hint without a new name."""
        path = temp_dir / "renames.yml"
        path.write_text("- {module_path: index, old_name: Card}\n")
        with pytest.raises(ConfigurationError, match="Invalid rename hint"):
            load_rename_hints(path)

    def test_not_a_list(self, temp_dir: Path) -> None:
        """Test a scalar document."""
        path = temp_dir / "renames.yml"
        path.write_text("just text\n")
        with pytest.raises(ConfigurationError, match="must be a list"):
            load_rename_hints(path)

    def test_missing_file(self, temp_dir: Path) -> None:
        """Test an unreadable path."""
        with pytest.raises(ConfigurationError, match="Cannot read rename hints"):
            load_rename_hints(temp_dir / "absent.yml")
