"""Tests for CLI module."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from surfaceshift import __version__
from surfaceshift.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_cwd(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep configuration discovery away from the developer's tree."""
    monkeypatch.chdir(temp_dir)
    monkeypatch.delenv("SURFACESHIFT_LOG_LEVEL", raising=False)
    monkeypatch.delenv("SURFACESHIFT_CORPUS_TIMEOUT", raising=False)


def _sources(library_dirs: tuple[Path, Path]) -> list[str]:
    old_dir, new_dir = library_dirs
    return [str(old_dir), str(new_dir), "--from", "1.0.0", "--to", "2.0.0"]


class TestCLI:
    """Tests for CLI commands."""

    def test_version_flag(self) -> None:
        """Test --version flag."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_flag(self) -> None:
        """Test --help flag."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "surfaceshift" in result.output.lower()

    def test_no_args_shows_help(self) -> None:
        """Test that no arguments shows help (no_args_is_help=True)."""
        result = runner.invoke(app, [])
        assert result.exit_code in (0, 2)
        assert "usage" in result.output.lower()

    def test_log_file(self, library_dirs, temp_dir: Path) -> None:
        """Test that --log-file creates the log file."""
        log_file = temp_dir / "surfaceshift.log"
        result = runner.invoke(app, ["--log-file", str(log_file), "diff", *_sources(library_dirs)])
        assert result.exit_code == 0
        assert log_file.exists()


class TestDiffCommand:
    """Tests for diff command."""

    def test_diff_json(self, library_dirs, hints_file: Path, temp_dir: Path) -> None:
        """Test JSON output of classified changes."""
        output = temp_dir / "diff.json"
        result = runner.invoke(
            app,
            ["diff", *_sources(library_dirs), "--hints", str(hints_file), "--format", "json", "--output", str(output)],
        )
        assert result.exit_code == 0
        data = json.loads(output.read_text())
        assert len(data["changes"]) == 7
        severities = {c["change"]["name"]: c["severity"] for c in data["changes"]}
        assert severities["legacyHelper"] == "critical"
        assert severities["Card"] == "major"
        assert severities["Tooltip"] == "minor"

    def test_diff_table(self, library_dirs) -> None:
        """Test table output."""
        result = runner.invoke(app, ["diff", *_sources(library_dirs)])
        assert result.exit_code == 0
        assert "API changes" in result.output

    def test_diff_catalog_complexity(self, library_dirs, hints_file: Path, catalog_file: Path, temp_dir: Path) -> None:
        """Test that --catalog feeds rule complexity into the scores."""
        weights = {}
        for extra in ([], ["--catalog", str(catalog_file)]):
            output = temp_dir / "diff.json"
            result = runner.invoke(
                app,
                ["diff", *_sources(library_dirs), "--hints", str(hints_file), *extra, "-f", "json", "-o", str(output)],
            )
            assert result.exit_code == 0
            changes = json.loads(output.read_text())["changes"]
            weights[bool(extra)] = {c["change"]["name"]: c["complexity_weight"] for c in changes}
        assert weights[False]["Card"] == 3
        assert weights[True]["Card"] == 1
        assert weights[True]["formatDate"] == 2
        assert weights[True]["legacyHelper"] == 3

    def test_unknown_format(self, library_dirs) -> None:
        """Test that unknown formats are rejected."""
        result = runner.invoke(app, ["diff", *_sources(library_dirs), "--format", "xml"])
        assert result.exit_code == 1
        assert "Unknown format" in result.output

    def test_single_file_sources(self, temp_dir: Path) -> None:
        """Test diffing two declaration files."""
        old = temp_dir / "old.d.ts"
        new = temp_dir / "new.d.ts"
        old.write_text("export declare function formatDate(value: number, pattern?: string): string;\n")
        new.write_text("export declare function formatDate(value: number): string;\n")
        output = temp_dir / "diff.json"
        result = runner.invoke(
            app,
            ["diff", str(old), str(new), "--from", "1.0.0", "--to", "2.0.0", "-f", "json", "-o", str(output)],
        )
        assert result.exit_code == 0
        changes = json.loads(output.read_text())["changes"]
        assert [(c["change"]["kind"], c["change"]["module_path"], c["change"]["name"]) for c in changes] == [
            ("signature_changed", "index", "formatDate")
        ]

    def test_missing_source(self, temp_dir: Path) -> None:
        """Test that source paths must exist."""
        result = runner.invoke(app, ["diff", str(temp_dir / "a"), str(temp_dir / "b")])
        assert result.exit_code != 0


class TestPlanCommand:
    """Tests for plan command."""

    def test_plan_summary(self, library_dirs, hints_file: Path, catalog_file: Path) -> None:
        """Test the table summary line."""
        result = runner.invoke(
            app,
            ["plan", *_sources(library_dirs), "--hints", str(hints_file), "--catalog", str(catalog_file)],
        )
        assert result.exit_code == 0
        assert "Found 7 changes: 2 critical, 2 major, 3 minor, 0 deprecations" in result.output
        assert "Manual migration required" in result.output

    def test_plan_json(
        self,
        library_dirs,
        hints_file: Path,
        catalog_file: Path,
        conflicting_manifest: Path,
        temp_dir: Path,
    ) -> None:
        """Test the JSON migration report."""
        output = temp_dir / "plan.json"
        result = runner.invoke(
            app,
            [
                "plan",
                *_sources(library_dirs),
                "-p",
                "ui-kit",
                "--hints",
                str(hints_file),
                "--catalog",
                str(catalog_file),
                "--manifest",
                str(conflicting_manifest),
                "--format",
                "json",
                "--output",
                str(output),
            ],
        )
        assert result.exit_code == 0
        report = json.loads(output.read_text())
        assert report["summary"]["breaking"] == 4
        assert report["summary"]["conflicts"] == 1
        assert report["summary"]["transformations"] == 3
        phases = [phase["name"] for phase in report["plan"]["phases"]]
        assert phases == ["preparation", "low_risk", "high_risk", "validation"]

    def test_plan_with_config(self, library_dirs, hints_file: Path, sample_config: Path, temp_dir: Path) -> None:
        """Test that the global --config option is honored."""
        output = temp_dir / "plan.json"
        result = runner.invoke(
            app,
            [
                "-c",
                str(sample_config),
                "plan",
                *_sources(library_dirs),
                "--hints",
                str(hints_file),
                "--format",
                "json",
                "--output",
                str(output),
            ],
        )
        assert result.exit_code == 0
        report = json.loads(output.read_text())
        # strict_optional_removal makes the formatDate change major.
        assert report["summary"]["by_severity"]["major"] == 3

    def test_invalid_catalog(self, library_dirs, temp_dir: Path) -> None:
        """Test that catalog errors are reported cleanly."""
        catalog = temp_dir / "bad.yml"
        catalog.write_text("rules: [unclosed")
        result = runner.invoke(app, ["plan", *_sources(library_dirs), "--catalog", str(catalog)])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestResolveCommand:
    """Tests for resolve command."""

    def test_conflicts_exit_code(self, conflicting_manifest: Path, temp_dir: Path) -> None:
        """Test that conflicts give exit code 2."""
        output = temp_dir / "resolution.json"
        result = runner.invoke(
            app, ["resolve", str(conflicting_manifest), "--format", "json", "--output", str(output)]
        )
        assert result.exit_code == 2
        data = json.loads(output.read_text())
        assert data["selected_versions"]["coreLib"] is None
        assert data["conflicts"][0]["reason"] == "disjoint_ranges"

    def test_no_conflicts(self, temp_dir: Path) -> None:
        """Test a clean resolution."""
        manifest = temp_dir / "manifest.yml"
        manifest.write_text("roots: [app@1.0.0]\npackages:\n  app@1.0.0:\n    dependencies: {lib: ^1.0.0}\n  lib@1.2.0: {}\n")
        result = runner.invoke(app, ["resolve", str(manifest)])
        assert result.exit_code == 0
        assert "No version conflicts." in result.output

    def test_invalid_manifest(self, temp_dir: Path) -> None:
        """Test malformed manifests."""
        manifest = temp_dir / "manifest.yml"
        manifest.write_text("packages:\n  app: {}\n")
        result = runner.invoke(app, ["resolve", str(manifest)])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestCodemodCommand:
    """Tests for codemod command."""

    def test_dry_run(self, library_dirs, hints_file: Path, catalog_file: Path, consumer_dir: Path) -> None:
        """Test that the default mode previews diffs."""
        before = (consumer_dir / "src" / "App.tsx").read_text()
        result = runner.invoke(
            app,
            [
                "codemod",
                *_sources(library_dirs)[:2],
                str(consumer_dir),
                "--catalog",
                str(catalog_file),
                "--hints",
                str(hints_file),
            ],
        )
        assert result.exit_code == 0
        assert "Would rewrite 2 of 3 files" in result.output
        assert "+++ b/src/dates.ts" in result.output
        assert (consumer_dir / "src" / "App.tsx").read_text() == before

    def test_apply(self, library_dirs, hints_file: Path, catalog_file: Path, consumer_dir: Path) -> None:
        """Test rewriting files in place."""
        result = runner.invoke(
            app,
            [
                "codemod",
                *_sources(library_dirs)[:2],
                str(consumer_dir),
                "--catalog",
                str(catalog_file),
                "--hints",
                str(hints_file),
                "--apply",
            ],
        )
        assert result.exit_code == 0
        assert "Rewrote 2 of 3 files" in result.output
        assert "formatDate(now)" in (consumer_dir / "src" / "dates.ts").read_text()

    def test_catalog_required(self, library_dirs, consumer_dir: Path) -> None:
        """Test that codemod needs a catalog."""
        result = runner.invoke(app, ["codemod", *_sources(library_dirs)[:2], str(consumer_dir)])
        assert result.exit_code != 0


class TestConfigCommands:
    """Tests for config subcommands."""

    def test_init(self, temp_dir: Path) -> None:
        """Test creating a configuration file."""
        result = runner.invoke(app, ["config", "init", str(temp_dir)])
        assert result.exit_code == 0
        assert "Created configuration file" in result.output
        assert (temp_dir / ".surfaceshift.yml").exists()

    def test_init_refuses_overwrite(self, sample_config: Path) -> None:
        """Test that an existing file is kept without --force."""
        result = runner.invoke(app, ["config", "init", str(sample_config.parent)])
        assert result.exit_code == 1
        assert "--force" in result.output

    def test_init_force(self, sample_config: Path) -> None:
        """Test overwriting with --force."""
        result = runner.invoke(app, ["config", "init", str(sample_config.parent), "--force"])
        assert result.exit_code == 0
        assert "surfaceshift configuration" in sample_config.read_text()

    def test_validate(self, sample_config: Path) -> None:
        """Test validating a good file."""
        result = runner.invoke(app, ["config", "validate", str(sample_config)])
        assert result.exit_code == 0
        assert "Configuration is valid." in result.output

    def test_validate_invalid(self, temp_dir: Path) -> None:
        """Test validating a bad file."""
        path = temp_dir / "bad.yml"
        path.write_text("version: 2\n")
        result = runner.invoke(app, ["config", "validate", str(path)])
        assert result.exit_code == 1

    def test_show_defaults(self) -> None:
        """Test showing defaults when no file exists."""
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "No configuration file found" in result.output
