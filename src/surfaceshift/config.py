"""Configuration management for surfaceshift."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from surfaceshift.core.models import Severity
from surfaceshift.errors import ConfigurationError

CONFIG_FILENAMES = (".surfaceshift.yml", ".surfaceshift.yaml")


class ExtractionConfig(BaseModel):
    """Configuration for surface extraction."""

    declaration_suffixes: list[str] = Field(
        default_factory=lambda: [".d.ts", ".ts", ".tsx", ".yml", ".yaml", ".json"],
        description="File suffixes treated as declaration modules",
    )
    token_module_patterns: list[str] = Field(
        default_factory=lambda: ["*tokens*", "*theme*"],
        description="Glob patterns of module paths whose constants are style tokens",
    )
    component_type_names: list[str] = Field(
        default_factory=lambda: [
            "FC",
            "VFC",
            "FunctionComponent",
            "Component",
            "ComponentType",
            "ForwardRefExoticComponent",
            "MemoExoticComponent",
            "DefineComponent",
        ],
        description="Type names whose first type argument is a component's props",
    )
    exclude_patterns: list[str] = Field(
        default_factory=lambda: ["node_modules", ".git", "__tests__", "*.test.*", "*.spec.*"],
        description="Patterns to exclude when walking a source tree",
    )
    max_workers: int = Field(default=4, ge=1, description="Parallel module parsers")


class DiffConfig(BaseModel):
    """Configuration for the version differ and severity policy."""

    strict_optional_removal: bool = Field(
        default=False,
        description="Classify removal of an optional parameter as major instead of minor",
    )


class ScoringConfig(BaseModel):
    """Tunable constants of the impact score formula."""

    severity_weights: dict[Severity, int] = Field(
        default_factory=lambda: {
            Severity.CRITICAL: 10,
            Severity.MAJOR: 7,
            Severity.MINOR: 3,
            Severity.DEPRECATION: 1,
        },
    )
    prevalence_buckets: list[tuple[float, int]] = Field(
        default_factory=lambda: [(0.5, 5), (0.2, 3), (0.05, 2)],
        description="(minimum file fraction, weight) pairs, checked in order",
    )
    default_prevalence_weight: int = Field(default=1, ge=1)
    manual_complexity_weight: int = Field(default=3, ge=1, le=3)
    band_thresholds: dict[str, int] = Field(
        default_factory=lambda: {"extremely_high": 100, "high": 50, "moderate": 20},
    )

    @field_validator("severity_weights")
    @classmethod
    def validate_severity_weights(cls, v: dict[Severity, int]) -> dict[Severity, int]:
        """Require a weight for every severity."""
        missing = set(Severity) - set(v)
        if missing:
            names = ", ".join(sorted(s.value for s in missing))
            raise ValueError(f"severity_weights missing: {names}")
        return v

    @field_validator("prevalence_buckets")
    @classmethod
    def validate_prevalence_buckets(cls, v: list[tuple[float, int]]) -> list[tuple[float, int]]:
        """Keep buckets sorted from the highest fraction down."""
        for fraction, weight in v:
            if not 0.0 <= fraction <= 1.0:
                raise ValueError("prevalence bucket fractions must be between 0 and 1")
            if weight < 1:
                raise ValueError("prevalence bucket weights must be positive")
        return sorted(v, key=lambda bucket: bucket[0], reverse=True)


class CorpusConfig(BaseModel):
    """Configuration for consumer corpus scanning."""

    timeout_seconds: float = Field(default=30.0, gt=0, description="Scan timeout before degrading")
    file_suffixes: list[str] = Field(
        default_factory=lambda: [".ts", ".tsx", ".js", ".jsx", ".vue", ".svelte"],
    )
    exclude_patterns: list[str] = Field(
        default_factory=lambda: ["node_modules", "dist", "build", ".git"],
    )
    max_files: int | None = Field(default=None, ge=1, description="Sample at most this many files")
    max_workers: int = Field(default=8, ge=1)


class GenerationConfig(BaseModel):
    """Configuration for transformation generation."""

    fail_on_ambiguity: bool = Field(
        default=False,
        description="Raise AmbiguousMatchError instead of recording it per change",
    )
    catalog_path: str | None = Field(default=None, description="Default rewrite catalog file")


class SurfaceshiftConfig(BaseModel):
    """Complete surfaceshift configuration."""

    version: int = Field(default=1, description="Configuration file version")
    log_level: str = Field(default="INFO")
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    diff: DiffConfig = Field(default_factory=DiffConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    corpus: CorpusConfig = Field(default_factory=CorpusConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level value."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v.upper()

    @model_validator(mode="after")
    def validate_version(self) -> "SurfaceshiftConfig":
        """Reject configuration files from a newer format."""
        if self.version != 1:
            raise ValueError(f"Unsupported configuration version: {self.version}")
        return self


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find the nearest .surfaceshift.yml configuration file.

    Searches from start_path up to the root directory.

    Args:
        start_path: Starting directory for search (defaults to cwd).

    Returns:
        Path to config file if found, None otherwise.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        for filename in CONFIG_FILENAMES:
            config_path = current / filename
            if config_path.exists():
                return config_path
        current = current.parent

    return None


def load_config(
    config_path: Path | None = None,
    env_prefix: str = "SURFACESHIFT_",
) -> SurfaceshiftConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Defaults

    Args:
        config_path: Path to config file (searches if not provided).
        env_prefix: Prefix for environment variables.

    Returns:
        Loaded configuration.

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation.
    """
    config_data: dict[str, Any] = {}

    if config_path is None:
        config_path = find_config_file()

    if config_path and config_path.exists():
        try:
            with open(config_path) as f:
                file_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in {config_path}: {e}",
                hint="Run 'surfaceshift config init' to generate a valid example.",
            ) from e
        if file_data:
            if not isinstance(file_data, dict):
                raise ConfigurationError(f"Configuration in {config_path} must be a mapping")
            config_data = file_data

    log_level = os.environ.get(f"{env_prefix}LOG_LEVEL")
    if log_level:
        config_data["log_level"] = log_level

    corpus_timeout = os.environ.get(f"{env_prefix}CORPUS_TIMEOUT")
    if corpus_timeout:
        config_data.setdefault("corpus", {})["timeout_seconds"] = corpus_timeout

    try:
        return SurfaceshiftConfig(**config_data)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e}",
            hint="Check the configuration against 'surfaceshift config init'.",
        ) from e


def generate_example_config() -> str:
    """Generate an example configuration file.

    Returns:
        YAML string of example configuration.
    """
    example = """# surfaceshift configuration

version: 1
log_level: INFO

# Surface extraction
extraction:
  declaration_suffixes: [".d.ts", ".ts", ".tsx", ".yml", ".yaml", ".json"]
  # Constants in matching modules are style tokens
  token_module_patterns: ["*tokens*", "*theme*"]
  # `const X: FC<Props>` declares a component whose props are Props
  component_type_names: [FC, FunctionComponent, ComponentType, ForwardRefExoticComponent]
  max_workers: 4

# Severity policy
diff:
  # Treat removal of an optional parameter as major
  strict_optional_removal: false

# impact = severity weight x prevalence weight x complexity weight
scoring:
  severity_weights:
    critical: 10
    major: 7
    minor: 3
    deprecation: 1
  # (minimum fraction of corpus files using the name, weight)
  prevalence_buckets:
    - [0.5, 5]
    - [0.2, 3]
    - [0.05, 2]
  default_prevalence_weight: 1
  manual_complexity_weight: 3
  band_thresholds:
    extremely_high: 100
    high: 50
    moderate: 20

# Consumer corpus scanning
corpus:
  timeout_seconds: 30
  file_suffixes: [".ts", ".tsx", ".js", ".jsx"]
  exclude_patterns: [node_modules, dist, build, .git]

# Transformation generation
generation:
  fail_on_ambiguity: false
"""
    return example
