"""API surface analysis.

Components:
- declaration_parser: Parse TypeScript declarations and YAML/JSON declaration sets
- shapes: Render and compare signature shapes
- surface_extractor: Build the API model of one package version
- version_differ: Diff two API models into changes
- usage_finder: Count entity usage across a consumer corpus
- impact_calculator: Classify severity and compute impact scores
"""

from surfaceshift.analysis.impact_calculator import SEVERITY_RULES, ImpactCalculator, SeverityRule
from surfaceshift.analysis.surface_extractor import SurfaceExtractor, extract
from surfaceshift.analysis.usage_finder import CorpusScanCache, CorpusScanResult, UsageFinder
from surfaceshift.analysis.version_differ import VersionDiffer, compare_entities, diff

__all__ = [
    "SEVERITY_RULES",
    "ImpactCalculator",
    "SeverityRule",
    "SurfaceExtractor",
    "extract",
    "CorpusScanCache",
    "CorpusScanResult",
    "UsageFinder",
    "VersionDiffer",
    "compare_entities",
    "diff",
]
