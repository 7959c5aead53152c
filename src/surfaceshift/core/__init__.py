"""Core module containing data models, the diagnostics accumulator and the pipeline."""

from surfaceshift.core.diagnostics import Diagnostics
from surfaceshift.core.models import (
    APIEntity,
    APIModel,
    Change,
    ChangeKind,
    ClassifiedChange,
    DeltaKind,
    DependencyGraph,
    MigrationPlan,
    RenameHint,
    Severity,
)

__all__ = [
    "Diagnostics",
    # Models
    "APIEntity",
    "APIModel",
    "Change",
    "ChangeKind",
    "ClassifiedChange",
    "DeltaKind",
    "DependencyGraph",
    "MigrationPlan",
    "RenameHint",
    "Severity",
]
