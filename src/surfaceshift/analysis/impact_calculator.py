"""Severity classification and impact scoring for changes."""

from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional

from surfaceshift.analysis.usage_finder import CorpusScanResult
from surfaceshift.config import DiffConfig, ScoringConfig
from surfaceshift.core.models import (
    Change,
    ChangeKind,
    ClassifiedChange,
    DeltaKind,
    ImpactBand,
    Severity,
    Visibility,
)
from surfaceshift.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SeverityRule:
    """One row of the severity table."""

    name: str
    severity: Severity
    matches: Callable[[Change, DiffConfig], bool]


def _removed_public(deprecated: bool) -> Callable[[Change, DiffConfig], bool]:
    def matches(change: Change, config: DiffConfig) -> bool:
        old = change.old_entity
        return (
            change.kind == ChangeKind.REMOVED
            and old is not None
            and old.visibility == Visibility.PUBLIC
            and old.deprecated == deprecated
        )

    return matches


def _has(*kinds: DeltaKind) -> Callable[[Change, DiffConfig], bool]:
    return lambda change, config: change.has_delta(*kinds)


def _param_added(required: bool) -> Callable[[Change, DiffConfig], bool]:
    return lambda change, config: any(
        d.kind == DeltaKind.PARAM_ADDED and (d.optional is False) == required for d in change.deltas
    )


def _param_removed(required: bool) -> Callable[[Change, DiffConfig], bool]:
    return lambda change, config: any(
        d.kind == DeltaKind.PARAM_REMOVED and (d.optional is False) == required for d in change.deltas
    )


def _strict_optional_removal(change: Change, config: DiffConfig) -> bool:
    return config.strict_optional_removal and _param_removed(False)(change, config)


def _made_internal(change: Change, config: DiffConfig) -> bool:
    return any(
        d.kind == DeltaKind.VISIBILITY_CHANGED and d.new_value == Visibility.INTERNAL.value
        for d in change.deltas
    )


def _required_generic_added(change: Change, config: DiffConfig) -> bool:
    return any(d.kind == DeltaKind.GENERIC_ADDED and not d.optional for d in change.deltas)


# Evaluated in order; the first matching rule decides the severity.
SEVERITY_RULES: tuple[SeverityRule, ...] = (
    SeverityRule("public_entity_removed", Severity.CRITICAL, _removed_public(deprecated=False)),
    SeverityRule("param_made_required", Severity.CRITICAL, _has(DeltaKind.PARAM_MADE_REQUIRED)),
    SeverityRule("required_param_added", Severity.CRITICAL, _param_added(required=True)),
    SeverityRule("kind_changed", Severity.CRITICAL, _has(DeltaKind.KIND_CHANGED)),
    SeverityRule("renamed", Severity.MAJOR, lambda change, config: change.kind == ChangeKind.RENAMED),
    SeverityRule("deprecated_entity_removed", Severity.MAJOR, _removed_public(deprecated=True)),
    SeverityRule("enum_value_removed", Severity.MAJOR, _has(DeltaKind.ENUM_VALUE_REMOVED)),
    SeverityRule("callback_changed", Severity.MAJOR, _has(DeltaKind.CALLBACK_CHANGED)),
    SeverityRule(
        "type_narrowed",
        Severity.MAJOR,
        _has(DeltaKind.PARAM_TYPE_NARROWED, DeltaKind.TYPE_NARROWED, DeltaKind.RETURN_TYPE_WIDENED),
    ),
    SeverityRule(
        "type_changed",
        Severity.MAJOR,
        _has(DeltaKind.PARAM_TYPE_CHANGED, DeltaKind.TYPE_CHANGED, DeltaKind.RETURN_TYPE_CHANGED),
    ),
    SeverityRule("param_renamed", Severity.MAJOR, _has(DeltaKind.PARAM_RENAMED)),
    SeverityRule("param_reordered", Severity.MAJOR, _has(DeltaKind.PARAM_REORDERED)),
    SeverityRule("required_param_removed", Severity.MAJOR, _param_removed(required=True)),
    SeverityRule("optional_param_removed_strict", Severity.MAJOR, _strict_optional_removal),
    SeverityRule("generic_removed", Severity.MAJOR, _has(DeltaKind.GENERIC_REMOVED)),
    SeverityRule("required_generic_added", Severity.MAJOR, _required_generic_added),
    SeverityRule("made_internal", Severity.MAJOR, _made_internal),
    SeverityRule("default_changed", Severity.MINOR, _has(DeltaKind.DEFAULT_CHANGED, DeltaKind.VALUE_CHANGED)),
    SeverityRule("optional_param_added", Severity.MINOR, _param_added(required=False)),
    SeverityRule(
        "type_widened",
        Severity.MINOR,
        _has(
            DeltaKind.PARAM_TYPE_WIDENED,
            DeltaKind.TYPE_WIDENED,
            DeltaKind.RETURN_TYPE_NARROWED,
            DeltaKind.PARAM_MADE_OPTIONAL,
            DeltaKind.ENUM_VALUE_ADDED,
        ),
    ),
    SeverityRule("optional_param_removed", Severity.MINOR, _param_removed(required=False)),
    SeverityRule(
        "deprecated",
        Severity.DEPRECATION,
        lambda change, config: change.kind == ChangeKind.DEPRECATED,
    ),
    SeverityRule("added", Severity.MINOR, lambda change, config: change.kind == ChangeKind.ADDED),
    SeverityRule("non_breaking", Severity.MINOR, lambda change, config: True),
)


class ImpactCalculator:
    """Classifies changes and computes their impact score.

    ``impact_score = severity_weight x prevalence_weight x complexity_weight``.
    Every input is explicit, so the same change always classifies the same.
    """

    def __init__(
        self,
        scoring: Optional[ScoringConfig] = None,
        diff_config: Optional[DiffConfig] = None,
        rules: tuple[SeverityRule, ...] = SEVERITY_RULES,
    ) -> None:
        """Initialize the impact calculator.

        Args:
            scoring: Weights and band thresholds.
            diff_config: Severity policy knobs.
            rules: Severity table, evaluated in order.
        """
        self._scoring = scoring or ScoringConfig()
        self._diff_config = diff_config or DiffConfig()
        self._rules = rules

    def severity_of(self, change: Change) -> tuple[Severity, str]:
        """Severity of a change and the name of the rule that decided it."""
        for rule in self._rules:
            if rule.matches(change, self._diff_config):
                return rule.severity, rule.name
        return Severity.MINOR, "non_breaking"

    def prevalence_weight(self, name: str, scan: Optional[CorpusScanResult]) -> int:
        """Bucketed prevalence of ``name`` in the consumer corpus.

        The highest bucket requires strictly more than its fraction; the
        others are inclusive lower bounds.
        """
        fraction = scan.fraction(name) if scan is not None else None
        if fraction is None:
            return self._scoring.default_prevalence_weight

        for index, (threshold, weight) in enumerate(self._scoring.prevalence_buckets):
            if fraction > threshold or (index > 0 and fraction >= threshold):
                return weight
        return self._scoring.default_prevalence_weight

    def band(self, score: int) -> ImpactBand:
        """Report band of a score."""
        thresholds = self._scoring.band_thresholds
        if score >= thresholds.get("extremely_high", 100):
            return ImpactBand.EXTREMELY_HIGH
        if score >= thresholds.get("high", 50):
            return ImpactBand.HIGH
        if score >= thresholds.get("moderate", 20):
            return ImpactBand.MODERATE
        return ImpactBand.LOW

    def classify(
        self,
        change: Change,
        scan: Optional[CorpusScanResult] = None,
        complexity: Optional[int] = None,
    ) -> ClassifiedChange:
        """Classify one change.

        Args:
            change: The change to classify.
            scan: Corpus scan result for prevalence, if any.
            complexity: Complexity of the automated rewrite; None when no
                rewrite exists.

        Returns:
            The classified change.
        """
        severity, rule = self.severity_of(change)
        severity_weight = self._scoring.severity_weights[severity]
        prevalence_weight = self.prevalence_weight(change.name, scan)
        complexity_weight = complexity if complexity is not None else self._scoring.manual_complexity_weight
        score = severity_weight * prevalence_weight * complexity_weight

        return ClassifiedChange(
            change=change,
            severity=severity,
            impact_score=score,
            severity_weight=severity_weight,
            prevalence_weight=prevalence_weight,
            complexity_weight=complexity_weight,
            band=self.band(score),
            rule=rule,
        )

    def classify_all(
        self,
        changes: Iterable[Change],
        scan: Optional[CorpusScanResult] = None,
        complexities: Optional[Mapping[str, Optional[int]]] = None,
    ) -> list[ClassifiedChange]:
        """Classify changes, ordered by impact score then change id."""
        complexities = complexities or {}
        classified = [
            self.classify(change, scan, complexities.get(change.change_id)) for change in changes
        ]
        classified.sort(key=lambda c: (-c.impact_score, c.change_id))
        logger.debug("Classified %d changes", len(classified))
        return classified
