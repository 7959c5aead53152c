"""Phased migration planning."""

from typing import Iterable, Optional

from surfaceshift.core.models import (
    ChangeKind,
    ClassifiedChange,
    Conflict,
    GenerationResult,
    ManualMigration,
    MigrationPlan,
    Phase,
    PhaseName,
    PlanEntry,
    Severity,
)
from surfaceshift.utils.logging import get_logger

logger = get_logger(__name__)


def entry_sort_key(entry: PlanEntry) -> tuple[int, int, str]:
    """Symbol renames first, then impact score descending, then change id."""
    change = entry.classified.change
    return (
        0 if change.kind == ChangeKind.RENAMED else 1,
        -entry.classified.impact_score,
        entry.classified.change_id,
    )


class MigrationPlanner:
    """Orders classified changes into Preparation, LowRisk, HighRisk and Validation.

    Preparation carries the unresolved dependency conflicts. A change lands
    in LowRisk when every path it has is covered by an automated idempotent
    transformation and its severity is major or milder; everything else
    goes to HighRisk. Validation lists the transformations whose
    preconditions must no longer match once the plan has been applied.
    """

    def __init__(self, low_risk_ceiling: Severity = Severity.MAJOR) -> None:
        """Initialize the planner.

        Args:
            low_risk_ceiling: Most severe severity still allowed in LowRisk.
        """
        self._low_risk_ceiling = low_risk_ceiling

    def build(
        self,
        classified: Iterable[ClassifiedChange],
        generation: Optional[GenerationResult] = None,
        conflicts: Iterable[Conflict] = (),
        package: str = "",
        from_version: str = "",
        to_version: str = "",
        warnings: Iterable[str] = (),
    ) -> MigrationPlan:
        """Build a migration plan.

        Args:
            classified: Classified changes.
            generation: Generated transformations and manual entries.
            conflicts: Dependency conflicts to clear before migrating.
            package: Package being upgraded.
            from_version: Current version.
            to_version: Target version.
            warnings: Warnings to carry into the plan.

        Returns:
            The migration plan.
        """
        generation = generation or GenerationResult()
        low_risk: list[PlanEntry] = []
        high_risk: list[PlanEntry] = []

        for item in classified:
            transformation_ids = tuple(t.id for t in generation.for_change(item.change_id))
            automated = not generation.is_manual(item.change_id)
            entry = PlanEntry(classified=item, transformation_ids=transformation_ids, automated=automated)
            if automated and item.severity.at_most(self._low_risk_ceiling):
                low_risk.append(entry)
            else:
                high_risk.append(entry)

        conflicts = tuple(sorted(conflicts, key=lambda c: c.package))
        plan = MigrationPlan(
            package=package,
            from_version=from_version,
            to_version=to_version,
            phases=_phases(conflicts, low_risk, high_risk),
            manual_only=tuple(sorted(generation.manual_only, key=lambda m: (m.change_id, m.paths))),
            warnings=tuple(warnings),
        )
        logger.debug(
            "Planned %d low-risk and %d high-risk changes, %d conflicts",
            len(low_risk),
            len(high_risk),
            len(conflicts),
        )
        return plan

    def demote(self, plan: MigrationPlan, failed_transformation_ids: Iterable[str]) -> MigrationPlan:
        """Move changes whose transformations failed to HighRisk and manual.

        Args:
            plan: Plan to revise.
            failed_transformation_ids: Transformations whose precondition no
                longer matched at apply time.

        Returns:
            A new plan; the input is not modified.
        """
        failed = set(failed_transformation_ids)
        if not failed:
            return plan

        low_risk: list[PlanEntry] = []
        high_risk = list(plan.phase(PhaseName.HIGH_RISK).entries)
        manual = list(plan.manual_only)

        for phase_name in (PhaseName.LOW_RISK, PhaseName.HIGH_RISK):
            for entry in plan.phase(phase_name).entries:
                broken = sorted(failed.intersection(entry.transformation_ids))
                if not broken:
                    if phase_name == PhaseName.LOW_RISK:
                        low_risk.append(entry)
                    continue
                manual.append(
                    ManualMigration(
                        change_id=entry.classified.change_id,
                        reason=f"transformation precondition failed: {', '.join(broken)}",
                    )
                )
                demoted = entry.model_copy(update={"automated": False})
                if phase_name == PhaseName.LOW_RISK:
                    high_risk.append(demoted)
                else:
                    high_risk[high_risk.index(entry)] = demoted

        logger.info("Demoted changes for %d failed transformations", len(failed))
        return plan.model_copy(
            update={
                "phases": _phases(
                    plan.phase(PhaseName.PREPARATION).conflicts,
                    low_risk,
                    high_risk,
                    tuple(v for v in plan.phase(PhaseName.VALIDATION).verifications if v not in failed),
                ),
                "manual_only": tuple(sorted(manual, key=lambda m: (m.change_id, m.paths))),
            }
        )


def build_plan(
    classified: Iterable[ClassifiedChange],
    generation: Optional[GenerationResult] = None,
    conflicts: Iterable[Conflict] = (),
    **kwargs,
) -> MigrationPlan:
    """Convenience function to build a migration plan."""
    return MigrationPlanner().build(classified, generation, conflicts, **kwargs)


def _phases(
    conflicts: tuple[Conflict, ...],
    low_risk: list[PlanEntry],
    high_risk: list[PlanEntry],
    verifications: Optional[tuple[str, ...]] = None,
) -> tuple[Phase, ...]:
    low_risk = sorted(low_risk, key=entry_sort_key)
    high_risk = sorted(high_risk, key=entry_sort_key)
    if verifications is None:
        verifications = tuple(
            transformation_id for entry in low_risk + high_risk for transformation_id in entry.transformation_ids
        )
    return (
        Phase(name=PhaseName.PREPARATION, conflicts=conflicts),
        Phase(name=PhaseName.LOW_RISK, entries=tuple(low_risk)),
        Phase(name=PhaseName.HIGH_RISK, entries=tuple(high_risk)),
        Phase(name=PhaseName.VALIDATION, verifications=verifications),
    )
