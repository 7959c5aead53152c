"""Transformation generation from classified changes and a rewrite catalog."""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from surfaceshift.config import GenerationConfig
from surfaceshift.core.models import (
    Change,
    ChangeKind,
    ClassifiedChange,
    DeltaKind,
    GenerationResult,
    ManualMigration,
    SignatureDelta,
    Transformation,
    Visibility,
)
from surfaceshift.errors import AmbiguousMatchError
from surfaceshift.transforms.catalog import PATH_SEPARATOR, RewriteAction, RewriteCatalog, RewriteRule
from surfaceshift.utils.logging import get_logger

logger = get_logger(__name__)

ENTITY_SEGMENT = "entity"

# Deltas that never require consumer code to change.
NO_MIGRATION_DELTAS = frozenset(
    {
        DeltaKind.PARAM_TYPE_WIDENED,
        DeltaKind.TYPE_WIDENED,
        DeltaKind.RETURN_TYPE_NARROWED,
        DeltaKind.PARAM_MADE_OPTIONAL,
        DeltaKind.ENUM_VALUE_ADDED,
        DeltaKind.DEFAULT_CHANGED,
        DeltaKind.VALUE_CHANGED,
        DeltaKind.VISIBILITY_CHANGED,
        DeltaKind.DEPRECATED,
    }
)

_ENTITY_LEVEL_KINDS = frozenset({ChangeKind.REMOVED, ChangeKind.RENAMED, ChangeKind.DEPRECATED})


@dataclass(frozen=True)
class StructuralPath:
    """One migratable aspect of a change."""

    path: str
    delta: Optional[SignatureDelta] = None


def structural_paths(change: Change) -> list[StructuralPath]:
    """Paths of a change that may need a consumer-side rewrite."""
    paths: list[StructuralPath] = []

    if change.kind in _ENTITY_LEVEL_KINDS or _made_internal(change):
        target = change.new_entity.name if change.kind == ChangeKind.RENAMED and change.new_entity else ""
        paths.append(StructuralPath(_join(change, ENTITY_SEGMENT, target)))

    for delta in change.deltas:
        if delta.kind in NO_MIGRATION_DELTAS:
            continue
        if delta.kind == DeltaKind.PARAM_ADDED and delta.optional:
            continue
        if delta.kind == DeltaKind.GENERIC_ADDED and delta.optional:
            continue
        paths.append(StructuralPath(_join(change, delta.kind.value, delta.target), delta))

    # Identical paths (e.g. two enum values of one prop) are kept once.
    unique: dict[str, StructuralPath] = {}
    for item in paths:
        key = item.path if item.delta is None or not item.delta.values else f"{item.path}={item.delta.values}"
        unique.setdefault(key, item)
    return list(unique.values())


def _join(change: Change, segment: str, target: str) -> str:
    return PATH_SEPARATOR.join([change.kind.value, segment, change.module_path, change.name, target])


def _made_internal(change: Change) -> bool:
    return any(
        d.kind == DeltaKind.VISIBILITY_CHANGED and d.new_value == Visibility.INTERNAL.value for d in change.deltas
    )


class TransformationGenerator:
    """Binds catalog rules to changes and verifies the resulting rewrites."""

    def __init__(
        self,
        catalog: RewriteCatalog,
        config: Optional[GenerationConfig] = None,
        package: str = "",
    ) -> None:
        """Initialize the generator.

        Args:
            catalog: Rewrite rules.
            config: Generation configuration.
            package: Package name substituted for ``{package}``.
        """
        self._catalog = catalog
        self._config = config or GenerationConfig()
        self._package = package

    def complexity_for(self, change: Change) -> Optional[int]:
        """Complexity of the automated rewrites covering a change.

        Runs the same matching, binding and idempotence checks as
        :meth:`generate`, so a change that would end up manual has no
        complexity here either.

        Returns:
            The highest complexity among the generated transformations, 1
            when nothing needs rewriting, or None when any path would be
            migrated manually.
        """
        try:
            generated, unmatched, failures = self._generate_for(change)
        except AmbiguousMatchError:
            return None
        if unmatched or failures:
            return None
        return max((t.complexity for t in generated), default=1)

    def generate(self, classified_changes: Iterable[ClassifiedChange]) -> GenerationResult:
        """Generate transformations.

        Unmatched paths and failed idempotence probes mark a change manual.
        An ambiguous match aborts generation for that change only, unless
        ``fail_on_ambiguity`` is set.

        Raises:
            AmbiguousMatchError: If ``fail_on_ambiguity`` is set and two rules
                tie for a path.
        """
        transformations: list[Transformation] = []
        manual: list[ManualMigration] = []
        errors: list[str] = []

        for classified in sorted(classified_changes, key=lambda c: c.change_id):
            change = classified.change
            try:
                generated, unmatched, failures = self._generate_for(change)
            except AmbiguousMatchError as e:
                if self._config.fail_on_ambiguity:
                    raise
                logger.warning("Ambiguous rules for %s: %s", change.change_id, e.message)
                errors.append(f"{change.change_id}: {e.message}")
                manual.append(
                    ManualMigration(
                        change_id=change.change_id,
                        reason=f"ambiguous rewrite rules: {', '.join(e.rule_ids)}",
                        paths=(e.path,),
                    )
                )
                continue

            transformations.extend(generated)
            if unmatched:
                manual.append(
                    ManualMigration(
                        change_id=change.change_id,
                        reason="no rewrite rule matches",
                        paths=tuple(unmatched),
                    )
                )
            for path, reason in failures:
                manual.append(ManualMigration(change_id=change.change_id, reason=reason, paths=(path,)))

        logger.debug("Generated %d transformations, %d manual entries", len(transformations), len(manual))
        return GenerationResult(
            transformations=tuple(transformations),
            manual_only=tuple(manual),
            errors=tuple(errors),
        )

    def _generate_for(self, change: Change) -> tuple[list[Transformation], list[str], list[tuple[str, str]]]:
        generated: list[Transformation] = []
        unmatched: list[str] = []
        failures: list[tuple[str, str]] = []

        for item in structural_paths(change):
            rule = self._catalog.match(item.path, change.kind)
            if rule is None:
                unmatched.append(item.path)
                continue
            if not rule.idempotent:
                failures.append((item.path, f"rule {rule.id} is declared non-idempotent"))
                continue

            binding = self.bind(rule, change, item)
            transformation = binding.transformation
            if transformation is None:
                failures.append((item.path, binding.reason))
                continue
            probe_failure = probe_idempotence(transformation, binding.probe)
            if probe_failure:
                failures.append((item.path, f"rule {rule.id}: {probe_failure}"))
                continue
            if transformation.id not in {t.id for t in generated}:
                generated.append(transformation)

        return generated, unmatched, failures

    def bind(self, rule: RewriteRule, change: Change, item: StructuralPath) -> "Binding":
        """Instantiate a rule's template for one path of a change."""
        template = rule.rewrite_template
        context = self._context(change, item.delta)
        action = template.action

        try:
            old = template.old.format(**context) if template.old is not None else _default_old(action, context)
            new = template.new.format(**context) if template.new is not None else _default_new(action, context)
        except (KeyError, IndexError) as e:
            return Binding(reason=f"rule {rule.id}: unknown placeholder {e}")

        if action == RewriteAction.REGEX:
            escaped = {key: re.escape(value) for key, value in context.items()}
            try:
                precondition = template.pattern.format(**escaped)
                rewrite = template.replacement.format(**context)
                re.compile(precondition)
            except (KeyError, IndexError, ValueError, re.error) as e:
                return Binding(reason=f"rule {rule.id}: invalid pattern ({e})")
        else:
            if not old or (action != RewriteAction.REMOVE_PROP and not new):
                return Binding(reason=f"rule {rule.id}: change carries no value for the {action.value} rewrite")
            if action != RewriteAction.REMOVE_PROP and old == new:
                return Binding(reason=f"rule {rule.id}: old and new text are identical")
            precondition, rewrite = _action_regex(action, old, new)

        delta_segment = item.delta.kind.value if item.delta is not None else ENTITY_SEGMENT
        target = item.delta.target if item.delta is not None else ""
        transformation_id = f"{rule.id}@{rule.version}:{change.change_id}:{delta_segment}"
        if target:
            transformation_id += f":{target}"

        transformation = Transformation(
            id=transformation_id,
            name=rule.description or f"{action.value} {old} -> {new}".strip(),
            version=rule.version,
            rule_id=rule.id,
            change_id=change.change_id,
            path=item.path,
            change_kinds=(change.kind,),
            precondition=precondition,
            rewrite=rewrite,
            complexity=rule.complexity,
            idempotent=rule.idempotent,
            file_globs=tuple(template.file_globs),
        )
        probe = template.example if template.example is not None else _synthetic_example(action, old)
        return Binding(transformation=transformation, probe=probe)

    def _context(self, change: Change, delta: Optional[SignatureDelta]) -> dict[str, str]:
        new_entity = change.new_entity
        return {
            "package": self._package,
            "module": change.module_path,
            "entity": change.name,
            "target": delta.target if delta is not None else "",
            "old_value": (delta.old_value or "") if delta is not None else "",
            "new_value": (delta.new_value or "") if delta is not None else "",
            "new_name": new_entity.name if new_entity is not None else "",
            "new_module": new_entity.module_path if new_entity is not None else "",
        }


@dataclass(frozen=True)
class Binding:
    """A rule bound to a change path, or the reason binding failed."""

    transformation: Optional[Transformation] = None
    probe: str = ""
    reason: str = ""


def _default_old(action: RewriteAction, context: dict[str, str]) -> str:
    if action == RewriteAction.RENAME_SYMBOL:
        return context["entity"]
    if action in (RewriteAction.RENAME_PROP, RewriteAction.REMOVE_PROP):
        return context["old_value"] or context["target"]
    if action == RewriteAction.REPLACE_IMPORT:
        return _import_path(context["package"], context["module"])
    return ""


def _default_new(action: RewriteAction, context: dict[str, str]) -> str:
    if action == RewriteAction.RENAME_SYMBOL:
        return context["new_name"]
    if action == RewriteAction.RENAME_PROP:
        return context["new_value"]
    if action == RewriteAction.REPLACE_IMPORT:
        return _import_path(context["package"], context["new_module"])
    return ""


def _import_path(package: str, module: str) -> str:
    if not package:
        return module
    if not module or module == "index":
        return package
    return f"{package}/{module}"


def _action_regex(action: RewriteAction, old: str, new: str) -> tuple[str, str]:
    """Precondition regex and replacement for a built-in action."""
    escaped = re.escape(old)
    replacement = new.replace("\\", r"\\")
    if action == RewriteAction.RENAME_SYMBOL:
        return rf"(?<![\w$.]){escaped}(?![\w$])", replacement
    if action == RewriteAction.RENAME_PROP:
        # Object keys open a line or follow `{` / `,`; the whitespace before them is kept.
        key = rf"(?:(?<=[{{,])|^)(\s*){escaped}(?=\s*\??:)"
        # A bare boolean attribute must be followed by the tag end or another attribute.
        next_attribute = r"\s+(?:\{\.\.\.|[A-Za-z_$][\w$:\-]*(?:\s*=(?![=>])|\s*/?>))"
        attribute = rf"(?<=\s){escaped}(?=\s*=(?![=>])|/?>|\s*/>|{next_attribute})"
        return rf"{key}|{attribute}", rf"\g<1>{replacement}"
    if action == RewriteAction.REMOVE_PROP:
        value = r"""(?:\s*=\s*(?:\{[^{}]*\}|"[^"]*"|'[^']*'))?"""
        return rf"\s+{escaped}{value}(?=[\s/>])", ""
    # replace_import
    return (
        rf"""(\bfrom\s+|\bimport\s*\(\s*|\brequire\s*\(\s*)(['"]){escaped}\2""",
        rf"\g<1>\g<2>{replacement}\g<2>",
    )


def _synthetic_example(action: RewriteAction, old: str) -> str:
    """A small source sample a built-in action's precondition matches."""
    if action == RewriteAction.RENAME_SYMBOL:
        return f"import {{ {old} }} from 'lib';\nconst value = {old}(props);\n"
    if action == RewriteAction.RENAME_PROP:
        return f"<Widget {old}={{true}} />\nconst options = {{ {old}: true }};\n"
    if action == RewriteAction.REMOVE_PROP:
        return f'<Widget {old}={{true}} label="x" />\n'
    return f"import {{ Widget }} from '{old}';\n"


def probe_idempotence(transformation: Transformation, sample: str) -> Optional[str]:
    """Check that a transformation is a no-op on its own output.

    Returns:
        None when the probe passes, otherwise the reason it failed.
    """
    if not transformation.matches(sample):
        return "precondition does not match its probe example"
    once = transformation.apply(sample)
    if transformation.matches(once):
        return "precondition still matches after rewriting"
    if transformation.apply(once) != once:
        return "second application changed the source"
    return None


def generate(
    classified_changes: Iterable[ClassifiedChange],
    catalog: RewriteCatalog,
    config: Optional[GenerationConfig] = None,
    package: str = "",
) -> GenerationResult:
    """Convenience function to generate transformations."""
    return TransformationGenerator(catalog, config, package).generate(classified_changes)
