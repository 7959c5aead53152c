"""Structural diff of two API models.

Entities are matched by ``(module_path, name)``. Every matched entity yields
at most one Change whose deltas aggregate all of its atomic differences.
Renames are only reported when an explicit RenameHint names them.
"""

from typing import Iterable, Optional

from surfaceshift.analysis.shapes import (
    ShapeRelation,
    compare_shapes,
    is_function,
    literal_values,
    make_union,
    render_parameter,
    render_shape,
    union_members,
)
from surfaceshift.core.diagnostics import Diagnostics
from surfaceshift.core.models import (
    NON_STRUCTURAL_DELTAS,
    APIEntity,
    APIModel,
    Change,
    ChangeKind,
    DeltaKind,
    EntityKind,
    ObjectShape,
    Parameter,
    PrimitiveShape,
    RenameHint,
    SignatureDelta,
    SignatureShape,
)
from surfaceshift.utils.logging import get_logger

logger = get_logger(__name__)

_PARAM_TYPE_DELTAS = {
    ShapeRelation.NARROWED: DeltaKind.PARAM_TYPE_NARROWED,
    ShapeRelation.WIDENED: DeltaKind.PARAM_TYPE_WIDENED,
    ShapeRelation.INCOMPATIBLE: DeltaKind.PARAM_TYPE_CHANGED,
}

_RETURN_TYPE_DELTAS = {
    ShapeRelation.NARROWED: DeltaKind.RETURN_TYPE_NARROWED,
    ShapeRelation.WIDENED: DeltaKind.RETURN_TYPE_WIDENED,
    ShapeRelation.INCOMPATIBLE: DeltaKind.RETURN_TYPE_CHANGED,
}

_TYPE_DELTAS = {
    ShapeRelation.NARROWED: DeltaKind.TYPE_NARROWED,
    ShapeRelation.WIDENED: DeltaKind.TYPE_WIDENED,
    ShapeRelation.INCOMPATIBLE: DeltaKind.TYPE_CHANGED,
}


class VersionDiffer:
    """Computes the changes between two API models."""

    def __init__(self, diagnostics: Optional[Diagnostics] = None) -> None:
        """Initialize the differ.

        Args:
            diagnostics: Accumulator for warnings about unusable rename hints.
        """
        self._diagnostics = diagnostics or Diagnostics()

    def diff(
        self,
        old: APIModel,
        new: APIModel,
        rename_hints: Iterable[RenameHint] = (),
    ) -> list[Change]:
        """Diff two models.

        Args:
            old: Model of the version being upgraded from.
            new: Model of the version being upgraded to.
            rename_hints: Explicit entity and member renames.

        Returns:
            Changes ordered by module path and name.
        """
        old_index = old.index()
        new_index = new.index()
        hints = list(rename_hints)

        entity_renames = self._entity_renames(hints, old_index, new_index)
        member_renames = _member_renames(hints)
        renamed_new = set(entity_renames.values())

        changes: list[Change] = []

        for key, old_entity in old_index.items():
            if key in entity_renames:
                new_entity = new_index[entity_renames[key]]
                deltas = compare_entities(old_entity, new_entity, member_renames.get(key, {}))
                changes.append(
                    Change(
                        kind=ChangeKind.RENAMED,
                        module_path=old_entity.module_path,
                        name=old_entity.name,
                        old_entity=old_entity,
                        new_entity=new_entity,
                        deltas=tuple(deltas),
                    )
                )
                continue

            new_entity = new_index.get(key)
            if new_entity is None:
                changes.append(
                    Change(
                        kind=ChangeKind.REMOVED,
                        module_path=old_entity.module_path,
                        name=old_entity.name,
                        old_entity=old_entity,
                    )
                )
                continue

            change = self._matched_change(old_entity, new_entity, member_renames.get(key, {}))
            if change is not None:
                changes.append(change)

        for key, new_entity in new_index.items():
            if key in old_index or key in renamed_new:
                continue
            changes.append(
                Change(
                    kind=ChangeKind.ADDED,
                    module_path=new_entity.module_path,
                    name=new_entity.name,
                    new_entity=new_entity,
                )
            )

        changes.sort(key=lambda c: (c.module_path, c.name, c.kind.value))
        logger.debug("Diffed %s -> %s: %d changes", old.version, new.version, len(changes))
        return changes

    def _matched_change(
        self,
        old_entity: APIEntity,
        new_entity: APIEntity,
        member_renames: dict[str, str],
    ) -> Optional[Change]:
        deltas = compare_entities(old_entity, new_entity, member_renames)
        kinds = {delta.kind for delta in deltas}

        if kinds - NON_STRUCTURAL_DELTAS:
            kind = ChangeKind.SIGNATURE_CHANGED
        elif DeltaKind.VISIBILITY_CHANGED in kinds:
            kind = ChangeKind.VISIBILITY_CHANGED
        elif kinds & {DeltaKind.DEFAULT_CHANGED, DeltaKind.VALUE_CHANGED}:
            kind = ChangeKind.DEFAULT_CHANGED
        elif DeltaKind.DEPRECATED in kinds or old_entity.deprecated:
            kind = ChangeKind.DEPRECATED
        else:
            return None

        return Change(
            kind=kind,
            module_path=old_entity.module_path,
            name=old_entity.name,
            old_entity=old_entity,
            new_entity=new_entity,
            deltas=tuple(deltas),
        )

    def _entity_renames(
        self,
        hints: list[RenameHint],
        old_index: dict[tuple[str, str], APIEntity],
        new_index: dict[tuple[str, str], APIEntity],
    ) -> dict[tuple[str, str], tuple[str, str]]:
        renames: dict[tuple[str, str], tuple[str, str]] = {}
        targets: set[tuple[str, str]] = set()

        for hint in hints:
            if hint.member_of is not None:
                continue
            old_key = (hint.module_path, hint.old_name)
            new_key = (hint.new_module_path or hint.module_path, hint.new_name)
            label = f"{hint.module_path}:{hint.old_name} -> {new_key[0]}:{new_key[1]}"

            if old_key not in old_index:
                self._diagnostics.warn("diff", f"rename hint {label}: old entity not found")
            elif new_key not in new_index:
                self._diagnostics.warn("diff", f"rename hint {label}: new entity not found")
            elif old_key in new_index:
                self._diagnostics.warn("diff", f"rename hint {label}: old entity still exported")
            elif new_key in old_index:
                self._diagnostics.warn("diff", f"rename hint {label}: new name already existed")
            elif old_key in renames or new_key in targets:
                self._diagnostics.warn("diff", f"rename hint {label}: conflicts with an earlier hint")
            else:
                renames[old_key] = new_key
                targets.add(new_key)

        return renames


def diff(
    old: APIModel,
    new: APIModel,
    rename_hints: Iterable[RenameHint] = (),
    diagnostics: Optional[Diagnostics] = None,
) -> list[Change]:
    """Convenience function to diff two API models."""
    return VersionDiffer(diagnostics).diff(old, new, rename_hints)


def _member_renames(hints: list[RenameHint]) -> dict[tuple[str, str], dict[str, str]]:
    renames: dict[tuple[str, str], dict[str, str]] = {}
    for hint in hints:
        if hint.member_of is not None:
            renames.setdefault((hint.module_path, hint.member_of), {})[hint.old_name] = hint.new_name
    return renames


def compare_entities(
    old: APIEntity,
    new: APIEntity,
    member_renames: Optional[dict[str, str]] = None,
) -> list[SignatureDelta]:
    """All atomic differences between two versions of one entity."""
    member_renames = member_renames or {}
    deltas: list[SignatureDelta] = []

    if old.kind != new.kind:
        # A kind change replaces the whole signature; no member-level diff.
        deltas.append(
            SignatureDelta(
                kind=DeltaKind.KIND_CHANGED,
                target=old.name,
                old_value=old.kind.value,
                new_value=new.kind.value,
                values=(render_signature(old), render_signature(new)),
            )
        )
    else:
        old_sig, new_sig = old.signature, new.signature
        deltas.extend(
            diff_parameters(
                old_sig.parameters,
                new_sig.parameters,
                ordered=old.kind == EntityKind.FUNCTION,
                renames=member_renames,
            )
        )
        deltas.extend(_diff_return_type(old_sig.return_type, new_sig.return_type))
        deltas.extend(_diff_generics(old, new))
        if not (isinstance(old_sig.type_shape, ObjectShape) and isinstance(new_sig.type_shape, ObjectShape)):
            deltas.extend(_diff_type_shape(old_sig.type_shape, new_sig.type_shape, old.name))
        if old_sig.value != new_sig.value:
            deltas.append(
                SignatureDelta(
                    kind=DeltaKind.VALUE_CHANGED,
                    target=old.name,
                    old_value=old_sig.value,
                    new_value=new_sig.value,
                )
            )

    if old.visibility != new.visibility:
        deltas.append(
            SignatureDelta(
                kind=DeltaKind.VISIBILITY_CHANGED,
                target=old.name,
                old_value=old.visibility.value,
                new_value=new.visibility.value,
            )
        )
    if new.deprecated and not old.deprecated:
        deltas.append(
            SignatureDelta(
                kind=DeltaKind.DEPRECATED,
                target=old.name,
                new_value=new.deprecation_message,
            )
        )

    return deltas


def diff_parameters(
    old_params: tuple[Parameter, ...],
    new_params: tuple[Parameter, ...],
    ordered: bool = True,
    renames: Optional[dict[str, str]] = None,
) -> list[SignatureDelta]:
    """Diff two parameter (or property) lists by name.

    Args:
        old_params: Parameters of the old signature.
        new_params: Parameters of the new signature.
        ordered: Whether positions matter (function parameters) or not
            (component props and object members).
        renames: Explicit member renames, old name to new name.

    Returns:
        Deltas in old-parameter order, then added parameters.
    """
    renames = renames or {}
    old_by_name = {p.name: p for p in old_params}
    new_by_name = {p.name: p for p in new_params}
    deltas: list[SignatureDelta] = []

    pairs: dict[str, str] = {}
    for old_name, new_name in renames.items():
        if (
            old_name in old_by_name
            and new_name in new_by_name
            and old_name not in new_by_name
            and new_name not in old_by_name
        ):
            pairs[old_name] = new_name
    for name in old_by_name:
        if name in new_by_name:
            pairs.setdefault(name, name)
    paired_new = set(pairs.values())

    for param in old_params:
        new_name = pairs.get(param.name)
        if new_name is None:
            deltas.append(
                SignatureDelta(
                    kind=DeltaKind.PARAM_REMOVED,
                    target=param.name,
                    old_value=render_shape(param.shape),
                    optional=not param.is_required,
                    has_default=param.default is not None,
                )
            )
            continue
        if new_name != param.name:
            deltas.append(
                SignatureDelta(
                    kind=DeltaKind.PARAM_RENAMED,
                    target=param.name,
                    old_value=param.name,
                    new_value=new_name,
                )
            )
        deltas.extend(_diff_parameter(param, new_by_name[new_name]))

    for param in new_params:
        if param.name in paired_new:
            continue
        deltas.append(
            SignatureDelta(
                kind=DeltaKind.PARAM_ADDED,
                target=param.name,
                new_value=render_shape(param.shape),
                optional=not param.is_required,
                has_default=param.default is not None,
            )
        )

    if ordered:
        old_order = [pairs[p.name] for p in old_params if p.name in pairs]
        new_order = [p.name for p in new_params if p.name in paired_new]
        if old_order != new_order:
            deltas.append(
                SignatureDelta(
                    kind=DeltaKind.PARAM_REORDERED,
                    old_value=", ".join(old_order),
                    new_value=", ".join(new_order),
                    values=tuple(new_order),
                )
            )

    return deltas


def _diff_parameter(old: Parameter, new: Parameter) -> list[SignatureDelta]:
    deltas: list[SignatureDelta] = []
    target = old.name

    if not old.is_required and new.is_required:
        deltas.append(SignatureDelta(kind=DeltaKind.PARAM_MADE_REQUIRED, target=target, optional=False))
    elif old.is_required and not new.is_required:
        deltas.append(
            SignatureDelta(
                kind=DeltaKind.PARAM_MADE_OPTIONAL,
                target=target,
                optional=True,
                has_default=new.default is not None,
            )
        )

    old_shape, new_shape = _effective_shape(old), _effective_shape(new)
    if is_function(old_shape) or is_function(new_shape):
        if compare_shapes(old_shape, new_shape) != ShapeRelation.EQUAL:
            deltas.append(
                SignatureDelta(
                    kind=DeltaKind.CALLBACK_CHANGED,
                    target=target,
                    old_value=render_shape(old_shape),
                    new_value=render_shape(new_shape),
                )
            )
    else:
        deltas.extend(_diff_shapes(old_shape, new_shape, target, _PARAM_TYPE_DELTAS))

    if old.default != new.default:
        deltas.append(
            SignatureDelta(
                kind=DeltaKind.DEFAULT_CHANGED,
                target=target,
                old_value=old.default,
                new_value=new.default,
                has_default=new.default is not None,
            )
        )
    return deltas


def _diff_shapes(
    old: Optional[SignatureShape],
    new: Optional[SignatureShape],
    target: str,
    relation_deltas: dict[ShapeRelation, DeltaKind],
) -> list[SignatureDelta]:
    """Per-value deltas for closed enumerations, one relation delta otherwise."""
    old_values = literal_values(old)
    new_values = literal_values(new)
    if old_values is not None and new_values is not None:
        deltas = [
            SignatureDelta(kind=DeltaKind.ENUM_VALUE_REMOVED, target=target, old_value=value, values=(value,))
            for value in old_values
            if value not in new_values
        ]
        deltas.extend(
            SignatureDelta(kind=DeltaKind.ENUM_VALUE_ADDED, target=target, new_value=value, values=(value,))
            for value in new_values
            if value not in old_values
        )
        return deltas

    relation = compare_shapes(old, new)
    if relation == ShapeRelation.EQUAL:
        return []
    return [
        SignatureDelta(
            kind=relation_deltas[relation],
            target=target,
            old_value=render_shape(old),
            new_value=render_shape(new),
        )
    ]


def _diff_return_type(
    old: Optional[SignatureShape],
    new: Optional[SignatureShape],
) -> list[SignatureDelta]:
    if old is None and new is None:
        return []
    relation = compare_shapes(old, new)
    if relation == ShapeRelation.EQUAL:
        return []
    return [
        SignatureDelta(
            kind=_RETURN_TYPE_DELTAS[relation],
            target="return",
            old_value=render_shape(old),
            new_value=render_shape(new),
        )
    ]


def _diff_generics(old: APIEntity, new: APIEntity) -> list[SignatureDelta]:
    old_names = [g.name for g in old.signature.generic_parameters]
    new_generics = {g.name: g for g in new.signature.generic_parameters}
    deltas = [
        SignatureDelta(kind=DeltaKind.GENERIC_REMOVED, target=name)
        for name in old_names
        if name not in new_generics
    ]
    deltas.extend(
        SignatureDelta(
            kind=DeltaKind.GENERIC_ADDED,
            target=name,
            optional=generic.default is not None,
        )
        for name, generic in new_generics.items()
        if name not in old_names
    )
    return deltas


def _diff_type_shape(
    old: Optional[SignatureShape],
    new: Optional[SignatureShape],
    name: str,
) -> list[SignatureDelta]:
    if old is None and new is None:
        return []
    return _diff_shapes(old, new, name, _TYPE_DELTAS)


def _effective_shape(param: Parameter) -> SignatureShape:
    """Shape of a parameter without the ``undefined`` implied by ``?``."""
    if not param.optional:
        return param.shape
    members = [
        m
        for m in union_members(param.shape)
        if not (isinstance(m, PrimitiveShape) and m.name == "undefined" and m.literal is None)
    ]
    if not members:
        return param.shape
    return make_union(members)


def render_signature(entity: APIEntity) -> str:
    """Compact text form of an entity's signature."""
    signature = entity.signature
    if entity.kind in (EntityKind.FUNCTION, EntityKind.COMPONENT_DEFINITION):
        params = ", ".join(render_parameter(p) for p in signature.parameters)
        rendered = f"({params})"
        if signature.return_type is not None:
            rendered += f" => {render_shape(signature.return_type)}"
        return rendered
    if signature.type_shape is not None:
        rendered = render_shape(signature.type_shape)
        if signature.value is not None:
            rendered += f" = {signature.value}"
        return rendered
    return signature.value or ""
