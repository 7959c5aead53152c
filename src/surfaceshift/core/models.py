"""Core data models for surfaceshift."""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from surfaceshift.errors import TransformationPreconditionFailed


class _Frozen(BaseModel):
    """Immutable base model."""

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Signature shapes
# ---------------------------------------------------------------------------


class PrimitiveShape(_Frozen):
    """A primitive type, optionally narrowed to a single literal value."""

    shape: Literal["primitive"] = "primitive"
    name: str = Field(..., description="Primitive name (string, number, boolean, any, ...)")
    literal: str | None = Field(default=None, description="Literal value for literal types")


class UnionShape(_Frozen):
    """A union of member shapes (closed enumerations are unions of literals)."""

    shape: Literal["union"] = "union"
    members: tuple[SignatureShape, ...] = ()


class ObjectShape(_Frozen):
    """An object type with named properties."""

    shape: Literal["object"] = "object"
    properties: tuple[Parameter, ...] = ()


class FunctionShape(_Frozen):
    """A callable type."""

    shape: Literal["function"] = "function"
    parameters: tuple[Parameter, ...] = ()
    return_type: SignatureShape | None = None


class ArrayShape(_Frozen):
    """An array of elements of one shape."""

    shape: Literal["array"] = "array"
    element: SignatureShape


class UnresolvedShape(_Frozen):
    """An opaque shape compared only by its identity token."""

    shape: Literal["unresolved"] = "unresolved"
    token: str


SignatureShape = Annotated[
    Union[PrimitiveShape, UnionShape, ObjectShape, FunctionShape, ArrayShape, UnresolvedShape],
    Field(discriminator="shape"),
]


class Parameter(_Frozen):
    """A function parameter or a component/object property."""

    name: str
    shape: SignatureShape
    optional: bool = False
    default: str | None = None

    @property
    def is_required(self) -> bool:
        """Whether callers must supply this parameter."""
        return not self.optional and self.default is None


class GenericParameter(_Frozen):
    """A generic type parameter."""

    name: str
    constraint: SignatureShape | None = None
    default: SignatureShape | None = None


class Signature(_Frozen):
    """Structured signature of an exported entity."""

    parameters: tuple[Parameter, ...] = ()
    return_type: SignatureShape | None = None
    generic_parameters: tuple[GenericParameter, ...] = ()
    type_shape: SignatureShape | None = Field(
        default=None,
        description="Aliased shape of a type, or the declared type of a constant",
    )
    value: str | None = Field(default=None, description="Literal value of a constant or token")


# ---------------------------------------------------------------------------
# API model
# ---------------------------------------------------------------------------


class EntityKind(str, Enum):
    """Kinds of exported entities."""

    FUNCTION = "function"
    TYPE = "type"
    CONSTANT = "constant"
    STYLE_TOKEN = "style_token"
    COMPONENT_DEFINITION = "component_definition"


class Visibility(str, Enum):
    """Entity visibility."""

    PUBLIC = "public"
    INTERNAL = "internal"


class APIEntity(_Frozen):
    """One exported symbol."""

    name: str
    kind: EntityKind
    signature: Signature = Field(default_factory=Signature)
    module_path: str
    visibility: Visibility = Visibility.PUBLIC
    deprecated: bool = False
    deprecation_message: str | None = None
    source_file: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the entity within a model."""
        return (self.module_path, self.name)

    @property
    def qualified_name(self) -> str:
        """Module-qualified name."""
        return f"{self.module_path}:{self.name}"


class APIModel(_Frozen):
    """Normalized public surface of one package version."""

    version: str
    modules: dict[str, tuple[APIEntity, ...]] = Field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_unique_entities(self) -> APIModel:
        seen: set[tuple[str, str]] = set()
        for module_path, entities in self.modules.items():
            for entity in entities:
                if entity.module_path != module_path:
                    raise ValueError(
                        f"Entity {entity.name} declares module {entity.module_path} "
                        f"but is stored under {module_path}"
                    )
                if entity.key in seen:
                    raise ValueError(f"Duplicate entity {entity.qualified_name}")
                seen.add(entity.key)
        return self

    def entities(self) -> Iterator[APIEntity]:
        """Iterate over all entities ordered by module path."""
        for module_path in sorted(self.modules):
            yield from self.modules[module_path]

    def index(self) -> dict[tuple[str, str], APIEntity]:
        """Map (module path, name) to entity."""
        return {entity.key: entity for entity in self.entities()}

    def get(self, module_path: str, name: str) -> APIEntity | None:
        """Look up a single entity."""
        for entity in self.modules.get(module_path, ()):
            if entity.name == name:
                return entity
        return None

    @property
    def entity_count(self) -> int:
        """Total number of entities."""
        return sum(len(entities) for entities in self.modules.values())


class RenameHint(_Frozen):
    """Explicit rename of an entity or of a member of an entity."""

    module_path: str
    old_name: str
    new_name: str
    new_module_path: str | None = None
    member_of: str | None = Field(
        default=None,
        description="Entity name when the rename applies to one of its parameters/props",
    )


# ---------------------------------------------------------------------------
# Changes
# ---------------------------------------------------------------------------


class ChangeKind(str, Enum):
    """Kinds of changes emitted by the differ."""

    REMOVED = "removed"
    ADDED = "added"
    RENAMED = "renamed"
    SIGNATURE_CHANGED = "signature_changed"
    VISIBILITY_CHANGED = "visibility_changed"
    DEFAULT_CHANGED = "default_changed"
    DEPRECATED = "deprecated"


class DeltaKind(str, Enum):
    """Atomic structural deltas between two signatures."""

    PARAM_REMOVED = "param_removed"
    PARAM_ADDED = "param_added"
    PARAM_RENAMED = "param_renamed"
    PARAM_REORDERED = "param_reordered"
    PARAM_MADE_REQUIRED = "param_made_required"
    PARAM_MADE_OPTIONAL = "param_made_optional"
    PARAM_TYPE_NARROWED = "param_type_narrowed"
    PARAM_TYPE_WIDENED = "param_type_widened"
    PARAM_TYPE_CHANGED = "param_type_changed"
    CALLBACK_CHANGED = "callback_changed"
    DEFAULT_CHANGED = "default_changed"
    RETURN_TYPE_NARROWED = "return_type_narrowed"
    RETURN_TYPE_WIDENED = "return_type_widened"
    RETURN_TYPE_CHANGED = "return_type_changed"
    ENUM_VALUE_REMOVED = "enum_value_removed"
    ENUM_VALUE_ADDED = "enum_value_added"
    TYPE_NARROWED = "type_narrowed"
    TYPE_WIDENED = "type_widened"
    TYPE_CHANGED = "type_changed"
    GENERIC_REMOVED = "generic_removed"
    GENERIC_ADDED = "generic_added"
    VALUE_CHANGED = "value_changed"
    VISIBILITY_CHANGED = "visibility_changed"
    DEPRECATED = "deprecated"
    KIND_CHANGED = "kind_changed"


# Deltas that do not alter the structural signature.
NON_STRUCTURAL_DELTAS = frozenset(
    {
        DeltaKind.DEFAULT_CHANGED,
        DeltaKind.VALUE_CHANGED,
        DeltaKind.VISIBILITY_CHANGED,
        DeltaKind.DEPRECATED,
    }
)


class SignatureDelta(_Frozen):
    """One atomic change inside a signature."""

    kind: DeltaKind
    target: str = Field(default="", description="Parameter, value or aspect the delta applies to")
    old_value: str | None = None
    new_value: str | None = None
    values: tuple[str, ...] = ()
    optional: bool | None = None
    has_default: bool | None = None


class Change(_Frozen):
    """A raw change between two API models."""

    kind: ChangeKind
    module_path: str
    name: str
    old_entity: APIEntity | None = None
    new_entity: APIEntity | None = None
    deltas: tuple[SignatureDelta, ...] = ()

    @model_validator(mode="after")
    def _check_consistency(self) -> Change:
        if self.kind == ChangeKind.SIGNATURE_CHANGED and not self.deltas:
            raise ValueError("signature_changed requires at least one delta")
        if self.kind != ChangeKind.ADDED and self.old_entity is None:
            raise ValueError(f"{self.kind.value} change requires the old entity")
        if self.kind != ChangeKind.REMOVED and self.new_entity is None:
            raise ValueError(f"{self.kind.value} change requires the new entity")
        return self

    @property
    def change_id(self) -> str:
        """Deterministic identifier."""
        change_id = f"{self.kind.value}:{self.module_path}:{self.name}"
        if self.kind == ChangeKind.RENAMED and self.new_entity is not None:
            change_id += f"->{self.new_entity.module_path}:{self.new_entity.name}"
        return change_id

    @property
    def entity_keys(self) -> set[tuple[str, str]]:
        """(module path, name) pairs this change covers in either model."""
        keys: set[tuple[str, str]] = set()
        if self.old_entity is not None:
            keys.add(self.old_entity.key)
        if self.new_entity is not None:
            keys.add(self.new_entity.key)
        return keys

    def has_delta(self, *kinds: DeltaKind) -> bool:
        """Whether any delta has one of the given kinds."""
        return any(delta.kind in kinds for delta in self.deltas)


class Severity(str, Enum):
    """Severity tiers, most severe first."""

    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    DEPRECATION = "deprecation"

    @property
    def rank(self) -> int:
        """0 for critical up to 3 for deprecation."""
        return list(Severity).index(self)

    def at_most(self, other: Severity) -> bool:
        """Whether this severity is no worse than ``other``."""
        return self.rank >= other.rank


class ImpactBand(str, Enum):
    """Report-ordering bands for impact scores."""

    EXTREMELY_HIGH = "extremely_high"
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"


class ClassifiedChange(_Frozen):
    """A change with severity and impact score."""

    change: Change
    severity: Severity
    impact_score: int = Field(..., ge=0)
    severity_weight: int
    prevalence_weight: int
    complexity_weight: int
    band: ImpactBand
    rule: str = Field(..., description="Rule of the severity table that matched")

    @property
    def change_id(self) -> str:
        """Identifier of the underlying change."""
        return self.change.change_id


# ---------------------------------------------------------------------------
# Dependency graph
# ---------------------------------------------------------------------------


class DependencyType(str, Enum):
    """Kinds of requires edges."""

    PROD = "prod"
    DEV = "dev"
    PEER = "peer"


class PackageNode(_Frozen):
    """A (package, version) pair."""

    name: str
    version: str

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


class DependencyEdge(_Frozen):
    """``dependent`` requires ``package`` within ``range``."""

    dependent: PackageNode
    package: str
    range: str
    dependency_type: DependencyType = DependencyType.PROD


class DependencyGraph(_Frozen):
    """Installed dependency graph of a consumer."""

    nodes: tuple[PackageNode, ...] = ()
    edges: tuple[DependencyEdge, ...] = ()
    roots: tuple[PackageNode, ...] = ()

    def versions_of(self, package: str) -> list[str]:
        """Versions of ``package`` present in the graph."""
        return [node.version for node in self.nodes if node.name == package]

    def edges_from(self, node: PackageNode) -> list[DependencyEdge]:
        """Requires edges declared by ``node``."""
        return [edge for edge in self.edges if edge.dependent == node]

    def root_nodes(self) -> list[PackageNode]:
        """Explicit roots, or nodes no other node requires."""
        if self.roots:
            return list(self.roots)
        required = {edge.package for edge in self.edges}
        return [node for node in self.nodes if node.name not in required]


class ConflictReason(str, Enum):
    """Why a package could not be resolved."""

    DISJOINT_RANGES = "disjoint_ranges"
    NO_MATCHING_VERSION = "no_matching_version"


class ResolutionStrategy(str, Enum):
    """Strategies proposed for a conflict."""

    OVERRIDE = "override"
    ALIAS = "alias"
    UPGRADE_PATH = "upgrade_path"


class ConstraintSource(_Frozen):
    """A range imposed on a package and the chain that introduced it."""

    range: str
    dependent: PackageNode
    chain: tuple[str, ...] = ()


class Resolution(_Frozen):
    """A proposed, unapplied way to resolve a conflict."""

    strategy: ResolutionStrategy
    description: str
    version: str | None = None
    aliases: tuple[str, ...] = ()
    dependent: str | None = None


class Conflict(_Frozen):
    """Requirements on one package no single version satisfies."""

    package: str
    reason: ConflictReason
    sources: tuple[ConstraintSource, ...]
    candidates: tuple[str, ...] = ()
    resolutions: tuple[Resolution, ...] = ()

    @property
    def ranges(self) -> list[str]:
        """Competing ranges."""
        return [source.range for source in self.sources]


class ResolutionResult(_Frozen):
    """Resolver output; a proposal, never applied to the graph."""

    selected_versions: dict[str, str | None] = Field(default_factory=dict)
    conflicts: tuple[Conflict, ...] = ()
    warnings: tuple[str, ...] = ()

    def conflict_for(self, package: str) -> Conflict | None:
        """Conflict reported for ``package``, if any."""
        for conflict in self.conflicts:
            if conflict.package == package:
                return conflict
        return None


# ---------------------------------------------------------------------------
# Transformations
# ---------------------------------------------------------------------------


class Transformation(_Frozen):
    """A rewrite rule bound to one change path."""

    id: str
    name: str
    version: str = "1"
    rule_id: str
    change_id: str
    path: str = Field(..., description="Structural path the rule matched")
    change_kinds: tuple[ChangeKind, ...] = ()
    precondition: str = Field(..., description="Regex that must match before rewriting")
    rewrite: str = Field(..., description="Replacement template for the precondition")
    complexity: int = Field(default=1, ge=1, le=3)
    idempotent: bool = True
    file_globs: tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        """Whether the precondition matches ``text``."""
        return re.search(self.precondition, text, flags=re.MULTILINE) is not None

    def apply(self, text: str) -> str:
        """Rewrite ``text``; a no-op when the precondition does not match."""
        if not self.matches(text):
            return text
        return re.sub(self.precondition, self.rewrite, text, flags=re.MULTILINE)

    def apply_strict(self, text: str, file_path: str = "") -> str:
        """Rewrite ``text`` or raise when the precondition does not match."""
        if not self.matches(text):
            raise TransformationPreconditionFailed(self.id, file_path)
        return re.sub(self.precondition, self.rewrite, text, flags=re.MULTILINE)


class ManualMigration(_Frozen):
    """A change (or part of one) with no automated rewrite."""

    change_id: str
    reason: str
    paths: tuple[str, ...] = ()


class GenerationResult(_Frozen):
    """Transformation generator output."""

    transformations: tuple[Transformation, ...] = ()
    manual_only: tuple[ManualMigration, ...] = ()
    errors: tuple[str, ...] = ()

    def for_change(self, change_id: str) -> list[Transformation]:
        """Transformations generated for ``change_id``."""
        return [t for t in self.transformations if t.change_id == change_id]

    def is_manual(self, change_id: str) -> bool:
        """Whether ``change_id`` needs manual migration."""
        return any(m.change_id == change_id for m in self.manual_only)


# ---------------------------------------------------------------------------
# Migration plan
# ---------------------------------------------------------------------------


class PhaseName(str, Enum):
    """Plan phases in execution order."""

    PREPARATION = "preparation"
    LOW_RISK = "low_risk"
    HIGH_RISK = "high_risk"
    VALIDATION = "validation"

    def next(self) -> PhaseName | None:
        """The following phase, or None for the terminal phase."""
        order = list(PhaseName)
        position = order.index(self)
        return order[position + 1] if position + 1 < len(order) else None


class PlanEntry(_Frozen):
    """A classified change scheduled in a phase."""

    classified: ClassifiedChange
    transformation_ids: tuple[str, ...] = ()
    automated: bool = False


class Phase(_Frozen):
    """One phase of a migration plan."""

    name: PhaseName
    entries: tuple[PlanEntry, ...] = ()
    conflicts: tuple[Conflict, ...] = ()
    verifications: tuple[str, ...] = Field(
        default=(),
        description="Transformation ids whose precondition must no longer match",
    )


class MigrationPlan(_Frozen):
    """Ordered phases produced for a version upgrade."""

    package: str = ""
    from_version: str = ""
    to_version: str = ""
    phases: tuple[Phase, ...] = ()
    manual_only: tuple[ManualMigration, ...] = ()
    warnings: tuple[str, ...] = ()

    def phase(self, name: PhaseName) -> Phase:
        """Return the phase called ``name``."""
        for phase in self.phases:
            if phase.name == name:
                return phase
        raise KeyError(name)

    def phase_of(self, change_id: str) -> PhaseName | None:
        """Phase a change was placed in."""
        for phase in self.phases:
            if any(entry.classified.change_id == change_id for entry in phase.entries):
                return phase.name
        return None


for _model in (
    PrimitiveShape,
    UnionShape,
    ObjectShape,
    FunctionShape,
    ArrayShape,
    UnresolvedShape,
    Parameter,
    GenericParameter,
    Signature,
):
    _model.model_rebuild()
