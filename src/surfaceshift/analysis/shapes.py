"""Rendering and comparison of signature shapes.

Shapes are compared structurally. ``unresolved`` shapes are opaque and only
equal to an unresolved shape with the same token.
"""

import json
from enum import Enum
from typing import Iterable, Optional

from surfaceshift.core.models import (
    ArrayShape,
    FunctionShape,
    ObjectShape,
    Parameter,
    PrimitiveShape,
    SignatureShape,
    UnionShape,
    UnresolvedShape,
)

TOP_TYPES = frozenset({"any", "unknown"})


class ShapeRelation(str, Enum):
    """How a new shape relates to an old one."""

    EQUAL = "equal"
    NARROWED = "narrowed"
    WIDENED = "widened"
    INCOMPATIBLE = "incompatible"


def render_shape(shape: Optional[SignatureShape]) -> str:
    """Render a shape as canonical TypeScript-like text."""
    if shape is None:
        return "void"
    if isinstance(shape, PrimitiveShape):
        if shape.literal is None:
            return shape.name
        if shape.name == "string":
            return json.dumps(shape.literal)
        return shape.literal
    if isinstance(shape, UnionShape):
        return " | ".join(render_shape(member) for member in shape.members)
    if isinstance(shape, ObjectShape):
        if not shape.properties:
            return "{}"
        return "{ " + "; ".join(render_parameter(p) for p in shape.properties) + " }"
    if isinstance(shape, FunctionShape):
        params = ", ".join(render_parameter(p) for p in shape.parameters)
        return f"({params}) => {render_shape(shape.return_type)}"
    if isinstance(shape, ArrayShape):
        element = render_shape(shape.element)
        if isinstance(shape.element, (UnionShape, FunctionShape)):
            element = f"({element})"
        return f"{element}[]"
    return shape.token


def render_parameter(parameter: Parameter) -> str:
    """Render ``name?: type``."""
    marker = "?" if parameter.optional else ""
    return f"{parameter.name}{marker}: {render_shape(parameter.shape)}"


def make_union(members: Iterable[SignatureShape]) -> SignatureShape:
    """Build a flattened, deduplicated, canonically ordered union."""
    flat: dict[str, SignatureShape] = {}
    for member in members:
        nested = member.members if isinstance(member, UnionShape) else (member,)
        for item in nested:
            flat.setdefault(render_shape(item), item)

    if any(isinstance(m, PrimitiveShape) and m.name in TOP_TYPES and m.literal is None for m in flat.values()):
        top = next(m for m in flat.values() if isinstance(m, PrimitiveShape) and m.name in TOP_TYPES)
        return top

    if len(flat) == 1:
        return next(iter(flat.values()))
    return UnionShape(members=tuple(flat[key] for key in sorted(flat)))


def union_members(shape: SignatureShape) -> tuple[SignatureShape, ...]:
    """Members of a union, or the shape itself."""
    if isinstance(shape, UnionShape):
        return shape.members
    return (shape,)


def literal_values(shape: Optional[SignatureShape]) -> Optional[list[str]]:
    """Rendered values of a closed enumeration, or None if not one."""
    if shape is None:
        return None
    members = union_members(shape)
    if len(members) < 2:
        return None
    if not all(isinstance(m, PrimitiveShape) and m.literal is not None for m in members):
        return None
    return [render_shape(m) for m in members]


def is_function(shape: Optional[SignatureShape]) -> bool:
    """Whether the shape is callable (or a union of a callable with undefined)."""
    if shape is None:
        return False
    members = [m for m in union_members(shape) if not _is_nullish(m)]
    return bool(members) and all(isinstance(m, FunctionShape) for m in members)


def is_assignable(sub: Optional[SignatureShape], sup: Optional[SignatureShape]) -> bool:
    """Whether every value of ``sub`` is also a value of ``sup``."""
    if sub is None or sup is None:
        return sub is None and sup is None
    if sub == sup:
        return True
    if isinstance(sup, PrimitiveShape) and sup.name in TOP_TYPES and sup.literal is None:
        return True
    if isinstance(sub, PrimitiveShape) and sub.name == "never":
        return True
    if isinstance(sub, UnionShape):
        return all(is_assignable(member, sup) for member in sub.members)
    if isinstance(sup, UnionShape):
        return any(is_assignable(sub, member) for member in sup.members)
    if isinstance(sub, UnresolvedShape) or isinstance(sup, UnresolvedShape):
        return False
    if isinstance(sub, PrimitiveShape) and isinstance(sup, PrimitiveShape):
        return sub.name == sup.name and sup.literal is None
    if isinstance(sub, ArrayShape) and isinstance(sup, ArrayShape):
        return is_assignable(sub.element, sup.element)
    if isinstance(sub, ObjectShape) and isinstance(sup, ObjectShape):
        return _object_assignable(sub, sup)
    if isinstance(sub, FunctionShape) and isinstance(sup, FunctionShape):
        return _function_assignable(sub, sup)
    return False


def _object_assignable(sub: ObjectShape, sup: ObjectShape) -> bool:
    sub_props = {p.name: p for p in sub.properties}
    for prop in sup.properties:
        candidate = sub_props.get(prop.name)
        if candidate is None:
            if not prop.optional:
                return False
            continue
        if candidate.optional and not prop.optional:
            return False
        if not is_assignable(candidate.shape, prop.shape):
            return False
    return True


def _function_assignable(sub: FunctionShape, sup: FunctionShape) -> bool:
    # Parameters are contravariant; sub may not require more arguments.
    required_sub = [p for p in sub.parameters if p.is_required]
    if len(required_sub) > len(sup.parameters):
        return False
    for sub_param, sup_param in zip(sub.parameters, sup.parameters):
        if not is_assignable(sup_param.shape, sub_param.shape):
            return False
    if sup.return_type is None or (
        isinstance(sup.return_type, PrimitiveShape) and sup.return_type.name == "void"
    ):
        return True
    return is_assignable(sub.return_type, sup.return_type)


def compare_shapes(old: Optional[SignatureShape], new: Optional[SignatureShape]) -> ShapeRelation:
    """Classify how ``new`` relates to ``old``."""
    if old == new or render_shape(old) == render_shape(new):
        return ShapeRelation.EQUAL
    narrower = is_assignable(new, old)
    wider = is_assignable(old, new)
    if narrower and wider:
        return ShapeRelation.EQUAL
    if narrower:
        return ShapeRelation.NARROWED
    if wider:
        return ShapeRelation.WIDENED
    return ShapeRelation.INCOMPATIBLE


def _is_nullish(shape: SignatureShape) -> bool:
    return isinstance(shape, PrimitiveShape) and shape.name in ("undefined", "null") and shape.literal is None
