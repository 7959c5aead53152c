"""Surface extraction: source trees to normalized API models.

Modules are parsed concurrently and merged once every parse has finished.
Type references are then resolved across the whole tree so the emitted
signatures only contain structural shapes or opaque ``unresolved`` tokens.
"""

import fnmatch
import posixpath
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from surfaceshift.analysis.declaration_parser import (
    Declaration,
    EnumDecl,
    FunctionDecl,
    InterfaceDecl,
    ParamDecl,
    ParsedModule,
    TArray,
    TFunction,
    TIntersection,
    TKeyword,
    TLiteral,
    TObject,
    TOpaque,
    TRef,
    TTuple,
    TUnion,
    TypeAliasDecl,
    TypeExpr,
    VariableDecl,
    parse_declaration_set,
    parse_typescript,
)
from surfaceshift.analysis.shapes import make_union, render_shape
from surfaceshift.config import ExtractionConfig
from surfaceshift.core.models import (
    APIEntity,
    APIModel,
    ArrayShape,
    EntityKind,
    FunctionShape,
    GenericParameter,
    ObjectShape,
    Parameter,
    PrimitiveShape,
    Signature,
    SignatureShape,
    UnresolvedShape,
    Visibility,
)
from surfaceshift.errors import ExtractionError
from surfaceshift.utils.logging import get_logger

logger = get_logger(__name__)

SourceTree = Union[Path, str, Mapping[str, str]]

COMPONENT_RETURN_TYPES = frozenset(
    {
        "JSX.Element",
        "React.JSX.Element",
        "React.ReactElement",
        "ReactElement",
        "React.ReactNode",
        "ReactNode",
        "VNode",
    }
)

_STRIPPED_IMPORT_SUFFIXES = (".d.ts", ".js", ".mjs", ".cjs", ".ts", ".tsx", ".jsx")
SINGLE_FILE_MODULE = "index"


@dataclass
class ModuleSource:
    """One module waiting to be parsed."""

    module_path: str
    fmt: str  # typescript, yaml, json
    text: Optional[str] = None
    path: Optional[Path] = None

    @property
    def source_file(self) -> Optional[str]:
        return str(self.path) if self.path else None


class SurfaceExtractor:
    """Extracts an APIModel from declaration sources."""

    def __init__(self, config: Optional[ExtractionConfig] = None) -> None:
        """Initialize the extractor.

        Args:
            config: Extraction configuration.
        """
        self._config = config or ExtractionConfig()

    def extract(self, source_tree: SourceTree, version_id: str) -> APIModel:
        """Extract the public surface of one package version.

        Unparseable modules are reported in ``APIModel.warnings``; the other
        modules are still extracted.

        Args:
            source_tree: Directory of declaration files, a single file
                (extracted as module ``index``), or a mapping of module
                path (optionally with file suffix) to source text.
            version_id: Version identifier to tag the model with.

        Returns:
            The extracted API model.
        """
        warnings: list[str] = []
        sources = self._discover(source_tree, warnings)
        results: dict[int, ParsedModule] = {}

        with ThreadPoolExecutor(max_workers=self._config.max_workers) as executor:
            futures = {executor.submit(self._parse, source): index for index, source in enumerate(sources)}
            for future in as_completed(futures):
                index = futures[future]
                try:
                    results[index] = future.result()
                except ExtractionError as e:
                    logger.warning("Skipping module %s: %s", sources[index].module_path, e.message)
                    warnings.append(e.message)

        # Merge in discovery order so duplicates resolve the same way every run.
        parsed: dict[str, ParsedModule] = {}
        for index in sorted(results):
            module = results[index]
            if module.module_path in parsed:
                warnings.append(f"Duplicate module path {module.module_path}; keeping the first")
                continue
            parsed[module.module_path] = module

        for module_path in sorted(parsed):
            warnings.extend(parsed[module_path].warnings)

        builder = _ModelBuilder(parsed, self._config, warnings)
        modules = builder.build()
        logger.debug(
            "Extracted %d entities from %d modules for version %s",
            sum(len(entities) for entities in modules.values()),
            len(modules),
            version_id,
        )

        return APIModel(version=version_id, modules=modules, warnings=tuple(sorted(set(warnings))))

    def _discover(self, source_tree: SourceTree, warnings: list[str]) -> list[ModuleSource]:
        """List the modules of a source tree."""
        if isinstance(source_tree, Mapping):
            sources = []
            for key in sorted(source_tree):
                module_path, fmt = self._split_suffix(key)
                sources.append(ModuleSource(module_path or key, fmt or "typescript", text=source_tree[key]))
            return sources

        root = Path(source_tree)
        if root.is_file():
            _, fmt = self._split_suffix(root.name)
            if fmt is None:
                raise ExtractionError(str(root), "not a declaration file")
            # A lone file is the package entry, whatever it is called.
            return [ModuleSource(SINGLE_FILE_MODULE, fmt, path=root)]
        if not root.is_dir():
            raise ExtractionError(str(root), "source tree does not exist")

        by_module: dict[str, ModuleSource] = {}
        for path in sorted(root.rglob("*")):
            if not path.is_file() or self._should_exclude(path, root):
                continue
            relative = path.relative_to(root).as_posix()
            module_path, fmt = self._split_suffix(relative)
            if module_path is None or fmt is None:
                continue
            existing = by_module.get(module_path)
            if existing is not None:
                # Hand-written declarations win over implementation sources.
                if existing.path is not None and existing.path.name.endswith(".d.ts"):
                    warnings.append(f"Ignoring {relative}: {module_path} already declared")
                    continue
                warnings.append(f"Ignoring {existing.path}: {module_path} redeclared by {relative}")
            by_module[module_path] = ModuleSource(module_path, fmt, path=path)

        return [by_module[key] for key in sorted(by_module)]

    def _split_suffix(self, name: str) -> tuple[Optional[str], Optional[str]]:
        suffixes = sorted(self._config.declaration_suffixes, key=len, reverse=True)
        for suffix in suffixes:
            if name.endswith(suffix):
                fmt = {".yml": "yaml", ".yaml": "yaml", ".json": "json"}.get(suffix, "typescript")
                return name[: -len(suffix)], fmt
        return None, None

    def _should_exclude(self, path: Path, root: Path) -> bool:
        relative = path.relative_to(root)
        for pattern in self._config.exclude_patterns:
            if any(fnmatch.fnmatch(part, pattern) for part in relative.parts):
                return True
        return False

    def _parse(self, source: ModuleSource) -> ParsedModule:
        text = source.text
        if text is None and source.path is not None:
            try:
                text = source.path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise ExtractionError(source.module_path, f"cannot read {source.path}: {e}") from e

        logger.debug("Parsing %s (%s)", source.module_path, source.fmt)
        try:
            if source.fmt == "typescript":
                return parse_typescript(text or "", source.module_path, source.source_file)
            return parse_declaration_set(
                text or "",
                source.module_path,
                source.source_file,
                is_json=source.fmt == "json",
            )
        except (TypeError, AttributeError, ValueError, KeyError, RecursionError) as e:
            raise ExtractionError(source.module_path, f"malformed declarations ({type(e).__name__}: {e})") from e


def extract(
    source_tree: SourceTree,
    version_id: str,
    config: Optional[ExtractionConfig] = None,
) -> APIModel:
    """Convenience function to extract an API model.

    Args:
        source_tree: Directory, single file or mapping of module path to source text.
        version_id: Version identifier.
        config: Optional extraction configuration.

    Returns:
        The extracted API model.
    """
    return SurfaceExtractor(config).extract(source_tree, version_id)


class _ModelBuilder:
    """Turns parsed modules into entities with resolved shapes."""

    def __init__(
        self,
        modules: dict[str, ParsedModule],
        config: ExtractionConfig,
        warnings: list[str],
    ) -> None:
        self._modules = modules
        self._config = config
        self._warnings = warnings
        self._memo: dict[tuple[str, str], SignatureShape] = {}
        self._entities: dict[str, list[APIEntity]] = {}
        self._building: set[str] = set()

    def build(self) -> dict[str, tuple[APIEntity, ...]]:
        for module_path in sorted(self._modules):
            self._module_entities(module_path)
        return {
            module_path: tuple(entities)
            for module_path, entities in sorted(self._entities.items())
            if entities
        }

    # -- entities ------------------------------------------------------------

    def _module_entities(self, module_path: str) -> list[APIEntity]:
        if module_path in self._entities:
            return self._entities[module_path]
        if module_path in self._building:
            self._warnings.append(f"Circular re-export through {module_path}")
            return []

        self._building.add(module_path)
        module = self._modules[module_path]
        entities: dict[str, APIEntity] = {}

        for declaration in module.declarations:
            if not declaration.exported:
                continue
            self._add(entities, self._entity(declaration, module), module_path)

        for reexport in module.reexports:
            target = self._relative_module(module_path, reexport.source) if reexport.source else None
            if reexport.source and target is None:
                self._warnings.append(f"{module_path}: cannot follow re-export from {reexport.source}")
                continue
            if reexport.star and target is not None:
                for entity in self._module_entities(target):
                    if entity.name not in entities:
                        self._add(entities, _relocate(entity, module_path, entity.name), module_path)
                continue
            for exported_name, local_name in reexport.names.items():
                if local_name == "*":
                    self._warnings.append(f"{module_path}: namespace re-export {exported_name} skipped")
                    continue
                entity = self._reexported(module_path, target, local_name)
                if entity is None:
                    self._warnings.append(f"{module_path}: re-exported name {local_name} not found")
                    continue
                self._add(entities, _relocate(entity, module_path, exported_name), module_path)

        self._building.discard(module_path)
        self._entities[module_path] = list(entities.values())
        return self._entities[module_path]

    def _reexported(self, module_path: str, target: Optional[str], name: str) -> Optional[APIEntity]:
        if target is not None:
            for entity in self._module_entities(target):
                if entity.name == name:
                    return entity
            return None

        module = self._modules[module_path]
        declaration = module.local(name)
        if declaration is not None:
            return self._entity(declaration, module)
        for imported in module.imports:
            if name in imported.names:
                source = self._relative_module(module_path, imported.source)
                if source is not None:
                    return self._reexported(source, source, imported.names[name])
        return None

    def _add(self, entities: dict[str, APIEntity], entity: APIEntity, module_path: str) -> None:
        if entity.name in entities:
            self._warnings.append(f"{module_path}: duplicate declaration of {entity.name}; keeping the first")
            return
        entities[entity.name] = entity

    def _entity(self, declaration: Declaration, module: ParsedModule) -> APIEntity:
        doc = declaration.doc
        kind, signature = self._signature(declaration, module)
        return APIEntity(
            name=declaration.name,
            kind=kind,
            signature=signature,
            module_path=module.module_path,
            visibility=Visibility.INTERNAL if doc.internal else Visibility.PUBLIC,
            deprecated=doc.deprecated,
            deprecation_message=doc.deprecation_message,
            source_file=module.source_file,
        )

    def _signature(self, declaration: Declaration, module: ParsedModule) -> tuple[EntityKind, Signature]:
        module_path = module.module_path

        if isinstance(declaration, FunctionDecl):
            scope = _generic_scope(declaration.generics)
            generics = self._generics(declaration.generics, module_path, scope)
            params = tuple(self._parameter(p, module_path, scope) for p in declaration.params)
            return_type = self._resolve(declaration.return_type, module_path, scope) if declaration.return_type else None
            if self._is_component_function(declaration):
                return EntityKind.COMPONENT_DEFINITION, Signature(
                    parameters=_flatten_props(params, declaration.params),
                    return_type=return_type,
                    generic_parameters=generics,
                )
            return EntityKind.FUNCTION, Signature(
                parameters=params,
                return_type=return_type,
                generic_parameters=generics,
            )

        if isinstance(declaration, VariableDecl):
            return self._variable_signature(declaration, module)

        generics_decl = getattr(declaration, "generics", [])
        scope = _generic_scope(generics_decl)
        shape = self._declaration_shape(declaration, module_path, scope)
        parameters = shape.properties if isinstance(shape, ObjectShape) else ()
        return EntityKind.TYPE, Signature(
            parameters=parameters,
            type_shape=shape,
            generic_parameters=self._generics(generics_decl, module_path, scope),
        )

    def _variable_signature(self, declaration: VariableDecl, module: ParsedModule) -> tuple[EntityKind, Signature]:
        module_path = module.module_path
        hint = declaration.doc.kind_hint
        type_expr = declaration.type

        if isinstance(type_expr, TRef) and type_expr.args:
            short_name = type_expr.name.split(".")[-1]
            if short_name in self._config.component_type_names or hint == EntityKind.COMPONENT_DEFINITION:
                props = self._resolve(type_expr.args[0], module_path, {})
                parameters = props.properties if isinstance(props, ObjectShape) else (
                    Parameter(name="props", shape=props),
                )
                return EntityKind.COMPONENT_DEFINITION, Signature(parameters=parameters)

        if isinstance(type_expr, TFunction) and hint == EntityKind.COMPONENT_DEFINITION:
            params = tuple(self._parameter(p, module_path, {}) for p in type_expr.params)
            return EntityKind.COMPONENT_DEFINITION, Signature(
                parameters=_flatten_props(params, type_expr.params),
                return_type=self._resolve(type_expr.return_type, module_path, {}),
            )

        if hint == EntityKind.STYLE_TOKEN or (hint is None and self._is_token_module(module_path)):
            kind = EntityKind.STYLE_TOKEN
        elif hint == EntityKind.FUNCTION and isinstance(type_expr, TFunction):
            return EntityKind.FUNCTION, Signature(
                parameters=tuple(self._parameter(p, module_path, {}) for p in type_expr.params),
                return_type=self._resolve(type_expr.return_type, module_path, {}),
            )
        else:
            kind = EntityKind.CONSTANT

        value = declaration.value
        shape = self._resolve(type_expr, module_path, {}) if type_expr is not None else _infer_value_shape(value)
        if isinstance(shape, PrimitiveShape) and shape.literal is not None:
            value = shape.literal if value is None else value
            shape = PrimitiveShape(name=shape.name)
        return kind, Signature(type_shape=shape, value=value)

    def _is_component_function(self, declaration: FunctionDecl) -> bool:
        if declaration.doc.kind_hint == EntityKind.COMPONENT_DEFINITION:
            return True
        if declaration.doc.kind_hint is not None:
            return False
        if not declaration.name[:1].isupper() or len(declaration.params) > 1:
            return False
        return_type = declaration.return_type
        if isinstance(return_type, TUnion):
            names = {m.name for m in return_type.members if isinstance(m, TRef)}
            return bool(names & COMPONENT_RETURN_TYPES)
        return isinstance(return_type, TRef) and return_type.name in COMPONENT_RETURN_TYPES

    def _is_token_module(self, module_path: str) -> bool:
        return any(fnmatch.fnmatch(module_path, pattern) for pattern in self._config.token_module_patterns)

    def _generics(self, generics, module_path: str, scope: dict[str, SignatureShape]) -> tuple[GenericParameter, ...]:
        return tuple(
            GenericParameter(
                name=g.name,
                constraint=self._resolve(g.constraint, module_path, scope) if g.constraint else None,
                default=self._resolve(g.default, module_path, scope) if g.default else None,
            )
            for g in generics
        )

    def _parameter(self, param: ParamDecl, module_path: str, scope: dict[str, SignatureShape]) -> Parameter:
        if param.type is None:
            shape: SignatureShape = PrimitiveShape(name="any")
        else:
            shape = self._resolve(param.type, module_path, scope)
        if param.rest and not isinstance(shape, ArrayShape):
            shape = ArrayShape(element=shape)
        default = param.default
        if default is None and param.doc is not None:
            default = param.doc.default
        return Parameter(
            name=param.name,
            shape=shape,
            optional=param.optional or param.rest,
            default=default,
        )

    # -- type resolution -----------------------------------------------------

    def _resolve(
        self,
        expr: Optional[TypeExpr],
        module_path: str,
        scope: dict[str, SignatureShape],
        stack: frozenset = frozenset(),
    ) -> SignatureShape:
        if expr is None:
            return PrimitiveShape(name="void")
        if isinstance(expr, TKeyword):
            return PrimitiveShape(name=expr.name)
        if isinstance(expr, TLiteral):
            return PrimitiveShape(name=expr.base, literal=expr.value)
        if isinstance(expr, TUnion):
            return make_union(self._resolve(m, module_path, scope, stack) for m in expr.members)
        if isinstance(expr, TIntersection):
            parts = [self._resolve(m, module_path, scope, stack) for m in expr.members]
            if all(isinstance(p, ObjectShape) for p in parts):
                return _merge_objects(parts)
            return UnresolvedShape(token=" & ".join(render_shape(p) for p in parts))
        if isinstance(expr, TArray):
            return ArrayShape(element=self._resolve(expr.element, module_path, scope, stack))
        if isinstance(expr, TTuple):
            elements = ", ".join(render_shape(self._resolve(e, module_path, scope, stack)) for e in expr.elements)
            return UnresolvedShape(token=f"[{elements}]")
        if isinstance(expr, TFunction):
            return FunctionShape(
                parameters=tuple(self._parameter_in(p, module_path, scope, stack) for p in expr.params),
                return_type=self._resolve(expr.return_type, module_path, scope, stack),
            )
        if isinstance(expr, TObject):
            return ObjectShape(properties=self._properties(expr.members, module_path, scope, stack))
        if isinstance(expr, TOpaque):
            return UnresolvedShape(token=expr.text)
        return self._resolve_reference(expr, module_path, scope, stack)

    def _parameter_in(self, param: ParamDecl, module_path: str, scope, stack) -> Parameter:
        shape = self._resolve(param.type, module_path, scope, stack) if param.type else PrimitiveShape(name="any")
        default = param.default if param.default is not None else (param.doc.default if param.doc else None)
        return Parameter(name=param.name, shape=shape, optional=param.optional or param.rest, default=default)

    def _properties(self, members: list[ParamDecl], module_path: str, scope, stack) -> tuple[Parameter, ...]:
        seen: dict[str, Parameter] = {}
        for member in members:
            if member.name not in seen:
                seen[member.name] = self._parameter_in(member, module_path, scope, stack)
        return tuple(seen.values())

    def _resolve_reference(self, ref: TRef, module_path: str, scope, stack: frozenset) -> SignatureShape:
        if ref.name in scope and not ref.args:
            return scope[ref.name]

        args = [self._resolve(a, module_path, scope, stack) for a in ref.args]

        builtin = _builtin_reference(ref.name, args)
        if builtin is not None:
            return builtin

        found = self._lookup(module_path, ref.name)
        if isinstance(found, str):
            return UnresolvedShape(token=_with_args(found, args))
        if found is None:
            return UnresolvedShape(token=_with_args(ref.name, args))

        target_module, declaration = found
        key = (target_module, declaration.name)
        if key in stack:
            return UnresolvedShape(token=_with_args(f"{target_module}#{declaration.name}", args))
        if not args and key in self._memo:
            return self._memo[key]

        generics = getattr(declaration, "generics", [])
        bound: dict[str, SignatureShape] = {}
        for index, generic in enumerate(generics):
            if index < len(args):
                bound[generic.name] = args[index]
            elif generic.default is not None:
                bound[generic.name] = self._resolve(generic.default, target_module, bound, stack | {key})
            else:
                bound[generic.name] = UnresolvedShape(token=generic.name)

        shape = self._declaration_shape(declaration, target_module, bound, stack | {key})
        if not args:
            self._memo[key] = shape
        return shape

    def _declaration_shape(
        self,
        declaration: Declaration,
        module_path: str,
        scope: dict[str, SignatureShape],
        stack: frozenset = frozenset(),
    ) -> SignatureShape:
        stack = stack | {(module_path, declaration.name)}
        if isinstance(declaration, TypeAliasDecl):
            return self._resolve(declaration.type, module_path, scope, stack)
        if isinstance(declaration, EnumDecl):
            return make_union(PrimitiveShape(name=value.base, literal=value.value) for _, value in declaration.members)
        if isinstance(declaration, InterfaceDecl):
            parts: list[SignatureShape] = []
            for base in declaration.extends:
                resolved = self._resolve(base, module_path, scope, stack)
                if isinstance(resolved, ObjectShape):
                    parts.append(resolved)
                else:
                    self._warnings.append(
                        f"{module_path}: {declaration.name} extends unresolved {render_shape(resolved)}"
                    )
            own = ObjectShape(properties=self._properties(declaration.members, module_path, scope, stack))
            return _merge_objects(parts + [own])
        return UnresolvedShape(token=f"{module_path}#{declaration.name}")

    def _lookup(self, module_path: str, name: str, seen: frozenset = frozenset()):
        """Find the type declaration ``name`` refers to from ``module_path``.

        Returns:
            ``(module path, declaration)``, an external token string, or None.
        """
        if (module_path, name) in seen or module_path not in self._modules:
            return None
        seen = seen | {(module_path, name)}
        module = self._modules[module_path]

        head, _, rest = name.partition(".")
        if rest:
            for imported in module.imports:
                if imported.namespace == head:
                    target = self._relative_module(module_path, imported.source)
                    if target is None:
                        return f"{imported.source}#{rest}"
                    return self._lookup(target, rest, seen)
            return None

        declaration = _type_declaration(module, name)
        if declaration is not None:
            return module_path, declaration

        for imported in module.imports:
            if name in imported.names:
                target = self._relative_module(module_path, imported.source)
                if target is None:
                    return f"{imported.source}#{imported.names[name]}"
                return self._lookup(target, imported.names[name], seen)

        for reexport in module.reexports:
            if reexport.source is None:
                continue
            target = self._relative_module(module_path, reexport.source)
            if name in reexport.names:
                if target is None:
                    return f"{reexport.source}#{reexport.names[name]}"
                return self._lookup(target, reexport.names[name], seen)
            if reexport.star and target is not None:
                found = self._lookup(target, name, seen)
                if found is not None:
                    return found

        if len(seen) == 1:
            matches = [
                (path, decl)
                for path, other in sorted(self._modules.items())
                if (decl := _type_declaration(other, name)) is not None and decl.exported
            ]
            if len(matches) == 1:
                return matches[0]
        return None

    def _relative_module(self, module_path: str, source: Optional[str]) -> Optional[str]:
        if not source or not source.startswith("."):
            return None
        joined = posixpath.normpath(posixpath.join(posixpath.dirname(module_path), source))
        for suffix in _STRIPPED_IMPORT_SUFFIXES:
            if joined.endswith(suffix):
                joined = joined[: -len(suffix)]
                break
        for candidate in (joined, f"{joined}/index"):
            if candidate in self._modules:
                return candidate
        return None


def _type_declaration(module: ParsedModule, name: str) -> Optional[Declaration]:
    for declaration in module.declarations:
        if declaration.name == name and isinstance(declaration, (InterfaceDecl, TypeAliasDecl, EnumDecl)):
            return declaration
    return None


def _generic_scope(generics) -> dict[str, SignatureShape]:
    return {g.name: UnresolvedShape(token=g.name) for g in generics}


def _with_args(token: str, args: list[SignatureShape]) -> str:
    if not args:
        return token
    return f"{token}<{', '.join(render_shape(a) for a in args)}>"


def _merge_objects(parts: list[SignatureShape]) -> ObjectShape:
    merged: dict[str, Parameter] = {}
    for part in parts:
        if isinstance(part, ObjectShape):
            for prop in part.properties:
                merged[prop.name] = prop
    return ObjectShape(properties=tuple(merged.values()))


def _flatten_props(params: tuple[Parameter, ...], declared: list[ParamDecl]) -> tuple[Parameter, ...]:
    """Props of a component are the members of its single props object.

    Declaration sets list props directly, so only a lone ``props`` parameter
    or one typed by a named props type is flattened.
    """
    if len(params) != 1 or not isinstance(params[0].shape, ObjectShape):
        return params
    if declared[0].name == "props" or isinstance(declared[0].type, TRef):
        return params[0].shape.properties
    return params


def _relocate(entity: APIEntity, module_path: str, name: str) -> APIEntity:
    return entity.model_copy(update={"module_path": module_path, "name": name})


def _infer_value_shape(value: Optional[str]) -> SignatureShape:
    if value is None:
        return PrimitiveShape(name="unknown")
    if value in ("true", "false"):
        return PrimitiveShape(name="boolean")
    try:
        float(value)
        return PrimitiveShape(name="number")
    except ValueError:
        pass
    if value.startswith(("{", "[", "(")) or value.startswith("new ") or "(" in value:
        return UnresolvedShape(token="unknown")
    return PrimitiveShape(name="string")


_OBJECT_UTILITIES = frozenset({"Partial", "Required", "Readonly", "Pick", "Omit"})


def _builtin_reference(name: str, args: list[SignatureShape]) -> Optional[SignatureShape]:
    """Shapes for the built-in generic types components commonly use."""
    if name in ("Array", "ReadonlyArray") and len(args) == 1:
        return ArrayShape(element=args[0])
    if name not in _OBJECT_UTILITIES or not args or not isinstance(args[0], ObjectShape):
        return None

    properties = args[0].properties
    if name == "Partial":
        return ObjectShape(properties=tuple(p.model_copy(update={"optional": True}) for p in properties))
    if name == "Required":
        return ObjectShape(properties=tuple(p.model_copy(update={"optional": False}) for p in properties))
    if name == "Readonly":
        return args[0]
    if len(args) < 2:
        return None
    keys = {
        m.literal
        for m in (args[1].members if hasattr(args[1], "members") else (args[1],))
        if isinstance(m, PrimitiveShape) and m.literal is not None
    }
    if name == "Pick":
        return ObjectShape(properties=tuple(p for p in properties if p.name in keys))
    return ObjectShape(properties=tuple(p for p in properties if p.name not in keys))

