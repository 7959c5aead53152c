"""Parser for TypeScript declaration files and YAML/JSON declaration sets.

The parser understands the subset of TypeScript a component library uses to
describe its public surface: exported functions, constants, interfaces,
classes, type aliases, enums, imports and re-exports, plus JSDoc tags that
carry deprecation, visibility and default values. Anything else is skipped
as a balanced token run so one unusual construct never hides the rest of the
module.

Declaration sets describe the same information as structured data whose type
annotations are TypeScript type-expression strings.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import yaml

from surfaceshift.core.models import EntityKind
from surfaceshift.errors import ExtractionError

# ---------------------------------------------------------------------------
# Type expressions
# ---------------------------------------------------------------------------


@dataclass
class TKeyword:
    """Built-in type keyword (string, number, any, ...)."""

    name: str


@dataclass
class TLiteral:
    """Literal type."""

    base: str  # string, number, boolean
    value: str


@dataclass
class TRef:
    """Reference to a named type, possibly generic."""

    name: str
    args: list["TypeExpr"] = field(default_factory=list)


@dataclass
class TUnion:
    members: list["TypeExpr"]


@dataclass
class TIntersection:
    members: list["TypeExpr"]


@dataclass
class TArray:
    element: "TypeExpr"


@dataclass
class TTuple:
    elements: list["TypeExpr"]


@dataclass
class TFunction:
    params: list["ParamDecl"]
    return_type: "TypeExpr"


@dataclass
class TObject:
    members: list["ParamDecl"]


@dataclass
class TOpaque:
    """A construct kept as normalized source text."""

    text: str


TypeExpr = Union[TKeyword, TLiteral, TRef, TUnion, TIntersection, TArray, TTuple, TFunction, TObject, TOpaque]

TYPE_KEYWORDS = frozenset(
    {
        "string",
        "number",
        "boolean",
        "any",
        "unknown",
        "void",
        "never",
        "null",
        "undefined",
        "object",
        "bigint",
        "symbol",
    }
)

# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------


@dataclass
class DocComment:
    """Tags extracted from a JSDoc block."""

    deprecated: bool = False
    deprecation_message: Optional[str] = None
    internal: bool = False
    default: Optional[str] = None
    param_defaults: dict[str, str] = field(default_factory=dict)
    kind_hint: Optional[EntityKind] = None


@dataclass
class ParamDecl:
    """A parameter or object member."""

    name: str
    type: Optional[TypeExpr] = None
    optional: bool = False
    rest: bool = False
    default: Optional[str] = None
    doc: Optional[DocComment] = None


@dataclass
class GenericDecl:
    name: str
    constraint: Optional[TypeExpr] = None
    default: Optional[TypeExpr] = None


@dataclass
class Declaration:
    """Base for named declarations."""

    name: str
    exported: bool = False
    doc: DocComment = field(default_factory=DocComment)
    line: int = 0


@dataclass
class FunctionDecl(Declaration):
    generics: list[GenericDecl] = field(default_factory=list)
    params: list[ParamDecl] = field(default_factory=list)
    return_type: Optional[TypeExpr] = None


@dataclass
class VariableDecl(Declaration):
    type: Optional[TypeExpr] = None
    value: Optional[str] = None


@dataclass
class InterfaceDecl(Declaration):
    generics: list[GenericDecl] = field(default_factory=list)
    extends: list[TypeExpr] = field(default_factory=list)
    members: list[ParamDecl] = field(default_factory=list)


@dataclass
class TypeAliasDecl(Declaration):
    generics: list[GenericDecl] = field(default_factory=list)
    type: TypeExpr = field(default_factory=lambda: TKeyword("unknown"))


@dataclass
class EnumDecl(Declaration):
    members: list[tuple[str, TLiteral]] = field(default_factory=list)


@dataclass
class ImportDecl:
    """``import {a as b} from 'source'``; names map local -> imported."""

    source: str
    names: dict[str, str] = field(default_factory=dict)
    namespace: Optional[str] = None


@dataclass
class ReExport:
    """``export {a as b} from 'source'`` or ``export * from 'source'``."""

    source: Optional[str]
    names: dict[str, str] = field(default_factory=dict)  # exported -> local/imported
    star: bool = False


@dataclass
class ParsedModule:
    """Everything a single module declares."""

    module_path: str
    source_file: Optional[str] = None
    declarations: list[Declaration] = field(default_factory=list)
    imports: list[ImportDecl] = field(default_factory=list)
    reexports: list[ReExport] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def local(self, name: str) -> Optional[Declaration]:
        """First type-level or value declaration called ``name``."""
        for declaration in self.declarations:
            if declaration.name == name:
                return declaration
        return None


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


@dataclass
class Token:
    kind: str  # doc, string, template, number, ident, punct, eof
    value: str
    line: int


_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<doc>/\*\*(?!/).*?\*/)
  | (?P<comment>/\*.*?\*/|//[^\n]*)
  | (?P<string>'(?:[^'\\\n]|\\.)*'|"(?:[^"\\\n]|\\.)*")
  | (?P<template>`(?:[^`\\]|\\.)*`)
  | (?P<number>\d[\d_]*(?:\.\d+)?(?:[eE][+-]?\d+)?)
  | (?P<ident>[A-Za-z_$][\w$]*)
  | (?P<punct>=>|\.\.\.|[{}()\[\]<>,;:?|&=.*@!+\-/#%^~])
    """,
    re.VERBOSE | re.DOTALL,
)


def tokenize(text: str, module_path: str = "") -> list[Token]:
    """Split declaration source into tokens.

    Raises:
        ExtractionError: On a character no token can start with.
    """
    tokens: list[Token] = []
    position = 0
    line = 1
    length = len(text)

    while position < length:
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            raise ExtractionError(module_path, f"unexpected character {text[position]!r}", line)
        kind = match.lastgroup or ""
        value = match.group()
        if kind not in ("ws", "comment"):
            tokens.append(Token(kind, value, line))
        line += value.count("\n")
        position = match.end()

    tokens.append(Token("eof", "", line))
    return tokens


# ---------------------------------------------------------------------------
# JSDoc
# ---------------------------------------------------------------------------

_PARAM_DEFAULT = re.compile(r"@param\s+(?:\{[^}]*\}\s*)?\[\s*([\w$.]+)\s*=\s*([^\]]+?)\s*\]")


def parse_doc_comment(text: str) -> DocComment:
    """Extract the tags surfaceshift cares about from a JSDoc block."""
    body = text[3:-2] if text.startswith("/**") else text
    lines = [re.sub(r"^\s*\*\s?", "", line).rstrip() for line in body.splitlines()]
    doc = DocComment()

    for line in lines:
        stripped = line.strip()
        if stripped.startswith("@deprecated"):
            doc.deprecated = True
            message = stripped[len("@deprecated"):].strip()
            doc.deprecation_message = message or None
        elif stripped.startswith("@internal") or stripped.startswith("@private"):
            doc.internal = True
        elif stripped.startswith("@defaultValue") or stripped.startswith("@default"):
            value = re.sub(r"^@default(?:Value)?", "", stripped).strip().strip("`")
            doc.default = value or None
        elif stripped.startswith("@token"):
            doc.kind_hint = EntityKind.STYLE_TOKEN
        elif stripped.startswith("@component"):
            doc.kind_hint = EntityKind.COMPONENT_DEFINITION

    for match in _PARAM_DEFAULT.finditer("\n".join(lines)):
        doc.param_defaults[match.group(1)] = match.group(2).strip().strip("`")

    return doc


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

_STATEMENT_KEYWORDS = frozenset(
    {"export", "import", "declare", "const", "let", "var", "function", "interface", "type", "enum", "class"}
)
_MEMBER_MODIFIERS = frozenset({"readonly", "public", "static", "declare", "abstract", "override", "accessor"})
_OPENERS = {"(": ")", "[": "]", "{": "}"}


class DeclarationParser:
    """Recursive-descent parser over a token list."""

    def __init__(self, text: str, module_path: str = "") -> None:
        self.module_path = module_path
        self.tokens = tokenize(text, module_path)
        self.pos = 0
        self._pending_doc: Optional[DocComment] = None

    # -- token helpers -------------------------------------------------------

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int = 1) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def at(self, value: str) -> bool:
        token = self.current
        return token.kind in ("punct", "ident") and token.value == value

    def advance(self) -> Token:
        token = self.current
        if token.kind != "eof":
            self.pos += 1
        return token

    def accept(self, value: str) -> bool:
        if self.at(value):
            self.advance()
            return True
        return False

    def expect(self, value: str) -> Token:
        if not self.at(value):
            self.fail(f"expected {value!r}, found {self.current.value or 'end of file'!r}")
        return self.advance()

    def expect_name(self) -> str:
        token = self.current
        if token.kind == "ident":
            return self.advance().value
        if token.kind == "string":
            return _unquote(self.advance().value)
        if token.kind == "number":
            return self.advance().value
        self.fail(f"expected a name, found {token.value or 'end of file'!r}")
        return ""

    def fail(self, reason: str) -> None:
        raise ExtractionError(self.module_path, reason, self.current.line)

    def skip_docs(self) -> Optional[DocComment]:
        doc = None
        while self.current.kind == "doc":
            doc = parse_doc_comment(self.advance().value)
        return doc

    def skip_balanced(self) -> None:
        """Skip one bracketed group starting at the current opener."""
        opener = self.advance().value
        closers = [_OPENERS[opener]]
        while closers:
            token = self.advance()
            if token.kind == "eof":
                self.fail(f"unbalanced {opener!r}")
            if token.value in _OPENERS and token.kind == "punct":
                closers.append(_OPENERS[token.value])
            elif token.kind == "punct" and token.value == closers[-1]:
                closers.pop()

    def skip_statement(self) -> None:
        """Skip to the end of the current statement."""
        start_line = self.current.line
        while self.current.kind != "eof":
            token = self.current
            if token.kind == "punct" and token.value == ";":
                self.advance()
                return
            if token.kind == "punct" and token.value in _OPENERS:
                self.skip_balanced()
                if token.value == "{" and self.current.line > start_line:
                    return
                continue
            if token.kind == "punct" and token.value in (")", "]", "}"):
                return
            if (
                token.line > start_line
                and token.kind == "ident"
                and token.value in _STATEMENT_KEYWORDS
            ):
                return
            self.advance()

    def text_until(self, stops: set[str]) -> str:
        """Collect source text up to a depth-zero stop token."""
        parts: list[str] = []
        depth = 0
        while self.current.kind != "eof":
            token = self.current
            if token.kind == "punct":
                if depth == 0 and token.value in stops:
                    break
                if token.value in _OPENERS:
                    depth += 1
                elif token.value in (")", "]", "}"):
                    if depth == 0:
                        break
                    depth -= 1
            parts.append(token.value)
            self.advance()
        return _join_tokens(parts)

    def end_statement(self) -> None:
        self.accept(";")

    # -- module level --------------------------------------------------------

    def parse_module(self) -> ParsedModule:
        module = ParsedModule(module_path=self.module_path)

        while self.current.kind != "eof":
            doc = self.skip_docs()
            if self.current.kind == "eof":
                break
            self._pending_doc = doc
            start = self.pos
            self.parse_statement(module)
            if self.pos == start:
                self.advance()

        return module

    def parse_statement(self, module: ParsedModule) -> None:
        if self.at("import"):
            self.parse_import(module)
            return

        exported = False
        if self.at("export"):
            self.advance()
            exported = True
            if self.at("default"):
                module.warnings.append(f"{self.module_path}:{self.current.line}: default export skipped")
                self.advance()
                self.skip_statement()
                return
            if self.at("{") or self.at("*") or (self.at("type") and self.peek().value == "{"):
                self.parse_reexport(module)
                return
            if self.at("=") or self.at("as") or self.at("import"):
                self.skip_statement()
                return

        while self.at("declare") or self.at("abstract") or self.at("async"):
            self.advance()

        doc = self._pending_doc or DocComment()
        self._pending_doc = None
        line = self.current.line
        keyword = self.current.value if self.current.kind == "ident" else ""

        if keyword == "function":
            module.declarations.append(self.parse_function(exported, doc, line))
        elif keyword in ("const", "let", "var"):
            if keyword == "const" and self.peek().value == "enum":
                self.advance()
                module.declarations.append(self.parse_enum(exported, doc, line))
            else:
                module.declarations.extend(self.parse_variables(exported, doc, line))
        elif keyword == "interface":
            module.declarations.append(self.parse_interface(exported, doc, line))
        elif keyword == "class":
            module.declarations.append(self.parse_class(exported, doc, line))
        elif keyword == "type" and self.peek().kind == "ident":
            module.declarations.append(self.parse_type_alias(exported, doc, line))
        elif keyword == "enum":
            module.declarations.append(self.parse_enum(exported, doc, line))
        elif keyword in ("namespace", "module", "global"):
            module.warnings.append(f"{self.module_path}:{line}: {keyword} block skipped")
            self.skip_statement()
        else:
            self.skip_statement()

    def parse_import(self, module: ParsedModule) -> None:
        self.expect("import")
        self.accept("type")
        names: dict[str, str] = {}
        namespace = None

        if self.current.kind == "string":
            self.advance()
            self.end_statement()
            return

        if self.current.kind == "ident" and not self.at("from"):
            local = self.advance().value
            names[local] = "default"
            self.accept(",")
        if self.accept("*"):
            self.expect("as")
            namespace = self.expect_name()
        if self.accept("{"):
            while not self.at("}"):
                self.accept("type")
                imported = self.expect_name()
                local = self.expect_name() if self.accept("as") else imported
                names[local] = imported
                if not self.accept(","):
                    break
            self.expect("}")

        self.expect("from")
        source = _unquote(self.advance().value)
        self.end_statement()
        module.imports.append(ImportDecl(source=source, names=names, namespace=namespace))

    def parse_reexport(self, module: ParsedModule) -> None:
        self.accept("type")
        reexport = ReExport(source=None)

        if self.accept("*"):
            reexport.star = True
            if self.accept("as"):
                alias = self.expect_name()
                reexport.star = False
                reexport.names[alias] = "*"
        else:
            self.expect("{")
            while not self.at("}"):
                self.accept("type")
                local = self.expect_name()
                exported = self.expect_name() if self.accept("as") else local
                reexport.names[exported] = local
                if not self.accept(","):
                    break
            self.expect("}")

        if self.accept("from"):
            reexport.source = _unquote(self.advance().value)
        self.end_statement()
        module.reexports.append(reexport)

    # -- declarations --------------------------------------------------------

    def parse_function(self, exported: bool, doc: DocComment, line: int) -> FunctionDecl:
        self.expect("function")
        self.accept("*")
        name = self.expect_name()
        generics = self.parse_generics()
        params = self.parse_params()
        return_type = self.parse_type() if self.accept(":") else None
        if self.at("{"):
            self.skip_balanced()
        else:
            self.end_statement()

        for param in params:
            if param.default is None and param.name in doc.param_defaults:
                param.default = doc.param_defaults[param.name]

        return FunctionDecl(
            name=name,
            exported=exported,
            doc=doc,
            line=line,
            generics=generics,
            params=params,
            return_type=return_type,
        )

    def parse_variables(self, exported: bool, doc: DocComment, line: int) -> list[VariableDecl]:
        self.advance()  # const / let / var
        declarations: list[VariableDecl] = []

        while True:
            if self.at("{") or self.at("["):
                self.skip_balanced()
                if self.accept("="):
                    self.text_until({",", ";"})
            else:
                name = self.expect_name()
                type_expr = self.parse_type() if self.accept(":") else None
                value = None
                if self.accept("="):
                    value = self.parse_initializer()
                declarations.append(
                    VariableDecl(name=name, exported=exported, doc=doc, line=line, type=type_expr, value=value)
                )
            if not self.accept(","):
                break

        self.end_statement()
        return declarations

    def parse_initializer(self) -> Optional[str]:
        """Return literal initializer text, skipping anything else."""
        token = self.current
        follower = self.peek()
        simple = follower.kind == "eof" or follower.value in (",", ";") or follower.line > token.line
        if simple and token.kind in ("string", "number", "template"):
            self.advance()
            return _unquote(token.value) if token.kind != "number" else token.value
        if simple and token.kind == "ident" and token.value in ("true", "false", "null"):
            self.advance()
            return token.value
        if token.value == "-" and follower.kind == "number":
            self.advance()
            self.advance()
            return f"-{follower.value}"

        text = self.text_until({",", ";"})
        if text.endswith(" as const"):
            text = text[: -len(" as const")].strip()
        return text or None

    def parse_interface(self, exported: bool, doc: DocComment, line: int) -> InterfaceDecl:
        self.expect("interface")
        name = self.expect_name()
        generics = self.parse_generics()
        extends: list[TypeExpr] = []
        if self.accept("extends"):
            extends.append(self.parse_type())
            while self.accept(","):
                extends.append(self.parse_type())
        members = self.parse_object_members()
        return InterfaceDecl(
            name=name,
            exported=exported,
            doc=doc,
            line=line,
            generics=generics,
            extends=extends,
            members=members,
        )

    def parse_class(self, exported: bool, doc: DocComment, line: int) -> InterfaceDecl:
        self.expect("class")
        name = self.expect_name()
        generics = self.parse_generics()
        extends: list[TypeExpr] = []
        if self.accept("extends"):
            extends.append(self.parse_type())
        if self.accept("implements"):
            self.parse_type()
            while self.accept(","):
                self.parse_type()
        members = self.parse_object_members(class_body=True)
        return InterfaceDecl(
            name=name,
            exported=exported,
            doc=doc,
            line=line,
            generics=generics,
            extends=extends,
            members=members,
        )

    def parse_type_alias(self, exported: bool, doc: DocComment, line: int) -> TypeAliasDecl:
        self.expect("type")
        name = self.expect_name()
        generics = self.parse_generics()
        self.expect("=")
        type_expr = self.parse_type(allow_conditional=True)
        self.end_statement()
        return TypeAliasDecl(name=name, exported=exported, doc=doc, line=line, generics=generics, type=type_expr)

    def parse_enum(self, exported: bool, doc: DocComment, line: int) -> EnumDecl:
        self.expect("enum")
        name = self.expect_name()
        self.expect("{")
        members: list[tuple[str, TLiteral]] = []
        next_number = 0

        while not self.at("}"):
            self.skip_docs()
            if self.at("}"):
                break
            member = self.expect_name()
            if self.accept("="):
                token = self.current
                if token.kind == "string":
                    self.advance()
                    literal = TLiteral("string", _unquote(token.value))
                elif token.kind == "number" or token.value == "-":
                    negative = self.accept("-")
                    number = self.advance().value
                    value = f"-{number}" if negative else number
                    literal = TLiteral("number", value)
                    next_number = _next_enum_number(value, next_number)
                else:
                    literal = TLiteral("string", self.text_until({",", "}"}))
            else:
                literal = TLiteral("number", str(next_number))
                next_number += 1
            members.append((member, literal))
            if not self.accept(","):
                break

        self.expect("}")
        return EnumDecl(name=name, exported=exported, doc=doc, line=line, members=members)

    # -- signatures ----------------------------------------------------------

    def parse_generics(self) -> list[GenericDecl]:
        generics: list[GenericDecl] = []
        if not self.accept("<"):
            return generics
        while not self.at(">"):
            self.accept("const")
            self.accept("in")
            self.accept("out")
            name = self.expect_name()
            constraint = self.parse_type() if self.accept("extends") else None
            default = self.parse_type() if self.accept("=") else None
            generics.append(GenericDecl(name, constraint, default))
            if not self.accept(","):
                break
        self.expect(">")
        return generics

    def parse_params(self) -> list[ParamDecl]:
        params: list[ParamDecl] = []
        self.expect("(")
        index = 0
        while not self.at(")"):
            self.skip_docs()
            while self.current.kind == "ident" and self.current.value in ("public", "private", "protected", "readonly"):
                if self.peek().value in (":", "?", ",", ")", "="):
                    break
                self.advance()
            rest = self.accept("...")
            if self.at("{") or self.at("["):
                self.skip_balanced()
                name = "props" if index == 0 else f"arg{index}"
            else:
                name = self.expect_name()
            optional = self.accept("?")
            type_expr = self.parse_type() if self.accept(":") else None
            default = self.text_until({",", ")"}) if self.accept("=") else None
            if name != "this":
                params.append(
                    ParamDecl(
                        name=name,
                        type=type_expr,
                        optional=optional or default is not None,
                        rest=rest,
                        default=default,
                    )
                )
            index += 1
            if not self.accept(","):
                break
        self.expect(")")
        return params

    def parse_object_members(self, class_body: bool = False) -> list[ParamDecl]:
        members: list[ParamDecl] = []
        self.expect("{")

        while not self.at("}"):
            if self.current.kind == "eof":
                self.fail("unterminated object type")
            doc = self.skip_docs()
            if self.at("}"):
                break
            if self.accept(";") or self.accept(","):
                continue

            hidden = False
            while (
                self.current.kind == "ident"
                and (self.current.value in _MEMBER_MODIFIERS or self.current.value in ("private", "protected"))
                and self.peek().value not in (":", "?", "(", ";", ",", "}")
            ):
                if self.current.value in ("private", "protected"):
                    hidden = True
                self.advance()

            if self.at("[") or self.at("(") or self.at("<") or self.at("new"):
                # Index, call and construct signatures have no member name.
                self.skip_member()
                continue
            accessor = None
            if self.current.kind == "ident" and self.current.value in ("get", "set") and self.peek().kind in (
                "ident",
                "string",
            ):
                accessor = self.advance().value
            if self.current.kind == "punct" and self.current.value == "#":
                hidden = True
                self.advance()

            name = self.expect_name()
            optional = self.accept("?")
            self.accept("!")

            if self.at("(") or self.at("<"):
                self.parse_generics()
                params = self.parse_params()
                return_type = self.parse_type() if self.accept(":") else TKeyword("void")
                if class_body and self.at("{"):
                    self.skip_balanced()
                member_type: Optional[TypeExpr] = TFunction(params, return_type)
                if accessor == "get":
                    member_type = return_type
                elif accessor == "set":
                    member_type = params[0].type if params else None
            else:
                member_type = self.parse_type() if self.accept(":") else None
                if self.accept("="):
                    self.text_until({";", ",", "}"})

            if name != "constructor" and not hidden:
                member_doc = doc or DocComment()
                members.append(
                    ParamDecl(
                        name=name,
                        type=member_type,
                        optional=optional,
                        default=member_doc.default,
                        doc=member_doc,
                    )
                )
            if not (self.accept(";") or self.accept(",")):
                if not self.at("}") and self.current.line == self.tokens[self.pos - 1].line:
                    self.fail(f"unexpected {self.current.value!r} in object type")

        self.expect("}")
        return members

    def skip_member(self) -> None:
        self.text_until({";", ","})

    # -- types ---------------------------------------------------------------

    def parse_type(self, allow_conditional: bool = False) -> TypeExpr:
        start = self.pos
        type_expr = self.parse_union()
        if allow_conditional and self.at("extends"):
            self.advance()
            self.parse_union()
            self.expect("?")
            self.parse_type(allow_conditional=True)
            self.expect(":")
            self.parse_type(allow_conditional=True)
            return TOpaque(self.source_text(start, self.pos))
        return type_expr

    def parse_union(self) -> TypeExpr:
        self.accept("|")
        members = [self.parse_intersection()]
        while self.accept("|"):
            members.append(self.parse_intersection())
        return members[0] if len(members) == 1 else TUnion(members)

    def parse_intersection(self) -> TypeExpr:
        self.accept("&")
        members = [self.parse_postfix()]
        while self.accept("&"):
            members.append(self.parse_postfix())
        return members[0] if len(members) == 1 else TIntersection(members)

    def parse_postfix(self) -> TypeExpr:
        start = self.pos
        type_expr = self.parse_prefix()
        while self.at("[") and self.current.line == self.tokens[self.pos - 1].line:
            self.advance()
            if self.accept("]"):
                type_expr = TArray(type_expr)
            else:
                self.parse_type()
                self.expect("]")
                type_expr = TOpaque(self.source_text(start, self.pos))
        return type_expr

    def parse_prefix(self) -> TypeExpr:
        start = self.pos
        if self.at("keyof") or self.at("typeof") or self.at("infer"):
            self.advance()
            self.parse_postfix()
            return TOpaque(self.source_text(start, self.pos))
        if self.at("readonly"):
            self.advance()
            return self.parse_postfix()
        if self.at("unique") and self.peek().value == "symbol":
            self.advance()
            self.advance()
            return TKeyword("symbol")
        return self.parse_primary()

    def parse_primary(self) -> TypeExpr:
        token = self.current
        start = self.pos

        if token.kind == "punct":
            if token.value == "(":
                if self.is_function_type():
                    return self.parse_function_type()
                self.advance()
                inner = self.parse_type(allow_conditional=True)
                self.expect(")")
                return inner
            if token.value == "<":
                self.parse_generics()
                return self.parse_function_type()
            if token.value == "{":
                if self.peek().value == "[" and self.peek(3).value == "in":
                    self.skip_balanced()
                    return TOpaque(self.source_text(start, self.pos))
                if (self.peek().value in ("readonly", "+", "-")) and self.peek(2).value == "[":
                    self.skip_balanced()
                    return TOpaque(self.source_text(start, self.pos))
                return TObject(self.parse_object_members())
            if token.value == "[":
                self.advance()
                elements: list[TypeExpr] = []
                while not self.at("]"):
                    self.accept("...")
                    if self.current.kind == "ident" and self.peek().value in (":", "?"):
                        self.advance()
                        self.accept("?")
                        self.expect(":")
                    elements.append(self.parse_type())
                    self.accept("?")
                    if not self.accept(","):
                        break
                self.expect("]")
                return TTuple(elements)
            if token.value == "-" and self.peek().kind == "number":
                self.advance()
                return TLiteral("number", f"-{self.advance().value}")

        if token.kind == "string":
            self.advance()
            return TLiteral("string", _unquote(token.value))
        if token.kind == "template":
            self.advance()
            return TKeyword("string")
        if token.kind == "number":
            self.advance()
            return TLiteral("number", token.value)

        if token.kind == "ident":
            if token.value in ("true", "false"):
                self.advance()
                return TLiteral("boolean", token.value)
            if token.value == "new" or (token.value == "abstract" and self.peek().value == "new"):
                self.accept("abstract")
                self.advance()
                self.parse_generics()
                self.parse_function_type()
                return TOpaque(self.source_text(start, self.pos))
            if token.value in TYPE_KEYWORDS and self.peek().value != ".":
                self.advance()
                return TKeyword(token.value)
            if token.value == "asserts":
                self.text_until({";", ",", "{", ")", "}"})
                return TKeyword("void")
            return self.parse_reference()

        self.fail(f"unexpected {token.value or 'end of file'!r} in type")
        return TKeyword("unknown")

    def parse_reference(self) -> TypeExpr:
        parts = [self.expect_name()]
        while self.at(".") and self.peek().kind == "ident":
            self.advance()
            parts.append(self.advance().value)
        name = ".".join(parts)

        if self.at("is") and self.current.line == self.tokens[self.pos - 1].line:
            # Type predicate: `value is Foo`
            self.advance()
            self.parse_type()
            return TKeyword("boolean")

        args: list[TypeExpr] = []
        if self.at("<") and self.current.line == self.tokens[self.pos - 1].line:
            self.advance()
            while not self.at(">"):
                args.append(self.parse_type(allow_conditional=True))
                if not self.accept(","):
                    break
            self.expect(">")
        return TRef(name, args)

    def is_function_type(self) -> bool:
        """Look past the balanced parentheses for ``=>``."""
        depth = 0
        index = self.pos
        while index < len(self.tokens):
            token = self.tokens[index]
            if token.kind == "eof":
                return False
            if token.kind == "punct" and token.value in _OPENERS:
                depth += 1
            elif token.kind == "punct" and token.value in (")", "]", "}"):
                depth -= 1
                if depth == 0:
                    follower = self.tokens[index + 1] if index + 1 < len(self.tokens) else None
                    return follower is not None and follower.value == "=>"
            index += 1
        return False

    def parse_function_type(self) -> TFunction:
        params = self.parse_params()
        self.expect("=>")
        return TFunction(params, self.parse_type())

    def source_text(self, start: int, end: int) -> str:
        return _join_tokens([token.value for token in self.tokens[start:end]])


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] in "'\"`" and value[-1] == value[0]:
        return value[1:-1]
    return value


def _join_tokens(parts: list[str]) -> str:
    text = " ".join(parts)
    text = re.sub(r"\s+([,;:)\]>.])", r"\1", text)
    text = re.sub(r"([(\[<.])\s+", r"\1", text)
    return text.strip()


def _next_enum_number(value: str, fallback: int) -> int:
    try:
        return int(float(value)) + 1
    except ValueError:
        return fallback


def parse_type_expression(text: str, module_path: str = "") -> TypeExpr:
    """Parse a standalone TypeScript type expression.

    Raises:
        ExtractionError: If the text is not a complete type expression.
    """
    parser = DeclarationParser(text, module_path)
    type_expr = parser.parse_type(allow_conditional=True)
    if parser.current.kind != "eof":
        parser.fail(f"unexpected {parser.current.value!r} after type")
    return type_expr


def parse_typescript(text: str, module_path: str, source_file: Optional[str] = None) -> ParsedModule:
    """Parse a TypeScript declaration module.

    Raises:
        ExtractionError: If the module cannot be parsed.
    """
    module = DeclarationParser(text, module_path).parse_module()
    module.source_file = source_file
    return module


# ---------------------------------------------------------------------------
# Declaration sets
# ---------------------------------------------------------------------------

_KIND_ALIASES = {
    "function": EntityKind.FUNCTION,
    "type": EntityKind.TYPE,
    "interface": EntityKind.TYPE,
    "constant": EntityKind.CONSTANT,
    "const": EntityKind.CONSTANT,
    "styletoken": EntityKind.STYLE_TOKEN,
    "style_token": EntityKind.STYLE_TOKEN,
    "token": EntityKind.STYLE_TOKEN,
    "componentdefinition": EntityKind.COMPONENT_DEFINITION,
    "component_definition": EntityKind.COMPONENT_DEFINITION,
    "component": EntityKind.COMPONENT_DEFINITION,
}


def parse_declaration_set(
    text: str,
    module_path: str,
    source_file: Optional[str] = None,
    is_json: bool = False,
) -> ParsedModule:
    """Parse a YAML or JSON declaration set.

    Raises:
        ExtractionError: If the document or one of its entries is malformed.
    """
    try:
        data = json.loads(text) if is_json else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ExtractionError(module_path, f"invalid document: {e}") from e

    if data is None:
        data = {}
    if isinstance(data, list):
        data = {"entities": data}
    if not isinstance(data, dict):
        raise ExtractionError(module_path, "declaration set must be a mapping or a list")

    module_path = str(data.get("module", module_path))
    module = ParsedModule(module_path=module_path, source_file=source_file)

    for index, entry in enumerate(_list_field(data, "entities", module_path)):
        if not isinstance(entry, dict) or "name" not in entry:
            raise ExtractionError(module_path, f"entity #{index} needs a name")
        module.declarations.append(_declaration_from_entry(entry, module_path))

    for entry in _list_field(data, "types", module_path):
        if not isinstance(entry, dict) or "name" not in entry:
            raise ExtractionError(module_path, "local type needs a name")
        declaration = _declaration_from_entry({**entry, "kind": "type"}, module_path)
        declaration.exported = False
        module.declarations.append(declaration)

    imports = data.get("imports") or {}
    if not isinstance(imports, dict):
        raise ExtractionError(module_path, "imports must map a module to the names it provides")
    for source, names in imports.items():
        if isinstance(names, str):
            names = [names]
        elif not isinstance(names, list):
            raise ExtractionError(module_path, f"imports from {source} must be a name or a list of names")
        module.imports.append(ImportDecl(source=str(source), names={str(n): str(n) for n in names}))

    return module


def _declaration_from_entry(entry: dict[str, Any], module_path: str) -> Declaration:
    name = str(entry["name"])
    raw_kind = str(entry.get("kind", "function")).replace("-", "_").lower()
    kind = _KIND_ALIASES.get(raw_kind) or _KIND_ALIASES.get(raw_kind.replace("_", ""))
    if kind is None:
        raise ExtractionError(module_path, f"unknown kind {entry.get('kind')!r} for {name}")

    deprecated = entry.get("deprecated", False)
    doc = DocComment(
        deprecated=bool(deprecated),
        deprecation_message=deprecated if isinstance(deprecated, str) else None,
        internal=str(entry.get("visibility", "public")).lower() == "internal",
        kind_hint=kind,
    )
    generics = [
        GenericDecl(
            name=str(g["name"]) if isinstance(g, dict) else str(g),
            constraint=_type_or_none(g.get("constraint"), module_path) if isinstance(g, dict) else None,
            default=_type_or_none(g.get("default"), module_path) if isinstance(g, dict) else None,
        )
        for g in _list_field(entry, "generics", module_path)
    ]
    exported = bool(entry.get("exported", True))

    if kind in (EntityKind.FUNCTION, EntityKind.COMPONENT_DEFINITION):
        key = "parameters" if "parameters" in entry else "props"
        params = [_param_from_entry(p, module_path) for p in _list_field(entry, key, module_path)]
        return FunctionDecl(
            name=name,
            exported=exported,
            doc=doc,
            generics=generics,
            params=params,
            return_type=_type_or_none(entry.get("returns"), module_path),
        )

    if kind == EntityKind.TYPE:
        if "properties" in entry or "props" in entry:
            key = "properties" if "properties" in entry else "props"
            members = [_param_from_entry(p, module_path) for p in _list_field(entry, key, module_path)]
            return InterfaceDecl(name=name, exported=exported, doc=doc, generics=generics, members=members)
        if "values" in entry:
            members = [(str(v), TLiteral("string", str(v))) for v in _list_field(entry, "values", module_path)]
            return EnumDecl(name=name, exported=exported, doc=doc, members=members)
        type_expr = _type_or_none(entry.get("type"), module_path) or TKeyword("unknown")
        return TypeAliasDecl(name=name, exported=exported, doc=doc, generics=generics, type=type_expr)

    value = entry.get("value")
    return VariableDecl(
        name=name,
        exported=exported,
        doc=doc,
        type=_type_or_none(entry.get("type"), module_path),
        value=None if value is None else str(value),
    )


def _param_from_entry(entry: Any, module_path: str) -> ParamDecl:
    if isinstance(entry, str):
        return ParamDecl(name=entry, type=None)
    if not isinstance(entry, dict) or "name" not in entry:
        raise ExtractionError(module_path, f"parameter entry {entry!r} needs a name")
    default = entry.get("default")
    return ParamDecl(
        name=str(entry["name"]),
        type=_type_or_none(entry.get("type"), module_path),
        optional=bool(entry.get("optional", False)) or default is not None,
        default=None if default is None else str(default),
    )


def _type_or_none(text: Any, module_path: str) -> Optional[TypeExpr]:
    if text is None:
        return None
    return parse_type_expression(str(text), module_path)


def _list_field(entry: dict[str, Any], key: str, module_path: str) -> list[Any]:
    value = entry.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        owner = f" of {entry['name']}" if "name" in entry else ""
        raise ExtractionError(module_path, f"{key}{owner} must be a list, got {type(value).__name__}")
    return value
