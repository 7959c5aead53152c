"""Tests for the declaration parser."""

import pytest

from surfaceshift.analysis.declaration_parser import (
    EnumDecl,
    FunctionDecl,
    InterfaceDecl,
    TArray,
    TFunction,
    TKeyword,
    TLiteral,
    TRef,
    TUnion,
    TypeAliasDecl,
    VariableDecl,
    parse_declaration_set,
    parse_doc_comment,
    parse_type_expression,
    parse_typescript,
    tokenize,
)
from surfaceshift.core.models import EntityKind
from surfaceshift.errors import ExtractionError

BUTTON_MODULE = """
import { Theme } from './theme';

/**
 * Formats a date.
 * @deprecated Use formatDateTime instead
 */
export function formatDate(value: number, pattern?: string): string;

export interface ButtonProps {
  /** @default 'primary' */
  variant?: 'primary' | 'secondary';
  onClick: (event: MouseEvent) => void;
}

export const colorPrimary = '#0055ff';

export enum Size { Small, Large = 10, Huge }

export type Handler<T = string> = (value: T) => void;

export { Button as PrimaryButton } from './Button';
export * from './tokens';
export default Foo;
"""


class TestTokenize:
    """Tests for the tokenizer."""

    def test_skips_whitespace_and_comments(self) -> None:
        """Test that plain comments are dropped and doc comments kept."""
        tokens = tokenize("// note\n/** doc */ export const a = 1;")
        kinds = [t.kind for t in tokens]
        assert kinds[0] == "doc"
        assert kinds[-1] == "eof"
        assert "comment" not in kinds

    def test_tracks_lines(self) -> None:
        """Test line numbers."""
        tokens = tokenize("a\nb\n\nc")
        assert [t.line for t in tokens if t.kind == "ident"] == [1, 2, 4]

    def test_unexpected_character(self) -> None:
        """Test that unknown characters raise ExtractionError."""
        with pytest.raises(ExtractionError, match="unexpected character"):
            tokenize("export const a = §;", "index")


class TestParseDocComment:
    """Tests for JSDoc tag extraction."""

    def test_deprecated_with_message(self) -> None:
        """Test @deprecated."""
        doc = parse_doc_comment("/**\n * @deprecated Use Tile instead\n */")
        assert doc.deprecated is True
        assert doc.deprecation_message == "Use Tile instead"

    def test_internal(self) -> None:
        """Test @internal."""
        assert parse_doc_comment("/** @internal */").internal is True

    def test_default(self) -> None:
        """Test @default."""
        assert parse_doc_comment("/** @default 'md' */").default == "'md'"

    def test_kind_hints(self) -> None:
        """Test @token and @component."""
        assert parse_doc_comment("/** @token */").kind_hint == EntityKind.STYLE_TOKEN
        assert parse_doc_comment("/** @component */").kind_hint == EntityKind.COMPONENT_DEFINITION

    def test_param_defaults(self) -> None:
        """Test @param [name=value]."""
        doc = parse_doc_comment("/**\n * @param {string} [pattern=yyyy] Output pattern\n */")
        assert doc.param_defaults == {"pattern": "yyyy"}


class TestParseTypeExpression:
    """Tests for standalone type expressions."""

    def test_keyword(self) -> None:
        """Test a primitive keyword."""
        assert parse_type_expression("string") == TKeyword("string")

    def test_literal_union(self) -> None:
        """Test a union of string literals."""
        parsed = parse_type_expression("'primary' | 'secondary'")
        assert parsed == TUnion([TLiteral("string", "primary"), TLiteral("string", "secondary")])

    def test_array(self) -> None:
        """Test array postfix."""
        assert parse_type_expression("string[]") == TArray(TKeyword("string"))

    def test_generic_reference(self) -> None:
        """Test a generic type reference."""
        assert parse_type_expression("Array<Item>") == TRef("Array", [TRef("Item")])

    def test_function_type(self) -> None:
        """Test an arrow function type."""
        parsed = parse_type_expression("(event: MouseEvent) => void")
        assert isinstance(parsed, TFunction)
        assert [p.name for p in parsed.params] == ["event"]
        assert parsed.params[0].type == TRef("MouseEvent")
        assert parsed.return_type == TKeyword("void")

    def test_trailing_tokens_rejected(self) -> None:
        """Test that leftover tokens are an error."""
        with pytest.raises(ExtractionError):
            parse_type_expression("string )")


class TestParseTypescript:
    """Tests for TypeScript declaration modules."""

    @pytest.fixture
    def module(self):
        return parse_typescript(BUTTON_MODULE, "components/Button", "Button.d.ts")

    def test_function(self, module) -> None:
        """Test function declarations with optional parameters and docs."""
        declaration = module.local("formatDate")
        assert isinstance(declaration, FunctionDecl)
        assert declaration.exported is True
        assert [p.name for p in declaration.params] == ["value", "pattern"]
        assert declaration.params[1].optional is True
        assert declaration.return_type == TKeyword("string")
        assert declaration.doc.deprecated is True
        assert declaration.doc.deprecation_message == "Use formatDateTime instead"

    def test_interface_members(self, module) -> None:
        """Test interface members with member docs."""
        declaration = module.local("ButtonProps")
        assert isinstance(declaration, InterfaceDecl)
        assert [m.name for m in declaration.members] == ["variant", "onClick"]
        variant = declaration.members[0]
        assert variant.optional is True
        assert variant.default == "'primary'"
        assert isinstance(declaration.members[1].type, TFunction)

    def test_constant_value(self, module) -> None:
        """Test literal initializers."""
        declaration = module.local("colorPrimary")
        assert isinstance(declaration, VariableDecl)
        assert declaration.value == "#0055ff"

    def test_enum_numbering(self, module) -> None:
        """Test implicit and explicit enum values."""
        declaration = module.local("Size")
        assert isinstance(declaration, EnumDecl)
        assert [(name, literal.value) for name, literal in declaration.members] == [
            ("Small", "0"),
            ("Large", "10"),
            ("Huge", "11"),
        ]

    def test_generic_type_alias(self, module) -> None:
        """Test type aliases with defaulted generics."""
        declaration = module.local("Handler")
        assert isinstance(declaration, TypeAliasDecl)
        assert declaration.generics[0].name == "T"
        assert declaration.generics[0].default == TKeyword("string")
        assert isinstance(declaration.type, TFunction)

    def test_imports_and_reexports(self, module) -> None:
        """Test import and re-export statements."""
        assert module.imports[0].source == "./theme"
        assert module.imports[0].names == {"Theme": "Theme"}
        named, star = module.reexports
        assert named.names == {"PrimaryButton": "Button"}
        assert named.source == "./Button"
        assert star.star is True
        assert star.source == "./tokens"

    def test_default_export_skipped_with_warning(self, module) -> None:
        """Test that default exports are reported."""
        assert any("default export skipped" in w for w in module.warnings)
        assert module.source_file == "Button.d.ts"

    def test_unterminated_object(self) -> None:
        """Test that an unterminated interface fails the module."""
        with pytest.raises(ExtractionError, match="unterminated"):
            parse_typescript("export interface Props { a: string;", "index")


class TestParseDeclarationSet:
    """Tests for YAML/JSON declaration sets."""

    def test_yaml_entities(self) -> None:
        """Test components, functions and tokens."""
        text = """
entities:
  - name: Card
    kind: component
    props:
      - {name: title, type: string}
      - {name: elevation, type: number, default: 1}
  - name: colorPrimary
    kind: token
    value: "#0055ff"
"""
        module = parse_declaration_set(text, "index")
        card = module.local("Card")
        assert isinstance(card, FunctionDecl)
        assert card.doc.kind_hint == EntityKind.COMPONENT_DEFINITION
        assert [p.name for p in card.params] == ["title", "elevation"]
        assert card.params[1].optional is True
        assert card.params[1].default == "1"
        token = module.local("colorPrimary")
        assert isinstance(token, VariableDecl)
        assert token.value == "#0055ff"
        assert token.doc.kind_hint == EntityKind.STYLE_TOKEN

    def test_json_list(self) -> None:
        """Test a bare JSON list of entities."""
        module = parse_declaration_set('[{"name": "noop", "kind": "function"}]', "utils", is_json=True)
        assert isinstance(module.local("noop"), FunctionDecl)

    def test_deprecated_and_internal(self) -> None:
        """Test deprecation messages and visibility."""
        text = """
entities:
  - name: legacy
    deprecated: Use modern instead
    visibility: internal
"""
        declaration = parse_declaration_set(text, "index").local("legacy")
        assert declaration.doc.deprecated is True
        assert declaration.doc.deprecation_message == "Use modern instead"
        assert declaration.doc.internal is True

    def test_local_types_not_exported(self) -> None:
        """Test that local types are available but not exported."""
        text = """
types:
  - name: Variant
    values: [primary, secondary]
"""
        declaration = parse_declaration_set(text, "index").local("Variant")
        assert isinstance(declaration, EnumDecl)
        assert declaration.exported is False

    def test_unknown_kind(self) -> None:
        """Test that unknown kinds raise ExtractionError."""
        with pytest.raises(ExtractionError, match="unknown kind"):
            parse_declaration_set("entities:\n  - {name: x, kind: widget}\n", "index")

    def test_entity_without_name(self) -> None:
        """Test that entities need a name."""
        with pytest.raises(ExtractionError, match="needs a name"):
            parse_declaration_set("entities:\n  - {kind: function}\n", "index")

    def test_invalid_yaml(self) -> None:
        """Test that malformed YAML raises ExtractionError."""
        with pytest.raises(ExtractionError, match="invalid document"):
            parse_declaration_set("entities: [unclosed", "index")
