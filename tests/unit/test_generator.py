"""Tests for transformation generation."""

from pathlib import Path

import pytest

from surfaceshift.analysis.impact_calculator import ImpactCalculator
from surfaceshift.analysis.surface_extractor import extract
from surfaceshift.analysis.version_differ import diff
from surfaceshift.config import GenerationConfig
from surfaceshift.core.models import (
    APIEntity,
    Change,
    ChangeKind,
    ClassifiedChange,
    DeltaKind,
    EntityKind,
    SignatureDelta,
    Transformation,
)
from surfaceshift.errors import AmbiguousMatchError
from surfaceshift.transforms.catalog import load_catalog, parse_catalog
from surfaceshift.transforms.generator import (
    TransformationGenerator,
    generate,
    probe_idempotence,
    structural_paths,
)

CARD_RENAME = "rename-symbol@1:renamed:index:Card->index:Tile:entity"
BADGE_PROP = "badge-inline@1:signature_changed:components/Badge:Badge:param_renamed:isInline"
FORMAT_DATE = "format-date-pattern@1:signature_changed:index:formatDate:param_removed:pattern"


@pytest.fixture
def changes(old_library, new_library, rename_hints) -> dict[str, Change]:
    old = extract(old_library, "1.0.0")
    new = extract(new_library, "2.0.0")
    return {c.change_id: c for c in diff(old, new, rename_hints)}


@pytest.fixture
def classified(changes) -> list[ClassifiedChange]:
    return ImpactCalculator().classify_all(changes.values())


@pytest.fixture
def generator(catalog_file: Path) -> TransformationGenerator:
    return TransformationGenerator(load_catalog(catalog_file), package="ui-kit")


def _entity(name: str) -> APIEntity:
    return APIEntity(name=name, kind=EntityKind.COMPONENT_DEFINITION, module_path="index")


class TestStructuralPaths:
    """Tests for structural path derivation."""

    def test_rename_path(self, changes) -> None:
        """Test entity-level path of a rename."""
        paths = structural_paths(changes["renamed:index:Card->index:Tile"])
        assert [p.path for p in paths] == ["renamed:entity:index:Card:Tile"]

    def test_removal_path(self, changes) -> None:
        """Test entity-level path of a removal."""
        paths = structural_paths(changes["removed:index:legacyHelper"])
        assert [p.path for p in paths] == ["removed:entity:index:legacyHelper:"]

    def test_delta_paths(self, changes) -> None:
        """Test delta-level paths."""
        paths = structural_paths(changes["signature_changed:components/Button:Button"])
        assert [p.path for p in paths] == ["signature_changed:param_added:components/Button:Button:onAction"]

    def test_non_breaking_changes_have_no_paths(self, changes) -> None:
        """Test additions and value changes need no rewrite."""
        assert structural_paths(changes["added:components/Tooltip:Tooltip"]) == []
        assert structural_paths(changes["default_changed:tokens:colorPrimary"]) == []

    def test_optional_param_added_has_no_path(self) -> None:
        """Test that optional additions need no rewrite."""
        change = Change(
            kind=ChangeKind.SIGNATURE_CHANGED,
            module_path="index",
            name="Card",
            old_entity=_entity("Card"),
            new_entity=_entity("Card"),
            deltas=(SignatureDelta(kind=DeltaKind.PARAM_ADDED, target="dense", optional=True),),
        )
        assert structural_paths(change) == []


class TestTransformationGenerator:
    """Tests for TransformationGenerator."""

    def test_generates_catalog_rewrites(self, generator, classified) -> None:
        """Test transformations bound from the catalog."""
        result = generator.generate(classified)
        assert sorted(t.id for t in result.transformations) == sorted([CARD_RENAME, BADGE_PROP, FORMAT_DATE])
        assert result.errors == ()

    def test_unmatched_changes_are_manual(self, generator, classified) -> None:
        """Test that changes without rules need manual migration."""
        result = generator.generate(classified)
        manual = {m.change_id: m for m in result.manual_only}
        assert set(manual) == {"removed:index:legacyHelper", "signature_changed:components/Button:Button"}
        assert manual["removed:index:legacyHelper"].reason == "no rewrite rule matches"
        assert manual["removed:index:legacyHelper"].paths == ("removed:entity:index:legacyHelper:",)

    def test_bound_rewrites(self, generator, classified) -> None:
        """Test the rewrites carried by the transformations."""
        result = generator.generate(classified)
        by_id = {t.id: t for t in result.transformations}
        assert by_id[CARD_RENAME].apply("<Card title='x' />") == "<Tile title='x' />"
        assert by_id[BADGE_PROP].apply('<Badge text="a" isInline />') == '<Badge text="a" inline />'
        assert by_id[FORMAT_DATE].apply("formatDate(now, 'yyyy')") == "formatDate(now)"
        assert by_id[FORMAT_DATE].complexity == 2

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("<Badge isInline />", "<Badge inline />"),
            ("<Badge isInline/>", "<Badge inline/>"),
            ("<Badge isInline={false} text='a' />", "<Badge inline={false} text='a' />"),
            ("<Badge isInline text='a' />", "<Badge inline text='a' />"),
            ("<Badge isInline {...rest} />", "<Badge inline {...rest} />"),
            ("const o = { isInline: true };", "const o = { inline: true };"),
            ("f({ a: 1, isInline: true });", "f({ a: 1, inline: true });"),
            ("  isInline?: boolean;", "  inline?: boolean;"),
            ("const v = isInline && x;", "const v = isInline && x;"),
            ("return isInline ? a : b;", "return isInline ? a : b;"),
            ("if (isInline === true) {}", "if (isInline === true) {}"),
            ("const fn = isInline => isInline;", "const fn = isInline => isInline;"),
        ],
    )
    def test_rename_prop_contexts(self, generator, classified, source: str, expected: str) -> None:
        """Test that prop renames touch attributes and object keys only."""
        badge = {t.id: t for t in generator.generate(classified).transformations}[BADGE_PROP]
        assert badge.apply(source) == expected

    def test_generate_function(self, catalog_file: Path, classified) -> None:
        """Test the module-level convenience function."""
        result = generate(classified, load_catalog(catalog_file))
        assert len(result.transformations) == 3

    def test_generation_is_deterministic(self, generator, classified) -> None:
        """Test that repeated generation yields identical results."""
        assert generator.generate(classified) == generator.generate(list(reversed(classified)))

    def test_complexity_for(self, generator, changes) -> None:
        """Test complexity lookup before generation."""
        assert generator.complexity_for(changes["signature_changed:index:formatDate"]) == 2
        assert generator.complexity_for(changes["renamed:index:Card->index:Tile"]) == 1
        assert generator.complexity_for(changes["added:components/Tooltip:Tooltip"]) == 1
        assert generator.complexity_for(changes["removed:index:legacyHelper"]) is None

    @pytest.mark.parametrize(
        "rule",
        [
            {"id": "r", "match_pattern": "renamed:entity", "idempotent": False, "complexity": 1,
             "rewrite_template": {"action": "rename_symbol"}},
            {"id": "r", "match_pattern": "renamed:entity", "complexity": 1,
             "rewrite_template": {"action": "regex", "pattern": "Card", "replacement": "CardCard",
                                  "example": "<Card />"}},
            {"id": "r", "match_pattern": "renamed:entity", "complexity": 1,
             "rewrite_template": {"action": "rename_symbol", "new": "{nope}"}},
        ],
        ids=["non-idempotent", "rematching-rewrite", "bad-placeholder"],
    )
    def test_complexity_for_manual_outcome(self, changes, rule) -> None:
        """Test that a matched rule which cannot be automated gives no complexity."""
        generator = TransformationGenerator(parse_catalog([rule]))
        card = changes["renamed:index:Card->index:Tile"]
        assert generator.complexity_for(card) is None
        classified = ImpactCalculator().classify_all([card])
        assert generator.generate(classified).is_manual(card.change_id)

    def test_ambiguity_recorded(self, classified) -> None:
        """Test that a tie marks only that change manual."""
        catalog = parse_catalog(
            [
                {"id": "a", "match_pattern": "renamed:entity:*:Card", "rewrite_template": {"action": "rename_symbol"}},
                {"id": "b", "match_pattern": "renamed:entity:index:*", "rewrite_template": {"action": "rename_symbol"}},
            ]
        )
        result = TransformationGenerator(catalog).generate(classified)
        assert result.transformations == ()
        assert len(result.errors) == 1
        assert result.is_manual("renamed:index:Card->index:Tile")
        card = next(c.change for c in classified if c.change_id == "renamed:index:Card->index:Tile")
        assert TransformationGenerator(catalog).complexity_for(card) is None

    def test_ambiguity_fails_when_configured(self, classified) -> None:
        """Test fail_on_ambiguity."""
        catalog = parse_catalog(
            [
                {"id": "a", "match_pattern": "renamed:entity:*:Card", "rewrite_template": {"action": "rename_symbol"}},
                {"id": "b", "match_pattern": "renamed:entity:index:*", "rewrite_template": {"action": "rename_symbol"}},
            ]
        )
        generator = TransformationGenerator(catalog, GenerationConfig(fail_on_ambiguity=True))
        with pytest.raises(AmbiguousMatchError):
            generator.generate(classified)

    def test_non_idempotent_rule_is_manual(self, classified) -> None:
        """Test that declared non-idempotent rules are never automated."""
        catalog = parse_catalog(
            [
                {
                    "id": "rename",
                    "match_pattern": "renamed:entity",
                    "idempotent": False,
                    "rewrite_template": {"action": "rename_symbol"},
                }
            ]
        )
        result = TransformationGenerator(catalog).generate(classified)
        assert result.transformations == ()
        assert "non-idempotent" in next(
            m.reason for m in result.manual_only if m.change_id == "renamed:index:Card->index:Tile"
        )

    def test_failed_probe_is_manual(self, classified) -> None:
        """Test that a rewrite failing its idempotence probe is manual."""
        catalog = parse_catalog(
            [
                {
                    "id": "grow",
                    "match_pattern": "renamed:entity",
                    "rewrite_template": {
                        "action": "regex",
                        "pattern": "Card",
                        "replacement": "CardCard",
                        "example": "<Card />",
                    },
                }
            ]
        )
        result = TransformationGenerator(catalog).generate(classified)
        assert result.transformations == ()
        manual = next(m for m in result.manual_only if m.change_id == "renamed:index:Card->index:Tile")
        assert "still matches" in manual.reason

    def test_placeholders(self, classified) -> None:
        """Test template placeholders."""
        catalog = parse_catalog(
            [
                {
                    "id": "import",
                    "match_pattern": "renamed:entity",
                    "rewrite_template": {"action": "rename_symbol", "old": "{entity}", "new": "{new_name}"},
                }
            ]
        )
        result = TransformationGenerator(catalog).generate(classified)
        assert result.transformations[0].apply("Card") == "Tile"

    def test_unknown_placeholder(self, classified) -> None:
        """Test that a bad placeholder marks the change manual."""
        catalog = parse_catalog(
            [
                {
                    "id": "bad",
                    "match_pattern": "renamed:entity",
                    "rewrite_template": {"action": "rename_symbol", "new": "{nope}"},
                }
            ]
        )
        result = TransformationGenerator(catalog).generate(classified)
        manual = next(m for m in result.manual_only if m.change_id == "renamed:index:Card->index:Tile")
        assert "unknown placeholder" in manual.reason


class TestProbeIdempotence:
    """Tests for probe_idempotence."""

    def _transformation(self, precondition: str, rewrite: str) -> Transformation:
        return Transformation(
            id="t", name="t", rule_id="r", change_id="c", path="p", precondition=precondition, rewrite=rewrite
        )

    def test_passes(self) -> None:
        """Test an idempotent rewrite."""
        assert probe_idempotence(self._transformation(r"\bCard\b", "Tile"), "<Card />") is None

    def test_probe_must_match(self) -> None:
        """Test that the probe example must exercise the rewrite."""
        reason = probe_idempotence(self._transformation(r"\bCard\b", "Tile"), "<Tile />")
        assert reason == "precondition does not match its probe example"

    def test_rematch_fails(self) -> None:
        """Test a rewrite whose output matches again."""
        reason = probe_idempotence(self._transformation("Card", "CardCard"), "<Card />")
        assert reason == "precondition still matches after rewriting"
