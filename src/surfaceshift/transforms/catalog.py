"""Rewrite-rule catalog: loading and structural-path matching.

A structural path identifies one migratable aspect of a change::

    <change kind>:<delta kind | entity>:<module path>:<entity>:<target>

Rule patterns are ``:``-separated glob segments matched against a path
prefix. The most specific matching rule wins: more segments first, then
more literal (wildcard-free) segments.
"""

import fnmatch
import json
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from surfaceshift.core.models import ChangeKind
from surfaceshift.errors import AmbiguousMatchError, CatalogError
from surfaceshift.utils.logging import get_logger

logger = get_logger(__name__)

PATH_SEPARATOR = ":"
_WILDCARD_CHARS = frozenset("*?[")


class RewriteAction(str, Enum):
    """Source rewrites a template can describe."""

    RENAME_SYMBOL = "rename_symbol"
    RENAME_PROP = "rename_prop"
    REMOVE_PROP = "remove_prop"
    REPLACE_IMPORT = "replace_import"
    REGEX = "regex"


class RewriteTemplate(BaseModel):
    """How a matched change is rewritten.

    ``old``, ``new``, ``pattern`` and ``replacement`` may use the
    placeholders ``{package}``, ``{module}``, ``{entity}``, ``{target}``,
    ``{old_value}``, ``{new_value}``, ``{new_name}`` and ``{new_module}``.
    """

    action: RewriteAction
    old: Optional[str] = Field(default=None, description="Text to replace; derived from the change if omitted")
    new: Optional[str] = Field(default=None, description="Replacement text; derived from the change if omitted")
    pattern: Optional[str] = Field(default=None, description="Regex for the regex action")
    replacement: Optional[str] = Field(default=None, description="Replacement for the regex action")
    example: Optional[str] = Field(default=None, description="Sample source used to probe idempotence")
    file_globs: list[str] = Field(default_factory=lambda: ["*.ts", "*.tsx", "*.js", "*.jsx", "*.mjs", "*.cjs"])

    @model_validator(mode="after")
    def validate_regex_fields(self) -> "RewriteTemplate":
        """The regex action needs a pattern, replacement and probe example."""
        if self.action == RewriteAction.REGEX:
            missing = [name for name in ("pattern", "replacement", "example") if getattr(self, name) is None]
            if missing:
                raise ValueError(f"regex templates need: {', '.join(missing)}")
        return self


class RewriteRule(BaseModel):
    """One catalog entry."""

    id: str
    version: str = "1"
    description: str = ""
    match_pattern: str
    kinds: list[ChangeKind] = Field(default_factory=list, description="Restrict to these change kinds")
    rewrite_template: RewriteTemplate
    complexity: int = Field(default=1, ge=1, le=3)
    idempotent: bool = True

    @field_validator("match_pattern")
    @classmethod
    def validate_match_pattern(cls, v: str) -> str:
        """Reject empty patterns."""
        if not v.strip():
            raise ValueError("match_pattern must not be empty")
        return v.strip()

    @property
    def segments(self) -> list[str]:
        return self.match_pattern.split(PATH_SEPARATOR)

    @property
    def specificity(self) -> tuple[int, int]:
        """(segment count, literal segment count)."""
        segments = self.segments
        literal = sum(1 for s in segments if not (_WILDCARD_CHARS & set(s)))
        return len(segments), literal

    def matches(self, path: str, kind: Optional[ChangeKind] = None) -> bool:
        """Whether the pattern matches a prefix of ``path``."""
        if self.kinds and kind is not None and kind not in self.kinds:
            return False
        path_segments = path.split(PATH_SEPARATOR)
        segments = self.segments
        if len(segments) > len(path_segments):
            return False
        return all(fnmatch.fnmatchcase(value, pattern) for value, pattern in zip(path_segments, segments))


class RewriteCatalog:
    """An ordered set of rewrite rules."""

    def __init__(self, rules: Optional[list[RewriteRule]] = None, source: str = "") -> None:
        """Initialize the catalog.

        Raises:
            CatalogError: If two rules share an id.
        """
        self.source = source
        self._rules: dict[str, RewriteRule] = {}
        for rule in rules or []:
            if rule.id in self._rules:
                raise CatalogError(source, f"duplicate rule id '{rule.id}'")
            self._rules[rule.id] = rule

    def __iter__(self) -> Iterator[RewriteRule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    def get(self, rule_id: str) -> Optional[RewriteRule]:
        return self._rules.get(rule_id)

    def match(self, path: str, kind: Optional[ChangeKind] = None) -> Optional[RewriteRule]:
        """Most specific rule matching ``path``.

        Raises:
            AmbiguousMatchError: If distinct rules tie on specificity.
        """
        candidates = [rule for rule in self._rules.values() if rule.matches(path, kind)]
        if not candidates:
            return None

        best = max(rule.specificity for rule in candidates)
        winners = [rule for rule in candidates if rule.specificity == best]
        if len(winners) > 1:
            raise AmbiguousMatchError(path, sorted(rule.id for rule in winners))
        return winners[0]


def parse_catalog(data: Any, source: str = "") -> RewriteCatalog:
    """Build a catalog from parsed YAML/JSON data.

    Accepts either ``{"rules": [...]}`` or a bare list of rules.

    Raises:
        CatalogError: If the data is not a valid catalog.
    """
    if data is None:
        return RewriteCatalog(source=source)
    if isinstance(data, dict):
        data = data.get("rules") or []
    if not isinstance(data, list):
        raise CatalogError(source, "expected a list of rules")

    rules = []
    for index, entry in enumerate(data):
        try:
            rules.append(RewriteRule(**entry) if isinstance(entry, dict) else RewriteRule.model_validate(entry))
        except ValidationError as e:
            label = entry.get("id", f"#{index}") if isinstance(entry, dict) else f"#{index}"
            raise CatalogError(source, f"rule {label}: {e}") from e

    return RewriteCatalog(rules, source=source)


def load_catalog(path: Path) -> RewriteCatalog:
    """Load a catalog file (YAML or JSON).

    Raises:
        CatalogError: If the file cannot be read or is invalid.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogError(str(path), f"cannot read: {e}") from e

    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise CatalogError(str(path), f"invalid document: {e}") from e

    catalog = parse_catalog(data, source=str(path))
    logger.debug("Loaded %d rewrite rules from %s", len(catalog), path)
    return catalog
