"""npm-style version ranges as unions of version intervals."""

import functools
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from surfaceshift.errors import ResolutionError

_VERSION_PATTERN = re.compile(
    r"^v?(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
_PARTIAL_PATTERN = re.compile(
    r"^v?(?P<major>\d+|[xX*])(?:\.(?P<minor>\d+|[xX*]))?(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
_HYPHEN_PATTERN = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_COMPARATOR_PATTERN = re.compile(r"^(<=|>=|<|>|=|\^|~>|~)?(.*)$")
_WILDCARDS = frozenset({"x", "X", "*"})


@functools.total_ordering
@dataclass(frozen=True)
class Version:
    """A semantic version."""

    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> "Version":
        """Parse ``1.2.3`` or ``1.2.3-beta.1`` (build metadata is ignored).

        Raises:
            ResolutionError: If the text is not a full semantic version.
        """
        match = _VERSION_PATTERN.match(text.strip().lstrip("="))
        if not match:
            raise ResolutionError(text, "not a semantic version")
        pre = tuple(match.group("pre").split(".")) if match.group("pre") else ()
        return cls(int(match.group("major")), int(match.group("minor")), int(match.group("patch")), pre)

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def release(self) -> "Version":
        """The same version without prerelease tag."""
        return Version(self.major, self.minor, self.patch)

    def _key(self) -> tuple:
        # A prerelease sorts before its release; numeric identifiers before alphanumeric.
        pre = tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in self.prerelease)
        return (self.major, self.minor, self.patch, 0 if self.prerelease else 1, pre)

    def __lt__(self, other: "Version") -> bool:
        return self._key() < other._key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        return text


@dataclass(frozen=True)
class Bound:
    version: Version
    inclusive: bool


@dataclass(frozen=True)
class Interval:
    """A contiguous set of versions; None bounds are unbounded."""

    lower: Optional[Bound] = None
    upper: Optional[Bound] = None

    def contains(self, version: Version) -> bool:
        if self.lower is not None:
            if version < self.lower.version or (version == self.lower.version and not self.lower.inclusive):
                return False
        if self.upper is not None:
            if version > self.upper.version or (version == self.upper.version and not self.upper.inclusive):
                return False
        return True

    @property
    def is_empty(self) -> bool:
        if self.lower is None or self.upper is None:
            return False
        if self.lower.version > self.upper.version:
            return True
        if self.lower.version == self.upper.version:
            return not (self.lower.inclusive and self.upper.inclusive)
        return False

    def intersect(self, other: "Interval") -> "Interval":
        return Interval(_max_lower(self.lower, other.lower), _min_upper(self.upper, other.upper))

    def __str__(self) -> str:
        if self.lower is None and self.upper is None:
            return "*"
        if self.lower is not None and self.upper is not None and self.lower.version == self.upper.version:
            return str(self.lower.version)
        parts = []
        if self.lower is not None:
            parts.append(f"{'>=' if self.lower.inclusive else '>'}{self.lower.version}")
        if self.upper is not None:
            parts.append(f"{'<=' if self.upper.inclusive else '<'}{self.upper.version}")
        return " ".join(parts)


def _max_lower(a: Optional[Bound], b: Optional[Bound]) -> Optional[Bound]:
    if a is None:
        return b
    if b is None:
        return a
    if a.version != b.version:
        return a if a.version > b.version else b
    return a if not a.inclusive else b


def _min_upper(a: Optional[Bound], b: Optional[Bound]) -> Optional[Bound]:
    if a is None:
        return b
    if b is None:
        return a
    if a.version != b.version:
        return a if a.version < b.version else b
    return a if not a.inclusive else b


@dataclass(frozen=True)
class VersionRange:
    """A union of intervals parsed from an npm range expression."""

    text: str
    intervals: tuple[Interval, ...]
    include_prerelease: bool = False

    @classmethod
    def parse(cls, text: str) -> "VersionRange":
        """Parse exact versions, ``^``, ``~``, comparators, x-ranges,
        hyphen ranges and ``||`` unions.

        Raises:
            ResolutionError: If the range cannot be parsed.
        """
        source = text.strip()
        intervals: list[Interval] = []
        prerelease = False

        for alternative in source.split("||"):
            alternative = alternative.strip()
            hyphen = _HYPHEN_PATTERN.match(alternative)
            if hyphen:
                low = _parse_partial(hyphen.group(1), text)
                high = _parse_partial(hyphen.group(2), text)
                prerelease = prerelease or bool(low[3] or high[3])
                interval = Interval(_lower_from(low, inclusive=True), _upper_from(high, inclusive=True))
            else:
                interval = Interval()
                normalized = re.sub(r"(<=|>=|<|>|=|\^|~>|~)\s+", r"\1", alternative)
                for token in normalized.split():
                    comparator, has_pre = _parse_comparator(token, text)
                    prerelease = prerelease or has_pre
                    interval = interval.intersect(comparator)
            if not interval.is_empty:
                intervals.append(interval)

        return cls(text=source, intervals=tuple(intervals), include_prerelease=prerelease)

    @property
    def is_empty(self) -> bool:
        return not self.intervals

    def contains(self, version: Version) -> bool:
        """Whether ``version`` satisfies the range.

        Prerelease versions only satisfy ranges that mention a prerelease.
        """
        if version.is_prerelease and not self.include_prerelease:
            return False
        return any(interval.contains(version) for interval in self.intervals)

    def intersect(self, other: "VersionRange") -> "VersionRange":
        """Intersection of two ranges."""
        intervals = []
        for a in self.intervals:
            for b in other.intervals:
                joined = a.intersect(b)
                if not joined.is_empty:
                    intervals.append(joined)
        return VersionRange(
            text=f"{self.text} && {other.text}",
            intervals=tuple(intervals),
            include_prerelease=self.include_prerelease and other.include_prerelease,
        )

    def max_satisfying(self, versions: Iterable[str]) -> Optional[str]:
        """Highest version string satisfying the range; unparsable ones are skipped."""
        best: Optional[tuple[Version, str]] = None
        for text in versions:
            try:
                version = Version.parse(text)
            except ResolutionError:
                continue
            if self.contains(version) and (best is None or version > best[0]):
                best = (version, text)
        return best[1] if best else None

    def describe(self) -> str:
        """Normalized text of the intervals."""
        if not self.intervals:
            return "<empty>"
        return " || ".join(str(interval) for interval in self.intervals)

    def __str__(self) -> str:
        return self.text


def intersect_all(ranges: Iterable[VersionRange]) -> Optional[VersionRange]:
    """Intersection of several ranges, or None when given none."""
    result: Optional[VersionRange] = None
    for version_range in ranges:
        result = version_range if result is None else result.intersect(version_range)
    return result


Partial = tuple[Optional[int], Optional[int], Optional[int], tuple[str, ...]]


def _parse_partial(text: str, source: str) -> Partial:
    match = _PARTIAL_PATTERN.match(text)
    if not match:
        raise ResolutionError(source, f"invalid version '{text}'")

    def number(group: str) -> Optional[int]:
        value = match.group(group)
        if value is None or value in _WILDCARDS:
            return None
        return int(value)

    major, minor, patch = number("major"), number("minor"), number("patch")
    # Anything after a wildcard is a wildcard too.
    if major is None:
        minor = patch = None
    elif minor is None:
        patch = None
    pre = tuple(match.group("pre").split(".")) if match.group("pre") and patch is not None else ()
    return major, minor, patch, pre


def _lower_from(partial: Partial, inclusive: bool) -> Optional[Bound]:
    major, minor, patch, pre = partial
    if major is None:
        return None
    return Bound(Version(major, minor or 0, patch or 0, pre), inclusive)


def _upper_from(partial: Partial, inclusive: bool) -> Optional[Bound]:
    """Upper bound of a partial version used as ``<=`` (or hyphen end)."""
    major, minor, patch, pre = partial
    if major is None:
        return None
    if minor is None:
        return Bound(Version(major + 1, 0, 0, ("0",)), False)
    if patch is None:
        return Bound(Version(major, minor + 1, 0, ("0",)), False)
    return Bound(Version(major, minor, patch, pre), inclusive)


def _parse_comparator(token: str, source: str) -> tuple[Interval, bool]:
    match = _COMPARATOR_PATTERN.match(token)
    operator = match.group(1) or ""
    partial = _parse_partial(match.group(2), source)
    major, minor, patch, pre = partial
    has_pre = bool(pre)

    if major is None:
        if operator in ("<", ">"):
            # <* and >* match nothing.
            return Interval(Bound(Version(0, 0, 0), False), Bound(Version(0, 0, 0), False)), False
        return Interval(), False

    lower = Bound(Version(major, minor or 0, patch or 0, pre), True)
    if operator in ("", "="):
        return Interval(lower, _upper_from(partial, inclusive=True)), has_pre

    if operator == "^":
        if major != 0 or minor is None:
            upper = Version(major + 1, 0, 0, ("0",))
        elif minor != 0 or patch is None:
            upper = Version(0, minor + 1, 0, ("0",))
        else:
            upper = Version(0, 0, patch + 1, ("0",))
        return Interval(lower, Bound(upper, False)), has_pre

    if operator in ("~", "~>"):
        if minor is None:
            upper = Version(major + 1, 0, 0, ("0",))
        else:
            upper = Version(major, minor + 1, 0, ("0",))
        return Interval(lower, Bound(upper, False)), has_pre

    if operator == ">=":
        return Interval(lower=lower), has_pre
    if operator == ">":
        if minor is None:
            return Interval(lower=Bound(Version(major + 1, 0, 0), True)), False
        if patch is None:
            return Interval(lower=Bound(Version(major, minor + 1, 0), True)), False
        return Interval(lower=Bound(Version(major, minor, patch, pre), False)), has_pre
    if operator == "<":
        # <1.2 excludes 1.2.0 prereleases as well.
        upper_pre = pre if patch is not None else ("0",)
        return Interval(upper=Bound(Version(major, minor or 0, patch or 0, upper_pre), False)), has_pre
    # <=
    return Interval(upper=_upper_from(partial, inclusive=True)), has_pre


def parse_range(text: str) -> VersionRange:
    """Parse an npm range expression."""
    return VersionRange.parse(text)
