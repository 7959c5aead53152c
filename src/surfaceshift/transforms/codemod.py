"""Dry-run and application of transformations to consumer source files."""

import difflib
import fnmatch
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Optional

from surfaceshift.core.models import Transformation
from surfaceshift.errors import TransformationPreconditionFailed
from surfaceshift.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_EXCLUDE_PATTERNS = ("node_modules", "dist", "build", ".git")


class FileLockRegistry:
    """One exclusive lock per file path."""

    def __init__(self) -> None:
        self._locks: dict[Path, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, path: Path) -> threading.Lock:
        key = path.resolve()
        with self._guard:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    @contextmanager
    def lock(self, path: Path) -> Iterator[None]:
        """Hold the lock for ``path``; released on exit, including on error."""
        file_lock = self._lock_for(path)
        file_lock.acquire()
        try:
            yield
        finally:
            file_lock.release()

    def is_locked(self, path: Path) -> bool:
        """Whether some thread currently holds the lock for ``path``."""
        return self._lock_for(path).locked()


@dataclass
class FileEdit:
    """The rewrite of one file."""

    path: str
    original: str
    updated: str
    transformation_ids: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.original != self.updated

    def diff(self) -> str:
        """Unified diff of the edit."""
        return "".join(
            difflib.unified_diff(
                self.original.splitlines(keepends=True),
                self.updated.splitlines(keepends=True),
                fromfile=f"a/{self.path}",
                tofile=f"b/{self.path}",
            )
        )


@dataclass
class TransformationFailure:
    """A transformation whose precondition no longer held at apply time."""

    transformation_id: str
    path: str
    reason: str


@dataclass
class CodemodReport:
    """Result of a dry run or an apply."""

    edits: list[FileEdit] = field(default_factory=list)
    failures: list[TransformationFailure] = field(default_factory=list)
    files_scanned: int = 0
    applied: bool = False

    @property
    def changed_files(self) -> list[str]:
        return [edit.path for edit in self.edits if edit.changed]

    def expectations(self) -> dict[str, list[str]]:
        """Transformation ids expected to match, per file.

        A dry-run report's expectations are passed to ``apply`` so files that
        changed in between are detected.
        """
        return {edit.path: list(edit.transformation_ids) for edit in self.edits if edit.transformation_ids}

    def diffs(self) -> dict[str, str]:
        """Unified diff per changed file."""
        return {edit.path: edit.diff() for edit in self.edits if edit.changed}

    def failed_transformation_ids(self) -> set[str]:
        return {failure.transformation_id for failure in self.failures}


class CodemodRunner:
    """Applies transformations to a directory of consumer source files.

    Different files are processed in parallel; each file is rewritten under
    its own lock so two runs never interleave on one file.
    """

    def __init__(
        self,
        transformations: Iterable[Transformation],
        max_workers: int = 4,
        locks: Optional[FileLockRegistry] = None,
        exclude_patterns: Iterable[str] = DEFAULT_EXCLUDE_PATTERNS,
    ) -> None:
        """Initialize the runner.

        Args:
            transformations: Transformations in application order.
            max_workers: Parallel file workers.
            locks: Shared lock registry; a private one is created if omitted.
            exclude_patterns: Path parts to skip when walking the target.
        """
        self._transformations = list(transformations)
        self._max_workers = max_workers
        self._locks = locks or FileLockRegistry()
        self._exclude_patterns = list(exclude_patterns)

    def dry_run(self, target: Path) -> CodemodReport:
        """Compute the edits without writing anything."""
        return self._run(target, expected=None, write=False)

    def apply(self, target: Path, expected: Optional[Mapping[str, list[str]]] = None) -> CodemodReport:
        """Rewrite files in place.

        Args:
            target: Directory (or single file) to rewrite.
            expected: Transformation ids per relative file path that must
                still match, typically ``dry_run(...).expectations()``.

        Returns:
            Report with the written edits and any precondition failures.
            A file with a failed precondition is left untouched.
        """
        return self._run(target, expected=expected, write=True)

    def find_files(self, target: Path) -> list[Path]:
        """Files any transformation could apply to."""
        if target.is_file():
            return [target] if self._applicable(target.name) else []
        return [
            path
            for path in sorted(target.rglob("*"))
            if path.is_file() and not self._should_exclude(path, target) and self._applicable(path.name)
        ]

    def _run(self, target: Path, expected: Optional[Mapping[str, list[str]]], write: bool) -> CodemodReport:
        files = self.find_files(target)
        root = target if target.is_dir() else target.parent
        report = CodemodReport(files_scanned=len(files), applied=write)

        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            results = list(
                executor.map(
                    lambda path: self._process(path, path.relative_to(root).as_posix(), expected, write),
                    files,
                )
            )

        for edit, failure in results:
            if failure is not None:
                report.failures.append(failure)
            elif edit is not None and edit.transformation_ids:
                report.edits.append(edit)

        logger.info(
            "%s %d of %d files (%d failures)",
            "Rewrote" if write else "Would rewrite",
            len(report.changed_files),
            report.files_scanned,
            len(report.failures),
        )
        return report

    def _process(
        self,
        path: Path,
        relative: str,
        expected: Optional[Mapping[str, list[str]]],
        write: bool,
    ) -> tuple[Optional[FileEdit], Optional[TransformationFailure]]:
        with self._locks.lock(path):
            try:
                original = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Skipping %s: %s", relative, e)
                return None, None

            must_match = set(expected.get(relative, [])) if expected is not None else set()
            try:
                updated, applied = self._rewrite(original, relative, must_match)
            except TransformationPreconditionFailed as e:
                logger.warning("%s", e.message)
                return None, TransformationFailure(e.transformation_id, relative, e.message)

            edit = FileEdit(path=relative, original=original, updated=updated, transformation_ids=applied)
            if write and edit.changed:
                path.write_text(updated, encoding="utf-8")
                logger.debug("Rewrote %s with %d transformations", relative, len(applied))
            return edit, None

    def _rewrite(self, text: str, relative: str, must_match: set[str]) -> tuple[str, list[str]]:
        applied: list[str] = []
        for transformation in self._transformations:
            if not _glob_match(relative, transformation.file_globs):
                continue
            if transformation.id in must_match:
                text = transformation.apply_strict(text, relative)
                applied.append(transformation.id)
            elif transformation.matches(text):
                text = transformation.apply(text)
                applied.append(transformation.id)
        return text, applied

    def _applicable(self, name: str) -> bool:
        return any(_glob_match(name, t.file_globs) for t in self._transformations)

    def _should_exclude(self, path: Path, root: Path) -> bool:
        relative = path.relative_to(root)
        for pattern in self._exclude_patterns:
            if any(fnmatch.fnmatch(part, pattern) for part in relative.parts):
                return True
        return False


def _glob_match(path: str, globs: Iterable[str]) -> bool:
    globs = list(globs)
    if not globs:
        return True
    name = path.rsplit("/", 1)[-1]
    return any(fnmatch.fnmatch(name, pattern) or fnmatch.fnmatch(path, pattern) for pattern in globs)
