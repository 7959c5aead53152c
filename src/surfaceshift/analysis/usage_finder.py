"""Consumer corpus scanning for prevalence weighting."""

import fnmatch
import re
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from surfaceshift.config import CorpusConfig
from surfaceshift.utils.logging import get_logger

logger = get_logger(__name__)

Corpus = Union[Path, str, Mapping[str, str]]


@dataclass
class CorpusScanResult:
    """How many corpus files mention each name."""

    files_scanned: int = 0
    counts: dict[str, int] = field(default_factory=dict)
    timed_out: bool = False
    cancelled: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def usable(self) -> bool:
        """Whether fractions can be trusted."""
        return self.files_scanned > 0 and not self.timed_out and not self.cancelled

    def fraction(self, name: str) -> Optional[float]:
        """Fraction of scanned files containing ``name``, or None if unusable."""
        if not self.usable:
            return None
        return self.counts.get(name, 0) / self.files_scanned


class CorpusScanCache:
    """Scan results memoized per upgrade.

    Entries are keyed by ``(package, old_version, new_version)`` and live
    until explicitly invalidated.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str, str], CorpusScanResult] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, package: str, old_version: str, new_version: str) -> Optional[CorpusScanResult]:
        """Get a cached scan result."""
        with self._lock:
            result = self._entries.get((package, old_version, new_version))
            if result is None:
                self._misses += 1
            else:
                self._hits += 1
            return result

    def set(self, package: str, old_version: str, new_version: str, result: CorpusScanResult) -> None:
        """Cache a scan result. Degraded results are not cached."""
        if not result.usable:
            return
        with self._lock:
            self._entries[(package, old_version, new_version)] = result

    def invalidate(
        self,
        package: str,
        old_version: Optional[str] = None,
        new_version: Optional[str] = None,
    ) -> int:
        """Drop entries for a package, optionally narrowed to a version pair.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            stale = [
                key
                for key in self._entries
                if key[0] == package
                and (old_version is None or key[1] == old_version)
                and (new_version is None or key[2] == new_version)
            ]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
            }


class UsageFinder:
    """Counts whole-word mentions of entity names across a consumer corpus."""

    def __init__(self, config: Optional[CorpusConfig] = None) -> None:
        """Initialize the usage finder.

        Args:
            config: Corpus scanning configuration.
        """
        self._config = config or CorpusConfig()

    def find_files(self, directory: Path) -> list[Path]:
        """List the source files of a corpus directory, sampled to ``max_files``."""
        files = [
            path
            for path in sorted(directory.rglob("*"))
            if path.is_file()
            and path.suffix in self._config.file_suffixes
            and not self._should_exclude(path, directory)
        ]
        if self._config.max_files is not None:
            files = files[: self._config.max_files]
        return files

    def scan(
        self,
        corpus: Corpus,
        names: Iterable[str],
        cancel_event: Optional[threading.Event] = None,
    ) -> CorpusScanResult:
        """Scan a corpus for names.

        The scan is bounded by ``timeout_seconds``. A timed-out or cancelled
        scan returns a result whose fractions are unusable, so callers fall
        back to the default prevalence weight.

        Args:
            corpus: Directory or mapping of file path to text.
            names: Entity names to look for.
            cancel_event: Optional event that aborts the scan when set.

        Returns:
            Scan result.
        """
        wanted = sorted({name for name in names if name})
        result = CorpusScanResult()
        if not wanted:
            return result

        pattern = re.compile(r"(?<![\w$])(" + "|".join(re.escape(n) for n in wanted) + r")(?![\w$])")
        items = self._items(corpus)
        stop = cancel_event or threading.Event()

        executor = ThreadPoolExecutor(max_workers=self._config.max_workers)
        try:
            futures = [executor.submit(self._scan_item, item, pattern, stop) for item in items]
            done, pending = wait(futures, timeout=self._config.timeout_seconds, return_when=FIRST_EXCEPTION)
            if pending:
                if not stop.is_set():
                    result.timed_out = True
                    logger.warning(
                        "Corpus scan exceeded %.1fs; using default prevalence",
                        self._config.timeout_seconds,
                    )
                stop.set()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if cancel_event is not None and cancel_event.is_set() and not result.timed_out:
            result.cancelled = True

        for future in done:
            found, error = future.result()
            if error:
                result.errors.append(error)
                continue
            result.files_scanned += 1
            for name in found:
                result.counts[name] = result.counts.get(name, 0) + 1

        logger.debug("Scanned %d corpus files for %d names", result.files_scanned, len(wanted))
        return result

    def _items(self, corpus: Corpus) -> list[tuple[str, Optional[str], Optional[Path]]]:
        if isinstance(corpus, Mapping):
            items = [(str(key), corpus[key], None) for key in sorted(corpus)]
            if self._config.max_files is not None:
                items = items[: self._config.max_files]
            return items
        directory = Path(corpus)
        return [(str(path), None, path) for path in self.find_files(directory)]

    def _scan_item(
        self,
        item: tuple[str, Optional[str], Optional[Path]],
        pattern: re.Pattern,
        stop: threading.Event,
    ) -> tuple[set[str], Optional[str]]:
        label, text, path = item
        if stop.is_set():
            return set(), f"{label}: scan cancelled"
        if text is None and path is not None:
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                return set(), f"{label}: {e}"
        return set(pattern.findall(text or "")), None

    def _should_exclude(self, path: Path, root: Path) -> bool:
        relative = path.relative_to(root)
        for pattern in self._config.exclude_patterns:
            if any(fnmatch.fnmatch(part, pattern) for part in relative.parts):
                return True
        return False
