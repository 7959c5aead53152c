"""Warning and error accumulator threaded through a pipeline run."""

from dataclasses import dataclass, field

from surfaceshift.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Diagnostics:
    """Warnings and errors collected by one run.

    Each stage appends to the accumulator it is handed; nothing is kept
    between runs.
    """

    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def warn(self, stage: str, message: str) -> None:
        """Record a recoverable problem."""
        logger.debug("[%s] %s", stage, message)
        self.warnings.append(f"{stage}: {message}")

    def error(self, stage: str, message: str) -> None:
        """Record a failure scoped to one item."""
        logger.warning("[%s] %s", stage, message)
        self.errors.append(f"{stage}: {message}")

    def extend_warnings(self, stage: str, messages) -> None:
        """Record several warnings at once."""
        for message in messages:
            self.warn(stage, message)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)
