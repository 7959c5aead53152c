"""Custom exceptions for surfaceshift with user-friendly error messages."""


class SurfaceshiftError(Exception):
    """Base exception with user-friendly message and optional hint.

    Attributes:
        message: The main error message.
        hint: Optional hint for resolving the error.
    """

    def __init__(self, message: str, hint: str = "") -> None:
        """Initialize the exception.

        Args:
            message: The main error message.
            hint: Optional hint for resolving the error.
        """
        self.message = message
        self.hint = hint
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation."""
        if self.hint:
            return f"{self.message}\nHint: {self.hint}"
        return self.message


class ConfigurationError(SurfaceshiftError):
    """Invalid configuration."""

    pass


class ParseError(SurfaceshiftError):
    """Failed to parse an input file."""

    pass


class ExtractionError(ParseError):
    """A module's declarations could not be parsed."""

    def __init__(
        self,
        module_path: str = "",
        reason: str = "",
        line: int | None = None,
        message: str = "",
        hint: str = "",
    ) -> None:
        if not message:
            location = module_path or "module"
            if line is not None:
                location = f"{location}:{line}"
            message = f"Failed to extract declarations from {location}"
            if reason:
                message += f": {reason}"
        if not hint:
            hint = "The module is skipped; other modules are still extracted."
        self.module_path = module_path
        self.line = line
        super().__init__(message, hint)


class ResolutionError(SurfaceshiftError):
    """A dependency manifest or version range is malformed."""

    def __init__(
        self,
        subject: str = "",
        reason: str = "",
        message: str = "",
        hint: str = "",
    ) -> None:
        if not message:
            message = f"Cannot resolve {subject}" if subject else "Cannot resolve dependency manifest"
            if reason:
                message += f": {reason}"
        if not hint:
            hint = "Use npm-style ranges such as ^1.2.0, ~1.2.0, >=1.0.0 <2.0.0 or 1.x."
        self.subject = subject
        super().__init__(message, hint)


class CatalogError(ParseError):
    """A rewrite-rule catalog file is invalid."""

    def __init__(
        self,
        source: str = "",
        reason: str = "",
        message: str = "",
        hint: str = "",
    ) -> None:
        if not message:
            message = f"Invalid rewrite catalog {source}".rstrip()
            if reason:
                message += f": {reason}"
        if not hint:
            hint = "Each rule needs an id, a match_pattern and a rewrite_template."
        super().__init__(message, hint)


class AmbiguousMatchError(SurfaceshiftError):
    """Two catalog rules match a change path with equal specificity."""

    def __init__(
        self,
        path: str,
        rule_ids: list[str],
        message: str = "",
        hint: str = "",
    ) -> None:
        if not message:
            message = f"Ambiguous rewrite rules for '{path}': {', '.join(rule_ids)}"
        if not hint:
            hint = "Make one of the match patterns more specific in the catalog."
        self.path = path
        self.rule_ids = list(rule_ids)
        super().__init__(message, hint)


class TransformationPreconditionFailed(SurfaceshiftError):
    """Source no longer matches the pattern a transformation expects."""

    def __init__(
        self,
        transformation_id: str,
        file_path: str = "",
        message: str = "",
        hint: str = "",
    ) -> None:
        if not message:
            message = f"Precondition of {transformation_id} no longer matches"
            if file_path:
                message += f" in {file_path}"
        if not hint:
            hint = "The file changed since the dry run; migrate this change manually."
        self.transformation_id = transformation_id
        self.file_path = file_path
        super().__init__(message, hint)
