"""
Error taxonomy for the task board.

Every layer raises one of these; the CLI and the HTTP API translate them
into an exit status or a response code. Nothing in the core retries.
"""
from typing import Iterable, List, Optional


class FlatbanError(Exception):
    """Base class for every error reported to a caller."""
    pass


class ValidationError(FlatbanError):
    """Bad column, priority or missing argument. Carries the valid set when there is one."""

    def __init__(self, message: str, valid: Optional[Iterable[str]] = None):
        self.valid: List[str] = list(valid) if valid is not None else []
        if self.valid:
            message = f"{message}. Valid values: {', '.join(self.valid)}"
        super().__init__(message)


class NotFoundError(FlatbanError):
    """Unknown identifier, or an index entry whose file is gone."""
    pass


class AmbiguousError(FlatbanError):
    """A partial identifier matched more than one task."""

    def __init__(self, partial_id: str, matches: Iterable[str]):
        self.partial_id = partial_id
        self.matches: List[str] = sorted(matches)
        super().__init__(
            f"Multiple tasks found matching: {partial_id}\n{', '.join(self.matches)}"
        )


class ParseError(FlatbanError):
    """Malformed task file or config."""
    pass


class ExhaustedError(FlatbanError):
    """Identifier generation gave up after too many collisions."""
    pass


class NotInitializedError(FlatbanError):
    """No board exists at the given root."""
    pass
