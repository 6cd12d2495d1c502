"""Exceptions raised across the SACL pipeline."""


class SACLError(Exception):
    """Base class for all SACL errors."""


class OracleError(SACLError):
    """The embedding or completion service failed or returned an unusable response."""


class StorageError(SACLError):
    """The graph persistence backend failed."""


class PathValidationError(SACLError):
    """A path lies outside the configured repository root."""

    def __init__(self, path: str, root: str):
        self.path = path
        self.root = root
        super().__init__(f"File path {path} is outside repository {root}")


class ParseError(SACLError):
    """A source file could not be parsed by the selected extraction strategy."""
