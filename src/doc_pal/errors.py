"""Exceptions raised by ai-doc-pal."""


class DocPalError(Exception):
    """Base class for errors reported to the user."""

    pass


class ProviderError(DocPalError):
    """Raised when an embedding backend returns an unusable response."""

    pass


class ProviderUnavailable(ProviderError):
    """Raised when an embedding backend is unreachable, rejects a request or is misconfigured."""

    pass


class DimensionMismatch(DocPalError):
    """Raised when a vector length disagrees with the index dimension."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Embedding dimension mismatch: index expects {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class PathTraversal(DocPalError):
    """Raised when a requested path resolves outside the documentation root."""

    pass


class NotFound(DocPalError):
    """Raised when a base, file or document does not exist."""

    pass


class NothingToIndex(DocPalError):
    """Raised when a documentation root contains no markdown files."""

    pass


class BaseExists(DocPalError):
    """Raised when initializing a base whose database already exists."""

    pass


class InvalidBaseName(DocPalError):
    """Raised when a base name cannot be used as a directory under DOCPAL_HOME."""

    pass


class IntegrityError(AssertionError):
    """Raised when the store's chunk/embedding pairing is broken.

    Signals a bug rather than a user error.
    """

    pass
