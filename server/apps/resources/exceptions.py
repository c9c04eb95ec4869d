"""Exceptions for resources app."""


class ResourceError(Exception):
    """Base class for all resource operation errors."""


class InvalidPathError(ResourceError):
    """Raised when a virtual path is malformed."""

    def __init__(self, path: str | None, reason: str) -> None:
        """Initialize InvalidPathError.

        Args:
            path: Offending virtual path.
            reason: Human readable explanation.
        """
        self.path = path
        self.reason = reason
        super().__init__(f'Invalid path {path!r}: {reason}')


class InvalidQueryError(ResourceError):
    """Raised when a search query is blank."""


class ResourceNotFoundError(ResourceError):
    """Raised when a resolved key or subtree does not exist."""

    def __init__(self, path: str, message: str = 'Resource not found') -> None:
        """Initialize ResourceNotFoundError.

        Args:
            path: Virtual path or storage key that was looked up.
            message: Message prefix.
        """
        self.path = path
        super().__init__(f'{message}: {path}')


class ResourceAlreadyExistsError(ResourceError):
    """Raised on a destination or intermediate folder naming conflict."""

    def __init__(
        self,
        path: str,
        message: str = 'Resource already exists',
    ) -> None:
        """Initialize ResourceAlreadyExistsError.

        Args:
            path: Virtual path or storage key that is already taken.
            message: Message prefix.
        """
        self.path = path
        super().__init__(f'{message}: {path}')


class StoreFailureError(ResourceError):
    """Raised when the S3 backend fails.

    The backend exception is always chained as ``__cause__``.
    """

    def __init__(self, operation: str, key: str | None) -> None:
        """Initialize StoreFailureError.

        Args:
            operation: Storage operation that failed (e.g. 'copy').
            key: Storage key the operation was applied to.
        """
        self.operation = operation
        self.key = key
        super().__init__(f'Storage {operation} failed for key: {key}')


class ArchiveStreamError(ResourceError):
    """Raised to the consumer when zip archive production fails."""
