class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class CheckpointNotFoundError(DomainError):
    """Raised when a checkpoint does not exist for the requesting owner."""

    pass


class DocumentTooLargeError(DomainError):
    """Raised when an uploaded document exceeds the configured size limit."""

    pass
