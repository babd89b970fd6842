class DomainError(Exception):
    """Base domain error with a user-facing message."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(DomainError):
    """Raised when required input is missing or malformed."""


class AuthenticationError(DomainError):
    """Raised when there is no authenticated principal."""


class NotFound(DomainError):
    """Raised when a required entity is missing."""


class UpstreamProviderError(DomainError):
    """Raised when the text-generation provider call fails."""


class MutationConflictError(DomainError):
    """Raised when the backend store rejects an update."""
