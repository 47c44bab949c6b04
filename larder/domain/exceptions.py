"""Domain exceptions for larder.

These exceptions describe failures of the collaborators the sync engine
coordinates (remote source, local store) and misconfiguration of the engine
itself. They should be caught at the application boundary (CLI, UI layer) and
converted to appropriate user-facing messages.
"""

from larder.domain.entities import FetchErrorType


class LarderError(Exception):
    """Base exception for all larder errors.

    Attributes:
        message: User-facing error message.
        hint: Optional actionable suggestion.
    """

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint


class RemoteError(LarderError):
    """Raised when a remote fetch fails (network, protocol, decoding).

    Remote errors are recoverable: the cached value stays authoritative and
    the failure is reported on the key's error channel.

    Attributes:
        error_type: Failure category, when the raising adapter knows it.
    """

    def __init__(
        self,
        message: str,
        hint: str | None = None,
        error_type: FetchErrorType | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.error_type = error_type


class StoreError(LarderError):
    """Raised when the local store cannot read or durably write a record."""

    pass


class PolicyViolation(LarderError):
    """Raised when a freshness policy is configured with invalid values.

    Always raised at construction time, never while serving a request.
    """

    pass
