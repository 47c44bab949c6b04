"""CLI error handling with actionable hints.

Provides consistent error formatting and common error factory functions
for all larder CLI commands.
"""

from typing import NoReturn

import click

from larder.domain.entities import FetchErrorType


class LarderCliError(click.ClickException):
    """CLI error with actionable hint for users.

    Attributes:
        message: The primary error message.
        hint: Optional actionable suggestion for the user.

    Example:
        raise LarderCliError(
            "Not in a larder workspace",
            hint="Run 'larder init' to create one in the current directory"
        )
    """

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint

    def format_message(self) -> str:
        """Format the error message with hint if present."""
        msg = self.message
        if self.hint:
            msg += f"\nHint: {self.hint}"
        return msg


def workspace_not_found_error() -> NoReturn:
    """Raise error when not in a larder workspace.

    Raises:
        LarderCliError: Always raises with initialization hint.
    """
    raise LarderCliError(
        "Not in a larder workspace",
        hint="Run 'larder init' to create one in the current directory",
    )


_FAILURE_HINTS = {
    FetchErrorType.NETWORK_ERROR: "Check your network connection and [remote] base_url",
    FetchErrorType.PROTOCOL_ERROR: "Check that the key exists on the remote",
    FetchErrorType.DECODE_ERROR: "The remote did not answer with JSON; check [remote.routes]",
    FetchErrorType.STORE_ERROR: "Check that .larder/cache.db is writable",
}


def fetch_failed_error(key: str, error: BaseException | None, error_type: FetchErrorType) -> NoReturn:
    """Raise error for a failed fetch, with a hint for its category.

    Args:
        key: The key that failed to refresh.
        error: Failure cause from the FetchOutcome.
        error_type: Failure classification from the FetchOutcome.

    Raises:
        LarderCliError: Always.
    """
    message = getattr(error, "message", None) or str(error)
    hint = getattr(error, "hint", None) or _FAILURE_HINTS.get(
        error_type, "Run with --verbose for more details"
    )
    raise LarderCliError(f"Failed to refresh {key!r}: {message}", hint=hint)
