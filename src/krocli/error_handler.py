# src/krocli/error_handler.py
"""
Error taxonomy for the credential and token lifecycle.

Every error raised by this package derives from KrocliError and carries a
one-line, human-readable message that the CLI prints verbatim. Nothing is
retried automatically.
"""

from typing import Optional


class KrocliError(Exception):
    """Base class for all errors surfaced to the command line."""

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)


# =============================================================================
# EXPECTED-ABSENT RESOURCES
# =============================================================================


class NotFoundError(KrocliError):
    """An expected resource (credentials, token, channel config) is absent."""

    pass


class CredentialsNotFoundError(NotFoundError):
    def __init__(self, message: str = "no credentials file found"):
        super().__init__(message)


class TokenNotFoundError(NotFoundError):
    """
    Raised when the vault holds no entry for a key.

    Attributes:
        key: The vault key that was looked up
    """

    def __init__(self, key: str, message: str = ""):
        self.key = key
        super().__init__(message or f"no token stored under '{key}'")


class ChannelConfigNotFoundError(NotFoundError):
    def __init__(self, message: str = "no messaging channel configuration found"):
        super().__init__(message)


# =============================================================================
# PRESENT BUT UNUSABLE INPUT
# =============================================================================


class InvalidError(KrocliError):
    """Input is structurally present but malformed or incomplete."""

    pass


class InvalidCredentialsError(InvalidError):
    pass


class InvalidChannelConfigError(InvalidError):
    pass


class MissingFieldsError(InvalidError):
    """
    Raised when a document parses but lacks required fields.

    Attributes:
        fields: Names of the required fields
    """

    def __init__(self, fields, message: str = ""):
        self.fields = tuple(fields)
        super().__init__(
            message or f"JSON must contain {' and '.join(self.fields)}"
        )


class EmptyInputError(MissingFieldsError):
    """Raised when an interactive prompt receives a blank value."""

    def __init__(self, field: str):
        super().__init__((field,), f"{field} must not be empty")


# =============================================================================
# ENVIRONMENT FAILURES
# =============================================================================


class ConfigIOError(KrocliError):
    """
    Filesystem access failed while reading or writing a config document.

    Attributes:
        path: The path involved
        cause: The underlying OSError, if any
    """

    def __init__(self, path, cause: Optional[BaseException] = None, message: str = ""):
        self.path = str(path)
        self.cause = cause
        if not message:
            message = f"cannot access '{self.path}'"
            if cause is not None:
                message = f"{message}: {getattr(cause, 'strerror', None) or cause}"
        super().__init__(message)


class VaultUnavailableError(KrocliError):
    """The native secret store (or its configured fallback) cannot be opened."""

    pass


class ChannelAPIError(KrocliError):
    """
    Raised when the messaging provider reports a failed delivery.

    The provider's description is passed through unmodified so that it can be
    shown to the user (and matched) as-is.

    Attributes:
        description: The provider-supplied failure description
        status_code: HTTP status of the response, when one was received
    """

    def __init__(self, description: str, status_code: Optional[int] = None):
        self.description = description
        self.status_code = status_code
        super().__init__(f"Telegram API error: {description}")


# =============================================================================
# LOGIN FLOW
# =============================================================================


class CredentialsRequiredError(KrocliError):
    def __init__(self, message: str = ""):
        super().__init__(
            message
            or "no API credentials found; import them first: "
            "krocli auth credentials set <path>"
        )


class LoginError(KrocliError):
    """The OAuth exchange with the remote API did not complete."""

    pass


def mask_secret(secret: Optional[str]) -> str:
    """Mask a secret for logging, keeping only its last four characters."""
    if not secret:
        return "<empty>"
    if len(secret) <= 8:
        return "****"
    return f"...{secret[-4:]}"
