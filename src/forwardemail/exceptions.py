"""Exception hierarchy for forwardemail.

All exceptions inherit from :class:`ForwardEmailError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`forwardemail.exit_codes`.  The top-level error handler in
:func:`forwardemail.app.main` catches ``ForwardEmailError`` and exits with
the appropriate code, while unexpected exceptions produce a crash log and
exit with :data:`EXIT_GENERIC_FAILURE`.

Messages may name a profile, a tier, or an environment variable.  They
never contain key material.

Subclass hierarchy::

    ForwardEmailError (exit 1)
    +-- ConfigError                  (exit 1)
    +-- InvalidUsageError            (exit 2)
    |   +-- CannotDeleteCurrentError (exit 2)
    +-- AuthError                    (exit 3)
    |   +-- CredentialsNotFoundError (exit 3)
    |   +-- UnauthorizedError        (exit 3)
    +-- NotFoundError                (exit 4)
    |   +-- ProfileNotFoundError     (exit 4)
    |   +-- SecretNotFoundError      (exit 4)
    +-- UnreachableError             (exit 6)
    +-- BackendUnavailableError      (exit 8)
        +-- KeyringDisabledError     (exit 8)
"""

from __future__ import annotations

from typing import Sequence

from forwardemail.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_KEYRING_ERROR,
    EXIT_NOT_FOUND,
)


class ForwardEmailError(Exception):
    """Base exception for all forwardemail errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`forwardemail.exit_codes`.  The entry point
    catches this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(ForwardEmailError):
    """Raised for configuration problems (unreadable YAML, invalid field values)."""

    exit_code = EXIT_GENERIC_FAILURE


class InvalidUsageError(ForwardEmailError):
    """Raised for invalid CLI arguments or operations the user may not perform."""

    exit_code = EXIT_INVALID_USAGE


class CannotDeleteCurrentError(InvalidUsageError):
    """Raised when deleting the profile that is currently selected."""

    def __init__(self, profile: str):
        super().__init__(
            f"Cannot delete current profile '{profile}'. "
            "Switch to another profile first."
        )
        self.profile = profile


class AuthError(ForwardEmailError):
    """Raised when authentication fails or cannot be attempted."""

    exit_code = EXIT_AUTH_FAILURE


class CredentialsNotFoundError(AuthError):
    """Raised when no tier of the resolution chain yields an API key.

    Args:
        profile: The profile that was being resolved.
        tiers: Human-readable names of the tiers that were checked, in
            the order they were checked.
    """

    def __init__(self, profile: str, tiers: Sequence[str]):
        checked = ", ".join(tiers) if tiers else "(none)"
        super().__init__(
            f"No API key found for profile '{profile}' (checked: {checked})"
        )
        self.profile = profile
        self.tiers = list(tiers)


class UnauthorizedError(AuthError):
    """Raised when the API rejects the credential (HTTP 401/403)."""


class NotFoundError(ForwardEmailError):
    """Raised when a requested object does not exist."""

    exit_code = EXIT_NOT_FOUND


class ProfileNotFoundError(NotFoundError):
    """Raised when a named profile is absent from the config file."""

    def __init__(self, profile: str):
        if profile:
            message = f"Profile '{profile}' not found"
        else:
            message = "No profile specified and no current profile set"
        super().__init__(message)
        self.profile = profile


class SecretNotFoundError(NotFoundError):
    """Raised when a secret backend holds no entry for the profile."""

    def __init__(self, profile: str):
        super().__init__(f"API key not found for profile '{profile}'")
        self.profile = profile


class UnreachableError(ForwardEmailError):
    """Raised on network-level failures while talking to the API."""

    exit_code = EXIT_CONNECTION_ERROR


class BackendUnavailableError(ForwardEmailError):
    """Raised when a secret backend cannot be opened or used right now.

    Distinct from :class:`SecretNotFoundError`: the entry may well exist,
    but the store that holds it is broken, locked, or missing.
    """

    exit_code = EXIT_KEYRING_ERROR


class KeyringDisabledError(BackendUnavailableError):
    """Raised when secret storage was switched off with ``FORWARDEMAIL_KEYRING_BACKEND=none``."""
