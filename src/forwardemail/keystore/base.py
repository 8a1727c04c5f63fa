"""Abstract base class for secret backends.

A :class:`SecretBackend` stores one API key per profile under the entry
key ``api_key_<profile>``.  Concrete variants:

- :class:`~forwardemail.keystore.native.OSKeyringBackend` -- the
  platform's secret service (Keychain, Secret Service, KWallet,
  Windows Credential Manager).
- :class:`~forwardemail.keystore.file.EncryptedFileBackend` -- one
  encrypted file per entry, unlocked by a passphrase.
- :class:`~forwardemail.keystore.disabled.DisabledBackend` -- stands in
  when secret storage is switched off or could not be opened.

Every failure is raised as one of two kinds so callers can tell them
apart: :class:`~forwardemail.exceptions.SecretNotFoundError` ("nothing was
ever stored") and :class:`~forwardemail.exceptions.BackendUnavailableError`
("the store is broken right now").

See Also:
    :func:`forwardemail.keystore.factory.open_backend` for selection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from forwardemail.exceptions import ForwardEmailError
from forwardemail.models import CredentialSource

KEY_PREFIX = "api_key_"
"""Prefix of every entry key; the remainder is the profile name."""

SERVICE_NAME = "forward-email"
"""Service/namespace identifier under which entries are registered."""


def entry_key(profile: str) -> str:
    """Return the entry key for *profile* (``api_key_<profile>``)."""
    return f"{KEY_PREFIX}{profile}"


def profile_from_key(key: str) -> str | None:
    """Return the profile encoded in an entry key, or ``None`` for foreign keys."""
    if len(key) > len(KEY_PREFIX) and key.startswith(KEY_PREFIX):
        return key[len(KEY_PREFIX):]
    return None


def entry_label(profile: str) -> str:
    return f"Forward Email API Key ({profile})"


def entry_description(profile: str) -> str:
    return f"API key for Forward Email CLI profile: {profile}"


class SecretBackend(ABC):
    """Durable key/value storage for per-profile API keys.

    Subclasses implement the four storage operations.  :meth:`has_key` is
    derived from :meth:`get` and never raises.
    """

    source: CredentialSource = CredentialSource.KEYRING
    """Tier reported for keys found in this backend."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short human-readable backend name for diagnostics."""
        ...

    @abstractmethod
    def set(self, profile: str, api_key: str) -> None:
        """Store or overwrite the key for *profile*.

        Raises:
            BackendUnavailableError: If the store cannot be written.
        """
        ...

    @abstractmethod
    def get(self, profile: str) -> str:
        """Return the key stored for *profile*.

        Raises:
            SecretNotFoundError: If no key is stored.
            BackendUnavailableError: If the store cannot be read.
        """
        ...

    @abstractmethod
    def delete(self, profile: str) -> None:
        """Remove the key stored for *profile*.

        Raises:
            SecretNotFoundError: If no key is stored.
            BackendUnavailableError: If the store cannot be modified.
        """
        ...

    @abstractmethod
    def list_profiles(self) -> list[str]:
        """Return the profiles that currently have a stored key.

        Order is backend-dependent; sort if it matters.

        Raises:
            BackendUnavailableError: If the store cannot be enumerated.
        """
        ...

    def has_key(self, profile: str) -> bool:
        """Return ``True`` iff :meth:`get` succeeds.  Errors are swallowed."""
        try:
            self.get(profile)
        except ForwardEmailError:
            return False
        return True

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
