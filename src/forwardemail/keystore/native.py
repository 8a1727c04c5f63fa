"""OS-native secret storage through the :mod:`keyring` library.

:class:`OSKeyringBackend` wraps one concrete
:class:`keyring.backend.KeyringBackend` (macOS Keychain, Secret Service,
KWallet, Windows Credential Manager).  :func:`discover_native_keyrings`
lists the platform services that are usable right now, highest priority
first, and leaves out file-based and null backends so that
the absence of a real secret service is visible to the caller.

OS secret stores cannot enumerate their entries, so the backend keeps an
index entry (``__forwardemail_keys__``) holding the stored entry keys, one
per line.  :meth:`OSKeyringBackend.list_profiles` reads it and prunes
names whose secret has disappeared.
"""

from __future__ import annotations

import logging

import keyring.backend
from keyring.errors import PasswordDeleteError

from forwardemail.exceptions import BackendUnavailableError, SecretNotFoundError
from forwardemail.keystore.base import (
    SERVICE_NAME,
    SecretBackend,
    entry_key,
    profile_from_key,
)
from forwardemail.models import CredentialSource

logger = logging.getLogger(__name__)

INDEX_KEY = "__forwardemail_keys__"

# Backends shipped with keyring that never hold secrets.
_NON_STORING = ("fail.Keyring", "null.Keyring", "chainer.ChainerBackend")


def _backend_id(ring: keyring.backend.KeyringBackend) -> str:
    cls = type(ring)
    return f"{cls.__module__}.{cls.__name__}"


def is_native(ring: keyring.backend.KeyringBackend) -> bool:
    """Return ``True`` for OS secret services bundled with :mod:`keyring`.

    Third-party and file-based backends (``keyrings.alt`` and friends) are
    rejected: falling back to a file store must be an explicit choice.
    """
    backend_id = _backend_id(ring)
    if not backend_id.startswith("keyring.backends."):
        return False
    return not backend_id.endswith(_NON_STORING)


def discover_native_keyrings() -> list[keyring.backend.KeyringBackend]:
    """Return viable native keyrings, highest priority first."""
    rings = [ring for ring in keyring.backend.get_all_keyring() if is_native(ring)]
    rings = [ring for ring in rings if ring.priority > 0]
    rings.sort(key=lambda ring: ring.priority, reverse=True)
    return rings


def _describe(exc: Exception) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


class OSKeyringBackend(SecretBackend):
    """Secret backend over a single :mod:`keyring` backend instance.

    Args:
        ring: The keyring backend to use, typically the first entry of
            :func:`discover_native_keyrings`.
        service: Service name entries are registered under.

    Example::

        backend = OSKeyringBackend(discover_native_keyrings()[0])
        backend.set("work", "key-123")
        assert backend.get("work") == "key-123"
    """

    source = CredentialSource.KEYRING

    def __init__(
        self,
        ring: keyring.backend.KeyringBackend,
        service: str = SERVICE_NAME,
    ) -> None:
        self._ring = ring
        self._service = service

    @property
    def name(self) -> str:
        return getattr(self._ring, "name", type(self._ring).__name__)

    @property
    def ring(self) -> keyring.backend.KeyringBackend:
        return self._ring

    def probe(self) -> None:
        """Touch the store once so that a locked or absent service fails now.

        Raises:
            BackendUnavailableError: If the service cannot be reached.
        """
        try:
            self._ring.get_password(self._service, INDEX_KEY)
        except Exception as exc:
            raise BackendUnavailableError(
                f"Keyring '{self.name}' is not usable: {_describe(exc)}"
            ) from exc

    def set(self, profile: str, api_key: str) -> None:
        key = entry_key(profile)
        try:
            self._ring.set_password(self._service, key, api_key)
        except Exception as exc:
            raise BackendUnavailableError(
                f"Failed to store API key for profile '{profile}' in "
                f"keyring '{self.name}': {_describe(exc)}"
            ) from exc
        self._update_index(add=key)

    def get(self, profile: str) -> str:
        try:
            value = self._ring.get_password(self._service, entry_key(profile))
        except Exception as exc:
            raise BackendUnavailableError(
                f"Failed to retrieve API key for profile '{profile}' from "
                f"keyring '{self.name}': {_describe(exc)}"
            ) from exc
        if value is None:
            raise SecretNotFoundError(profile)
        return value

    def delete(self, profile: str) -> None:
        key = entry_key(profile)
        try:
            self._ring.delete_password(self._service, key)
        except PasswordDeleteError as exc:
            self._update_index(remove=key)
            raise SecretNotFoundError(profile) from exc
        except Exception as exc:
            raise BackendUnavailableError(
                f"Failed to delete API key for profile '{profile}' from "
                f"keyring '{self.name}': {_describe(exc)}"
            ) from exc
        self._update_index(remove=key)

    def list_profiles(self) -> list[str]:
        keys = self._read_index()
        live: list[str] = []
        for key in keys:
            try:
                present = self._ring.get_password(self._service, key) is not None
            except Exception as exc:
                raise BackendUnavailableError(
                    f"Failed to list keyring entries in '{self.name}': {_describe(exc)}"
                ) from exc
            if present:
                live.append(key)
        if live != keys:
            self._write_index(live)

        profiles = []
        for key in live:
            profile = profile_from_key(key)
            if profile is not None:
                profiles.append(profile)
        return profiles

    # ------------------------------------------------------------------ #
    # Index maintenance
    # ------------------------------------------------------------------ #

    def _read_index(self) -> list[str]:
        try:
            raw = self._ring.get_password(self._service, INDEX_KEY)
        except Exception as exc:
            raise BackendUnavailableError(
                f"Failed to list keyring entries in '{self.name}': {_describe(exc)}"
            ) from exc
        if not raw:
            return []
        return [line for line in raw.split("\n") if line]

    def _write_index(self, keys: list[str]) -> None:
        try:
            if keys:
                self._ring.set_password(self._service, INDEX_KEY, "\n".join(keys))
            else:
                try:
                    self._ring.delete_password(self._service, INDEX_KEY)
                except PasswordDeleteError:
                    pass
        except Exception as exc:
            # The secret itself was written; a stale index only affects listing.
            logger.warning("Failed to update keyring index: %s", type(exc).__name__)

    def _update_index(self, add: str | None = None, remove: str | None = None) -> None:
        try:
            keys = self._read_index()
        except BackendUnavailableError as exc:
            logger.warning("%s", exc)
            return
        updated = list(keys)
        if add is not None and add not in updated:
            updated.append(add)
        if remove is not None and remove in updated:
            updated.remove(remove)
        if updated != keys:
            self._write_index(updated)
