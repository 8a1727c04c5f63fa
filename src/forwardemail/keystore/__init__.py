"""Pluggable secret storage for per-profile API keys.

The main entry points are:

- :class:`SecretBackend` -- abstract interface (``set``/``get``/``delete``/
  ``list_profiles``/``has_key``).
- :class:`OSKeyringBackend`, :class:`EncryptedFileBackend`,
  :class:`DisabledBackend` -- the concrete variants.
- :func:`open_backend` / :func:`open_backend_or_disabled` -- pick the
  variant for this process from ``FORWARDEMAIL_KEYRING_BACKEND``.
- :func:`ephemeral_backend` -- a temp-dir file backend for tests.

Typical usage::

    from forwardemail.keystore import open_backend_or_disabled

    backend = open_backend_or_disabled()
    backend.set("work", api_key)
"""

from forwardemail.keystore.base import KEY_PREFIX, SERVICE_NAME, SecretBackend, entry_key
from forwardemail.keystore.disabled import DisabledBackend
from forwardemail.keystore.factory import (
    TEST_PASSPHRASE,
    BackendMode,
    backend_mode,
    ephemeral_backend,
    open_backend,
    open_backend_or_disabled,
)
from forwardemail.keystore.file import EncryptedFileBackend, env_password_func, fixed_password
from forwardemail.keystore.native import OSKeyringBackend, discover_native_keyrings

__all__ = [
    "KEY_PREFIX",
    "SERVICE_NAME",
    "TEST_PASSPHRASE",
    "BackendMode",
    "DisabledBackend",
    "EncryptedFileBackend",
    "OSKeyringBackend",
    "SecretBackend",
    "backend_mode",
    "discover_native_keyrings",
    "entry_key",
    "env_password_func",
    "ephemeral_backend",
    "fixed_password",
    "open_backend",
    "open_backend_or_disabled",
]
