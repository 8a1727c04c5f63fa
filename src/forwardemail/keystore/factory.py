"""Backend selection policy.

The secret backend is chosen once per process from
``FORWARDEMAIL_KEYRING_BACKEND``:

=========  ==============================================================
Value      Result
=========  ==============================================================
unset/os   First reachable OS secret service, in the platform's priority
           order.  No service -> :class:`BackendUnavailableError` (unless
           ``allow_file_fallback`` is passed explicitly).
``file``   :class:`EncryptedFileBackend`; passphrase read lazily from
           ``FORWARDEMAIL_KEYRING_PASSWORD``.
``none``   :class:`KeyringDisabledError` -- callers fall through to the
           environment and the config file.
=========  ==============================================================
"""

from __future__ import annotations

import enum
import logging
import os
import tempfile
from pathlib import Path
from typing import Mapping, Optional, Union

from forwardemail.config import ENV_KEYRING_BACKEND, ENV_KEYRING_PASSWORD, get_keyring_dir
from forwardemail.exceptions import (
    BackendUnavailableError,
    ConfigError,
    KeyringDisabledError,
)
from forwardemail.keystore.base import SERVICE_NAME, SecretBackend
from forwardemail.keystore.disabled import DisabledBackend
from forwardemail.keystore.file import (
    EncryptedFileBackend,
    PasswordFunc,
    env_password_func,
    fixed_password,
)
from forwardemail.keystore.native import OSKeyringBackend, discover_native_keyrings

logger = logging.getLogger(__name__)

TEST_PASSPHRASE = "test-password"


class BackendMode(str, enum.Enum):
    """Recognised values of ``FORWARDEMAIL_KEYRING_BACKEND``."""

    OS = "os"
    FILE = "file"
    NONE = "none"


def backend_mode(environ: Optional[Mapping[str, str]] = None) -> BackendMode:
    """Read the backend mode from the environment (unset means :attr:`BackendMode.OS`).

    Raises:
        ConfigError: If the variable holds an unrecognised value.
    """
    env = os.environ if environ is None else environ
    raw = env.get(ENV_KEYRING_BACKEND, "").strip().lower()
    if not raw:
        return BackendMode.OS
    try:
        return BackendMode(raw)
    except ValueError:
        allowed = ", ".join(m.value for m in BackendMode)
        raise ConfigError(
            f"Invalid {ENV_KEYRING_BACKEND}={raw!r} (expected one of: {allowed})"
        ) from None


def open_backend(
    mode: Union[BackendMode, str, None] = None,
    *,
    password_func: Optional[PasswordFunc] = None,
    file_dir: Optional[Path] = None,
    allow_file_fallback: bool = False,
    environ: Optional[Mapping[str, str]] = None,
    service: str = SERVICE_NAME,
) -> SecretBackend:
    """Construct the secret backend for this process.

    Args:
        mode: Explicit mode.  ``None`` reads ``FORWARDEMAIL_KEYRING_BACKEND``.
        password_func: Passphrase source for the file backend.  Defaults
            to reading ``FORWARDEMAIL_KEYRING_PASSWORD`` at first use.
        file_dir: Directory for the file backend (default
            :func:`~forwardemail.config.get_keyring_dir`).
        allow_file_fallback: Use the file backend when no OS service is
            reachable instead of failing.
        environ: Environment mapping (default ``os.environ``).
        service: Service name entries are registered under.

    Raises:
        KeyringDisabledError: Mode is ``none``.
        BackendUnavailableError: No OS secret service could be used and
            file fallback was not allowed.
        ConfigError: The mode value is not recognised.
    """
    if mode is None:
        mode = backend_mode(environ)
    else:
        mode = BackendMode(mode)

    if mode is BackendMode.NONE:
        raise KeyringDisabledError(f"Keyring disabled by {ENV_KEYRING_BACKEND}=none")

    if mode is BackendMode.FILE:
        return _file_backend(password_func, file_dir, environ, service)

    failures: list[str] = []
    for ring in discover_native_keyrings():
        backend = OSKeyringBackend(ring, service=service)
        try:
            backend.probe()
        except BackendUnavailableError as exc:
            logger.debug("Skipping keyring %s: %s", backend.name, exc)
            failures.append(str(exc))
            continue
        logger.debug("Using OS keyring %s", backend.name)
        return backend

    if allow_file_fallback:
        backend = _file_backend(password_func, file_dir, environ, service)
        logger.warning("No OS keyring available; using %s", backend.name)
        return backend

    detail = "; ".join(failures) if failures else "no OS secret service found"
    raise BackendUnavailableError(
        f"No usable OS keyring ({detail}). Set {ENV_KEYRING_BACKEND}=file with "
        f"{ENV_KEYRING_PASSWORD}, or {ENV_KEYRING_BACKEND}=none to skip the keyring."
    )


def open_backend_or_disabled(**kwargs) -> SecretBackend:
    """Like :func:`open_backend`, but return a :class:`DisabledBackend` on failure.

    Only backend failures are converted; :class:`ConfigError` still
    propagates.
    """
    try:
        return open_backend(**kwargs)
    except KeyringDisabledError as exc:
        logger.debug("%s", exc)
        return DisabledBackend(exc)
    except BackendUnavailableError as exc:
        logger.warning("%s", exc)
        return DisabledBackend(exc)


def ephemeral_backend(
    passphrase: str = TEST_PASSPHRASE,
    directory: Optional[Path] = None,
) -> EncryptedFileBackend:
    """Return a file backend in a throwaway directory with a fixed passphrase.

    Intended for tests and dry runs; nothing prompts.
    """
    if directory is None:
        directory = Path(tempfile.mkdtemp(prefix="forwardemail-test-keyring-"))
    return EncryptedFileBackend(directory, fixed_password(passphrase))


def _file_backend(
    password_func: Optional[PasswordFunc],
    file_dir: Optional[Path],
    environ: Optional[Mapping[str, str]],
    service: str,
) -> EncryptedFileBackend:
    if password_func is None:
        password_func = env_password_func(environ=environ)
    return EncryptedFileBackend(file_dir or get_keyring_dir(), password_func, service=service)
