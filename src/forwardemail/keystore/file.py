"""Encrypted file secret backend.

Each entry lives in its own file inside a private directory (``0o700``).
The file name is the URL-quoted entry key; the file body is a small JSON
envelope::

    {"version": 1, "kdf": "scrypt", "n": 32768, "salt": "<base64>", "token": "<fernet>"}

The Fernet key is derived from the passphrase and the per-file salt with
Scrypt, and the token seals the secret together with its label and
description.  All cryptography comes from :mod:`cryptography`; nothing
here implements a primitive.

The passphrase is obtained through a *password function* the first time
it is needed, never at construction, so that opening the backend cannot
block commands that never touch a secret.  An empty passphrase fails
closed with :class:`~forwardemail.exceptions.BackendUnavailableError`.
"""

from __future__ import annotations

import base64
import json
import logging
import os
from pathlib import Path
from typing import Callable, Mapping, Optional
from urllib.parse import quote, unquote

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from forwardemail.config import ENV_KEYRING_PASSWORD, atomic_write
from forwardemail.exceptions import BackendUnavailableError, SecretNotFoundError
from forwardemail.keystore.base import (
    SERVICE_NAME,
    SecretBackend,
    entry_description,
    entry_key,
    entry_label,
    profile_from_key,
)
from forwardemail.models import CredentialSource

logger = logging.getLogger(__name__)

PasswordFunc = Callable[[str], str]
"""Called with a prompt string; returns the passphrase (may be empty)."""

_FORMAT_VERSION = 1
_SALT_BYTES = 16


def env_password_func(
    var: str = ENV_KEYRING_PASSWORD,
    environ: Optional[Mapping[str, str]] = None,
) -> PasswordFunc:
    """Return a password function that reads *var* from the environment at call time."""

    def _from_env(prompt: str) -> str:
        env = os.environ if environ is None else environ
        return env.get(var, "")

    return _from_env


def fixed_password(passphrase: str) -> PasswordFunc:
    """Return a password function that always yields *passphrase*."""

    def _fixed(prompt: str) -> str:
        return passphrase

    return _fixed


class EncryptedFileBackend(SecretBackend):
    """Secret backend storing one Scrypt/Fernet-encrypted file per entry.

    Args:
        directory: Where entry files live.  Created on first write.
        password_func: Supplies the passphrase on first use.
        service: Service name sealed into each entry.

    Example::

        backend = EncryptedFileBackend(tmp_dir, fixed_password("s3cret"))
        backend.set("ci", "secret1")
        assert backend.get("ci") == "secret1"
    """

    source = CredentialSource.FILE_BACKEND

    scrypt_n = 2**15
    """Scrypt CPU/memory cost.  Tests may lower it on an instance."""

    def __init__(
        self,
        directory: Path,
        password_func: PasswordFunc,
        service: str = SERVICE_NAME,
    ) -> None:
        self._dir = Path(directory)
        self._password_func = password_func
        self._service = service
        self._passphrase: Optional[str] = None

    @property
    def name(self) -> str:
        return f"file:{self._dir}"

    @property
    def directory(self) -> Path:
        return self._dir

    def set(self, profile: str, api_key: str) -> None:
        passphrase = self._unlock(profile)
        key = entry_key(profile)
        payload = {
            "service": self._service,
            "key": key,
            "data": api_key,
            "label": entry_label(profile),
            "description": entry_description(profile),
        }
        salt = os.urandom(_SALT_BYTES)
        fernet = self._fernet(passphrase, salt, self.scrypt_n)
        token = fernet.encrypt(json.dumps(payload).encode("utf-8"))
        envelope = {
            "version": _FORMAT_VERSION,
            "kdf": "scrypt",
            "n": self.scrypt_n,
            "salt": base64.b64encode(salt).decode("ascii"),
            "token": token.decode("ascii"),
        }
        try:
            self._dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            atomic_write(self._entry_path(key), json.dumps(envelope) + "\n", mode=0o600)
        except OSError as exc:
            raise BackendUnavailableError(
                f"Failed to store API key for profile '{profile}' in {self._dir}: {exc}"
            ) from exc

    def get(self, profile: str) -> str:
        passphrase = self._unlock(profile)
        key = entry_key(profile)
        path = self._entry_path(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise SecretNotFoundError(profile) from None
        except OSError as exc:
            raise BackendUnavailableError(
                f"Failed to retrieve API key for profile '{profile}' from {self._dir}: {exc}"
            ) from exc

        try:
            envelope = json.loads(text)
            salt = base64.b64decode(envelope["salt"])
            token = envelope["token"].encode("ascii")
            cost = int(envelope.get("n", self.scrypt_n))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise BackendUnavailableError(
                f"Keyring entry for profile '{profile}' is corrupted ({path})"
            ) from exc

        try:
            plain = self._fernet(passphrase, salt, cost).decrypt(token)
        except InvalidToken:
            raise BackendUnavailableError(
                f"Cannot decrypt keyring entry for profile '{profile}': "
                "wrong passphrase or corrupted file"
            ) from None

        payload = json.loads(plain)
        if payload.get("key") != key:
            raise BackendUnavailableError(
                f"Keyring entry {path.name} does not belong to profile '{profile}'"
            )
        return payload["data"]

    def delete(self, profile: str) -> None:
        path = self._entry_path(entry_key(profile))
        try:
            path.unlink()
        except FileNotFoundError:
            raise SecretNotFoundError(profile) from None
        except OSError as exc:
            raise BackendUnavailableError(
                f"Failed to delete API key for profile '{profile}' from {self._dir}: {exc}"
            ) from exc

    def list_profiles(self) -> list[str]:
        if not self._dir.is_dir():
            return []
        try:
            names = [p.name for p in self._dir.iterdir() if p.is_file()]
        except OSError as exc:
            raise BackendUnavailableError(f"Failed to list {self._dir}: {exc}") from exc

        profiles = []
        for filename in names:
            if filename.startswith("."):
                continue  # in-flight temp files
            profile = profile_from_key(unquote(filename))
            if profile is not None:
                profiles.append(profile)
        return profiles

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _entry_path(self, key: str) -> Path:
        return self._dir / quote(key, safe="")

    def _unlock(self, profile: str) -> str:
        if self._passphrase is not None:
            return self._passphrase
        try:
            passphrase = self._password_func(
                f"Enter passphrase to unlock the {self._service} keyring"
            )
        except Exception as exc:
            raise BackendUnavailableError(
                f"Failed to obtain file keyring passphrase (profile '{profile}'): {exc}"
            ) from exc
        if not passphrase:
            raise BackendUnavailableError(
                f"No passphrase configured for the file keyring (profile '{profile}'). "
                f"Set {ENV_KEYRING_PASSWORD}."
            )
        logger.debug("File keyring unlocked at %s", self._dir)
        self._passphrase = passphrase
        return passphrase

    def _fernet(self, passphrase: str, salt: bytes, cost: int) -> Fernet:
        kdf = Scrypt(salt=salt, length=32, n=cost, r=8, p=1)
        derived = kdf.derive(passphrase.encode("utf-8"))
        return Fernet(base64.urlsafe_b64encode(derived))
