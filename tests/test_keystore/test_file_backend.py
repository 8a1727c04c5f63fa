"""Tests for the encrypted file secret backend."""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path

import pytest

from forwardemail.exceptions import BackendUnavailableError, SecretNotFoundError
from forwardemail.keystore import EncryptedFileBackend, fixed_password
from forwardemail.keystore.file import env_password_func
from forwardemail.models import CredentialSource

FAST_SCRYPT_N = 2**10


def _backend(directory: Path, passphrase: str) -> EncryptedFileBackend:
    backend = EncryptedFileBackend(directory, fixed_password(passphrase))
    backend.scrypt_n = FAST_SCRYPT_N
    return backend


class TestRoundTrip:
    def test_set_get_delete(self, file_backend: EncryptedFileBackend) -> None:
        file_backend.set("ci", "secret1")
        assert file_backend.get("ci") == "secret1"

        file_backend.delete("ci")
        with pytest.raises(SecretNotFoundError):
            file_backend.get("ci")

    def test_overwrite(self, file_backend: EncryptedFileBackend) -> None:
        file_backend.set("ci", "first")
        file_backend.set("ci", "second")
        assert file_backend.get("ci") == "second"

    def test_source_is_file_backend(self, file_backend: EncryptedFileBackend) -> None:
        assert file_backend.source is CredentialSource.FILE_BACKEND
        assert file_backend.name.startswith("file:")

    def test_readable_by_new_instance(self, file_backend: EncryptedFileBackend) -> None:
        file_backend.set("ci", "secret1")
        other = EncryptedFileBackend(file_backend.directory, fixed_password("test-password"))
        assert other.get("ci") == "secret1"


class TestNotFound:
    def test_get_never_set(self, file_backend: EncryptedFileBackend) -> None:
        with pytest.raises(SecretNotFoundError, match="'ci'"):
            file_backend.get("ci")

    def test_delete_never_set(self, file_backend: EncryptedFileBackend) -> None:
        with pytest.raises(SecretNotFoundError):
            file_backend.delete("ci")

    def test_delete_twice(self, file_backend: EncryptedFileBackend) -> None:
        file_backend.set("ci", "secret1")
        file_backend.delete("ci")
        with pytest.raises(SecretNotFoundError):
            file_backend.delete("ci")

    def test_has_key(self, file_backend: EncryptedFileBackend) -> None:
        assert file_backend.has_key("ci") is False
        file_backend.set("ci", "secret1")
        assert file_backend.has_key("ci") is True


class TestListProfiles:
    def test_lists_stored_profiles(self, file_backend: EncryptedFileBackend) -> None:
        file_backend.set("dev", "a")
        file_backend.set("prod", "b")
        assert set(file_backend.list_profiles()) == {"dev", "prod"}

    def test_missing_directory_is_empty(self, tmp_path: Path) -> None:
        backend = _backend(tmp_path / "nowhere", "pw")
        assert backend.list_profiles() == []

    def test_names_needing_quoting(self, file_backend: EncryptedFileBackend) -> None:
        file_backend.set("team/a b", "x")
        assert file_backend.list_profiles() == ["team/a b"]
        assert file_backend.get("team/a b") == "x"

    def test_ignores_foreign_and_hidden_files(self, file_backend: EncryptedFileBackend) -> None:
        file_backend.set("dev", "a")
        (file_backend.directory / "README").write_text("hi")
        (file_backend.directory / ".api_key_x.tmp").write_text("partial")
        assert file_backend.list_profiles() == ["dev"]


class TestOnDisk:
    def test_permissions(self, file_backend: EncryptedFileBackend) -> None:
        file_backend.set("ci", "secret1")
        directory = file_backend.directory
        assert stat.S_IMODE(os.stat(directory).st_mode) == 0o700
        entry = directory / "api_key_ci"
        assert stat.S_IMODE(os.stat(entry).st_mode) == 0o600

    def test_secret_not_stored_in_clear(self, file_backend: EncryptedFileBackend) -> None:
        file_backend.set("ci", "very-recognisable-secret")
        raw = (file_backend.directory / "api_key_ci").read_text()
        assert "very-recognisable-secret" not in raw
        envelope = json.loads(raw)
        assert envelope["kdf"] == "scrypt"
        assert envelope["n"] == FAST_SCRYPT_N

    def test_salt_differs_per_write(self, file_backend: EncryptedFileBackend) -> None:
        file_backend.set("a", "same")
        file_backend.set("b", "same")
        salt_a = json.loads((file_backend.directory / "api_key_a").read_text())["salt"]
        salt_b = json.loads((file_backend.directory / "api_key_b").read_text())["salt"]
        assert salt_a != salt_b


class TestFailures:
    def test_wrong_passphrase(self, tmp_path: Path) -> None:
        _backend(tmp_path, "right").set("ci", "secret1")
        with pytest.raises(BackendUnavailableError, match="wrong passphrase"):
            _backend(tmp_path, "wrong").get("ci")

    def test_corrupted_file(self, file_backend: EncryptedFileBackend) -> None:
        file_backend.set("ci", "secret1")
        (file_backend.directory / "api_key_ci").write_text("not json")
        with pytest.raises(BackendUnavailableError, match="corrupted"):
            file_backend.get("ci")
        assert file_backend.has_key("ci") is False

    def test_entry_copied_to_another_profile(self, file_backend: EncryptedFileBackend) -> None:
        file_backend.set("dev", "secret1")
        directory = file_backend.directory
        (directory / "api_key_prod").write_text((directory / "api_key_dev").read_text())
        with pytest.raises(BackendUnavailableError, match="does not belong"):
            file_backend.get("prod")

    def test_empty_passphrase_fails_closed_lazily(self, tmp_path: Path) -> None:
        backend = EncryptedFileBackend(tmp_path, env_password_func(environ={}))
        assert backend.list_profiles() == []
        with pytest.raises(BackendUnavailableError, match="FORWARDEMAIL_KEYRING_PASSWORD"):
            backend.set("ci", "secret1")
        assert list(tmp_path.iterdir()) == []

    def test_passphrase_read_from_environment(self, tmp_path: Path) -> None:
        env = {"FORWARDEMAIL_KEYRING_PASSWORD": "pw"}
        backend = EncryptedFileBackend(tmp_path, env_password_func(environ=env))
        backend.scrypt_n = FAST_SCRYPT_N
        backend.set("ci", "secret1")
        assert backend.get("ci") == "secret1"

    def test_password_func_error(self, tmp_path: Path) -> None:
        def _broken(prompt: str) -> str:
            raise RuntimeError("no tty")

        backend = EncryptedFileBackend(tmp_path, _broken)
        with pytest.raises(BackendUnavailableError, match="no tty"):
            backend.get("ci")

    def test_delete_needs_no_passphrase(self, tmp_path: Path) -> None:
        _backend(tmp_path, "pw").set("ci", "secret1")
        EncryptedFileBackend(tmp_path, env_password_func(environ={})).delete("ci")
        assert list(tmp_path.iterdir()) == []
