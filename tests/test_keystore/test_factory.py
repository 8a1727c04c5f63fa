"""Tests for backend selection and the disabled backend."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from forwardemail.exceptions import (
    BackendUnavailableError,
    ConfigError,
    KeyringDisabledError,
    SecretNotFoundError,
)
from forwardemail.keystore import (
    BackendMode,
    DisabledBackend,
    EncryptedFileBackend,
    OSKeyringBackend,
    backend_mode,
    ephemeral_backend,
    open_backend,
    open_backend_or_disabled,
)


@pytest.fixture
def no_native(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pretend the platform has no OS secret service."""
    monkeypatch.setattr("forwardemail.keystore.factory.discover_native_keyrings", lambda: [])


@pytest.fixture
def rings(monkeypatch: pytest.MonkeyPatch, memory_keyring):
    """Make discovery return [broken ring, working ring]."""
    broken = type(memory_keyring)()
    broken.broken = True
    found = [broken, memory_keyring]
    monkeypatch.setattr("forwardemail.keystore.factory.discover_native_keyrings", lambda: found)
    return found


class TestBackendMode:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, BackendMode.OS),
            ("", BackendMode.OS),
            ("os", BackendMode.OS),
            ("file", BackendMode.FILE),
            ("NONE", BackendMode.NONE),
            (" none ", BackendMode.NONE),
        ],
    )
    def test_values(self, value, expected) -> None:
        env = {} if value is None else {"FORWARDEMAIL_KEYRING_BACKEND": value}
        assert backend_mode(env) is expected

    def test_unknown_value(self) -> None:
        with pytest.raises(ConfigError, match="FORWARDEMAIL_KEYRING_BACKEND"):
            backend_mode({"FORWARDEMAIL_KEYRING_BACKEND": "kwallet"})


class TestOpenBackend:
    def test_none_mode_fails_at_construction(self) -> None:
        with pytest.raises(KeyringDisabledError):
            open_backend(environ={"FORWARDEMAIL_KEYRING_BACKEND": "none"})

    def test_file_mode_is_lazy(self, tmp_path: Path) -> None:
        backend = open_backend(
            environ={"FORWARDEMAIL_KEYRING_BACKEND": "file"}, file_dir=tmp_path / "kr"
        )
        assert isinstance(backend, EncryptedFileBackend)
        with pytest.raises(BackendUnavailableError, match="FORWARDEMAIL_KEYRING_PASSWORD"):
            backend.get("ci")

    def test_file_mode_reads_passphrase_from_environ(self, tmp_path: Path) -> None:
        env = {
            "FORWARDEMAIL_KEYRING_BACKEND": "file",
            "FORWARDEMAIL_KEYRING_PASSWORD": "test-password",
        }
        backend = open_backend(environ=env, file_dir=tmp_path)
        backend.scrypt_n = 2**10
        backend.set("ci", "secret1")
        assert backend.get("ci") == "secret1"

    def test_file_mode_uses_keyring_dir(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("FORWARDEMAIL_KEYRING_DIR", str(isolated_config / "kr"))
        backend = open_backend(BackendMode.FILE)
        assert backend.directory == isolated_config / "kr"

    def test_no_native_service_is_a_hard_failure(self, no_native) -> None:
        with pytest.raises(BackendUnavailableError) as excinfo:
            open_backend(environ={})
        assert not isinstance(excinfo.value, KeyringDisabledError)
        assert "no OS secret service" in str(excinfo.value)

    def test_file_fallback_is_opt_in(self, no_native, tmp_path: Path) -> None:
        backend = open_backend(environ={}, allow_file_fallback=True, file_dir=tmp_path)
        assert isinstance(backend, EncryptedFileBackend)

    def test_first_working_ring_wins(self, rings) -> None:
        backend = open_backend("os")
        assert isinstance(backend, OSKeyringBackend)
        assert backend.ring is rings[1]

    def test_all_rings_broken(self, rings) -> None:
        rings[1].broken = True
        with pytest.raises(BackendUnavailableError, match="not usable"):
            open_backend("os")

    def test_invalid_explicit_mode(self) -> None:
        with pytest.raises(ValueError):
            open_backend("kwallet")


class TestOpenBackendOrDisabled:
    def test_none_mode(self) -> None:
        backend = open_backend_or_disabled(environ={"FORWARDEMAIL_KEYRING_BACKEND": "none"})
        assert isinstance(backend, DisabledBackend)
        assert backend.disabled_by_user is True
        assert backend.name == "disabled"

    def test_unavailable(self, no_native, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="forwardemail"):
            backend = open_backend_or_disabled(environ={})
        assert isinstance(backend, DisabledBackend)
        assert backend.disabled_by_user is False
        assert backend.name == "unavailable"
        assert "No usable OS keyring" in caplog.text

    def test_config_errors_propagate(self) -> None:
        with pytest.raises(ConfigError):
            open_backend_or_disabled(environ={"FORWARDEMAIL_KEYRING_BACKEND": "bogus"})


class TestDisabledBackend:
    def test_every_operation_raises_reason(self) -> None:
        backend = DisabledBackend(KeyringDisabledError("off"))
        for call in (
            lambda: backend.get("ci"),
            lambda: backend.set("ci", "x"),
            lambda: backend.delete("ci"),
            backend.list_profiles,
        ):
            with pytest.raises(KeyringDisabledError, match="off"):
                call()

    def test_preserves_unavailable_kind(self) -> None:
        backend = DisabledBackend(BackendUnavailableError("locked"))
        with pytest.raises(BackendUnavailableError) as excinfo:
            backend.get("ci")
        assert not isinstance(excinfo.value, KeyringDisabledError)
        assert not isinstance(excinfo.value, SecretNotFoundError)

    def test_errors_name_operation_and_profile(self) -> None:
        backend = DisabledBackend(KeyringDisabledError("off"))
        with pytest.raises(KeyringDisabledError) as excinfo:
            backend.delete("ci")
        assert str(excinfo.value) == "Cannot delete API key for profile 'ci': off"
        with pytest.raises(KeyringDisabledError, match="^Cannot list stored keys: off$"):
            backend.list_profiles()

    def test_has_key_is_false(self) -> None:
        assert DisabledBackend(KeyringDisabledError("off")).has_key("ci") is False


class TestEphemeralBackend:
    def test_scenario_ci_secret(self) -> None:
        backend = ephemeral_backend()
        backend.scrypt_n = 2**10
        backend.set("ci", "secret1")
        assert backend.get("ci") == "secret1"
        backend.delete("ci")
        with pytest.raises(SecretNotFoundError):
            backend.get("ci")

    def test_fresh_directory_each_time(self) -> None:
        assert ephemeral_backend().directory != ephemeral_backend().directory
