"""Shared test fixtures for forwardemail.

Provides reusable fixtures for isolating configuration and environment,
managing output state, building secret backends that never touch the
real OS keyring, and running CLI commands.  These fixtures are
automatically discovered by pytest and available to all test modules
without explicit imports.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import keyring.backend
import pytest
from keyring.errors import KeyringError, PasswordDeleteError

from forwardemail.config import ProfileStore
from forwardemail.keystore import EncryptedFileBackend, OSKeyringBackend, ephemeral_backend
from forwardemail.output import OutputFormat, OutputManager, reset_output, set_output

TEST_PASSWORD = "test-password"
FAST_SCRYPT_N = 2**10


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    so that tests never touch real user config, clears every
    FORWARDEMAIL_* environment variable, and changes the working
    directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in list(os.environ):
        if var.startswith("FORWARDEMAIL_"):
            monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def config_path(isolated_config: Path) -> Path:
    """Location of config.yaml inside the isolated config root."""
    return isolated_config / "config" / "forwardemail" / "config.yaml"


@pytest.fixture
def store(isolated_config: Path) -> ProfileStore:
    """An empty profile store saving into the isolated config root."""
    return ProfileStore.load()


# ---------------------------------------------------------------------------
# Secret backend fixtures
# ---------------------------------------------------------------------------


class InMemoryKeyring(keyring.backend.KeyringBackend):
    """Process-local keyring used in place of an OS secret service.

    Set ``broken`` to make every call fail the way a locked or absent
    service does.
    """

    priority = 1

    def __init__(self) -> None:
        super().__init__()
        self.entries: dict[tuple[str, str], str] = {}
        self.broken = False
        self.calls = 0

    def _check(self) -> None:
        self.calls += 1
        if self.broken:
            raise KeyringError("secret service is locked")

    def get_password(self, service: str, username: str) -> Optional[str]:
        self._check()
        return self.entries.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self._check()
        self.entries[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        self._check()
        try:
            del self.entries[(service, username)]
        except KeyError:
            raise PasswordDeleteError("not found") from None


@pytest.fixture
def memory_keyring() -> InMemoryKeyring:
    return InMemoryKeyring()


@pytest.fixture
def native_backend(memory_keyring: InMemoryKeyring) -> OSKeyringBackend:
    """An OSKeyringBackend over the in-memory keyring."""
    return OSKeyringBackend(memory_keyring)


@pytest.fixture
def file_backend(tmp_path: Path) -> EncryptedFileBackend:
    """Encrypted file backend in tmp_path with the test passphrase and a cheap KDF."""
    backend = ephemeral_backend(TEST_PASSWORD, directory=tmp_path / "keyring")
    backend.scrypt_n = FAST_SCRYPT_N
    return backend


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet, colourless OutputManager for tests that don't care about output."""
    output = OutputManager(format=OutputFormat.TABLE, no_color=True, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr and
    provides a consistent interface for invoking Typer apps in tests.
    """
    from typer.testing import CliRunner

    return CliRunner()


@pytest.fixture
def cli_env(isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolated environment for CLI tests.

    Selects the encrypted file backend (inside tmp_path) with the test
    passphrase so no command reaches the OS keyring, and disables colour
    so output is plain text.
    """
    monkeypatch.setenv("FORWARDEMAIL_KEYRING_BACKEND", "file")
    monkeypatch.setenv("FORWARDEMAIL_KEYRING_PASSWORD", TEST_PASSWORD)
    monkeypatch.setenv("FORWARDEMAIL_KEYRING_DIR", str(isolated_config / "keyring"))
    monkeypatch.setenv("NO_COLOR", "1")
    monkeypatch.setattr(EncryptedFileBackend, "scrypt_n", FAST_SCRYPT_N)
    return isolated_config
