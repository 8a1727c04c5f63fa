"""Configuration management with XDG paths, atomic writes, and the profile store.

This module handles all persistent, non-secret configuration:

* **Directory layout** -- ``$XDG_CONFIG_HOME/forwardemail/`` (default
  ``~/.config/forwardemail/``) on Linux/BSD, ``~/.forwardemail/`` on macOS
  and Windows.  Setting ``XDG_CONFIG_HOME`` relocates the config root on
  every platform, which is how tests isolate themselves.  See
  :func:`get_config_dir` and :func:`get_data_dir`.
* **Environment variable names** -- every ``FORWARDEMAIL_*`` variable the
  package reads is declared here.
* **Profiles** -- :class:`ProfileStore` owns the ``profiles`` map and the
  ``current_profile`` pointer from ``config.yaml``.  It is loaded once per
  command and passed explicitly to whatever needs it.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so concurrent invocations never observe a
half-written file.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import tempfile
from pathlib import Path
from typing import Mapping, Optional

import yaml
from pydantic import ValidationError

from forwardemail.exceptions import (
    CannotDeleteCurrentError,
    ConfigError,
    ProfileNotFoundError,
)
from forwardemail.models import OUTPUT_FORMATS, ConfigFile, Profile

logger = logging.getLogger(__name__)

_APP_NAME = "forwardemail"
_CONFIG_FILENAME = "config.yaml"

ENV_PREFIX = "FORWARDEMAIL"
ENV_API_KEY = "FORWARDEMAIL_API_KEY"
ENV_KEYRING_BACKEND = "FORWARDEMAIL_KEYRING_BACKEND"
ENV_KEYRING_PASSWORD = "FORWARDEMAIL_KEYRING_PASSWORD"
ENV_KEYRING_DIR = "FORWARDEMAIL_KEYRING_DIR"
ENV_PROFILE = "FORWARDEMAIL_PROFILE"
ENV_BASE_URL = "FORWARDEMAIL_BASE_URL"
ENV_TIMEOUT = "FORWARDEMAIL_TIMEOUT"
ENV_OUTPUT = "FORWARDEMAIL_OUTPUT"

# Read-time overlays applied by ProfileStore.get_profile.
_FIELD_OVERRIDES = {
    "base_url": ENV_BASE_URL,
    "timeout": ENV_TIMEOUT,
    "output": ENV_OUTPUT,
}


def profile_env_var(profile: str) -> str:
    """Return the profile-scoped API key variable, e.g. ``FORWARDEMAIL_WORK_API_KEY``.

    The profile name is uppercased and every character outside ``[A-Z0-9]``
    becomes ``_`` so that names like ``my-dev`` map to a usable shell
    variable (``FORWARDEMAIL_MY_DEV_API_KEY``).
    """
    slug = re.sub(r"[^A-Z0-9]", "_", profile.upper())
    return f"{ENV_PREFIX}_{slug}_API_KEY"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory.

    The directory is *not* created here; :meth:`ProfileStore.save` creates
    it on first write.

    On Linux/BSD, or anywhere ``XDG_CONFIG_HOME`` is set:
    ``$XDG_CONFIG_HOME/forwardemail/`` (default ``~/.config/forwardemail/``).
    Otherwise: ``~/.forwardemail/``.
    """
    if _is_xdg_platform() or os.environ.get("XDG_CONFIG_HOME"):
        return _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    return _fallback_base_dir()


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/forwardemail/`` (default
    ``~/.local/share/forwardemail/``).  On macOS/Windows:
    ``~/.forwardemail/logs/``.
    """
    if _is_xdg_platform() or os.environ.get("XDG_DATA_HOME"):
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_path() -> Path:
    """Path to ``config.yaml`` inside :func:`get_config_dir`."""
    return get_config_dir() / _CONFIG_FILENAME


def get_keyring_dir() -> Path:
    """Directory used by the encrypted file backend.

    ``FORWARDEMAIL_KEYRING_DIR`` wins; otherwise ``<config dir>/keyring``.
    """
    override = os.environ.get(ENV_KEYRING_DIR, "")
    if override:
        return Path(override).expanduser()
    return get_config_dir() / "keyring"


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    When *mode* is given the permissions are applied to the temp file
    before any content is written.  On any failure the temp file is
    cleaned up.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Profile store ---


class ProfileStore:
    """Named profiles plus the ``current_profile`` pointer, backed by ``config.yaml``.

    The store is an ordinary value: load it once, pass it to whatever needs
    it, mutate it in memory, and call :meth:`save` to persist the whole map.
    There are no partial updates.

    ``current_profile`` refers to a profile by name.  :meth:`delete_profile`
    refuses to remove the profile it points at, which keeps the pointer
    valid as long as callers go through the store.

    Environment overlays (``FORWARDEMAIL_BASE_URL``, ``FORWARDEMAIL_TIMEOUT``,
    ``FORWARDEMAIL_OUTPUT``) captured at load time are applied by
    :meth:`get_profile` only and never written back by :meth:`save`.

    Args:
        data: Parsed config contents.  ``None`` means an empty config.
        path: File to save to.  Defaults to :func:`get_config_path` at
            save time.
        overrides: Field overlays keyed by profile field name.

    Example::

        store = ProfileStore.load()
        store.set_profile("work", Profile.new())
        store.current_profile = "work"
        store.save()
    """

    def __init__(
        self,
        data: Optional[ConfigFile] = None,
        path: Optional[Path] = None,
        overrides: Optional[Mapping[str, str]] = None,
    ) -> None:
        data = data or ConfigFile()
        self._profiles: dict[str, Profile] = dict(data.profiles)
        self._current: str = data.current_profile
        self._extra: dict = dict(data.model_extra or {})
        self._path = path
        self._overrides: dict[str, str] = dict(overrides or {})

    @classmethod
    def load(
        cls,
        with_defaults: bool = True,
        path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> ProfileStore:
        """Read ``config.yaml`` and environment overlays.

        A missing file yields an empty store; the file is only created by
        :meth:`save`.

        Args:
            with_defaults: Fill empty ``base_url``/``timeout``/``output``
                fields of *existing* profiles with production defaults.
                No profile is ever invented.
            path: Alternate config file (default :func:`get_config_path`).
            environ: Environment mapping (default ``os.environ``).

        Raises:
            ConfigError: If the file cannot be read, is not valid YAML, or
                fails validation, or if ``FORWARDEMAIL_OUTPUT`` is invalid.
        """
        path = path or get_config_path()
        env = os.environ if environ is None else environ

        data = ConfigFile()
        if path.is_file():
            try:
                raw = yaml.safe_load(path.read_text(encoding="utf-8"))
            except (OSError, yaml.YAMLError) as exc:
                raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
            if raw is None:
                raw = {}
            if not isinstance(raw, dict):
                raise ConfigError(f"Invalid config file {path}: expected a mapping")
            try:
                data = ConfigFile.model_validate(raw)
            except ValidationError as exc:
                raise ConfigError(f"Invalid config file {path}: {exc}") from exc

        if with_defaults:
            data.profiles = {
                name: profile.with_defaults() for name, profile in data.profiles.items()
            }

        overrides: dict[str, str] = {}
        for field, var in _FIELD_OVERRIDES.items():
            value = env.get(var, "")
            if value:
                overrides[field] = value
        output = overrides.get("output")
        if output and output not in OUTPUT_FORMATS:
            raise ConfigError(
                f"{ENV_OUTPUT} must be one of {', '.join(OUTPUT_FORMATS)} (got {output!r})"
            )

        logger.debug("Loaded %d profile(s) from %s", len(data.profiles), path)
        return cls(data, path=path, overrides=overrides)

    @property
    def path(self) -> Path:
        """The config file this store saves to."""
        return self._path or get_config_path()

    @property
    def current_profile(self) -> str:
        """Name of the current profile, or ``""`` when none is set."""
        return self._current

    @current_profile.setter
    def current_profile(self, name: str) -> None:
        if name and name not in self._profiles:
            raise ProfileNotFoundError(name)
        self._current = name

    def resolve_name(self, name: str = "") -> str:
        """Return *name*, or the current profile when *name* is empty."""
        return name or self._current

    def has_profile(self, name: str) -> bool:
        return name in self._profiles

    def get_profile(self, name: str = "") -> Profile:
        """Return a copy of a profile with environment overlays applied.

        Args:
            name: Profile name.  Empty means the current profile.

        Raises:
            ProfileNotFoundError: If the profile does not exist, or *name*
                is empty and no current profile is set.
        """
        resolved = self.resolve_name(name)
        profile = self._profiles.get(resolved) if resolved else None
        if profile is None:
            raise ProfileNotFoundError(resolved)
        if self._overrides:
            return profile.model_copy(update=self._overrides)
        return profile.model_copy()

    def get_stored_profile(self, name: str) -> Profile:
        """Like :meth:`get_profile` but without environment overlays.

        Use this when the result is going to be written back with
        :meth:`set_profile`.
        """
        profile = self._profiles.get(name)
        if profile is None:
            raise ProfileNotFoundError(name)
        return profile.model_copy()

    def set_profile(self, name: str, profile: Profile) -> None:
        """Insert or replace a profile in memory.  Call :meth:`save` to persist."""
        self._profiles[name] = profile

    def delete_profile(self, name: str) -> None:
        """Remove a profile in memory.

        Raises:
            ProfileNotFoundError: If the profile does not exist.
            CannotDeleteCurrentError: If *name* is the current profile.
        """
        if name not in self._profiles:
            raise ProfileNotFoundError(name)
        if name == self._current:
            raise CannotDeleteCurrentError(name)
        del self._profiles[name]

    def list_profiles(self) -> list[str]:
        """Return all profile names (insertion order; sort if it matters)."""
        return list(self._profiles)

    def to_config(self) -> ConfigFile:
        """Snapshot the store as a :class:`~forwardemail.models.ConfigFile`."""
        return ConfigFile(
            current_profile=self._current,
            profiles={name: p.model_copy() for name, p in self._profiles.items()},
            **self._extra,
        )

    def save(self) -> None:
        """Rewrite ``config.yaml`` with the entire profile map.

        Creates the config directory if needed.  The file is replaced
        atomically with ``0o600`` permissions because it may hold inline
        API keys.

        Raises:
            ConfigError: If the file cannot be written.
        """
        data = self.to_config().model_dump(mode="json")
        text = yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
        try:
            atomic_write(self.path, text, mode=0o600)
        except OSError as exc:
            raise ConfigError(f"Failed to write config file {self.path}: {exc}") from exc
        logger.debug("Saved %d profile(s) to %s", len(self._profiles), self.path)
