"""Canonical Pydantic models shared across all forwardemail modules.

**Configuration models** -- serialised as YAML in the user's config
directory: :class:`Profile` and :class:`ConfigFile`.

**Resolution models** -- ephemeral values that are never persisted:
:class:`CredentialSource`, :class:`ResolvedCredential`, and
:class:`TierStatus`.

All models use Pydantic v2.  Configuration models accept unknown keys
(``extra="allow"``) so that fields written by newer releases survive a
load/save cycle.
"""

from __future__ import annotations

import enum
import math
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from forwardemail.exceptions import ConfigError

DEFAULT_BASE_URL = "https://api.forwardemail.net"
DEFAULT_TIMEOUT = "30s"
DEFAULT_OUTPUT = "table"
DEFAULT_PROFILE = "default"

OUTPUT_FORMATS = ("table", "json", "yaml", "csv")
"""Output formats a profile may prefer."""

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> float:
    """Parse a duration string such as ``"30s"``, ``"1m30s"`` or ``"500ms"``.

    A bare number is taken as seconds.

    Returns:
        The duration in seconds.

    Raises:
        ConfigError: If *value* is empty, negative, or not a duration.
    """
    text = value.strip()
    if not text:
        raise ConfigError("Empty duration")
    try:
        seconds = float(text)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(text):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos != len(text) or pos == 0:
            raise ConfigError(f"Invalid duration: {value!r}") from None
    if not math.isfinite(seconds):
        raise ConfigError(f"Invalid duration: {value!r}")
    if seconds < 0:
        raise ConfigError(f"Duration must not be negative: {value!r}")
    return seconds


# --- Configuration ---


class Profile(BaseModel):
    """A named bundle of connection settings, stored under ``profiles:`` in ``config.yaml``.

    Empty strings mean "not set here".  :meth:`with_defaults` fills them
    with production values; the inline ``api_key`` is never defaulted.

    The ``timeout`` string is kept verbatim and only parsed by
    :meth:`timeout_seconds`, so a bad value fails the command that needs
    it rather than every command that loads the config.
    """

    model_config = ConfigDict(extra="allow")

    base_url: str = Field(default="", description="API endpoint; production when empty")
    api_key: str = Field(
        default="",
        repr=False,
        description="Inline API key (weaker than the keyring tier)",
    )
    timeout: str = Field(default="", description="Request timeout, e.g. '30s'")
    output: str = Field(default="", description="Preferred output: table, json, yaml, csv")

    @field_validator("output")
    @classmethod
    def _check_output(cls, value: str) -> str:
        if value and value not in OUTPUT_FORMATS:
            raise ValueError(
                f"output must be one of {', '.join(OUTPUT_FORMATS)} (got {value!r})"
            )
        return value

    @classmethod
    def new(cls) -> Profile:
        """Return a fresh profile populated with production defaults."""
        return cls(
            base_url=DEFAULT_BASE_URL,
            timeout=DEFAULT_TIMEOUT,
            output=DEFAULT_OUTPUT,
        )

    def with_defaults(self) -> Profile:
        """Return a copy with empty connection fields set to their defaults."""
        return self.model_copy(
            update={
                "base_url": self.base_url or DEFAULT_BASE_URL,
                "timeout": self.timeout or DEFAULT_TIMEOUT,
                "output": self.output or DEFAULT_OUTPUT,
            }
        )

    @property
    def effective_base_url(self) -> str:
        return (self.base_url or DEFAULT_BASE_URL).rstrip("/")

    def timeout_seconds(self) -> float:
        """Parse :attr:`timeout` (default ``30s``) into seconds.

        Raises:
            ConfigError: If the stored value is not a valid duration.
        """
        return parse_duration(self.timeout or DEFAULT_TIMEOUT)


class ConfigFile(BaseModel):
    """On-disk shape of ``config.yaml``.

    Example::

        current_profile: work
        profiles:
          work:
            base_url: https://api.forwardemail.net
            timeout: 30s
            output: table
    """

    model_config = ConfigDict(extra="allow")

    current_profile: str = ""
    profiles: dict[str, Profile] = Field(default_factory=dict)

    @field_validator("current_profile", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Optional[str]) -> str:
        return value or ""

    @field_validator("profiles", mode="before")
    @classmethod
    def _null_profiles(cls, value: Optional[dict]) -> dict:
        if value is None:
            return {}
        return {name: fields if fields is not None else {} for name, fields in value.items()}


# --- Resolution ---


class CredentialSource(str, enum.Enum):
    """Where a resolved API key was found."""

    ENV = "env"
    KEYRING = "keyring"
    FILE_BACKEND = "file-backend"
    CONFIG = "config"


class ResolvedCredential(BaseModel):
    """An API key together with the tier it came from.

    Produced by :meth:`~forwardemail.auth.resolver.CredentialResolver.resolve`
    and never persisted.  The key is excluded from ``repr`` so that the
    object can appear in logs and tracebacks.

    Attributes:
        profile: The profile the key belongs to.
        api_key: The raw key.
        source: The tier that produced the key.
        detail: Diagnostic hint, e.g. the environment variable name.
    """

    model_config = ConfigDict(frozen=True)

    profile: str
    api_key: str = Field(repr=False)
    source: CredentialSource
    detail: str = ""

    def masked(self) -> str:
        """Return a preview of the key that is safe to print."""
        return mask_secret(self.api_key)


class TierStatus(BaseModel):
    """One row of a per-tier diagnostic report.

    Attributes:
        tier: Human-readable tier name (e.g. ``FORWARDEMAIL_API_KEY``).
        source: The :class:`CredentialSource` this tier maps to.
        present: Whether the tier currently holds a non-empty key.
        detail: Extra information such as a backend error or the key length.
    """

    tier: str
    source: CredentialSource
    present: bool
    detail: str = ""


def mask_secret(value: str) -> str:
    """Render *value* as ``abcde...vwxyz`` (or ``****`` when short)."""
    if len(value) > 10:
        return f"{value[:5]}...{value[-5:]}"
    return "*" * len(value)
