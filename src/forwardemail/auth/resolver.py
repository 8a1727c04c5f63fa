"""Credential resolution across environment, secret backend, and config file.

:class:`CredentialResolver` answers one question -- *which API key does this
profile use?* -- by walking four tiers, highest precedence first:

1. ``FORWARDEMAIL_<PROFILE>_API_KEY`` (profile-scoped environment variable)
2. ``FORWARDEMAIL_API_KEY`` (generic environment variable)
3. The configured :class:`~forwardemail.keystore.base.SecretBackend`
4. The profile's inline ``api_key`` in ``config.yaml``

The first non-empty value wins.  An empty environment variable never
shadows a lower tier.  A broken secret backend degrades to tier 4 unless
the caller asked for keyring-only resolution, in which case the backend
error is raised as-is.

Writes only ever target tier 3, or tier 4 when secret storage was switched
off with ``FORWARDEMAIL_KEYRING_BACKEND=none``.  The resolver mutates the
:class:`~forwardemail.config.ProfileStore` it was given but never saves
it; persisting is the caller's job.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional

from forwardemail.config import ENV_API_KEY, ProfileStore, profile_env_var
from forwardemail.exceptions import (
    BackendUnavailableError,
    CredentialsNotFoundError,
    InvalidUsageError,
    KeyringDisabledError,
    ProfileNotFoundError,
    SecretNotFoundError,
)
from forwardemail.keystore.base import SecretBackend
from forwardemail.keystore.disabled import DisabledBackend
from forwardemail.models import (
    DEFAULT_PROFILE,
    CredentialSource,
    Profile,
    ResolvedCredential,
    TierStatus,
)

logger = logging.getLogger(__name__)

CONFIG_TIER = "config"


class CredentialResolver:
    """Ordered lookup and write policy for per-profile API keys.

    Args:
        store: The loaded profile store.  Read for inline keys and the
            current profile; mutated by :meth:`store_key`,
            :meth:`delete_key` and :meth:`migrate_inline_key`.
        backend: The secret backend chosen for this process.  Pass a
            :class:`~forwardemail.keystore.disabled.DisabledBackend` when
            there is none.
        environ: Environment mapping (default ``os.environ``).

    Example::

        resolver = CredentialResolver(ProfileStore.load(), open_backend_or_disabled())
        cred = resolver.resolve("work")
        print(cred.source, cred.masked())
    """

    def __init__(
        self,
        store: ProfileStore,
        backend: SecretBackend,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._store = store
        self._backend = backend
        self._environ = environ

    @property
    def store(self) -> ProfileStore:
        return self._store

    @property
    def backend(self) -> SecretBackend:
        return self._backend

    @property
    def _env(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def profile_name(self, profile: str = "") -> str:
        """Return *profile*, else the current profile, else ``default``."""
        return profile or self._store.current_profile or DEFAULT_PROFILE

    def backend_tier(self) -> str:
        """Human-readable name of tier 3 for messages and reports."""
        if isinstance(self._backend, DisabledBackend):
            return f"keyring ({self._backend.name})"
        return f"{self._backend.source.value} ({self._backend.name})"

    # ------------------------------------------------------------------ #
    # Read path
    # ------------------------------------------------------------------ #

    def resolve(self, profile: str = "", keyring_only: bool = False) -> ResolvedCredential:
        """Return the effective API key for *profile*.

        Args:
            profile: Profile name.  Empty means the current profile, or
                ``default`` when none is set.
            keyring_only: Consult only the secret backend and surface its
                errors instead of degrading.

        Raises:
            CredentialsNotFoundError: If no tier yields a key.
            BackendUnavailableError: Only with *keyring_only*, when the
                backend is disabled or broken.
        """
        name = self.profile_name(profile)
        checked: list[str] = []

        if not keyring_only:
            for var in self._env_vars(name):
                checked.append(var)
                value = self._env.get(var, "")
                if value:
                    logger.debug("Profile '%s': API key from %s", name, var)
                    return ResolvedCredential(
                        profile=name,
                        api_key=value,
                        source=CredentialSource.ENV,
                        detail=var,
                    )

        checked.append(self.backend_tier())
        value = self._backend_value(name, surface_errors=keyring_only)
        if value:
            logger.debug("Profile '%s': API key from %s", name, self._backend.name)
            return ResolvedCredential(
                profile=name,
                api_key=value,
                source=self._backend.source,
                detail=self._backend.name,
            )
        if keyring_only:
            raise CredentialsNotFoundError(name, checked)

        checked.append(CONFIG_TIER)
        value = self._inline_key(name)
        if value:
            logger.debug("Profile '%s': API key from inline config", name)
            return ResolvedCredential(
                profile=name,
                api_key=value,
                source=CredentialSource.CONFIG,
                detail=str(self._store.path),
            )

        raise CredentialsNotFoundError(name, checked)

    def describe(self, profile: str = "") -> list[TierStatus]:
        """Report every tier for *profile* without revealing key material.

        Backend errors are captured in the row's ``detail`` rather than
        raised.
        """
        name = self.profile_name(profile)
        rows: list[TierStatus] = []

        for var in self._env_vars(name):
            if var not in self._env:
                detail = "not set"
            elif self._env[var]:
                detail = f"set ({len(self._env[var])} chars)"
            else:
                detail = "set but empty"
            rows.append(
                TierStatus(
                    tier=var,
                    source=CredentialSource.ENV,
                    present=bool(self._env.get(var, "")),
                    detail=detail,
                )
            )

        try:
            value = self._backend.get(name)
        except SecretNotFoundError:
            backend_row = (False, "no entry")
        except BackendUnavailableError as exc:
            backend_row = (False, str(exc))
        else:
            backend_row = (bool(value), f"entry present ({len(value)} chars)")
        rows.append(
            TierStatus(
                tier=self.backend_tier(),
                source=self._backend.source,
                present=backend_row[0],
                detail=backend_row[1],
            )
        )

        if not self._store.has_profile(name):
            inline = (False, "profile not in config")
        else:
            value = self._inline_key(name)
            inline = (bool(value), f"inline key ({len(value)} chars)" if value else "no inline key")
        rows.append(
            TierStatus(
                tier=CONFIG_TIER,
                source=CredentialSource.CONFIG,
                present=inline[0],
                detail=inline[1],
            )
        )
        return rows

    def known_profiles(self) -> list[str]:
        """Sorted union of configured profiles and profiles with a stored secret."""
        names = set(self._store.list_profiles())
        try:
            names.update(self._backend.list_profiles())
        except BackendUnavailableError as exc:
            logger.debug("Not listing backend profiles: %s", exc)
        return sorted(names)

    # ------------------------------------------------------------------ #
    # Write path
    # ------------------------------------------------------------------ #

    def store_key(self, profile: str, api_key: str) -> CredentialSource:
        """Persist *api_key* for *profile* in the strongest available tier.

        The secret backend is used when it works; a stale inline key of an
        existing profile is then cleared.  When the backend was switched
        off by the user the key goes into the profile's inline field,
        creating the profile with defaults if needed.

        Returns:
            The tier the key was written to.

        Raises:
            InvalidUsageError: If *api_key* is empty.
            BackendUnavailableError: If the backend exists but is broken.
                Nothing is written in that case.
        """
        if not api_key:
            raise InvalidUsageError("API key must not be empty")
        name = self.profile_name(profile)

        try:
            self._backend.set(name, api_key)
        except KeyringDisabledError:
            logger.debug("Keyring disabled; storing key for '%s' inline", name)
            self._set_inline_key(name, api_key, create=True)
            return CredentialSource.CONFIG

        if self._inline_key(name):
            self._set_inline_key(name, "", create=False)
        logger.debug("Stored key for '%s' in %s", name, self._backend.name)
        return self._backend.source

    def delete_key(self, profile: str = "") -> list[CredentialSource]:
        """Remove the key for *profile* from the backend and the inline field.

        A missing backend entry, or a backend switched off by the user, is
        not an error.  The inline key is cleared even when the backend is
        broken; the backend error is raised afterwards.

        Returns:
            The tiers a key was actually removed from.

        Raises:
            BackendUnavailableError: If the backend is broken.
        """
        name = self.profile_name(profile)
        removed: list[CredentialSource] = []
        failure: BackendUnavailableError | None = None
        try:
            self._backend.delete(name)
        except (SecretNotFoundError, KeyringDisabledError):
            pass
        except BackendUnavailableError as exc:
            failure = exc
        else:
            removed.append(self._backend.source)

        if self._inline_key(name):
            self._set_inline_key(name, "", create=False)
            removed.append(CredentialSource.CONFIG)
        if failure is not None:
            raise failure
        return removed

    def migrate_inline_key(self, profile: str = "") -> CredentialSource:
        """Move an inline config key into the secret backend.

        Raises:
            ProfileNotFoundError: If the profile does not exist.
            CredentialsNotFoundError: If the profile has no inline key.
            BackendUnavailableError: If the backend is disabled or broken.
        """
        name = self.profile_name(profile)
        stored = self._store.get_stored_profile(name)
        if not stored.api_key:
            raise CredentialsNotFoundError(name, [CONFIG_TIER])
        self._backend.set(name, stored.api_key)
        self._store.set_profile(name, stored.model_copy(update={"api_key": ""}))
        logger.debug("Migrated inline key for '%s' to %s", name, self._backend.name)
        return self._backend.source

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _env_vars(name: str) -> list[str]:
        return [profile_env_var(name), ENV_API_KEY]

    def _backend_value(self, name: str, surface_errors: bool) -> str:
        try:
            return self._backend.get(name)
        except SecretNotFoundError:
            return ""
        except BackendUnavailableError as exc:
            if surface_errors:
                raise
            if isinstance(exc, KeyringDisabledError):
                logger.debug("Keyring disabled; skipping tier 3 for '%s'", name)
            else:
                logger.debug("%s; falling back to config file", exc)
            return ""

    def _inline_key(self, name: str) -> str:
        try:
            return self._store.get_stored_profile(name).api_key
        except ProfileNotFoundError:
            return ""

    def _set_inline_key(self, name: str, api_key: str, create: bool) -> None:
        if self._store.has_profile(name):
            profile = self._store.get_stored_profile(name)
        elif create:
            profile = Profile.new()
        else:
            return
        self._store.set_profile(name, profile.model_copy(update={"api_key": api_key}))
