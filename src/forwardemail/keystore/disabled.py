"""Placeholder backend used when secret storage is off or unreachable."""

from __future__ import annotations

from forwardemail.exceptions import BackendUnavailableError, KeyringDisabledError
from forwardemail.keystore.base import SecretBackend


class DisabledBackend(SecretBackend):
    """A backend whose every operation raises the reason it is disabled.

    Holding a ``DisabledBackend`` instead of ``None`` keeps callers free of
    null checks while preserving *why* there is no secret store: either the
    user asked for none (:class:`~forwardemail.exceptions.KeyringDisabledError`)
    or opening the native store failed
    (:class:`~forwardemail.exceptions.BackendUnavailableError`).

    Args:
        reason: The error raised by every operation.
    """

    def __init__(self, reason: BackendUnavailableError) -> None:
        self._reason = reason

    @property
    def name(self) -> str:
        return "disabled" if self.disabled_by_user else "unavailable"

    @property
    def reason(self) -> BackendUnavailableError:
        return self._reason

    @property
    def disabled_by_user(self) -> bool:
        """``True`` when storage was turned off on purpose (mode ``none``)."""
        return isinstance(self._reason, KeyringDisabledError)

    def _fail(self, operation: str, profile: str | None = None) -> BackendUnavailableError:
        target = f" for profile '{profile}'" if profile is not None else ""
        return type(self._reason)(f"Cannot {operation}{target}: {self._reason}")

    def set(self, profile: str, api_key: str) -> None:
        raise self._fail("store API key", profile)

    def get(self, profile: str) -> str:
        raise self._fail("retrieve API key", profile)

    def delete(self, profile: str) -> None:
        raise self._fail("delete API key", profile)

    def list_profiles(self) -> list[str]:
        raise self._fail("list stored keys")
