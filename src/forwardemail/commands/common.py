"""Helpers shared by the command modules.

Commands never touch process-wide state directly: each one builds a
:class:`~forwardemail.config.ProfileStore` and a secret backend through
:func:`open_resolver` and passes them down explicitly.
"""

from __future__ import annotations

import contextlib
from typing import Iterator, Optional

import typer

from forwardemail.exceptions import (
    AuthError,
    BackendUnavailableError,
    ForwardEmailError,
    KeyringDisabledError,
    UnreachableError,
)
from forwardemail.output import debug, error, suggest


def state(ctx: Optional[typer.Context]) -> dict:
    """Return the shared options stored by the root callback (may be empty)."""
    if ctx is None:
        return {}
    root = ctx.find_root()
    return root.obj if isinstance(root.obj, dict) else {}


def selected_profile(ctx: Optional[typer.Context], explicit: Optional[str] = None) -> str:
    """Profile chosen for this command: the local option, then ``--profile``.

    Returns ``""`` when neither is given so the resolver can fall back to
    the current profile.
    """
    return explicit or state(ctx).get("profile") or ""


def force_requested(ctx: Optional[typer.Context], local: bool = False) -> bool:
    return local or bool(state(ctx).get("force"))


def open_resolver(**backend_options):
    """Load the profile store and open the secret backend for this process.

    Keyword arguments are passed to
    :func:`~forwardemail.keystore.factory.open_backend_or_disabled`.

    Returns:
        A :class:`~forwardemail.auth.resolver.CredentialResolver`.
    """
    from forwardemail.auth.resolver import CredentialResolver
    from forwardemail.config import ProfileStore
    from forwardemail.keystore import open_backend_or_disabled

    store = ProfileStore.load()
    backend = open_backend_or_disabled(**backend_options)
    debug(f"Config: {store.path}; secret backend: {backend.name}")
    return CredentialResolver(store, backend)


@contextlib.contextmanager
def handle_errors() -> Iterator[None]:
    """Print a :class:`ForwardEmailError` with a hint and exit with its code."""
    try:
        yield
    except ForwardEmailError as exc:
        error(str(exc))
        hint = _hint_for(exc)
        if hint:
            suggest(hint)
        raise typer.Exit(code=exc.exit_code) from None


def _hint_for(exc: ForwardEmailError) -> str:
    if isinstance(exc, KeyringDisabledError):
        return "Unset FORWARDEMAIL_KEYRING_BACKEND to use the OS keyring"
    if isinstance(exc, BackendUnavailableError):
        return (
            "Set FORWARDEMAIL_KEYRING_BACKEND=file and FORWARDEMAIL_KEYRING_PASSWORD, "
            "or FORWARDEMAIL_KEYRING_BACKEND=none"
        )
    if isinstance(exc, (AuthError, UnreachableError)):
        return "Run: forward-email auth login"
    return ""
