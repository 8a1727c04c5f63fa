"""Init command -- first-run setup.

Implements the ``forward-email init`` top-level command: asks for a
profile name and an API key, verifies the key, stores it in the chosen
tier, and makes the profile current.  Every prompt has a matching option
so the wizard can run unattended.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Optional

import typer

from forwardemail.commands.common import handle_errors
from forwardemail.output import info, success, suggest, warning


class StoreChoice(str, Enum):
    """Where ``init`` puts the API key."""

    AUTO = "auto"
    KEYRING = "keyring"
    FILE = "file"
    CONFIG = "config"


def init_command(
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Profile name."),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="API key."),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override the API endpoint."),
    store: StoreChoice = typer.Option(
        StoreChoice.AUTO,
        "--store",
        help="Key storage: auto (OS keyring, else config), keyring, file, config.",
    ),
    file_pass: Optional[str] = typer.Option(
        None, "--file-pass", help="Passphrase for the encrypted key file (with --store file)."
    ),
    no_verify: bool = typer.Option(False, "--no-verify", help="Skip the API check."),
) -> None:
    """Create (or update) a profile, store its API key and make it current.

    ``--store auto`` uses the OS keyring and falls back to ``config.yaml``
    when none is usable; ``--store keyring`` fails instead.
    ``--store file`` uses the encrypted file backend; its passphrase comes
    from ``--file-pass``, ``FORWARDEMAIL_KEYRING_PASSWORD`` or a prompt.
    ``--store config`` writes the key into ``config.yaml`` in plain text.

    Example::

        forward-email init
        forward-email init --name ci --api-key "$KEY" --store file --no-verify
    """
    from forwardemail.auth import AuthProvider, CredentialResolver, open_http_client
    from forwardemail.config import ENV_KEYRING_BACKEND, ENV_KEYRING_PASSWORD, ProfileStore
    from forwardemail.exceptions import InvalidUsageError, KeyringDisabledError
    from forwardemail.keystore import (
        DisabledBackend,
        fixed_password,
        open_backend,
        open_backend_or_disabled,
    )
    from forwardemail.models import DEFAULT_PROFILE, CredentialSource, Profile

    with handle_errors():
        profiles = ProfileStore.load()

        if name is None:
            name = typer.prompt("Profile name", default=profiles.current_profile or DEFAULT_PROFILE)
        name = name.strip()
        if not name:
            raise InvalidUsageError("Profile name must not be empty")

        if api_key is None:
            api_key = typer.prompt("Forward Email API key", hide_input=True)
        key = api_key.strip()
        if not key:
            raise InvalidUsageError("API key must not be empty")

        if profiles.has_profile(name):
            settings = profiles.get_stored_profile(name)
        else:
            settings = Profile.new()
        if base_url:
            settings = settings.model_copy(update={"base_url": base_url})

        if store is StoreChoice.KEYRING:
            backend = open_backend(mode="os")
        elif store is StoreChoice.FILE:
            password_func = None
            if file_pass:
                password_func = fixed_password(file_pass)
            elif not os.environ.get(ENV_KEYRING_PASSWORD):
                passphrase = typer.prompt(
                    "Passphrase for the encrypted key file",
                    hide_input=True,
                    confirmation_prompt=True,
                )
                password_func = fixed_password(passphrase)
            backend = open_backend(mode="file", password_func=password_func)
        elif store is StoreChoice.CONFIG:
            backend = DisabledBackend(KeyringDisabledError("Key storage set to config by init"))
        else:
            backend = open_backend_or_disabled()
            if isinstance(backend, DisabledBackend) and not backend.disabled_by_user:
                warning(f"{backend.reason}; falling back to config.yaml")
                backend = DisabledBackend(KeyringDisabledError("No usable OS keyring"))

        resolver = CredentialResolver(profiles, backend)

        if not no_verify:
            provider = AuthProvider(resolver)
            with open_http_client(settings) as client:
                provider.validate_token(
                    provider.for_api_key(key, name), client, settings.effective_base_url
                )
            info("API key accepted by the server.")

        profiles.set_profile(name, settings)
        source = resolver.store_key(name, key)
        profiles.current_profile = name
        profiles.save()

    success(f"Profile '{name}' is ready; API key stored in {source.value}.")
    if source is CredentialSource.CONFIG:
        warning("The API key is stored in plain text in config.yaml.")
        suggest(f"Move it later: forward-email profile migrate {name}")
    elif store is StoreChoice.FILE and (
        os.environ.get(ENV_KEYRING_BACKEND) != "file" or not os.environ.get(ENV_KEYRING_PASSWORD)
    ):
        suggest(
            f"Set {ENV_KEYRING_BACKEND}=file and {ENV_KEYRING_PASSWORD} "
            "so later commands read the key from the encrypted file"
        )
    suggest("Check it: forward-email auth status")
