"""Auth commands -- store, remove, inspect and verify API keys.

Provides the ``forward-email auth`` sub-command group.  Keys are written
through :meth:`~forwardemail.auth.resolver.CredentialResolver.store_key`,
which targets the secret backend and only falls back to the config file
when secret storage was switched off.

Typical workflow::

    forward-email auth login --profile work   # prompts for the key
    forward-email auth status
    forward-email auth verify
"""

from __future__ import annotations

from typing import Optional

import typer

from forwardemail.commands.common import handle_errors, open_resolver, selected_profile
from forwardemail.output import info, print_record, success, suggest, warning


auth_app = typer.Typer(no_args_is_help=True)


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Profile to store the key for."
    ),
    api_key: Optional[str] = typer.Option(
        None, "--api-key", help="API key (prompted with hidden input when omitted)."
    ),
    no_verify: bool = typer.Option(
        False, "--no-verify", help="Store the key without checking it against the API."
    ),
) -> None:
    """Store an API key for a profile.

    The key is checked with ``GET /v1/account`` first unless
    ``--no-verify`` is given.  A missing profile is created with default
    settings, and becomes the current profile when none is set.

    Example::

        forward-email auth login --profile work
        echo "$KEY" | forward-email auth login --api-key "$KEY" --no-verify
    """
    from forwardemail.auth import AuthProvider, open_http_client
    from forwardemail.exceptions import InvalidUsageError
    from forwardemail.models import CredentialSource, Profile

    with handle_errors():
        resolver = open_resolver()
        store = resolver.store
        name = resolver.profile_name(selected_profile(ctx, profile))

        if api_key is None:
            api_key = typer.prompt("Forward Email API key", hide_input=True)
        key = api_key.strip()
        if not key:
            raise InvalidUsageError("API key must not be empty")

        created = not store.has_profile(name)
        settings = Profile.new() if created else store.get_profile(name)

        if not no_verify:
            provider = AuthProvider(resolver)
            with open_http_client(settings) as client:
                provider.validate_token(
                    provider.for_api_key(key, name), client, settings.effective_base_url
                )
            info("API key accepted by the server.")

        if created:
            store.set_profile(name, Profile.new())
        source = resolver.store_key(name, key)
        if not store.current_profile:
            store.current_profile = name
        store.save()

    if created:
        info(f"Created profile '{name}'.")
    success(f"API key for profile '{name}' stored in {source.value}.")
    if source is CredentialSource.CONFIG:
        warning("Secret storage is disabled; the key is stored in plain text in config.yaml.")


@auth_app.command("logout")
def auth_logout(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Profile to remove the key from."
    ),
    all_profiles: bool = typer.Option(
        False, "--all", help="Remove the keys of every known profile."
    ),
) -> None:
    """Remove stored API keys (secret backend and inline config).

    Environment variables are never touched.  A broken secret backend is
    reported as a warning; the inline key is still cleared and the
    remaining profiles are still logged out.

    Example::

        forward-email auth logout --profile work
        forward-email auth logout --all
    """
    from forwardemail.exceptions import BackendUnavailableError

    with handle_errors():
        resolver = open_resolver()
        if all_profiles:
            names = resolver.known_profiles()
        else:
            names = [resolver.profile_name(selected_profile(ctx, profile))]

        removed_any = False
        failed = False
        for name in names:
            try:
                removed = resolver.delete_key(name)
            except BackendUnavailableError as exc:
                failed = True
                warning(f"Could not remove the stored key for profile '{name}': {exc}")
                continue
            if removed:
                removed_any = True
                tiers = ", ".join(source.value for source in removed)
                success(f"Removed API key for profile '{name}' ({tiers}).")
        resolver.store.save()

    if not removed_any and not failed:
        info("No stored API keys to remove.")


@auth_app.command("status")
def auth_status(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Profile to report on."
    ),
) -> None:
    """Show which tier supplies the API key for a profile.

    Exits with code 3 when no key can be found.
    """
    from forwardemail.exceptions import CredentialsNotFoundError
    from forwardemail.exit_codes import EXIT_AUTH_FAILURE

    with handle_errors():
        resolver = open_resolver()
        name = resolver.profile_name(selected_profile(ctx, profile))
        record = {
            "profile": name,
            "current": name == resolver.store.current_profile,
            "backend": resolver.backend.name,
        }
        try:
            cred = resolver.resolve(name)
        except CredentialsNotFoundError as exc:
            record.update({"authenticated": False, "source": "", "api_key": ""})
            print_record(record, title="Auth status")
            warning(str(exc))
            suggest(f"Run: forward-email auth login --profile {name}")
            raise typer.Exit(code=EXIT_AUTH_FAILURE) from None

        record.update(
            {
                "authenticated": True,
                "source": cred.source.value,
                "detail": cred.detail,
                "api_key": cred.masked(),
            }
        )
        print_record(record, title="Auth status")


@auth_app.command("verify")
def auth_verify(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Profile to verify."
    ),
) -> None:
    """Check the resolved API key against the API (``GET /v1/account``).

    Example::

        forward-email auth verify --profile work
    """
    from forwardemail.auth import AuthProvider, open_http_client
    from forwardemail.exceptions import ProfileNotFoundError
    from forwardemail.models import Profile

    with handle_errors():
        resolver = open_resolver()
        provider = AuthProvider(resolver)
        name = resolver.profile_name(selected_profile(ctx, profile))
        try:
            settings = resolver.store.get_profile(name)
        except ProfileNotFoundError:
            settings = Profile.new()
        with open_http_client(settings) as client:
            account = provider.validate(name, client, settings.effective_base_url)

    email = account.get("email")
    suffix = f" ({email})" if email else ""
    success(f"API key for profile '{name}' is valid{suffix}.")
