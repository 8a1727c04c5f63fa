"""Profile commands -- manage named connection profiles.

Provides the ``forward-email profile`` sub-command group.  Profiles live in
``config.yaml``; their API keys live wherever
:class:`~forwardemail.auth.resolver.CredentialResolver` put them, so
deleting a profile also removes its stored secret.
"""

from __future__ import annotations

from typing import Optional

import typer

from forwardemail.commands.common import (
    force_requested,
    handle_errors,
    open_resolver,
    selected_profile,
)
from forwardemail.output import info, print_record, print_table, success, suggest, warning


profile_app = typer.Typer(no_args_is_help=True)


@profile_app.command("list")
def profile_list() -> None:
    """List configured profiles and where each one's API key comes from.

    Profiles that only exist in the secret backend are listed too, marked
    as not configured.
    """
    from forwardemail.exceptions import CredentialsNotFoundError

    with handle_errors():
        resolver = open_resolver()
        store = resolver.store
        names = resolver.known_profiles()
        if not names:
            info("No profiles configured.")
            suggest("Create one: forward-email auth login --profile <name>")
            return

        rows: list[list[str]] = []
        for name in names:
            base_url = (
                store.get_profile(name).effective_base_url
                if store.has_profile(name)
                else "(not configured)"
            )
            try:
                source = resolver.resolve(name).source.value
            except CredentialsNotFoundError:
                source = "-"
            rows.append(
                [
                    name,
                    "*" if name == store.current_profile else "",
                    base_url,
                    source,
                ]
            )
    print_table(
        ["Profile", "Current", "Base URL", "Key source"], rows, title="Profiles"
    )


@profile_app.command("show")
def profile_show(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Profile name (default: current)."),
) -> None:
    """Show the settings of a profile.  The API key is masked."""
    from forwardemail.exceptions import CredentialsNotFoundError

    with handle_errors():
        resolver = open_resolver()
        store = resolver.store
        profile_name = resolver.profile_name(selected_profile(ctx, name))
        settings = store.get_profile(profile_name)
        try:
            cred = resolver.resolve(profile_name)
            key_source, key_preview = cred.source.value, cred.masked()
        except CredentialsNotFoundError:
            key_source, key_preview = "", ""
        record = {
            "name": profile_name,
            "current": profile_name == store.current_profile,
            "base_url": settings.effective_base_url,
            "timeout": settings.timeout,
            "output": settings.output,
            "key_source": key_source,
            "api_key": key_preview,
        }
    print_record(record, title=f"Profile {profile_name}")


@profile_app.command("create")
def profile_create(
    name: str = typer.Argument(help="Name of the new profile."),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="API endpoint."),
    timeout: Optional[str] = typer.Option(None, "--timeout", help="Request timeout, e.g. 30s."),
    output: Optional[str] = typer.Option(
        None, "--output-format", help="Preferred output: table, json, yaml, csv."
    ),
) -> None:
    """Create a profile with default settings.

    The first profile created becomes the current one.

    Example::

        forward-email profile create staging --base-url https://staging.example.net
    """
    from pydantic import ValidationError

    from forwardemail.exceptions import InvalidUsageError
    from forwardemail.models import Profile, parse_duration

    with handle_errors():
        resolver = open_resolver()
        store = resolver.store
        if store.has_profile(name):
            raise InvalidUsageError(f"Profile '{name}' already exists")

        updates = {"base_url": base_url, "timeout": timeout, "output": output}
        fields = Profile.new().model_dump()
        fields.update({k: v for k, v in updates.items() if v})
        if timeout:
            parse_duration(timeout)
        try:
            settings = Profile.model_validate(fields)
        except ValidationError as exc:
            raise InvalidUsageError(str(exc.errors()[0]["msg"])) from exc

        store.set_profile(name, settings)
        if not store.current_profile:
            store.current_profile = name
        store.save()

    success(f"Created profile '{name}'.")
    suggest(f"Add a key: forward-email auth login --profile {name}")


@profile_app.command("switch")
def profile_switch(name: str = typer.Argument(help="Profile to make current.")) -> None:
    """Make a profile the current one."""
    with handle_errors():
        resolver = open_resolver()
        resolver.store.current_profile = name
        resolver.store.save()
    success(f"Switched to profile '{name}'.")


@profile_app.command("delete")
def profile_delete(
    ctx: typer.Context,
    name: str = typer.Argument(help="Profile to delete."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip the confirmation prompt."),
) -> None:
    """Delete a profile and its stored API key.

    The current profile cannot be deleted; switch to another one first.
    """
    from forwardemail.exceptions import BackendUnavailableError

    with handle_errors():
        resolver = open_resolver()
        store = resolver.store
        store.delete_profile(name)
        if not force_requested(ctx, force):
            typer.confirm(f"Delete profile '{name}' and its stored API key?", abort=True)

        try:
            resolver.delete_key(name)
        except BackendUnavailableError as exc:
            warning(f"Profile deleted but its stored key may remain: {exc}")
        store.save()

    success(f"Deleted profile '{name}'.")


@profile_app.command("migrate")
def profile_migrate(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Profile to migrate (default: current)."),
) -> None:
    """Move an inline API key from config.yaml into the secret backend."""
    with handle_errors():
        resolver = open_resolver()
        profile_name = resolver.profile_name(selected_profile(ctx, name))
        source = resolver.migrate_inline_key(profile_name)
        resolver.store.save()

    success(f"Moved API key for profile '{profile_name}' to {source.value}.")
