"""Debug commands -- look inside the credential tiers.

``debug keys`` talks to the secret backend alone and lets its errors
through, which is the quickest way to tell "nothing stored" from "the
keyring is broken".  ``debug auth`` prints the full tier report that
:meth:`~forwardemail.auth.resolver.CredentialResolver.describe` builds.
Neither command prints key material beyond a masked preview.
"""

from __future__ import annotations

from typing import Optional

import typer

from forwardemail.commands.common import handle_errors, open_resolver, selected_profile
from forwardemail.output import info, print_record, print_table


debug_app = typer.Typer(no_args_is_help=True)


@debug_app.command("keys")
def debug_keys(
    ctx: typer.Context,
    profile: Optional[str] = typer.Argument(None, help="Profile to look up (default: current)."),
) -> None:
    """Query the secret backend directly, surfacing backend errors."""
    with handle_errors():
        resolver = open_resolver()
        backend = resolver.backend
        name = resolver.profile_name(selected_profile(ctx, profile))
        info(f"Backend: {backend.name}")

        stored = sorted(backend.list_profiles())
        info(f"Profiles with stored keys: {', '.join(stored) if stored else '(none)'}")

        cred = resolver.resolve(name, keyring_only=True)
        print_record(
            {
                "profile": cred.profile,
                "backend": cred.detail,
                "source": cred.source.value,
                "api_key": cred.masked(),
            },
            title="Backend entry",
        )


@debug_app.command("auth")
def debug_auth(
    ctx: typer.Context,
    profile: Optional[str] = typer.Argument(None, help="Profile to inspect (default: current)."),
) -> None:
    """Show every tier of the resolution chain and which one wins."""
    from forwardemail.exceptions import CredentialsNotFoundError

    with handle_errors():
        resolver = open_resolver()
        name = resolver.profile_name(selected_profile(ctx, profile))
        statuses = resolver.describe(name)

        winner = ""
        for status in statuses:
            if status.present:
                winner = status.tier
                break

        rows = [
            [
                str(position),
                status.tier,
                "yes" if status.present else "no",
                "yes" if status.tier == winner else "",
                status.detail,
            ]
            for position, status in enumerate(statuses, 1)
        ]
    print_table(
        ["#", "Tier", "Present", "Used", "Detail"], rows, title=f"Credential tiers for '{name}'"
    )

    if not winner:
        info(str(CredentialsNotFoundError(name, [s.tier for s in statuses])))
