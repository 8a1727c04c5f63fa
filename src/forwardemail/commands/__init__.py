"""Built-in CLI sub-commands for forward-email.

This package groups all Typer sub-command modules that form the CLI's
top-level command tree:

* :mod:`~forwardemail.commands.auth` -- log in, log out, inspect and
  verify the credential of a profile.
* :mod:`~forwardemail.commands.profile` -- create, switch, delete and
  migrate profiles.
* :mod:`~forwardemail.commands.debug` -- tier-by-tier diagnostics.
* :mod:`~forwardemail.commands.init` -- first-run setup wizard.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups like ``auth`` and ``profile``) or a plain callback
function registered directly on the root app (for single commands like
``init``).  Shared plumbing lives in :mod:`~forwardemail.commands.common`.
"""
