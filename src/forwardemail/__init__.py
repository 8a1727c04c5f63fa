"""forwardemail -- command-line client for the Forward Email API.

The interesting part of this package is how an API key is found.  Keys are
kept per *profile* and may live in environment variables, an OS-native
secret service, an encrypted file store, or the plain YAML config file.
:class:`~forwardemail.auth.resolver.CredentialResolver` walks those tiers
in a fixed order and :class:`~forwardemail.auth.provider.AuthProvider`
turns the winner into an HTTP Basic ``Authorization`` header.

Typical workflow::

    forward-email auth login --profile work
    forward-email auth status
    forward-email profile switch work

Modules:
    app: Typer application and console-script entry point.
    models: Pydantic models for profiles and resolved credentials.
    config: Config paths, atomic writes, and :class:`ProfileStore`.
    keystore: Pluggable secret backends (OS keyring, encrypted file, disabled).
    auth: Credential resolution and HTTP auth building.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.3.0"
