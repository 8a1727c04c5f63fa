"""Credential resolution and HTTP auth.

- :class:`CredentialResolver` -- tiered lookup and write policy for API keys.
- :class:`AuthProvider` / :class:`AuthToken` -- Basic-auth header building
  and remote validation.
"""

from forwardemail.auth.provider import AuthProvider, AuthToken, open_http_client
from forwardemail.auth.resolver import CredentialResolver

__all__ = ["AuthProvider", "AuthToken", "CredentialResolver", "open_http_client"]
