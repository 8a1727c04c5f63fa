"""Turn resolved credentials into HTTP auth and validate them remotely.

Forward Email authenticates with HTTP Basic auth: the API key is the user
name and the password is empty.  :class:`AuthToken` carries the resulting
``Authorization`` header; :class:`AuthProvider` builds tokens through a
:class:`~forwardemail.auth.resolver.CredentialResolver` and checks them
with one ``GET /v1/account`` request.  There is no retry here.

See Also:
    :mod:`forwardemail.auth.resolver` for the tier order.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Optional

import httpx

from forwardemail import __version__
from forwardemail.auth.resolver import CredentialResolver
from forwardemail.exceptions import (
    ForwardEmailError,
    ProfileNotFoundError,
    UnauthorizedError,
    UnreachableError,
)
from forwardemail.models import DEFAULT_BASE_URL, CredentialSource, Profile, mask_secret

logger = logging.getLogger(__name__)

ACCOUNT_PATH = "/v1/account"
USER_AGENT = f"forwardemail-cli/{__version__}"


class AuthToken:
    """Transport-ready credential for one profile.

    Args:
        profile: Profile the key belongs to (empty for ad-hoc tokens).
        api_key: The raw API key.
        source: Tier the key came from, or ``None`` when it was supplied
            directly.

    Example::

        token = AuthToken("work", "key-123", CredentialSource.ENV)
        httpx.get(url, headers=token.headers)
    """

    def __init__(
        self,
        profile: str,
        api_key: str,
        source: Optional[CredentialSource] = None,
    ) -> None:
        self.profile = profile
        self.source = source
        self._api_key = api_key

    @property
    def headers(self) -> dict[str, str]:
        encoded = base64.b64encode(f"{self._api_key}:".encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {encoded}"}

    def masked(self) -> str:
        return mask_secret(self._api_key)

    def __repr__(self) -> str:
        source = self.source.value if self.source else "direct"
        return f"<AuthToken profile={self.profile!r} source={source}>"


def open_http_client(profile: Optional[Profile] = None) -> httpx.Client:
    """Create the :class:`httpx.Client` used for validation requests.

    The timeout comes from the profile (default 30s).

    Raises:
        ConfigError: If the profile's timeout is not a valid duration.
    """
    timeout = (profile or Profile()).timeout_seconds()
    return httpx.Client(
        timeout=timeout,
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
    )


class AuthProvider:
    """Builds :class:`AuthToken` objects and validates them against the API.

    Args:
        resolver: Resolver used to find the key for a profile.
    """

    def __init__(self, resolver: CredentialResolver) -> None:
        self._resolver = resolver

    def build_credential(self, profile: str = "") -> AuthToken:
        """Resolve *profile* and wrap its key.

        Raises:
            CredentialsNotFoundError: Propagated from the resolver.
        """
        cred = self._resolver.resolve(profile)
        return AuthToken(cred.profile, cred.api_key, cred.source)

    @staticmethod
    def for_api_key(api_key: str, profile: str = "") -> AuthToken:
        """Wrap a key that has not been stored yet (e.g. during login)."""
        return AuthToken(profile, api_key)

    def base_url_for(self, profile: str = "") -> str:
        """Effective base URL of *profile*; production when it is not configured."""
        name = self._resolver.profile_name(profile)
        try:
            return self._resolver.store.get_profile(name).effective_base_url
        except ProfileNotFoundError:
            return DEFAULT_BASE_URL

    def validate(
        self,
        profile: str,
        http_client: httpx.Client,
        base_url: Optional[str] = None,
    ) -> dict[str, Any]:
        """Resolve *profile* and check its key with the API.

        Returns:
            The decoded account object (empty if the body is not JSON).

        Raises:
            CredentialsNotFoundError: If no key can be resolved.
            UnauthorizedError: On HTTP 401 or 403.
            UnreachableError: On network failures.
            ForwardEmailError: On any other error status.
        """
        token = self.build_credential(profile)
        return self.validate_token(token, http_client, base_url or self.base_url_for(profile))

    def validate_token(
        self,
        token: AuthToken,
        http_client: httpx.Client,
        base_url: str = DEFAULT_BASE_URL,
    ) -> dict[str, Any]:
        """Issue ``GET <base_url>/v1/account`` with *token*.

        Same return value and errors as :meth:`validate`.
        """
        url = base_url.rstrip("/") + ACCOUNT_PATH
        logger.debug("Validating %r against %s", token, url)
        try:
            response = http_client.get(url, headers=token.headers)
        except httpx.TransportError as exc:
            raise UnreachableError(f"Cannot reach {base_url}: {exc}") from exc

        status = response.status_code
        if status in (401, 403):
            who = f" for profile '{token.profile}'" if token.profile else ""
            raise UnauthorizedError(f"API key{who} was rejected (HTTP {status})")
        if status >= 400:
            raise ForwardEmailError(f"Account check failed with HTTP {status} from {url}")

        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
