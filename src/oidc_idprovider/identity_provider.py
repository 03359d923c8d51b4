# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
OIDC identity provider: resolves an external identity from an authorization code.
"""

import hashlib
import hmac
from dataclasses import dataclass
from functools import partial
from typing import Any

import anyio
import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.common.urls import add_params_to_uri
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from oidc_idprovider.config import OIDCEndpoint, OIDCProviderConfig
from oidc_idprovider.exceptions import (
    ConfigurationError,
    DiscoveryError,
    MissingIDTokenError,
    MissingSubjectClaimError,
    OIDCIdentityError,
    TokenExchangeError,
    TokenVerificationError,
    UnsupportedAuthenticationError,
    UserInfoError,
)
from oidc_idprovider.models import Identity, ProviderType
from oidc_idprovider.oidc_provider import OIDCProvider
from oidc_idprovider.transport import build_client, fetch_userinfo
from oidc_idprovider.utils.logger import logger
from oidc_idprovider.validator import IDTokenVerifier, parse_unverified

tracer = trace.get_tracer(__name__)

DEFAULT_EMAIL_KEY = "email"
DEFAULT_PREFERRED_USERNAME_KEY = "preferred_username"
FALLBACK_USERNAME_KEY = "name"


@dataclass(frozen=True)
class Discovery:
    """
    Capabilities available only when the issuer's metadata was discovered.
    A provider holds either one of these or None.
    """

    provider: OIDCProvider
    verifier: IDTokenVerifier


class OIDCIdentityProviderAsync:
    """
    Async OIDC identity provider implementing the authorization code flow.

    Configuration is read-only after construction and no per-call state is
    kept, so one instance can serve concurrent exchanges.

    Attributes:
        config (OIDCProviderConfig): The provider configuration.
        discovery (Discovery | None): Discovery-backed provider and verifier, if any.
        endpoints (OIDCEndpoint): Effective endpoints, explicit values over discovered ones.
    """

    def __init__(
        self,
        config: OIDCProviderConfig,
        discovery: Discovery | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
            config: The provider configuration.
            discovery: Discovery-backed capabilities. Without them identity tokens are
                parsed WITHOUT signature verification and userinfo is fetched directly
                from `config.endpoint.user_info_url`.
            transport: Optional transport override for all outbound calls.

        Raises:
            ConfigurationError: If no authorization or token endpoint is known.
        """
        self.config = config
        self.discovery = discovery
        self.transport = transport
        self.endpoints = self._resolve_endpoints()

        if not (self.endpoints.auth_url and self.endpoints.token_url):
            raise ConfigurationError(
                "OIDC provider has no authorization/token endpoint: discovery is unavailable "
                "and 'endpoint.auth_url'/'endpoint.token_url' are not configured."
            )

        if self.discovery is None:
            logger.warning(
                f"OIDC provider {config.client_id!r} has no token verifier; "
                "id tokens will be accepted without signature verification."
            )

    @classmethod
    async def create(
        cls,
        config: OIDCProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "OIDCIdentityProviderAsync":
        """
        Builds a provider, running discovery first when an issuer is configured.

        A failed discovery is logged and the provider falls back to the explicit endpoints.

        Args:
            config: The provider configuration.
            transport: Optional transport override for all outbound calls.

        Returns:
            OIDCIdentityProviderAsync: The ready provider.

        Raises:
            ConfigurationError: If neither discovery nor explicit configuration yields usable endpoints.
        """
        discovery: Discovery | None = None
        if config.issuer:
            try:
                provider = await OIDCProvider.discover(
                    config.issuer,
                    jwks_uri=config.endpoint.jwks_url,
                    insecure_skip_verify=config.insecure_skip_verify,
                    transport=transport,
                )
            except DiscoveryError as e:
                logger.warning(f"OIDC discovery failed for {config.issuer}, falling back to explicit endpoints: {e}")
            else:
                verifier = IDTokenVerifier(
                    provider,
                    client_id=config.client_id,
                    allowed_algorithms=config.allowed_algorithms,
                    leeway=config.clock_skew_leeway,
                )
                discovery = Discovery(provider=provider, verifier=verifier)

        return cls(config, discovery=discovery, transport=transport)

    def _resolve_endpoints(self) -> OIDCEndpoint:
        explicit = self.config.endpoint
        if self.discovery is None:
            return explicit

        metadata = self.discovery.provider.metadata
        return OIDCEndpoint(
            auth_url=explicit.auth_url or metadata.authorization_endpoint,
            token_url=explicit.token_url or metadata.token_endpoint,
            user_info_url=explicit.user_info_url or metadata.userinfo_endpoint,
            jwks_url=self.discovery.provider.jwks_uri,
            end_session_url=explicit.end_session_url or metadata.end_session_endpoint,
        )

    def _anonymize(self, value: str) -> str:
        """
        Anonymizes a value using HMAC-SHA256 with the configured salt.
        """
        return hmac.new(
            self.config.pii_salt.get_secret_value().encode("utf-8"),
            value.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def type_name(self) -> str:
        """Constant identifier used for provider-type routing."""
        return ProviderType.OIDC.value

    def authorization_url(self, state: str, nonce: str) -> str:
        """
        Builds the authorization-request URL for the redirect leg of the code flow.

        The caller generates `state` and `nonce`, keeps them across the redirect
        and validates them on return; they are embedded verbatim.

        Args:
            state: Opaque CSRF protection value.
            nonce: Opaque replay protection value, echoed back in the identity token.

        Returns:
            str: The URL to redirect the user agent to.
        """
        return str(
            prepare_grant_uri(
                self.endpoints.auth_url,
                self.config.client_id,
                "code",
                redirect_uri=self.config.redirect_url,
                scope=self.config.scopes,
                state=state,
                nonce=nonce,
            )
        )

    def end_session_url(
        self,
        id_token_hint: str | None = None,
        post_logout_redirect_uri: str | None = None,
        state: str | None = None,
    ) -> str:
        """
        Builds the RP-initiated logout URL.

        Raises:
            ConfigurationError: If no end-session endpoint is configured or discovered.
        """
        if not self.endpoints.end_session_url:
            raise ConfigurationError("OIDC provider has no end-session endpoint.")

        params = [("client_id", self.config.client_id)]
        for key, value in (
            ("id_token_hint", id_token_hint),
            ("post_logout_redirect_uri", post_logout_redirect_uri),
            ("state", state),
        ):
            if value:
                params.append((key, value))
        return str(add_params_to_uri(self.endpoints.end_session_url, params))

    async def authenticate(self, username: str, password: str) -> Identity:
        """
        Username/password authentication is not supported by the code flow.

        Raises:
            UnsupportedAuthenticationError: Always.
        """
        raise UnsupportedAuthenticationError("unsupported authenticate with username password")

    async def exchange_code(self, code: str, timeout: float | None = None) -> Identity:
        """
        Exchanges an authorization code for tokens and resolves the caller's identity.

        Emits an OpenTelemetry span `exchange_code`.
        Sets attribute `enduser.id` (anonymized) on success.

        Args:
            code: The authorization code from the redirect.
            timeout: Deadline in seconds for the whole exchange. None means no deadline.

        Returns:
            Identity: The resolved identity.

        Raises:
            TokenExchangeError: If the token endpoint call fails or the deadline expires during it.
                Cancelling the calling task is not converted: the cancellation propagates as is.
            MissingIDTokenError: If the token response has no `id_token`.
            TokenVerificationError: If the identity token is rejected. With a verifier this
                includes malformed tokens.
            ClaimsDecodeError: If the identity token cannot be decoded and there is no verifier.
            UserInfoError: If the userinfo call fails or the deadline expires during it.
            MissingSubjectClaimError: If the claims have no string `sub`.
        """
        deadline = None if timeout is None else anyio.current_time() + timeout

        with tracer.start_as_current_span("exchange_code") as span:
            span.set_attribute("oidc.verified", self.discovery is not None)
            span.set_attribute("oidc.userinfo", self.config.get_user_info)
            try:
                identity = await self._exchange_code(code, deadline)
            except OIDCIdentityError as e:
                logger.warning(f"OIDC code exchange failed: {e}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            user_hash = self._anonymize(identity.sub)
            logger.info(f"Resolved identity for user {user_hash}")
            span.set_attribute("enduser.id", user_hash)
            span.set_status(Status(StatusCode.OK))
            return identity

    async def _exchange_code(self, code: str, deadline: float | None) -> Identity:
        if not code:
            raise TokenExchangeError("oidc: failed to get token: authorization code is empty")

        token = await self._fetch_token(code, deadline)

        raw_id_token = token.get("id_token")
        if not isinstance(raw_id_token, str) or not raw_id_token:
            raise MissingIDTokenError("no id_token in token response")

        claims = await self._id_token_claims(raw_id_token, deadline)

        if self.config.get_user_info:
            # Userinfo claims take precedence over identity-token claims
            claims = {**claims, **await self._userinfo_claims(token["access_token"], deadline)}

        return self._resolve_identity(claims)

    async def _fetch_token(self, code: str, deadline: float | None) -> dict[str, Any]:
        client = build_client(
            self.config.insecure_skip_verify,
            self.transport,
            client_cls=AsyncOAuth2Client,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret.get_secret_value(),
            scope=self.config.scopes,
            redirect_uri=self.config.redirect_url,
        )
        async with client:
            try:
                with anyio.fail_after(_time_left(deadline)):
                    token = await client.fetch_token(self.endpoints.token_url, code=code)
            except TimeoutError as e:
                raise TokenExchangeError("oidc: failed to get token: deadline exceeded") from e
            except (httpx.HTTPError, AuthlibBaseError, ValueError, TypeError) as e:
                raise TokenExchangeError(f"oidc: failed to get token: {e}") from e

        if not isinstance(token, dict) or not token.get("access_token"):
            raise TokenExchangeError("oidc: failed to get token: server response missing access_token")
        return dict(token)

    async def _id_token_claims(self, raw_id_token: str, deadline: float | None) -> dict[str, Any]:
        if self.discovery is None:
            # Degraded trust: no signature check without discovery metadata
            return parse_unverified(raw_id_token, leeway=self.config.clock_skew_leeway)

        try:
            with anyio.fail_after(_time_left(deadline)):
                return await self.discovery.verifier.verify(raw_id_token)
        except TimeoutError as e:
            raise TokenVerificationError("failed to verify id token: deadline exceeded") from e

    async def _userinfo_claims(self, access_token: str, deadline: float | None) -> dict[str, Any]:
        try:
            with anyio.fail_after(_time_left(deadline)):
                if self.discovery is not None:
                    return await self.discovery.provider.userinfo(
                        access_token, url=self.config.endpoint.user_info_url
                    )
                return await self._fetch_userinfo_direct(access_token)
        except TimeoutError as e:
            raise UserInfoError("failed to fetch userinfo: deadline exceeded") from e

    async def _fetch_userinfo_direct(self, access_token: str) -> dict[str, Any]:
        url = self.endpoints.user_info_url
        if not url:
            raise UserInfoError("failed to fetch userinfo: 'endpoint.user_info_url' is not configured")

        async with build_client(self.config.insecure_skip_verify, self.transport) as client:
            return await fetch_userinfo(client, url, access_token)

    def _resolve_identity(self, claims: dict[str, Any]) -> Identity:
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise MissingSubjectClaimError('missing required claim "sub"')

        email = _string_claim(claims, self.config.email_key or DEFAULT_EMAIL_KEY)
        preferred_username = _string_claim(
            claims, self.config.preferred_username_key or DEFAULT_PREFERRED_USERNAME_KEY
        ) or _string_claim(claims, FALLBACK_USERNAME_KEY)

        return Identity(sub=subject, email=email, preferred_username=preferred_username)


class OIDCIdentityProvider:
    """
    Blocking facade over `OIDCIdentityProviderAsync`.

    Each network operation runs to completion in its own event loop via `anyio.run`.
    """

    def __init__(
        self,
        config: OIDCProviderConfig,
        discovery: Discovery | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._async = OIDCIdentityProviderAsync(config, discovery=discovery, transport=transport)

    @classmethod
    def create(
        cls,
        config: OIDCProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "OIDCIdentityProvider":
        """Runs discovery (when an issuer is configured) and returns a ready provider."""
        resolver = anyio.run(partial(OIDCIdentityProviderAsync.create, config, transport=transport))
        return cls(config, discovery=resolver.discovery, transport=transport)

    @property
    def config(self) -> OIDCProviderConfig:
        return self._async.config

    def type_name(self) -> str:
        return self._async.type_name()

    def authorization_url(self, state: str, nonce: str) -> str:
        return self._async.authorization_url(state, nonce)

    def end_session_url(
        self,
        id_token_hint: str | None = None,
        post_logout_redirect_uri: str | None = None,
        state: str | None = None,
    ) -> str:
        return self._async.end_session_url(id_token_hint, post_logout_redirect_uri, state)

    def exchange_code(self, code: str, timeout: float | None = None) -> Identity:
        return anyio.run(self._async.exchange_code, code, timeout)

    def authenticate(self, username: str, password: str) -> Identity:
        return anyio.run(self._async.authenticate, username, password)


def _time_left(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    return max(deadline - anyio.current_time(), 0.0)


def _string_claim(claims: dict[str, Any], key: str) -> str:
    value = claims.get(key)
    return value if isinstance(value, str) else ""
