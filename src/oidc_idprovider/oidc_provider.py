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
OIDC Provider component: issuer discovery, cached JWKS and userinfo.
"""

import time
from typing import Any

import anyio
import httpx
from pydantic import ValidationError

from oidc_idprovider.exceptions import DiscoveryError, OversizedResponseError, UserInfoError
from oidc_idprovider.models_internal import OIDCMetadata
from oidc_idprovider.transport import build_client, fetch_userinfo, safe_json_fetch
from oidc_idprovider.utils.logger import logger


class OIDCProvider:
    """
    Discovery-backed view of an OpenID Provider.

    Holds the issuer's metadata and a cached copy of its signing keys, and
    calls its userinfo endpoint. Build one with `OIDCProvider.discover`.

    Attributes:
        metadata (OIDCMetadata): The discovered provider metadata.
        jwks_uri (str): Where the signing keys are fetched from.
        cache_ttl (int): The JWKS cache time-to-live in seconds.
    """

    def __init__(
        self,
        metadata: OIDCMetadata,
        jwks_uri: str | None = None,
        insecure_skip_verify: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
        cache_ttl: int = 3600,
        refresh_cooldown: float = 30.0,
    ) -> None:
        """
        Initialize the OIDCProvider.

        Args:
            metadata: The provider metadata.
            jwks_uri: Overrides the advertised `jwks_uri` when set.
            insecure_skip_verify: Disable TLS certificate checks for calls made by this provider.
            transport: Optional transport override for the per-call HTTP clients.
            cache_ttl: Time-to-live for the JWKS cache in seconds. Defaults to 3600 (1 hour).
            refresh_cooldown: Minimum time in seconds between forced refreshes. Defaults to 30.0.
        """
        self.metadata = metadata
        self.jwks_uri = jwks_uri or metadata.jwks_uri
        self.insecure_skip_verify = insecure_skip_verify
        self.transport = transport
        self.cache_ttl = cache_ttl
        self.refresh_cooldown = refresh_cooldown
        self._jwks_cache: dict[str, Any] | None = None
        self._last_update: float = 0.0
        self._lock: anyio.Lock | None = None

    @property
    def issuer(self) -> str:
        return self.metadata.issuer

    @classmethod
    async def discover(
        cls,
        issuer: str,
        jwks_uri: str | None = None,
        insecure_skip_verify: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "OIDCProvider":
        """
        Fetches `{issuer}/.well-known/openid-configuration` and builds a provider from it.

        Args:
            issuer: The configured issuer URL.
            jwks_uri: Optional explicit JWKS URL overriding the advertised one.
            insecure_skip_verify: Disable TLS certificate checks.
            transport: Optional transport override.

        Returns:
            OIDCProvider: The discovered provider.

        Raises:
            DiscoveryError: If the document cannot be fetched, is invalid, or names another issuer.
        """
        discovery_url = f"{issuer.rstrip('/')}/.well-known/openid-configuration"

        async with build_client(insecure_skip_verify, transport) as client:
            data = await _fetch_with_retry(client, discovery_url, "OIDC configuration")

        try:
            metadata = OIDCMetadata(**data)
        except (TypeError, ValidationError) as e:
            raise DiscoveryError(f"Invalid OIDC configuration from {discovery_url}: {e}") from e

        if metadata.issuer.rstrip("/") != issuer.rstrip("/"):
            raise DiscoveryError(
                f"Issuer mismatch: configured {issuer!r}, discovery document advertises {metadata.issuer!r}"
            )

        logger.info(f"Discovered OIDC provider metadata for {metadata.issuer}")
        return cls(metadata, jwks_uri=jwks_uri, insecure_skip_verify=insecure_skip_verify, transport=transport)

    async def _refresh_jwks_critical_section(self, force_refresh: bool) -> dict[str, Any]:
        """
        Critical section for refreshing JWKS.
        Must be called while holding the lock.
        """
        current_time = time.time()
        elapsed = current_time - self._last_update

        if self._jwks_cache is not None:
            if not force_refresh and elapsed < self.cache_ttl:
                return self._jwks_cache
            if force_refresh and elapsed < self.refresh_cooldown:
                logger.warning("JWKS refresh cooldown active. Returning cached keys despite force_refresh request.")
                return self._jwks_cache

        async with build_client(self.insecure_skip_verify, self.transport) as client:
            jwks = await _fetch_with_retry(client, self.jwks_uri, "JWKS")

        self._jwks_cache = jwks
        self._last_update = current_time
        return jwks

    async def get_jwks(self, force_refresh: bool = False) -> dict[str, Any]:
        """
        Returns the JWKS, using the cache if valid.

        Args:
            force_refresh: If True, bypasses the cache (subject to the refresh cooldown).

        Returns:
            dict[str, Any]: The JWKS dictionary.

        Raises:
            DiscoveryError: If fetching fails.
        """
        if self._lock is None:
            self._lock = anyio.Lock()

        # Double-checked locking (check 1: no lock)
        if not force_refresh and self._jwks_cache is not None:
            if (time.time() - self._last_update) < self.cache_ttl:
                return self._jwks_cache

        async with self._lock:
            return await self._refresh_jwks_critical_section(force_refresh)

    async def userinfo(self, access_token: str, url: str | None = None) -> dict[str, Any]:
        """
        Fetches the userinfo claims for an access token.

        Args:
            access_token: The bearer credential.
            url: Overrides the advertised userinfo endpoint when set.

        Returns:
            dict[str, Any]: The userinfo claims.

        Raises:
            UserInfoError: If no endpoint is known, the call fails, or the body is not a JSON object.
        """
        endpoint = url or self.metadata.userinfo_endpoint
        if not endpoint:
            raise UserInfoError(f"Failed to fetch userinfo: {self.issuer} does not advertise a userinfo endpoint")

        async with build_client(self.insecure_skip_verify, self.transport) as client:
            return await fetch_userinfo(client, endpoint, access_token)


async def _fetch_with_retry(client: httpx.AsyncClient, url: str, what: str) -> dict[str, Any]:
    """
    Fetches a JSON object, retrying on `httpx.HTTPError` up to 3 times with
    exponential backoff (initial=0.1s, max=1.0s).
    """
    attempts = 3
    wait_initial = 0.1
    wait_max = 1.0

    for attempt in range(attempts):
        try:
            data = await safe_json_fetch(client, url)
        except httpx.HTTPError as e:
            if attempt == attempts - 1:
                raise DiscoveryError(f"Failed to fetch {what} from {url}: {e}") from e
            logger.debug(f"Fetching {what} from {url} failed (attempt {attempt + 1}/{attempts}): {e}")
            await anyio.sleep(min(wait_initial * (2**attempt), wait_max))
            continue
        except (OversizedResponseError, ValueError) as e:
            # Not transient, do not retry
            raise DiscoveryError(f"Invalid {what} from {url}: {e}") from e

        if not isinstance(data, dict):
            raise DiscoveryError(f"Invalid {what} from {url}: expected a JSON object")
        return data

    raise DiscoveryError(f"Failed to fetch {what} from {url}")  # pragma: no cover
