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
Identity token verification.

`IDTokenVerifier` checks signatures against the issuer's key set and is only
available when discovery succeeded. `parse_unverified` is the degraded-trust
path used without a verifier: it decodes the token body and checks time-based
claims but performs NO signature check. It exists for providers that publish
no discovery metadata and must only be used with a trusted token endpoint.
"""

from typing import Any, cast

from authlib.common.encoding import json_loads, to_bytes, urlsafe_b64decode
from authlib.jose import JsonWebToken, JWTClaims
from authlib.jose.errors import BadSignatureError, JoseError
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from oidc_idprovider.exceptions import ClaimsDecodeError, DiscoveryError, TokenVerificationError
from oidc_idprovider.oidc_provider import OIDCProvider
from oidc_idprovider.utils.logger import logger

tracer = trace.get_tracer(__name__)


class IDTokenVerifier:
    """
    Verifies identity tokens against the discovered issuer's JWKS.

    Attributes:
        provider (OIDCProvider): The provider supplying the issuer and signing keys.
        client_id (str): The expected audience.
        allowed_algorithms (list[str]): Accepted signing algorithms.
        leeway (int): Acceptable clock skew in seconds.
    """

    def __init__(
        self,
        provider: OIDCProvider,
        client_id: str,
        allowed_algorithms: list[str],
        leeway: int = 0,
    ) -> None:
        self.provider = provider
        self.client_id = client_id
        self.allowed_algorithms = allowed_algorithms
        self.leeway = leeway
        # Use a specific JsonWebToken instance to enforce allowed algorithms and reject others
        self.jwt = JsonWebToken(self.allowed_algorithms)

    def _claims_options(self) -> dict[str, Any]:
        return {
            "iss": {"essential": True, "value": self.provider.issuer},
            "aud": {"essential": True, "value": self.client_id},
            "exp": {"essential": True},
            "nbf": {"essential": False},
        }

    def _decode(self, raw_id_token: str, jwks: dict[str, Any]) -> JWTClaims:
        # Cast self.jwt to Any to bypass missing stubs
        jwt_any = cast("Any", self.jwt)
        claims = jwt_any.decode(raw_id_token, jwks, claims_options=self._claims_options())
        claims.validate(leeway=self.leeway)
        return cast("JWTClaims", claims)

    async def verify(self, raw_id_token: str) -> dict[str, Any]:
        """
        Verifies the identity token signature and standard claims.

        Args:
            raw_id_token: The compact-serialized identity token.

        Returns:
            dict[str, Any]: The verified claims.

        Raises:
            TokenVerificationError: On a malformed token, bad signature, unknown key, or
                invalid `iss`/`aud`/`exp`/`nbf`. A token that cannot be decoded has not been
                verified, so it is rejected as a verification failure.
        """
        with tracer.start_as_current_span("verify_id_token") as span:
            try:
                jwks = await self.provider.get_jwks()
                try:
                    claims = self._decode(raw_id_token, jwks)
                except (ValueError, BadSignatureError):
                    # Unknown kid or bad signature may mean the keys were rotated
                    logger.info("Verification failed with cached keys, refreshing JWKS and retrying...")
                    span.add_event("refreshing_jwks")
                    jwks = await self.provider.get_jwks(force_refresh=True)
                    claims = self._decode(raw_id_token, jwks)
            except DiscoveryError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise TokenVerificationError(f"Failed to verify id token: signing keys unavailable: {e}") from e
            except (JoseError, ValueError) as e:
                logger.warning(f"Failed to verify id token: {e}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise TokenVerificationError(f"Failed to verify id token: {e}") from e

            span.set_status(Status(StatusCode.OK))
            return dict(claims)


def parse_unverified(raw_id_token: str, leeway: int = 0) -> dict[str, Any]:
    """
    Decodes an identity token WITHOUT verifying its signature, then checks
    `exp`, `nbf` and `iat` on the resulting claim set.

    Args:
        raw_id_token: The compact-serialized identity token.
        leeway: Acceptable clock skew in seconds.

    Returns:
        dict[str, Any]: The unverified claims.

    Raises:
        ClaimsDecodeError: If the token is not a well-formed JWS with a JSON object body.
        TokenVerificationError: If the token is expired or not yet valid.
    """
    segments = raw_id_token.split(".")
    if len(segments) != 3:
        raise ClaimsDecodeError("Failed to decode id token claims: expected 3 segments")

    try:
        header = json_loads(urlsafe_b64decode(to_bytes(segments[0])))
        payload = json_loads(urlsafe_b64decode(to_bytes(segments[1])))
    except ValueError as e:
        raise ClaimsDecodeError(f"Failed to decode id token claims: {e}") from e

    if not isinstance(header, dict) or not isinstance(payload, dict):
        raise ClaimsDecodeError("Failed to decode id token claims: expected JSON objects")

    claims = JWTClaims(payload, header)
    try:
        claims.validate(leeway=leeway)
    except JoseError as e:
        raise TokenVerificationError(f"Failed to verify id token: {e}") from e

    return dict(claims)
