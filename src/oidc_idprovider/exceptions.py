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
Custom exceptions for the oidc-idprovider package.

Every failure of an authentication call maps to exactly one subclass of
`OIDCIdentityError`; the underlying cause is always chained.
"""


class OIDCIdentityError(Exception):
    """Base exception for all oidc-idprovider errors."""


class ConfigurationError(OIDCIdentityError):
    """Raised when the provider has no usable endpoints for the requested operation."""


class DiscoveryError(OIDCIdentityError):
    """Raised when the issuer's metadata document or key set cannot be loaded."""


class OversizedResponseError(OIDCIdentityError):
    """Raised when an HTTP response is too large."""


class TokenExchangeError(OIDCIdentityError):
    """Raised when exchanging the authorization code at the token endpoint fails."""


class MissingIDTokenError(OIDCIdentityError):
    """Raised when the token response carries no `id_token`."""


class TokenVerificationError(OIDCIdentityError):
    """
    Raised when the identity token is rejected: bad signature, unknown key,
    wrong issuer or audience, expired or not yet valid.
    """


class ClaimsDecodeError(OIDCIdentityError):
    """Raised when an identity token or userinfo body cannot be decoded into a claim set."""


class UserInfoError(OIDCIdentityError):
    """Raised when the userinfo endpoint is unreachable or returns undecodable data."""


class MissingSubjectClaimError(OIDCIdentityError):
    """Raised when the resolved claim set has no string `sub` claim."""


class UnsupportedAuthenticationError(OIDCIdentityError):
    """Raised when username/password authentication is attempted against a code-flow strategy."""


class UserInfoDecodeError(UserInfoError, ClaimsDecodeError):
    """Raised when the userinfo body is not a JSON object. Catchable as either parent."""
