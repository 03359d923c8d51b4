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
OIDC authorization-code identity provider: exchanges a code for tokens,
validates the identity token and returns a normalized identity.
"""

__version__ = "0.1.0"

from .base import IdentityProvider
from .config import OIDCEndpoint, OIDCProviderConfig
from .exceptions import (
    ClaimsDecodeError,
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
from .identity_provider import Discovery, OIDCIdentityProvider, OIDCIdentityProviderAsync
from .models import Identity, ProviderType
from .oidc_provider import OIDCProvider
from .validator import IDTokenVerifier

__all__ = [
    "ClaimsDecodeError",
    "ConfigurationError",
    "Discovery",
    "DiscoveryError",
    "IDTokenVerifier",
    "Identity",
    "IdentityProvider",
    "MissingIDTokenError",
    "MissingSubjectClaimError",
    "OIDCEndpoint",
    "OIDCIdentityError",
    "OIDCIdentityProvider",
    "OIDCIdentityProviderAsync",
    "OIDCProvider",
    "OIDCProviderConfig",
    "ProviderType",
    "TokenExchangeError",
    "TokenVerificationError",
    "UnsupportedAuthenticationError",
    "UserInfoError",
]
