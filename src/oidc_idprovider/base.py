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
Capability interface shared by identity-provider strategies.
"""

from typing import Protocol, runtime_checkable

from oidc_idprovider.models import Identity


@runtime_checkable
class IdentityProvider(Protocol):
    """
    Contract a provider registry dispatches to, keyed by `type_name()`.

    Strategies that do not support a capability still expose it and fail
    deterministically.
    """

    def type_name(self) -> str:
        """Constant identifier of the strategy, one of `ProviderType`."""
        ...

    def authorization_url(self, state: str, nonce: str) -> str:
        """Builds the URL the user agent is redirected to for login."""
        ...

    async def exchange_code(self, code: str) -> Identity:
        """Resolves an identity from an authorization code."""
        ...

    async def authenticate(self, username: str, password: str) -> Identity:
        """Resolves an identity from username/password credentials."""
        ...
