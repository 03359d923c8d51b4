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
Data models for the oidc-idprovider package.
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ProviderType(StrEnum):
    """Identity-provider type names used by registries to route to an implementation."""

    OIDC = "OIDCIdentityProvider"


class Identity(BaseModel):
    """
    Normalized external identity resolved from an authorization code.

    This model is frozen (immutable). It is built once per successful
    authentication and is never retained by the provider.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        json_schema_extra={
            "example": {
                "sub": "248289761001",
                "email": "janedoe@example.com",
                "preferred_username": "j.doe",
            }
        },
    )

    sub: str = Field(..., min_length=1, description="The subject identifier issued by the provider.")
    email: str = Field(default="", description="The user's email address, empty if not released.")
    preferred_username: str = Field(
        default="", description="The preferred username, falling back to the `name` claim. May be empty."
    )

    def __repr__(self) -> str:
        # PII fields MUST be redacted in __repr__
        return "Identity(sub='<REDACTED>', email='<REDACTED>', preferred_username='<REDACTED>')"

    def __str__(self) -> str:
        return self.__repr__()
