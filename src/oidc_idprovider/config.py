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
Configuration for the oidc-idprovider package.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OIDCEndpoint(BaseModel):
    """
    Explicit endpoint URLs of the OpenID Provider.

    Any value set here takes precedence over the one advertised by discovery.
    Without discovery, `auth_url` and `token_url` are mandatory.

    Attributes:
        auth_url (str | None): The OAuth 2.0 authorization endpoint.
        token_url (str | None): The OAuth 2.0 token endpoint.
        user_info_url (str | None): The OpenID Connect userinfo endpoint.
        jwks_url (str | None): The JSON Web Key Set document.
        end_session_url (str | None): The RP-initiated logout endpoint.
    """

    model_config = ConfigDict(frozen=True)

    auth_url: str | None = None
    token_url: str | None = None
    user_info_url: str | None = None
    jwks_url: str | None = None
    end_session_url: str | None = None


class OIDCProviderConfig(BaseSettings):
    """
    Configuration settings for an OIDC identity provider.

    Attributes:
        issuer (str | None): The issuer URL used for discovery.
        client_id (str): The OAuth 2.0 client ID.
        client_secret (SecretStr): The OAuth 2.0 client secret.
        endpoint (OIDCEndpoint): Explicit endpoint URLs.
        redirect_url (str | None): Where the provider redirects after login.
        scopes (list[str]): Requested scopes, in order.
        get_user_info (bool): Enrich identity-token claims from the userinfo endpoint.
        insecure_skip_verify (bool): Disable TLS certificate checks for outbound calls.
        email_key (str | None): Claim holding the email. Defaults to `email`.
        preferred_username_key (str | None): Claim holding the username. Defaults to `preferred_username`.
        pii_salt (SecretStr): Salt for anonymizing subjects in logs/traces.
        allowed_algorithms (list[str]): Accepted identity-token signing algorithms.
        clock_skew_leeway (int): Acceptable clock skew in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="OIDC_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    issuer: str | None = None
    client_id: str = Field(..., min_length=1)
    client_secret: SecretStr
    endpoint: OIDCEndpoint = Field(default_factory=OIDCEndpoint)
    redirect_url: str | None = None
    scopes: list[str] = Field(default_factory=lambda: ["openid"])
    get_user_info: bool = False
    insecure_skip_verify: bool = False
    email_key: str | None = None
    preferred_username_key: str | None = None
    pii_salt: SecretStr = SecretStr("oidc-idprovider-unsafe-default-salt")
    allowed_algorithms: list[str] = Field(default_factory=lambda: ["RS256"])
    clock_skew_leeway: int = Field(default=0, ge=0)

    @field_validator("scopes", mode="before")
    @classmethod
    def split_scopes(cls, v: Any) -> Any:
        """
        Accepts a space-delimited scope string as well as a list.
        """
        if isinstance(v, str):
            return v.split()
        return v

    @field_validator("issuer", "redirect_url", "email_key", "preferred_username_key", mode="after")
    @classmethod
    def empty_to_none(cls, v: str | None) -> str | None:
        """
        Treats blank strings as unset so that the built-in defaults apply.
        """
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def require_endpoints(self) -> "OIDCProviderConfig":
        """
        Ensures there is enough endpoint information to perform a code exchange:
        either an issuer for discovery or explicit authorization and token URLs.
        """
        if self.issuer is None and not (self.endpoint.auth_url and self.endpoint.token_url):
            raise ValueError("Either 'issuer' or both 'endpoint.auth_url' and 'endpoint.token_url' must be set.")
        return self
