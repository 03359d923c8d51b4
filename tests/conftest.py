# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import time
from collections.abc import Callable
from typing import Any

import pytest
from authlib.jose import JsonWebKey, jwt
from helpers import CLIENT_ID, ISSUER, MockIdP


@pytest.fixture(scope="session")
def signing_key() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, options={"kid": "key-1"}, is_private=True)


@pytest.fixture(scope="session")
def rogue_key() -> Any:
    # Same kid as signing_key, different key material
    return JsonWebKey.generate_key("RSA", 2048, options={"kid": "key-1"}, is_private=True)


@pytest.fixture(scope="session")
def jwks(signing_key: Any) -> dict[str, Any]:
    return {"keys": [signing_key.as_dict(is_private=False)]}


@pytest.fixture
def make_id_token(signing_key: Any) -> Callable[..., str]:
    """
    Mints an RS256 identity token for ISSUER/CLIENT_ID, valid for one hour.
    Keyword claims override the defaults; a claim set to None is removed.
    """

    def _make(key: Any = None, **claims: Any) -> str:
        now = int(time.time())
        payload: dict[str, Any] = {
            "iss": ISSUER,
            "aud": CLIENT_ID,
            "sub": "user-123",
            "iat": now,
            "exp": now + 3600,
        }
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        header = {"alg": "RS256", "kid": "key-1"}
        return jwt.encode(header, payload, key or signing_key).decode("utf-8")  # type: ignore[no-any-return]

    return _make


@pytest.fixture
def idp() -> MockIdP:
    return MockIdP()
