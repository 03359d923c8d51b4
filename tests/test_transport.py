# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

from unittest.mock import MagicMock, patch

import httpx
import pytest
from authlib.integrations.httpx_client import AsyncOAuth2Client

from oidc_idprovider.exceptions import ClaimsDecodeError, OversizedResponseError, UserInfoError
from oidc_idprovider.transport import MAX_RESPONSE_BYTES, build_client, fetch_userinfo, safe_json_fetch


def client_for(response: httpx.Response) -> httpx.AsyncClient:
    return build_client(False, httpx.MockTransport(lambda request: response))


@pytest.mark.asyncio
async def test_safe_json_fetch_success() -> None:
    async with client_for(httpx.Response(200, json={"ok": True})) as client:
        assert await safe_json_fetch(client, "https://idp.example.com/x") == {"ok": True}


@pytest.mark.asyncio
async def test_safe_json_fetch_error_status() -> None:
    async with client_for(httpx.Response(404)) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await safe_json_fetch(client, "https://idp.example.com/x")


@pytest.mark.asyncio
async def test_safe_json_fetch_rejects_large_content_length() -> None:
    response = httpx.Response(200, headers={"Content-Length": str(MAX_RESPONSE_BYTES + 1)}, content=b"{}")
    async with client_for(response) as client:
        with pytest.raises(OversizedResponseError):
            await safe_json_fetch(client, "https://idp.example.com/x")


@pytest.mark.asyncio
async def test_safe_json_fetch_rejects_large_body() -> None:
    body = b'"' + b"a" * (MAX_RESPONSE_BYTES + 10) + b'"'
    async with client_for(httpx.Response(200, content=body)) as client:
        with pytest.raises(OversizedResponseError):
            await safe_json_fetch(client, "https://idp.example.com/x")


@pytest.mark.asyncio
async def test_safe_json_fetch_invalid_json() -> None:
    async with client_for(httpx.Response(200, text="nope")) as client:
        with pytest.raises(ValueError):
            await safe_json_fetch(client, "https://idp.example.com/x")


@pytest.mark.asyncio
async def test_fetch_userinfo_sends_bearer_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"sub": "abc"})

    async with build_client(False, httpx.MockTransport(handler)) as client:
        claims = await fetch_userinfo(client, "https://idp.example.com/userinfo", "tok-1")

    assert claims == {"sub": "abc"}
    assert seen[0].method == "GET"
    assert seen[0].headers["Authorization"] == "Bearer tok-1"


@pytest.mark.asyncio
async def test_fetch_userinfo_decode_error_kinds() -> None:
    async with client_for(httpx.Response(200, json="a string")) as client:
        with pytest.raises(UserInfoError) as exc_info:
            await fetch_userinfo(client, "https://idp.example.com/userinfo", "tok")

    assert isinstance(exc_info.value, ClaimsDecodeError)


@pytest.mark.parametrize("insecure", [True, False])
def test_build_client_tls_policy(insecure: bool) -> None:
    client_cls = MagicMock()

    with patch("oidc_idprovider.transport.HTTPXClientInstrumentor") as instrumentor:
        client = build_client(insecure, client_cls=client_cls, timeout=3.0)

    client_cls.assert_called_once_with(verify=not insecure, transport=None, timeout=3.0)
    instrumentor.return_value.instrument_client.assert_called_once_with(client)


@pytest.mark.parametrize("client_cls", [httpx.AsyncClient, AsyncOAuth2Client])
def test_build_client_has_no_default_timeout(client_cls: type[httpx.AsyncClient]) -> None:
    client = build_client(False, httpx.MockTransport(lambda request: httpx.Response(200)), client_cls=client_cls)

    assert client.timeout == httpx.Timeout(None)


def test_build_client_explicit_timeout_is_kept() -> None:
    client = build_client(False, httpx.MockTransport(lambda request: httpx.Response(200)), timeout=3.0)

    assert client.timeout == httpx.Timeout(3.0)
