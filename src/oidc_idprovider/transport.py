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
HTTP helpers shared by discovery, token exchange and userinfo calls.

Clients are created per call so that the TLS policy of one exchange never
leaks into another.
"""

import json
from typing import Any, TypeVar

import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from oidc_idprovider.exceptions import OversizedResponseError, UserInfoDecodeError, UserInfoError
from oidc_idprovider.utils.logger import logger

MAX_RESPONSE_BYTES = 1_000_000

ClientT = TypeVar("ClientT", bound=httpx.AsyncClient)


def build_client(
    insecure_skip_verify: bool,
    transport: httpx.AsyncBaseTransport | None = None,
    client_cls: type[ClientT] = httpx.AsyncClient,  # type: ignore[assignment]
    **kwargs: Any,
) -> ClientT:
    """
    Creates an instrumented async HTTP client for a single outbound exchange.

    The client has no timeout of its own unless `timeout` is passed in `kwargs`;
    requests are bounded only by the caller's deadline.

    Args:
        insecure_skip_verify: If True, TLS certificates are not verified by this client.
        transport: Optional transport override (e.g. a mock in tests).
        client_cls: The client class to build, `httpx.AsyncClient` or a subclass such as
            authlib's `AsyncOAuth2Client`.
        **kwargs: Extra constructor arguments for `client_cls`.

    Returns:
        The new client. The caller owns it and must close it.
    """
    if insecure_skip_verify:
        logger.warning("TLS certificate verification is disabled for this request.")

    kwargs.setdefault("timeout", None)
    client = client_cls(verify=not insecure_skip_verify, transport=transport, **kwargs)

    # Instrument the client for distributed tracing
    HTTPXClientInstrumentor().instrument_client(client)
    return client


async def safe_json_fetch(client: httpx.AsyncClient, url: str, method: str = "GET", **kwargs: Any) -> Any:
    """
    Fetches a URL and decodes its JSON body, refusing bodies over `MAX_RESPONSE_BYTES`.

    Args:
        client: The async HTTP client to use.
        url: The URL to fetch.
        method: The HTTP method. Defaults to GET.
        **kwargs: Extra request arguments (headers, data, ...).

    Returns:
        The decoded JSON value.

    Raises:
        httpx.HTTPError: On transport failures or non-2xx responses.
        OversizedResponseError: If the body exceeds the size limit.
        ValueError: If the body is not valid JSON.
    """
    async with client.stream(method, url, **kwargs) as response:
        response.raise_for_status()

        content_length = response.headers.get("Content-Length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_RESPONSE_BYTES:
            raise OversizedResponseError(f"Response from {url} too large ({content_length} bytes)")

        content = bytearray()
        async for chunk in response.aiter_bytes():
            content.extend(chunk)
            if len(content) > MAX_RESPONSE_BYTES:
                raise OversizedResponseError(f"Response from {url} too large")

    return json.loads(content)


async def fetch_userinfo(client: httpx.AsyncClient, url: str, access_token: str) -> dict[str, Any]:
    """
    Fetches the userinfo claims with the access token as a bearer credential.

    Args:
        client: The async HTTP client to use.
        url: The userinfo endpoint URL.
        access_token: The access token obtained from the token endpoint.

    Returns:
        The userinfo claims.

    Raises:
        UserInfoError: If the endpoint is unreachable or answers with an error status.
        UserInfoDecodeError: If the body is not a JSON object.
    """
    try:
        data = await safe_json_fetch(client, url, headers={"Authorization": f"Bearer {access_token}"})
    except (httpx.HTTPError, OversizedResponseError) as e:
        raise UserInfoError(f"Failed to fetch userinfo: {e}") from e
    except ValueError as e:
        raise UserInfoDecodeError(f"Failed to decode userinfo claims: {e}") from e

    if not isinstance(data, dict):
        raise UserInfoDecodeError("Failed to decode userinfo claims: expected a JSON object")
    return data
