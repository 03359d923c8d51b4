# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""Shared test helpers: an in-memory OpenID Provider and response builders."""

from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qs

import httpx

ISSUER = "https://idp.example.com"
CLIENT_ID = "my-client"

Route = httpx.Response | Callable[[httpx.Request], Any]


class MockIdP:
    """
    Minimal in-memory OpenID Provider served through `httpx.MockTransport`.
    Records every request it receives.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Route] = {}
        self.calls: list[httpx.Request] = []

    def add(self, method: str, url: str, route: Route) -> None:
        self.routes[(method, url)] = route

    def add_json(self, method: str, url: str, body: Any, status_code: int = 200) -> None:
        self.add(method, url, httpx.Response(status_code, json=body))

    def handler(self, request: httpx.Request) -> Any:
        self.calls.append(request)
        route = self.routes.get((request.method, str(request.url).split("?")[0]))
        if route is None:
            return httpx.Response(404, json={"error": "not_found"})
        if isinstance(route, httpx.Response):
            return route
        return route(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls_to(self, url: str) -> list[httpx.Request]:
        return [c for c in self.calls if str(c.url).split("?")[0] == url]


def form_of(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def discovery_document(issuer: str = ISSUER, **overrides: Any) -> dict[str, Any]:
    doc = {
        "issuer": issuer,
        "authorization_endpoint": f"{issuer}/authorize",
        "token_endpoint": f"{issuer}/token",
        "userinfo_endpoint": f"{issuer}/userinfo",
        "jwks_uri": f"{issuer}/jwks",
        "end_session_endpoint": f"{issuer}/logout",
    }
    doc.update(overrides)
    return doc


def token_response(id_token: str | None, access_token: str = "access-123") -> dict[str, Any]:
    body: dict[str, Any] = {"access_token": access_token, "token_type": "Bearer", "expires_in": 3600}
    if id_token is not None:
        body["id_token"] = id_token
    return body
