import asyncio
import contextlib
import secrets

from oidc_idprovider import OIDCIdentityError, OIDCIdentityProviderAsync, OIDCProviderConfig


async def main() -> None:
    """
    Walks through the authorization code flow against a discovery-enabled issuer:
    - discovery (falls back to explicit endpoints on failure)
    - authorization URL for the browser redirect
    - code exchange with a caller-side deadline
    """
    print(">>> Starting authorization code flow example")

    config = OIDCProviderConfig(
        issuer="https://accounts.example.com",
        client_id="example-client",
        client_secret="example-secret",
        redirect_url="http://localhost:8080/callback",
        scopes=["openid", "profile", "email"],
        get_user_info=True,
        endpoint={
            "auth_url": "https://accounts.example.com/authorize",
            "token_url": "https://accounts.example.com/token",
            "user_info_url": "https://accounts.example.com/userinfo",
        },
    )

    provider = await OIDCIdentityProviderAsync.create(config)
    print(f">>> Provider ready. Verified mode: {provider.discovery is not None}")

    # State and nonce must be kept (e.g. in the session) until the callback
    state, nonce = secrets.token_urlsafe(16), secrets.token_urlsafe(16)
    print(f">>> Redirect the user to: {provider.authorization_url(state, nonce)}")

    code = input(">>> Paste the 'code' query parameter from the callback: ").strip()
    try:
        identity = await provider.exchange_code(code, timeout=10)
    except OIDCIdentityError as e:
        print(f">>> Authentication failed ({type(e).__name__}): {e}")
        return

    print(f">>> Authenticated: sub={identity.sub} username={identity.preferred_username} email={identity.email}")


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
