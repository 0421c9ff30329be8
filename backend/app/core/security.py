"""JWT verification with dual-mode support (Supabase secret/JWKS + mock HS256)."""

import time

import httpx
from jose import JWTError, jwt

from app.core.config import settings

_jwks_cache: dict | None = None
_jwks_fetched_at: float = 0.0
JWKS_REFRESH_INTERVAL = 3600  # 1 hour


async def _fetch_jwks() -> dict:
    global _jwks_cache, _jwks_fetched_at
    url = f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1/.well-known/jwks.json"
    async with httpx.AsyncClient(timeout=10.0) as client:
        resp = await client.get(url)
        resp.raise_for_status()
    _jwks_cache = resp.json()
    _jwks_fetched_at = time.time()
    return _jwks_cache


async def _get_jwks() -> dict:
    if _jwks_cache is None or (time.time() - _jwks_fetched_at) > JWKS_REFRESH_INTERVAL:
        return await _fetch_jwks()
    return _jwks_cache


async def decode_access_token(token: str) -> dict:
    """Decode and verify an access token. Returns the claims dict."""
    if settings.AUTH_MOCK:
        return _decode_mock_token(token)
    return await _decode_supabase_token(token)


async def _decode_supabase_token(token: str) -> dict:
    """Verify a Supabase JWT.

    Projects on the legacy shared secret sign with HS256; newer projects publish
    asymmetric keys (RS256/ES256) on the JWKS endpoint.
    """
    unverified_header = jwt.get_unverified_header(token)
    alg = unverified_header.get("alg")
    issuer = f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1"

    if alg == "HS256":
        if not settings.SUPABASE_JWT_SECRET:
            raise JWTError("HS256 token but no SUPABASE_JWT_SECRET configured")
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            audience=settings.SUPABASE_JWT_AUDIENCE,
            issuer=issuer,
        )

    jwks_data = await _get_jwks()
    kid = unverified_header.get("kid")

    key = None
    for k in jwks_data.get("keys", []):
        if k.get("kid") == kid:
            key = k
            break
    if key is None:
        raise JWTError("Key not found in JWKS")

    return jwt.decode(
        token,
        key,
        algorithms=["RS256", "ES256"],
        audience=settings.SUPABASE_JWT_AUDIENCE,
        issuer=issuer,
    )


def _decode_mock_token(token: str) -> dict:
    """Decode a mock JWT signed with SECRET_KEY (for local dev/testing)."""
    claims = jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=["HS256"],
        options={"verify_aud": False, "verify_iss": False},
    )
    return claims


def create_mock_access_token(
    sub: str,
    email: str = "test@example.com",
    wallet_address: str | None = None,
    expires_in: int = 900,
) -> str:
    """Create a mock JWT for testing. Only usable when AUTH_MOCK=true."""
    payload = {
        "sub": sub,
        "email": email,
        "role": "authenticated",
        "iat": int(time.time()),
        "exp": int(time.time()) + expires_in,
    }
    if wallet_address:
        payload["wallet_address"] = wallet_address
    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def create_wallet_token(wallet_address: str, expires_in: int = 3600) -> str:
    """Sign a wallet auth token binding a wallet address.

    Sent by wallet-only buyers in ``X-Wallet-Auth-Token`` next to
    ``X-Wallet-Address``.
    """
    payload = {
        "sub": f"wallet:{wallet_address}",
        "wallet_address": wallet_address,
        "iat": int(time.time()),
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def decode_wallet_token(token: str) -> dict:
    """Verify a wallet auth token issued by ``create_wallet_token``."""
    return jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=["HS256"],
        options={"verify_aud": False, "verify_iss": False},
    )
