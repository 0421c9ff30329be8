"""Supabase token refresh (real + mock modes)."""

import logging

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class RefreshError(Exception):
    pass


async def refresh_supabase_token(refresh_token: str) -> dict:
    """Exchange a refresh token for a new session.

    In mock mode, returns a fresh mock access token.
    """
    if settings.AUTH_MOCK:
        return _mock_refresh(refresh_token)

    return await _real_supabase_refresh(refresh_token)


async def _real_supabase_refresh(refresh_token: str) -> dict:
    url = f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1/token"
    async with httpx.AsyncClient(timeout=10.0) as client:
        resp = await client.post(
            url,
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
            headers={"apikey": settings.SUPABASE_ANON_KEY},
        )
    if resp.status_code != 200:
        logger.info("Supabase refresh rejected with status %s", resp.status_code)
        raise RefreshError(f"Refresh failed with status {resp.status_code}")

    data = resp.json()
    tokens: dict[str, str] = {"access_token": data["access_token"]}

    # Supabase rotates refresh tokens on every use
    if data.get("refresh_token"):
        tokens["refresh_token"] = data["refresh_token"]

    return tokens


def _mock_refresh(refresh_token: str) -> dict:
    """Generate a mock refresh response for local development."""
    from app.core.security import create_mock_access_token

    access_token = create_mock_access_token(
        sub="mock-user-sub",
        email="dev@example.com",
    )
    return {
        "access_token": access_token,
        "refresh_token": "mock-refresh-token-rotated",
    }
