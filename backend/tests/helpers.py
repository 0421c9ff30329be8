"""Shared helpers for API integration tests."""

import secrets
import uuid

from httpx import AsyncClient
from sqlalchemy import update

from app.core.config import settings
from app.core.security import create_mock_access_token, create_wallet_token
from app.db.session import async_session_factory
from app.models.user import User

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def random_wallet() -> str:
    return "".join(secrets.choice(BASE58_ALPHABET) for _ in range(44))


def auth_headers(
    sub: str = "test-sub",
    email: str = "test@example.com",
    wallet_address: str | None = None,
) -> dict:
    """Return Authorization headers with a mock JWT."""
    token = create_mock_access_token(sub=sub, email=email, wallet_address=wallet_address)
    return {"Authorization": f"Bearer {token}"}


def wallet_headers(wallet_address: str) -> dict:
    """Headers proving control of a wallet without signing in."""
    return {
        "X-Wallet-Address": wallet_address,
        "X-Wallet-Auth-Token": create_wallet_token(wallet_address),
    }


def service_headers() -> dict:
    return {"X-Service-Key": settings.SERVICE_API_KEY}


async def set_role(user_id: str, role: str) -> None:
    async with async_session_factory() as session:
        await session.execute(
            update(User).where(User.id == uuid.UUID(user_id)).values(role=role)
        )
        await session.commit()


async def provision_user(
    client: AsyncClient, role: str = "user", *, prefix: str = "u"
) -> tuple[dict, str]:
    """Sign in a fresh user, optionally promote it, and return (headers, user_id).

    Uses a unique sub/email per call so each test gets an isolated identity.
    """
    unique = uuid.uuid4().hex[:8]
    headers = auth_headers(sub=f"{prefix}-sub-{unique}", email=f"{prefix}-{unique}@example.com")

    resp = await client.get("/api/v1/users/me", headers=headers)
    assert resp.status_code == 200, resp.text
    user_id = resp.json()["id"]
    if role != "user":
        await set_role(user_id, role)
    return headers, user_id


async def create_collection(client: AsyncClient, headers: dict, **fields) -> dict:
    body = {"name": f"Collection {uuid.uuid4().hex[:8]}", **fields}
    resp = await client.post("/api/v1/collections", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def create_product(
    client: AsyncClient, headers: dict, collection_id: str, **fields
) -> dict:
    body = {"name": f"Product {uuid.uuid4().hex[:8]}", "price": "1.5", **fields}
    resp = await client.post(
        f"/api/v1/collections/{collection_id}/products", json=body, headers=headers
    )
    assert resp.status_code == 201, resp.text
    return resp.json()
