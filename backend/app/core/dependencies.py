"""FastAPI dependency chain: JWT → User → set_config (RLS identity)."""

import hmac
import logging
import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import decode_access_token
from app.db.session import async_session_factory
from app.models.collection import Collection
from app.models.user import User
from app.services.wallet_auth import WalletIdentity, resolve_wallet_identity

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

ROLE_HIERARCHY = {"admin": 3, "merchant": 2, "user": 1}


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session. Commits on success, rolls back on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def _decode_credentials(credentials: HTTPAuthorizationCredentials) -> dict:
    try:
        return await decode_access_token(credentials.credentials)
    except JWTError as e:
        raise HTTPException(status_code=401, detail=f"Invalid token: {e}") from e


async def get_current_user_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict:
    """Extract and verify the Bearer token, returning JWT claims."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")
    return await _decode_credentials(credentials)


async def get_optional_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict | None:
    """Like get_current_user_claims, but anonymous requests yield None."""
    if credentials is None:
        return None
    return await _decode_credentials(credentials)


async def _resolve_user(db: AsyncSession, claims: dict) -> User:
    """Resolve auth_sub from JWT claims to a User row.

    Auto-provisions the user on first sight. E-mails listed in
    BOOTSTRAP_ADMIN_EMAILS are provisioned as admins.
    """
    auth_sub = claims.get("sub")
    if not auth_sub:
        raise HTTPException(status_code=401, detail="Token missing sub claim")

    result = await db.execute(select(User).where(User.auth_sub == auth_sub))
    user = result.scalar_one_or_none()

    if user is None:
        email = claims.get("email") or f"{auth_sub}@placeholder.local"
        metadata = claims.get("user_metadata") or {}
        display_name = metadata.get("full_name") or claims.get("name") or email
        role = "admin" if email.lower() in settings.bootstrap_admin_emails else "user"
        user = User(
            auth_sub=auth_sub,
            email=email,
            display_name=display_name,
            role=role,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        logger.info("Provisioned user %s with role %s", user.id, role)

    if not user.is_active:
        raise HTTPException(status_code=403, detail="User account is deactivated")

    return user


async def get_current_user(
    claims: dict = Depends(get_current_user_claims),
    db: AsyncSession = Depends(get_db),
) -> User:
    return await _resolve_user(db, claims)


async def set_request_identity(
    db: AsyncSession,
    user_id: uuid.UUID | None = None,
    wallet_address: str | None = None,
) -> None:
    """Push the caller's identity into the transaction for RLS policies."""
    await db.execute(
        text("SELECT set_config('app.current_user_id', :uid, true)"),
        {"uid": str(user_id) if user_id else ""},
    )
    await db.execute(
        text("SELECT set_config('app.current_wallet', :wallet, true)"),
        {"wallet": wallet_address or ""},
    )


async def enable_service_context(db: AsyncSession) -> None:
    """Mark the transaction as acting for the payment system (RLS app_is_service)."""
    await db.execute(text("SELECT set_config('app.service_role', 'on', true)"))


def get_wallet_identity(
    request: Request,
    claims: dict | None = Depends(get_optional_claims),
) -> WalletIdentity:
    return resolve_wallet_identity(
        request.headers.get("X-Wallet-Address"),
        request.headers.get("X-Wallet-Auth-Token"),
        claims,
    )


async def get_db_with_user(
    user: User = Depends(get_current_user),
    wallet: WalletIdentity = Depends(get_wallet_identity),
    db: AsyncSession = Depends(get_db),
) -> tuple[AsyncSession, User]:
    """Authenticated session with app.current_user_id set."""
    await set_request_identity(db, user.id, wallet.verified_wallet)
    return db, user


@dataclass
class BuyerContext:
    db: AsyncSession
    user: User | None
    wallet: WalletIdentity

    @property
    def wallet_address(self) -> str | None:
        return self.wallet.verified_wallet


async def get_buyer_context(
    claims: dict | None = Depends(get_optional_claims),
    wallet: WalletIdentity = Depends(get_wallet_identity),
    db: AsyncSession = Depends(get_db),
) -> BuyerContext:
    """Buyer identity: a signed-in user, a verified wallet, or both."""
    user = await _resolve_user(db, claims) if claims else None
    if user is None and wallet.verified_wallet is None:
        raise HTTPException(status_code=401, detail="Sign in or provide a verified wallet")

    await set_request_identity(db, user.id if user else None, wallet.verified_wallet)
    return BuyerContext(db=db, user=user, wallet=wallet)


async def get_service_db(
    x_service_key: str | None = Header(None, alias="X-Service-Key"),
    db: AsyncSession = Depends(get_db),
) -> AsyncSession:
    """Session for trusted payment-system calls (app.service_role = 'on')."""
    if not x_service_key or not hmac.compare_digest(
        x_service_key.encode(), settings.SERVICE_API_KEY.encode()
    ):
        raise HTTPException(status_code=401, detail="Invalid service key")

    await enable_service_context(db)
    return db


async def get_db_with_slug(
    slug: str,
    db: AsyncSession = Depends(get_db),
) -> tuple[AsyncSession, Collection]:
    """Resolve a visible collection by slug for public /storefront endpoints."""
    result = await db.execute(
        select(Collection).where(Collection.slug == slug, Collection.visible.is_(True))
    )
    collection = result.scalar_one_or_none()
    if collection is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return db, collection


def require_role(min_role: str, user: User) -> None:
    """Check the user's platform role is at least min_role."""
    if ROLE_HIERARCHY.get(user.role, 0) < ROLE_HIERARCHY.get(min_role, 0):
        raise HTTPException(status_code=403, detail=f"Requires {min_role} role or higher")
