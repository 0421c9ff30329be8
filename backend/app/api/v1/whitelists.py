"""Admin endpoints for the wallet whitelists referenced by eligibility rules."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_db_with_user, require_role
from app.models.coupon import WhitelistEntry
from app.models.user import User
from app.schemas.coupon import WhitelistEntryCreate, WhitelistEntryResponse
from app.services.wallets import validate_wallet_address

router = APIRouter()


@router.get("/{list_name}", response_model=list[WhitelistEntryResponse])
async def list_whitelist(
    list_name: str,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> list[WhitelistEntryResponse]:
    db, user = db_user
    require_role("admin", user)

    result = await db.execute(
        select(WhitelistEntry)
        .where(WhitelistEntry.list_name == list_name)
        .order_by(WhitelistEntry.created_at, WhitelistEntry.id)
    )
    return [WhitelistEntryResponse.model_validate(e) for e in result.scalars().all()]


@router.post("/{list_name}", response_model=WhitelistEntryResponse, status_code=201)
async def add_whitelist_entry(
    list_name: str,
    body: WhitelistEntryCreate,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> WhitelistEntryResponse:
    db, user = db_user
    require_role("admin", user)
    wallet_address = validate_wallet_address(body.wallet_address)

    existing = await db.execute(
        select(WhitelistEntry.id).where(
            WhitelistEntry.list_name == list_name,
            WhitelistEntry.wallet_address == wallet_address,
        )
    )
    if existing.first() is not None:
        raise HTTPException(status_code=409, detail="Wallet is already on this list")

    entry = WhitelistEntry(list_name=list_name, wallet_address=wallet_address)
    db.add(entry)
    await db.flush()
    await db.refresh(entry)
    return WhitelistEntryResponse.model_validate(entry)


@router.delete("/{list_name}/{wallet_address}", status_code=204)
async def remove_whitelist_entry(
    list_name: str,
    wallet_address: str,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> None:
    db, user = db_user
    require_role("admin", user)

    result = await db.execute(
        select(WhitelistEntry).where(
            WhitelistEntry.list_name == list_name,
            WhitelistEntry.wallet_address == wallet_address,
        )
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        raise HTTPException(status_code=404, detail="Whitelist entry not found")

    await db.delete(entry)
    await db.flush()
