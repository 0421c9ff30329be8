"""Admin endpoints for merchant payout wallets."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_db_with_user, require_role
from app.models.collection import Collection
from app.models.user import User
from app.models.wallet import MerchantWallet
from app.schemas.wallet import (
    CollectionWalletRequest,
    CollectionWalletResponse,
    WalletCreate,
    WalletResponse,
    WalletUpdate,
)
from app.services.wallets import (
    assign_collection_wallet,
    deactivate_wallet,
    set_main_wallet,
    unassign_collection_wallet,
    validate_wallet_address,
)

router = APIRouter()


async def _get_wallet(db: AsyncSession, wallet_id: uuid.UUID) -> MerchantWallet:
    wallet = await db.get(MerchantWallet, wallet_id)
    if wallet is None:
        raise HTTPException(status_code=404, detail="Wallet not found")
    return wallet


@router.get("", response_model=list[WalletResponse])
async def list_wallets(
    is_active: bool | None = Query(None),
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> list[WalletResponse]:
    db, user = db_user
    require_role("admin", user)

    stmt = select(MerchantWallet).order_by(
        MerchantWallet.is_main.desc(), MerchantWallet.created_at
    )
    if is_active is not None:
        stmt = stmt.where(MerchantWallet.is_active == is_active)

    result = await db.execute(stmt)
    return [WalletResponse.model_validate(w) for w in result.scalars().all()]


@router.post("", response_model=WalletResponse, status_code=201)
async def create_wallet(
    body: WalletCreate,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> WalletResponse:
    db, user = db_user
    require_role("admin", user)
    address = validate_wallet_address(body.address)

    existing = await db.execute(select(MerchantWallet.id).where(MerchantWallet.address == address))
    if existing.first() is not None:
        raise HTTPException(status_code=409, detail="Wallet address already registered")

    wallet = MerchantWallet(address=address, label=body.label)
    db.add(wallet)
    await db.flush()
    await db.refresh(wallet)
    return WalletResponse.model_validate(wallet)


@router.patch("/{wallet_id}", response_model=WalletResponse)
async def update_wallet(
    wallet_id: uuid.UUID,
    body: WalletUpdate,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> WalletResponse:
    db, user = db_user
    require_role("admin", user)
    wallet = await _get_wallet(db, wallet_id)

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(wallet, field, value)

    await db.flush()
    await db.refresh(wallet)
    return WalletResponse.model_validate(wallet)


@router.post("/{wallet_id}/deactivate", response_model=WalletResponse)
async def deactivate(
    wallet_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> WalletResponse:
    db, user = db_user
    require_role("admin", user)

    wallet = await deactivate_wallet(db, wallet_id)
    await db.refresh(wallet)
    return WalletResponse.model_validate(wallet)


@router.post("/{wallet_id}/main", response_model=WalletResponse)
async def make_main(
    wallet_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> WalletResponse:
    db, user = db_user
    require_role("admin", user)

    wallet = await set_main_wallet(db, wallet_id, user.id)
    await db.refresh(wallet)
    return WalletResponse.model_validate(wallet)


# ---------------------------------------------------------------------------
# Collection payout assignment
# ---------------------------------------------------------------------------


@router.put("/collections/{collection_id}", response_model=CollectionWalletResponse)
async def assign_to_collection(
    collection_id: uuid.UUID,
    body: CollectionWalletRequest,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> CollectionWalletResponse:
    db, user = db_user
    require_role("admin", user)
    if await db.get(Collection, collection_id) is None:
        raise HTTPException(status_code=404, detail="Collection not found")

    assignment = await assign_collection_wallet(db, collection_id, body.wallet_id)
    await db.refresh(assignment)
    return CollectionWalletResponse.model_validate(assignment)


@router.delete("/collections/{collection_id}", status_code=204)
async def unassign_from_collection(
    collection_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> None:
    db, user = db_user
    require_role("admin", user)
    await unassign_collection_wallet(db, collection_id)
