"""Merchant payout wallets: main wallet selection and collection assignment."""

import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, DomainError, NotFoundError
from app.models.wallet import CollectionWallet, MerchantWallet
from app.services.audit import log_security_event
from app.services.wallet_auth import is_valid_wallet_address


class WalletError(DomainError):
    title = "Wallet error"


def validate_wallet_address(address: str) -> str:
    address = address.strip()
    if not is_valid_wallet_address(address):
        raise WalletError("Invalid wallet address format")
    return address


async def _get_wallet(db: AsyncSession, wallet_id: uuid.UUID) -> MerchantWallet:
    wallet = await db.get(MerchantWallet, wallet_id)
    if wallet is None:
        raise NotFoundError("Wallet not found")
    return wallet


async def set_main_wallet(
    db: AsyncSession, wallet_id: uuid.UUID, actor_id: uuid.UUID | None = None
) -> MerchantWallet:
    """Make one active wallet the main wallet and unset every other one."""
    wallet = await _get_wallet(db, wallet_id)
    if not wallet.is_active:
        raise WalletError("Cannot set an inactive wallet as main")

    # Unset first: the partial unique index allows a single is_main row
    await db.execute(
        update(MerchantWallet)
        .where(MerchantWallet.is_main.is_(True), MerchantWallet.id != wallet_id)
        .values(is_main=False)
    )
    wallet.is_main = True
    await db.flush()
    await log_security_event(
        db, "main_wallet_changed", actor_id, wallet_id=wallet.id, address=wallet.address
    )
    return wallet


async def deactivate_wallet(db: AsyncSession, wallet_id: uuid.UUID) -> MerchantWallet:
    wallet = await _get_wallet(db, wallet_id)
    if wallet.is_main:
        raise WalletError("Cannot deactivate the main wallet")
    wallet.is_active = False
    await db.flush()
    return wallet


async def assign_collection_wallet(
    db: AsyncSession, collection_id: uuid.UUID, wallet_id: uuid.UUID
) -> CollectionWallet:
    """Point a collection's payouts at a wallet, replacing any previous one."""
    wallet = await _get_wallet(db, wallet_id)
    if not wallet.is_active:
        raise WalletError("Wallet is not active")

    result = await db.execute(
        select(CollectionWallet).where(CollectionWallet.wallet_id == wallet_id)
    )
    existing = result.scalar_one_or_none()
    if existing is not None and existing.collection_id != collection_id:
        raise ConflictError("Wallet is already assigned to another collection")
    if existing is not None:
        return existing

    result = await db.execute(
        select(CollectionWallet).where(CollectionWallet.collection_id == collection_id)
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        assignment = CollectionWallet(collection_id=collection_id, wallet_id=wallet_id)
        db.add(assignment)
    else:
        assignment.wallet_id = wallet_id
    await db.flush()
    return assignment


async def unassign_collection_wallet(db: AsyncSession, collection_id: uuid.UUID) -> None:
    result = await db.execute(
        select(CollectionWallet).where(CollectionWallet.collection_id == collection_id)
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise NotFoundError("Collection has no assigned wallet")
    await db.delete(assignment)
    await db.flush()


async def resolve_payout_wallet(db: AsyncSession, collection_id: uuid.UUID) -> str | None:
    """Address receiving payments for a collection: its own wallet, else the main one."""
    result = await db.execute(
        select(MerchantWallet.address)
        .join(CollectionWallet, CollectionWallet.wallet_id == MerchantWallet.id)
        .where(
            CollectionWallet.collection_id == collection_id,
            MerchantWallet.is_active.is_(True),
        )
    )
    address = result.scalar_one_or_none()
    if address is not None:
        return address

    result = await db.execute(
        select(MerchantWallet.address).where(
            MerchantWallet.is_main.is_(True), MerchantWallet.is_active.is_(True)
        )
    )
    return result.scalar_one_or_none()
