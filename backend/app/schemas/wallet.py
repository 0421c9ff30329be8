"""Merchant wallet schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class WalletCreate(BaseModel):
    address: str = Field(..., min_length=32, max_length=44)
    label: str | None = Field(None, max_length=255)


class WalletUpdate(BaseModel):
    label: str | None = Field(None, max_length=255)


class WalletResponse(BaseModel):
    id: uuid.UUID
    address: str
    label: str | None = None
    is_main: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class CollectionWalletRequest(BaseModel):
    wallet_id: uuid.UUID


class CollectionWalletResponse(BaseModel):
    collection_id: uuid.UUID
    wallet_id: uuid.UUID
    created_at: datetime

    model_config = {"from_attributes": True}
