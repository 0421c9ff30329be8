"""User schemas."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel

UserRole = Literal["admin", "merchant", "user"]
MerchantTier = Literal[
    "starter_merchant", "verified_merchant", "trusted_merchant", "elite_merchant"
]


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    display_name: str
    role: str
    merchant_tier: str
    successful_sales_count: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class RoleUpdateRequest(BaseModel):
    role: UserRole


class MerchantTierUpdateRequest(BaseModel):
    merchant_tier: MerchantTier
