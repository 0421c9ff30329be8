"""Coupon and whitelist schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from app.schemas.eligibility import EligibilityRules

DiscountType = Literal["percentage", "fixed"]
CouponStatus = Literal["active", "inactive", "expired"]


class CouponCreate(BaseModel):
    collection_id: uuid.UUID | None = None
    code: str = Field(..., min_length=1, max_length=50)
    description: str | None = None
    discount_type: DiscountType
    discount_value: Decimal = Field(..., gt=0)
    min_purchase_amount: Decimal | None = Field(None, ge=0)
    max_discount_amount: Decimal | None = Field(None, gt=0)
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    max_uses: int | None = Field(None, ge=1)
    status: CouponStatus = "active"
    eligibility_rules: EligibilityRules | None = None

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def _check_values(self) -> "CouponCreate":
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("Percentage discounts cannot exceed 100")
        if self.starts_at and self.expires_at and self.expires_at <= self.starts_at:
            raise ValueError("expires_at must be after starts_at")
        return self


class CouponUpdate(BaseModel):
    description: str | None = None
    discount_value: Decimal | None = Field(None, gt=0)
    min_purchase_amount: Decimal | None = Field(None, ge=0)
    max_discount_amount: Decimal | None = Field(None, gt=0)
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    max_uses: int | None = Field(None, ge=1)
    status: CouponStatus | None = None
    eligibility_rules: EligibilityRules | None = None


class CouponResponse(BaseModel):
    id: uuid.UUID
    collection_id: uuid.UUID | None = None
    code: str
    description: str | None = None
    discount_type: str
    discount_value: Decimal
    min_purchase_amount: Decimal | None = None
    max_discount_amount: Decimal | None = None
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    max_uses: int | None = None
    current_uses: int
    status: str
    eligibility_rules: dict | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    collection_id: uuid.UUID
    amount: Decimal = Field(..., ge=0)
    wallet_address: str | None = Field(None, min_length=32, max_length=44)


class CouponValidateResponse(BaseModel):
    valid: bool
    code: str
    discount_amount: Decimal = Decimal(0)
    final_amount: Decimal
    reason: str | None = None


class WhitelistEntryCreate(BaseModel):
    wallet_address: str = Field(..., min_length=32, max_length=44)


class WhitelistEntryResponse(BaseModel):
    id: uuid.UUID
    list_name: str
    wallet_address: str
    created_at: datetime

    model_config = {"from_attributes": True}
