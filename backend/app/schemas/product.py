"""Product request/response schemas."""

import re
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3,10}$")
SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def _check_currency(v: str | None) -> str | None:
    if v is not None and not CURRENCY_PATTERN.match(v):
        raise ValueError("Currency must be an uppercase code such as SOL or USDC")
    return v


def _check_slug(v: str | None) -> str | None:
    if v is not None and not SLUG_PATTERN.match(v):
        raise ValueError("Slug must be lowercase letters, digits and single hyphens")
    return v


class ProductCreate(BaseModel):
    category_id: uuid.UUID | None = None
    name: str = Field(..., min_length=1, max_length=255)
    slug: str | None = Field(None, min_length=1, max_length=63)
    sku: str | None = Field(None, max_length=100)
    description: str | None = None
    price: Decimal = Field(..., ge=0, decimal_places=9)
    currency: str = "SOL"
    quantity: int | None = Field(None, ge=0)
    minimum_order_quantity: int = Field(1, ge=1)
    images: list[str] = Field(default_factory=list)
    variants: list | None = None
    notes: dict | None = None
    visible: bool = True
    sort_order: int = 0

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str | None) -> str | None:
        return _check_currency(v)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str | None) -> str | None:
        return _check_slug(v)


class ProductUpdate(BaseModel):
    category_id: uuid.UUID | None = None
    name: str | None = Field(None, min_length=1, max_length=255)
    slug: str | None = Field(None, min_length=1, max_length=63)
    sku: str | None = Field(None, max_length=100)
    description: str | None = None
    price: Decimal | None = Field(None, ge=0, decimal_places=9)
    currency: str | None = None
    quantity: int | None = Field(None, ge=0)
    minimum_order_quantity: int | None = Field(None, ge=1)
    images: list[str] | None = None
    variants: list | None = None
    notes: dict | None = None
    visible: bool | None = None
    sort_order: int | None = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str | None) -> str | None:
        return _check_currency(v)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str | None) -> str | None:
        return _check_slug(v)


class ProductResponse(BaseModel):
    id: uuid.UUID
    collection_id: uuid.UUID
    category_id: uuid.UUID | None = None
    name: str
    slug: str
    sku: str | None = None
    description: str | None = None
    price: Decimal
    currency: str
    quantity: int | None = None
    minimum_order_quantity: int
    images: list[str]
    variants: list | None = None
    notes: dict | None = None
    visible: bool
    sort_order: int
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class PublicProductResponse(BaseModel):
    id: uuid.UUID
    category_id: uuid.UUID | None = None
    name: str
    slug: str
    description: str | None = None
    price: Decimal
    currency: str
    quantity: int | None = None
    minimum_order_quantity: int
    images: list[str]
    variants: list | None = None
    sort_order: int
    image_url: str | None = None
    order_count: int = 0

    model_config = {"from_attributes": True}


class BestSellerResponse(PublicProductResponse):
    collection_id: uuid.UUID


class ProductOrderCountsResponse(BaseModel):
    product_id: uuid.UUID
    counts: dict[str, int]
    total: int
