"""Category request/response schemas."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.eligibility import EligibilityRules

CategoryType = Literal["blank", "whitelist", "rules-based"]


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    type: CategoryType = "blank"
    eligibility_rules: EligibilityRules | None = None
    visible: bool = True
    sort_order: int = 0


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    type: CategoryType | None = None
    eligibility_rules: EligibilityRules | None = None
    visible: bool | None = None
    sort_order: int | None = None


class CategoryResponse(BaseModel):
    id: uuid.UUID
    collection_id: uuid.UUID
    name: str
    description: str | None = None
    type: str
    eligibility_rules: dict | None = None
    visible: bool
    sort_order: int
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class PublicCategoryResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None = None
    type: str
    eligibility_rules: dict | None = None
    sort_order: int

    model_config = {"from_attributes": True}
