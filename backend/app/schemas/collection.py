"""Collection and collection access schemas."""

import re
import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

AccessType = Literal["view", "edit"]


def _check_slug(v: str | None) -> str | None:
    if v is not None and not SLUG_PATTERN.match(v):
        raise ValueError("Slug must be lowercase letters, digits and single hyphens")
    return v


class CollectionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str | None = Field(None, min_length=1, max_length=63)
    description: str | None = None
    image_url: str | None = None
    launch_date: datetime | None = None
    visible: bool = True
    featured: bool = False

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str | None) -> str | None:
        return _check_slug(v)


class CollectionUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    slug: str | None = Field(None, min_length=1, max_length=63)
    description: str | None = None
    image_url: str | None = None
    launch_date: datetime | None = None
    visible: bool | None = None
    featured: bool | None = None
    sale_ended: bool | None = None

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str | None) -> str | None:
        return _check_slug(v)


class CollectionResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    slug: str
    description: str | None = None
    image_url: str | None = None
    launch_date: datetime | None = None
    visible: bool
    featured: bool
    sale_ended: bool
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class PublicCollectionResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    description: str | None = None
    image_url: str | None = None
    launch_date: datetime | None = None
    featured: bool
    sale_ended: bool

    model_config = {"from_attributes": True}


class CollectionTransferRequest(BaseModel):
    new_owner_id: uuid.UUID


class AccessGrantRequest(BaseModel):
    access_type: AccessType


class CollectionAccessResponse(BaseModel):
    id: uuid.UUID
    collection_id: uuid.UUID
    user_id: uuid.UUID
    access_type: str
    granted_by: uuid.UUID | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
