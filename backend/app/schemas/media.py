"""Media upload/download request/response schemas."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from app.services.storage import MAX_UPLOAD_SIZE


class MediaUploadRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., min_length=1)
    size_bytes: int = Field(..., gt=0, le=MAX_UPLOAD_SIZE)
    kind: Literal["collection", "product"] = "product"
    product_id: uuid.UUID | None = None

    @model_validator(mode="after")
    def _product_matches_kind(self) -> "MediaUploadRequest":
        if (self.kind == "product") != (self.product_id is not None):
            raise ValueError("product_id is required for product media and only for it")
        return self


class MediaUploadResponse(BaseModel):
    media_id: uuid.UUID
    upload_url: str
    s3_key: str
    file_name: str
    expires_in: int


class MediaAssetResponse(BaseModel):
    id: uuid.UUID
    collection_id: uuid.UUID
    product_id: uuid.UUID | None = None
    kind: str
    s3_key: str
    file_name: str | None = None
    content_type: str | None = None
    sort_order: int
    created_at: datetime

    model_config = {"from_attributes": True}


class MediaDownloadResponse(BaseModel):
    download_url: str
    expires_in: int
