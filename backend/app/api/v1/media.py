"""Presigned media upload/download endpoints for collection and product images."""

import logging
import uuid

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_db_with_user
from app.models.media_asset import MediaAsset
from app.models.product import Product
from app.models.user import User
from app.schemas.media import (
    MediaAssetResponse,
    MediaDownloadResponse,
    MediaUploadRequest,
    MediaUploadResponse,
)
from app.services.access import require_collection_access
from app.services.storage import (
    ALLOWED_CONTENT_TYPES,
    PRESIGN_DOWNLOAD_EXPIRES,
    PRESIGN_UPLOAD_EXPIRES,
    build_media_key,
    delete_object,
    presign_get,
    presign_put,
    sanitize_filename,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_media(
    db: AsyncSession, collection_id: uuid.UUID, media_id: uuid.UUID
) -> MediaAsset:
    result = await db.execute(
        select(MediaAsset).where(
            MediaAsset.id == media_id, MediaAsset.collection_id == collection_id
        )
    )
    media = result.scalar_one_or_none()
    if media is None:
        raise HTTPException(status_code=404, detail="Media asset not found")
    return media


@router.post("/upload-url", response_model=MediaUploadResponse, status_code=201)
async def create_upload_url(
    collection_id: uuid.UUID,
    body: MediaUploadRequest,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
):
    """Generate a presigned PUT URL for uploading an image to S3.

    Creates a media_assets row and returns the upload URL.
    The client should PUT the file directly to the returned URL.
    """
    db, user = db_user
    await require_collection_access(db, collection_id, user, "edit")

    if body.content_type not in ALLOWED_CONTENT_TYPES:
        allowed = ", ".join(sorted(ALLOWED_CONTENT_TYPES))
        raise HTTPException(
            status_code=400,
            detail=f"content_type must be one of: {allowed}",
        )

    if body.product_id is not None:
        product = await db.get(Product, body.product_id)
        if product is None or product.collection_id != collection_id:
            raise HTTPException(status_code=404, detail="Product not found")

    file_name = sanitize_filename(body.file_name)
    s3_key = build_media_key(collection_id, body.kind, file_name)

    media = MediaAsset(
        collection_id=collection_id,
        product_id=body.product_id,
        kind=body.kind,
        s3_key=s3_key,
        file_name=file_name,
        content_type=body.content_type,
        uploaded_by=user.id,
    )
    db.add(media)
    await db.flush()

    upload_url = presign_put(s3_key, body.content_type)

    return MediaUploadResponse(
        media_id=media.id,
        upload_url=upload_url,
        s3_key=s3_key,
        file_name=file_name,
        expires_in=PRESIGN_UPLOAD_EXPIRES,
    )


@router.get("", response_model=list[MediaAssetResponse])
async def list_media(
    collection_id: uuid.UUID,
    product_id: uuid.UUID | None = Query(None),
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> list[MediaAssetResponse]:
    db, user = db_user
    await require_collection_access(db, collection_id, user, "view")

    stmt = (
        select(MediaAsset)
        .where(MediaAsset.collection_id == collection_id)
        .order_by(MediaAsset.sort_order, MediaAsset.created_at)
    )
    if product_id is not None:
        stmt = stmt.where(MediaAsset.product_id == product_id)

    result = await db.execute(stmt)
    return [MediaAssetResponse.model_validate(m) for m in result.scalars().all()]


@router.get("/{media_id}/download-url", response_model=MediaDownloadResponse)
async def get_download_url(
    collection_id: uuid.UUID,
    media_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
):
    db, user = db_user
    await require_collection_access(db, collection_id, user, "view")
    media = await _get_media(db, collection_id, media_id)

    return MediaDownloadResponse(
        download_url=presign_get(media.s3_key),
        expires_in=PRESIGN_DOWNLOAD_EXPIRES,
    )


@router.delete("/{media_id}", status_code=204)
async def delete_media(
    collection_id: uuid.UUID,
    media_id: uuid.UUID,
    db_user: tuple[AsyncSession, User] = Depends(get_db_with_user),
) -> None:
    db, user = db_user
    await require_collection_access(db, collection_id, user, "edit")
    media = await _get_media(db, collection_id, media_id)

    s3_key = media.s3_key
    await db.delete(media)
    await db.flush()

    try:
        delete_object(s3_key)
    except (BotoCoreError, ClientError):
        logger.warning("Failed to delete S3 object %s", s3_key, exc_info=True)
