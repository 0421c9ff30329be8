"""Keyset cursors for lists ordered by (created_at DESC, id DESC)."""

import uuid
from datetime import datetime

from fastapi import HTTPException

DEFAULT_PAGE_SIZE = 20


def encode_cursor(created_at: datetime, item_id: uuid.UUID) -> str:
    return f"{created_at.isoformat()}|{item_id}"


def decode_cursor(cursor: str) -> tuple[datetime, uuid.UUID]:
    try:
        dt_str, id_str = cursor.split("|", 1)
        return datetime.fromisoformat(dt_str), uuid.UUID(id_str)
    except (ValueError, AttributeError) as exc:
        raise HTTPException(status_code=400, detail="Invalid cursor") from exc
