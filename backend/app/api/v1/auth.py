"""Authentication endpoints."""

import logging
import re

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.services.auth_service import RefreshError, refresh_supabase_token

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_REFRESH_ORIGINS = re.compile(r"^https://([a-z0-9-]+\.)?yourdomain\.com$")
REFRESH_COOKIE_MAX_AGE = 2592000  # 30 days


def _check_origin(origin: str) -> None:
    if settings.ENVIRONMENT == "development":
        # Dev: configured origins, or no origin for curl/tests
        if origin and origin not in settings.allowed_origins_list:
            raise HTTPException(status_code=403, detail="Invalid origin")
    elif origin not in settings.allowed_origins_list and not ALLOWED_REFRESH_ORIGINS.match(
        origin
    ):
        raise HTTPException(status_code=403, detail="Invalid origin")


@router.post("/refresh")
async def refresh_token(request: Request):
    """Refresh the access token using the httpOnly refresh cookie.

    - Origin validation (same-site allowlist)
    - Content-Type enforcement (application/json)
    - POST-only (enforced by router)
    """
    _check_origin(request.headers.get("origin", ""))

    content_type = request.headers.get("content-type", "")
    if not content_type.startswith("application/json"):
        raise HTTPException(status_code=415, detail="Unsupported media type")

    refresh_token_value = request.cookies.get("refresh_token")
    if not refresh_token_value:
        raise HTTPException(status_code=401, detail="No refresh token")

    try:
        new_tokens = await refresh_supabase_token(refresh_token_value)
    except (RefreshError, httpx.HTTPError) as exc:
        logger.info("Token refresh failed: %s", exc)
        raise HTTPException(status_code=401, detail="Refresh token invalid or expired") from exc

    response = JSONResponse(
        content={"access_token": new_tokens["access_token"]},
        status_code=200,
    )

    if "refresh_token" in new_tokens:
        response.set_cookie(
            key="refresh_token",
            value=new_tokens["refresh_token"],
            httponly=True,
            secure=settings.ENVIRONMENT != "development",
            samesite="strict",
            path="/api/v1/auth/refresh",
            max_age=REFRESH_COOKIE_MAX_AGE,
        )

    return response
