"""CORS configuration for the storefront and dashboard origins."""

from app.core.config import settings

# Wallet headers are sent by wallet-only buyers; the service key by payment webhooks
ALLOWED_HEADERS = [
    "Authorization",
    "Content-Type",
    "X-Request-Id",
    "X-Wallet-Address",
    "X-Wallet-Auth-Token",
    "X-Service-Key",
]


def get_cors_config() -> dict:
    """Return CORS middleware kwargs for FastAPI."""
    return {
        "allow_origins": settings.allowed_origins_list,
        "allow_credentials": False,
        "allow_methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        "allow_headers": ALLOWED_HEADERS,
        "expose_headers": ["X-Request-Id"],
    }
