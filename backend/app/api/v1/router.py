"""Aggregate all v1 sub-routers."""

from fastapi import APIRouter

from app.api.v1.auth import router as auth_router
from app.api.v1.categories import router as categories_router
from app.api.v1.collections import router as collections_router
from app.api.v1.coupons import router as coupons_router
from app.api.v1.health import router as health_router
from app.api.v1.media import router as media_router
from app.api.v1.merchant_orders import router as merchant_orders_router
from app.api.v1.orders import router as orders_router
from app.api.v1.products import router as products_router
from app.api.v1.public_storefront import router as public_storefront_router
from app.api.v1.system import router as system_router
from app.api.v1.users import router as users_router
from app.api.v1.wallets import router as wallets_router
from app.api.v1.whitelists import router as whitelists_router

api_v1_router = APIRouter()

api_v1_router.include_router(health_router, tags=["health"])
api_v1_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_v1_router.include_router(users_router, prefix="/users", tags=["users"])
api_v1_router.include_router(collections_router, prefix="/collections", tags=["collections"])
api_v1_router.include_router(
    categories_router, prefix="/collections/{collection_id}/categories", tags=["categories"]
)
api_v1_router.include_router(
    products_router, prefix="/collections/{collection_id}/products", tags=["products"]
)
api_v1_router.include_router(
    media_router, prefix="/collections/{collection_id}/media", tags=["media"]
)
api_v1_router.include_router(coupons_router, prefix="/coupons", tags=["coupons"])
api_v1_router.include_router(whitelists_router, prefix="/whitelists", tags=["whitelists"])
api_v1_router.include_router(wallets_router, prefix="/wallets", tags=["wallets"])
api_v1_router.include_router(orders_router, prefix="/orders", tags=["orders"])
api_v1_router.include_router(
    merchant_orders_router, prefix="/merchant/orders", tags=["merchant-orders"]
)
api_v1_router.include_router(system_router, prefix="/system", tags=["system"])
api_v1_router.include_router(public_storefront_router, prefix="/storefront", tags=["storefront"])
