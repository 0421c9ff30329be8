from app.models.category import Category
from app.models.collection import Collection, CollectionAccess
from app.models.coupon import Coupon, OrderCoupon, WhitelistEntry
from app.models.media_asset import MediaAsset
from app.models.order import Order
from app.models.product import Product
from app.models.security_log import SecurityLog
from app.models.user import User
from app.models.wallet import CollectionWallet, MerchantWallet

__all__ = [
    "Category",
    "Collection",
    "CollectionAccess",
    "CollectionWallet",
    "Coupon",
    "MediaAsset",
    "MerchantWallet",
    "Order",
    "OrderCoupon",
    "Product",
    "SecurityLog",
    "User",
    "WhitelistEntry",
]
