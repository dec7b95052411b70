"""
Shop Module - E-commerce functionality.

Features:
- Cake catalog with filters, reviews and a Redis cache
- Order placement and lifecycle
- Coupons with atomic usage limits
- Wallet / loyalty points
- Stripe payments
"""

from cakeheaven.modules.shop.cache import CatalogCache, get_catalog_cache
from cakeheaven.modules.shop.coupons import CouponService
from cakeheaven.modules.shop.orders import OrderService
from cakeheaven.modules.shop.payment import PaymentService
from cakeheaven.modules.shop.service import CatalogService
from cakeheaven.modules.shop.wallet import WalletService

__all__ = [
    "CatalogCache",
    "CatalogService",
    "CouponService",
    "OrderService",
    "PaymentService",
    "WalletService",
    "get_catalog_cache",
]
