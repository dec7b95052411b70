"""
API Router.

Combines all API endpoints under the /api prefix.
"""

from fastapi import APIRouter

from cakeheaven.api.v1.endpoints import analytics, auth, coupons, orders, payments, products, settings

router = APIRouter()

# Include endpoint routers
router.include_router(auth.router, prefix="/auth", tags=["Auth"])
router.include_router(products.router, prefix="/products", tags=["Products"])
router.include_router(orders.router, prefix="/orders", tags=["Orders"])
router.include_router(payments.router, prefix="/payments", tags=["Payments"])
router.include_router(coupons.router, prefix="/coupons", tags=["Coupons"])
router.include_router(settings.router, prefix="/settings", tags=["Settings"])
router.include_router(analytics.router, prefix="/analytics", tags=["Analytics"])
