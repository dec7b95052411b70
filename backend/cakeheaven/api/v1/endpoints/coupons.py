"""
Coupons API Endpoints.

Coupon administration, validation against a cart and application
to existing orders.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.database import get_db
from cakeheaven.core.security import get_current_user, get_optional_user, require_admin
from cakeheaven.models.coupon import CouponScope, DiscountType
from cakeheaven.models.user import User
from cakeheaven.modules.shop.coupons import CouponService, coupon_to_dict
from cakeheaven.modules.shop.orders import order_to_dict

router = APIRouter()

CODE_PATTERN = r"^[A-Za-z0-9]+$"


# ==================== Schemas ====================


class CouponRequest(BaseModel):
    """Create coupon."""

    code: str = Field(..., min_length=3, max_length=20, pattern=CODE_PATTERN)
    description: str = Field(..., min_length=1, max_length=500)
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_amount: Decimal = Field(..., gt=0)
    minimum_purchase: Decimal = Field(Decimal("0"), ge=0)
    maximum_discount: Decimal | None = Field(None, ge=0)
    valid_from: datetime | None = None
    valid_until: datetime
    is_active: bool = True
    applicable_to: CouponScope = CouponScope.ALL
    applicable_products: list[int] = []
    applicable_categories: list[str] = []
    applicable_users: list[int] = []
    usage_limit: int | None = Field(None, ge=1)
    per_user_limit: int | None = Field(None, ge=1)


class CouponUpdateRequest(BaseModel):
    """Partial coupon update."""

    code: str | None = Field(None, min_length=3, max_length=20, pattern=CODE_PATTERN)
    description: str | None = Field(None, min_length=1, max_length=500)
    discount_type: DiscountType | None = None
    discount_amount: Decimal | None = Field(None, gt=0)
    minimum_purchase: Decimal | None = Field(None, ge=0)
    maximum_discount: Decimal | None = Field(None, ge=0)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool | None = None
    applicable_to: CouponScope | None = None
    applicable_products: list[int] | None = None
    applicable_categories: list[str] | None = None
    applicable_users: list[int] | None = None
    usage_limit: int | None = Field(None, ge=1)
    per_user_limit: int | None = Field(None, ge=1)


class ValidateCouponRequest(BaseModel):
    code: str = Field(..., min_length=1)
    cart_total: Decimal = Field(..., ge=0)
    products: list[int] = []


class ApplyCouponRequest(BaseModel):
    code: str = Field(..., min_length=1)
    order_id: int


# ==================== Customer ====================


@router.get("/active")
async def get_active_coupons(
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    """Coupons usable right now."""
    coupons = await CouponService(db).get_active_coupons(user)
    return [coupon_to_dict(c) for c in coupons]


@router.get("/product-coupons")
async def get_product_coupons(
    product_id: int | None = Query(None),
    category: str | None = Query(None, description="Main category"),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    coupons = await CouponService(db).get_product_coupons(product_id, category)
    return [coupon_to_dict(c) for c in coupons]


@router.post("/validate")
async def validate_coupon(
    request: ValidateCouponRequest,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Quote the discount a code gives on a cart."""
    return await CouponService(db).validate_coupon(
        request.code, request.cart_total, request.products, user
    )


@router.post("/apply")
async def apply_coupon(
    request: ApplyCouponRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Apply a coupon to an unpaid order."""
    order = await CouponService(db).apply_coupon(request.code, request.order_id, user)
    return {
        "success": True,
        "message": "Coupon applied successfully",
        "order": order_to_dict(order),
    }


# ==================== Admin ====================


@router.post("", status_code=201)
async def create_coupon(
    request: CouponRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    coupon = await CouponService(db).create_coupon(request.model_dump())
    return coupon_to_dict(coupon)


@router.get("")
async def list_coupons(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    coupons = await CouponService(db).list_coupons()
    return [coupon_to_dict(c) for c in coupons]


@router.get("/{coupon_id}")
async def get_coupon(
    coupon_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    return coupon_to_dict(await CouponService(db).get_coupon(coupon_id))


@router.put("/{coupon_id}")
async def update_coupon(
    coupon_id: int,
    request: CouponUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    coupon = await CouponService(db).update_coupon(
        coupon_id, request.model_dump(exclude_unset=True)
    )
    return coupon_to_dict(coupon)


@router.delete("/{coupon_id}")
async def delete_coupon(
    coupon_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    await CouponService(db).delete_coupon(coupon_id)
    return {"message": "Coupon removed"}
