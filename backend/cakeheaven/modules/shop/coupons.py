"""
Coupon Service - Discount codes.

Handles:
- Coupon administration
- Validation against a cart (limits and scope)
- Redemption with an atomic usage counter
- Applying a coupon to an existing order
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.exceptions import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from cakeheaven.models.coupon import Coupon, CouponScope, CouponUsage, DiscountType
from cakeheaven.models.shop import Order, Product
from cakeheaven.models.user import User
from cakeheaven.modules.shop import pricing
from cakeheaven.modules.shop.wallet import WalletService


def coupon_to_dict(coupon: Coupon) -> dict[str, Any]:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "description": coupon.description,
        "discount_type": coupon.discount_type.value,
        "discount_amount": float(coupon.discount_amount),
        "minimum_purchase": float(coupon.minimum_purchase or 0),
        "maximum_discount": float(coupon.maximum_discount) if coupon.maximum_discount is not None else None,
        "valid_from": coupon.valid_from.isoformat(),
        "valid_until": coupon.valid_until.isoformat(),
        "is_active": coupon.is_active,
        "applicable_to": coupon.applicable_to.value,
        "applicable_products": list(coupon.applicable_products or []),
        "applicable_categories": list(coupon.applicable_categories or []),
        "applicable_users": list(coupon.applicable_users or []),
        "usage_limit": coupon.usage_limit,
        "usage_count": coupon.usage_count,
        "per_user_limit": coupon.per_user_limit,
        "created_at": coupon.created_at.isoformat() if coupon.created_at else None,
    }


def check_discount_rule(
    discount_type: DiscountType,
    discount_amount: Decimal,
    valid_from: datetime,
    valid_until: datetime,
) -> None:
    """Reject impossible discount definitions."""
    if discount_type == DiscountType.PERCENTAGE and not (0 < discount_amount <= 100):
        raise ValidationError("Percentage discount must be between 0 and 100")
    if discount_type == DiscountType.FIXED and discount_amount <= 0:
        raise ValidationError("Fixed discount must be greater than 0")
    if valid_until <= valid_from:
        raise ValidationError("Valid until date must be after valid from date")


class CouponService:
    """
    Service for coupon administration and redemption.

    Usage:
        coupons = CouponService(db_session)
        result = await coupons.validate_coupon("SAVE20", Decimal("1000"), [], user)
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize coupon service with database session."""
        self.db = db

    # ==================== Administration ====================

    async def get_by_code(self, code: str) -> Coupon | None:
        result = await self.db.execute(select(Coupon).where(Coupon.code == code.upper()))
        return result.scalar_one_or_none()

    async def get_coupon(self, coupon_id: int) -> Coupon:
        coupon = await self.db.get(Coupon, coupon_id)
        if not coupon:
            raise NotFoundError("Coupon not found")
        return coupon

    async def list_coupons(self) -> list[Coupon]:
        result = await self.db.execute(select(Coupon).order_by(Coupon.created_at.desc()))
        return list(result.scalars().all())

    async def create_coupon(self, data: dict[str, Any]) -> Coupon:
        """Create a coupon; codes are unique and stored upper-case."""
        data = dict(data)
        data["code"] = data["code"].upper()
        if data.get("valid_from") is None:
            data["valid_from"] = datetime.utcnow()

        if await self.get_by_code(data["code"]):
            raise ValidationError("Coupon code already exists")

        check_discount_rule(
            data.get("discount_type", DiscountType.PERCENTAGE),
            Decimal(str(data["discount_amount"])),
            data["valid_from"],
            data["valid_until"],
        )

        coupon = Coupon(**data)
        self.db.add(coupon)
        await self.db.flush()

        logger.info(f"Coupon created: {coupon.code}")
        return coupon

    async def update_coupon(self, coupon_id: int, data: dict[str, Any]) -> Coupon:
        """Apply a partial update."""
        coupon = await self.get_coupon(coupon_id)

        code = data.pop("code", None)
        if code and code.upper() != coupon.code:
            if await self.get_by_code(code):
                raise ValidationError("Coupon code already exists")
            coupon.code = code.upper()

        for field, value in data.items():
            setattr(coupon, field, value)

        check_discount_rule(
            coupon.discount_type,
            Decimal(str(coupon.discount_amount)),
            coupon.valid_from,
            coupon.valid_until,
        )

        await self.db.flush()
        return coupon

    async def delete_coupon(self, coupon_id: int) -> None:
        coupon = await self.get_coupon(coupon_id)
        await self.db.delete(coupon)
        await self.db.flush()
        logger.info(f"Coupon deleted: {coupon.code}")

    # ==================== Listings ====================

    async def _current_coupons(self) -> list[Coupon]:
        now = datetime.utcnow()
        query = (
            select(Coupon)
            .where(Coupon.is_active == True, Coupon.valid_from <= now, Coupon.valid_until >= now)
            .order_by(Coupon.valid_until)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_active_coupons(self, user: User | None = None) -> list[Coupon]:
        """Coupons usable right now; anonymous callers don't see user-targeted ones."""
        coupons = await self._current_coupons()
        if user is not None:
            return coupons
        return [
            c for c in coupons
            if c.applicable_to != CouponScope.USER or not c.applicable_users
        ]

    async def get_product_coupons(
        self,
        product_id: int | None = None,
        category: str | None = None,
    ) -> list[Coupon]:
        """Coupons that apply to everything, or to the given product or category."""
        if product_id is None and not category:
            raise ValidationError("Product ID or Category ID is required")

        matching = []
        for coupon in await self._current_coupons():
            if coupon.applicable_to == CouponScope.ALL:
                matching.append(coupon)
            elif (
                coupon.applicable_to == CouponScope.PRODUCT
                and product_id is not None
                and product_id in (coupon.applicable_products or [])
            ):
                matching.append(coupon)
            elif (
                coupon.applicable_to == CouponScope.CATEGORY
                and category
                and category in (coupon.applicable_categories or [])
            ):
                matching.append(coupon)
        return matching

    # ==================== Validation ====================

    async def find_valid(self, code: str) -> Coupon:
        """Active, in-date coupon by code."""
        now = datetime.utcnow()
        query = select(Coupon).where(
            Coupon.code == code.upper(),
            Coupon.is_active == True,
            Coupon.valid_from <= now,
            Coupon.valid_until >= now,
        )
        coupon = (await self.db.execute(query)).scalar_one_or_none()
        if not coupon:
            raise NotFoundError("Invalid or expired coupon code")
        return coupon

    async def user_usage_count(self, coupon_id: int, user_id: int) -> int:
        query = select(func.count(CouponUsage.id)).where(
            CouponUsage.coupon_id == coupon_id,
            CouponUsage.user_id == user_id,
        )
        return (await self.db.execute(query)).scalar_one()

    async def check_eligibility(
        self,
        coupon: Coupon,
        amount: Decimal,
        product_ids: list[int] | None,
        user: User | None,
    ) -> None:
        """
        Check a coupon against a purchase.

        Args:
            coupon: Active, in-date coupon
            amount: Purchase amount the discount applies to
            product_ids: Products being bought, when known
            user: Buyer, or None for anonymous callers

        Raises:
            ShopError subclasses describing the first failed rule
        """
        minimum = Decimal(coupon.minimum_purchase or 0)
        if minimum > 0 and Decimal(amount) < minimum:
            raise ValidationError(f"Minimum purchase of {minimum:.2f} required for this coupon")

        if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
            raise ValidationError("Coupon usage limit has been reached")

        if user is not None:
            if coupon.per_user_limit is not None:
                used = await self.user_usage_count(coupon.id, user.id)
                if used >= coupon.per_user_limit:
                    raise ValidationError(
                        f"You've already used this coupon {used} times (limit: {coupon.per_user_limit})"
                    )

            if (
                coupon.applicable_to == CouponScope.USER
                and coupon.applicable_users
                and user.id not in coupon.applicable_users
            ):
                raise ValidationError("This coupon is not applicable to your account")
        elif coupon.applicable_to == CouponScope.USER:
            raise AuthenticationError("Login required to use this coupon")

        if coupon.applicable_to == CouponScope.PRODUCT and product_ids:
            allowed = set(coupon.applicable_products or [])
            if not allowed.intersection(product_ids):
                raise ValidationError("Coupon is not applicable to any of the products in your cart")

        if coupon.applicable_to == CouponScope.CATEGORY and product_ids:
            result = await self.db.execute(
                select(Product.main_category).where(Product.id.in_(product_ids))
            )
            categories = {c.value for c in result.scalars().all()}
            if not categories.intersection(coupon.applicable_categories or []):
                raise ValidationError("Coupon is not applicable to any of the categories in your cart")

    def discount_for(self, coupon: Coupon, amount: Decimal) -> Decimal:
        return pricing.calculate_discount(
            coupon.discount_type,
            Decimal(coupon.discount_amount),
            Decimal(amount),
            Decimal(coupon.maximum_discount) if coupon.maximum_discount is not None else None,
        )

    async def validate_coupon(
        self,
        code: str,
        cart_total: Decimal,
        product_ids: list[int] | None = None,
        user: User | None = None,
    ) -> dict[str, Any]:
        """Check a code against a cart and quote the discount."""
        if not code:
            raise ValidationError("Coupon code is required")

        coupon = await self.find_valid(code)
        await self.check_eligibility(coupon, cart_total, product_ids, user)
        discount = self.discount_for(coupon, cart_total)

        return {
            "valid": True,
            "code": coupon.code,
            "discount_type": coupon.discount_type.value,
            "discount_value": float(coupon.discount_amount),
            "discount_amount": float(discount),
            "message": f"Coupon applied: {coupon.description}",
        }

    # ==================== Redemption ====================

    async def redeem(self, coupon: Coupon, user_id: int, order_id: int | None) -> None:
        """
        Record one use of a coupon.

        The counter is bumped with a conditional UPDATE so concurrent
        redemptions can never push usage_count past usage_limit, and the
        per-user limit is checked in the same statement.
        """
        per_user_count = (
            select(func.count(CouponUsage.id))
            .where(CouponUsage.coupon_id == coupon.id, CouponUsage.user_id == user_id)
            .scalar_subquery()
        )
        query = (
            update(Coupon)
            .where(
                Coupon.id == coupon.id,
                or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
                or_(Coupon.per_user_limit.is_(None), per_user_count < Coupon.per_user_limit),
            )
            .values(usage_count=Coupon.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(query)
        if result.rowcount != 1:
            raise ValidationError("Coupon usage limit has been reached")

        self.db.add(CouponUsage(coupon_id=coupon.id, user_id=user_id, order_id=order_id))
        await self.db.flush()
        await self.db.refresh(coupon, ["usage_count"])
        logger.info(f"Coupon {coupon.code} redeemed by user {user_id} ({coupon.usage_count} uses)")

    async def apply_coupon(self, code: str, order_id: int, user: User) -> Order:
        """Apply a coupon to an unpaid order and reprice it."""
        order = await self.db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order not found")
        if order.user_id != user.id and not user.is_admin:
            raise PermissionDeniedError("Not authorized to modify this order")
        if order.is_paid:
            raise ValidationError("Cannot apply a coupon to a paid order")
        if order.is_cancelled:
            raise ValidationError("Cannot apply a coupon to a cancelled order")
        if order.coupon_code:
            raise ValidationError("A coupon has already been applied to this order")

        coupon = await self.find_valid(code)
        owner = await self.db.get(User, order.user_id)
        product_ids = [item.product_id for item in order.items if item.product_id is not None]
        await self.check_eligibility(coupon, order.items_price, product_ids, owner)

        discount = self.discount_for(coupon, order.items_price)
        order.discount_amount = discount
        order.coupon_code = coupon.code
        order.total_price = pricing.calculate_total(
            order.items_price, order.shipping_price, order.tax_price, discount
        )

        await self.redeem(coupon, order.user_id, order.id)

        # Wallet points may now cover the smaller total
        await WalletService(self.db).settle_order(order, owner)
        await self.db.flush()
        return order
