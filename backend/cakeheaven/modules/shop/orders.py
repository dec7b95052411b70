"""
Order Service - Order placement and lifecycle.

Placement prices the cart server-side, reserves stock, redeems the
coupon, applies wallet points and credits reward points inside the
caller's database transaction: if any step fails nothing is persisted.
"""

import math
import random
import time
from datetime import datetime
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cakeheaven.core.config import settings
from cakeheaven.core.database import after_commit
from cakeheaven.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from cakeheaven.models.coupon import Coupon
from cakeheaven.models.shop import (
    DeliveryOption,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    Product,
)
from cakeheaven.models.user import User
from cakeheaven.modules.admin.settings import SettingsService
from cakeheaven.modules.shop import pricing
from cakeheaven.modules.shop.cache import CatalogCache
from cakeheaven.modules.shop.coupons import CouponService
from cakeheaven.modules.shop.service import CatalogService
from cakeheaven.modules.shop.wallet import WalletService

ORDER_NUMBER_ATTEMPTS = 5


def generate_order_number(now: datetime | None = None) -> str:
    """CAKE-YYYYMMDD-<last 5 digits of epoch ms><4 random digits>."""
    now = now or datetime.utcnow()
    millis = str(int(time.time() * 1000))[-5:]
    return f"CAKE-{now:%Y%m%d}-{millis}{random.randint(1000, 9999)}"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def order_to_dict(order: Order, include_user: bool = False) -> dict[str, Any]:
    """Serialize an order to a JSON-safe dict."""
    data = {
        "id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "items": [
            {
                "id": item.id,
                "product_id": item.product_id,
                "name": item.name,
                "image": item.image,
                "price": float(item.price),
                "quantity": item.quantity,
                "customizations": {
                    "message_on_cake": item.message_on_cake,
                    "special_instructions": item.special_instructions,
                },
            }
            for item in order.items
        ],
        "shipping_address": {
            "full_name": order.shipping_full_name,
            "mobile_number": order.shipping_mobile_number,
            "address": order.shipping_address,
            "city": order.shipping_city,
            "state": order.shipping_state,
            "zip": order.shipping_zip,
            "country": order.shipping_country,
        },
        "order_details": {
            "order_for": order.order_for,
            "birth_date": _iso(order.birth_date),
            "special_instructions": order.special_instructions,
        },
        "payment_method": order.payment_method.value,
        "delivery_option": order.delivery_option.value,
        "payment_result": order.payment_result,
        "items_price": float(order.items_price),
        "tax_price": float(order.tax_price),
        "shipping_price": float(order.shipping_price),
        "discount_amount": float(order.discount_amount),
        "coupon_code": order.coupon_code,
        "total_price": float(order.total_price),
        "wallet_amount_used": float(order.wallet_amount_used),
        "amount_due": float(order.amount_due),
        "reward_points": float(order.reward_points),
        "is_paid": order.is_paid,
        "paid_at": _iso(order.paid_at),
        "status": order.status.value,
        "is_delivered": order.is_delivered,
        "delivered_at": _iso(order.delivered_at),
        "cancel_reason": order.cancel_reason,
        "estimated_delivery_date": _iso(order.estimated_delivery_date),
        "status_history": [
            {"status": entry.status.value, "date": _iso(entry.created_at), "comment": entry.comment}
            for entry in order.status_history
        ],
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }
    if include_user and order.user is not None:
        data["user"] = {"id": order.user.id, "name": order.user.name, "email": order.user.email}
    return data


class OrderService:
    """
    Service for placing and managing orders.

    Usage:
        orders = OrderService(db_session, cache)
        order = await orders.place_order(user, items, shipping_address, PaymentMethod.WALLET)
    """

    def __init__(self, db: AsyncSession, cache: CatalogCache | None = None) -> None:
        """Initialize order service with database session and catalog cache."""
        self.db = db
        self.cache = cache
        self.catalog = CatalogService(db, cache)
        self.coupons = CouponService(db)
        self.wallet = WalletService(db)

    # ==================== Lookup ====================

    async def _load(self, order_id: int, with_user: bool = False) -> Order:
        query = select(Order).where(Order.id == order_id)
        if with_user:
            query = query.options(selectinload(Order.user))
        order = (await self.db.execute(query)).scalar_one_or_none()
        if not order:
            raise NotFoundError("Order not found")
        return order

    def _check_access(self, order: Order, user: User, action: str = "access") -> None:
        if order.user_id != user.id and not user.is_admin:
            raise PermissionDeniedError(f"Not authorized to {action} this order")

    async def get_order(self, order_id: int, user: User) -> Order:
        """Order visible to its owner or an admin."""
        order = await self._load(order_id, with_user=True)
        self._check_access(order, user)
        return order

    async def get_owner(self, order: Order) -> User:
        owner = await self.db.get(User, order.user_id)
        if not owner:
            raise NotFoundError("User not found")
        return owner

    async def _unique_order_number(self) -> str:
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            candidate = generate_order_number()
            exists = await self.db.execute(select(Order.id).where(Order.order_number == candidate))
            if exists.scalar_one_or_none() is None:
                return candidate
        raise ValidationError("Could not allocate an order number, please retry")

    # ==================== Placement ====================

    async def place_order(
        self,
        user: User,
        items: list[dict[str, Any]],
        shipping_address: dict[str, Any] | None,
        payment_method: PaymentMethod,
        delivery_option: DeliveryOption = DeliveryOption.STANDARD,
        order_details: dict[str, Any] | None = None,
        coupon_code: str | None = None,
        use_wallet_points: bool = False,
        wallet_amount: Decimal = Decimal("0"),
    ) -> Order:
        """
        Place an order for the given cart.

        Args:
            user: Buyer
            items: [{product_id, quantity, message_on_cake?, special_instructions?}]
            shipping_address: full_name, mobile_number, address, city, state, zip, country
            payment_method: How the remainder will be paid
            delivery_option: standard, express or same-day
            order_details: order_for, birth_date, special_instructions
            coupon_code: Optional discount code
            use_wallet_points: Pay with points
            wallet_amount: Points to use, capped at the order total

        Returns:
            The persisted order (not yet committed)
        """
        if not items or not shipping_address:
            raise ValidationError("Missing required order information")

        # Reserve stock; the conditional decrement fails instead of overselling
        lines: list[tuple[Product, dict[str, Any]]] = []
        for item in items:
            product = await self.catalog.get_product_model(item["product_id"])
            if not product:
                raise NotFoundError(f"Product not found: {item['product_id']}")
            if not product.is_active:
                raise ValidationError(f"{product.name} is no longer available")

            quantity = int(item.get("quantity", 1))
            if quantity < 1:
                raise ValidationError("Quantity must be at least 1")

            if not await self.catalog.update_stock(product.id, -quantity):
                await self.db.refresh(product, ["stock"])
                raise ValidationError(
                    f"Not enough stock for {product.name}. Available: {product.stock}"
                )
            lines.append((product, item))

        # Price server-side
        config = await SettingsService(self.db).get_pricing_config()
        items_price = pricing.calculate_subtotal(
            [(product.effective_price, int(item.get("quantity", 1))) for product, item in lines]
        )
        tax_price = pricing.calculate_tax(items_price, config.tax_rate)
        shipping_price = pricing.calculate_shipping(
            items_price, delivery_option, config.free_shipping_threshold, config.method_costs
        )

        coupon: Coupon | None = None
        discount = pricing.ZERO
        if coupon_code:
            coupon = await self.coupons.find_valid(coupon_code)
            await self.coupons.check_eligibility(
                coupon, items_price, [product.id for product, _ in lines], user
            )
            discount = self.coupons.discount_for(coupon, items_price)

        total_price = pricing.calculate_total(items_price, shipping_price, tax_price, discount)

        details = order_details or {}
        order = Order(
            order_number=await self._unique_order_number(),
            user_id=user.id,
            shipping_full_name=shipping_address["full_name"],
            shipping_mobile_number=shipping_address["mobile_number"],
            shipping_address=shipping_address["address"],
            shipping_city=shipping_address["city"],
            shipping_state=shipping_address["state"],
            shipping_zip=shipping_address["zip"],
            shipping_country=shipping_address["country"],
            order_for=details.get("order_for"),
            birth_date=details.get("birth_date"),
            special_instructions=details.get("special_instructions"),
            payment_method=payment_method,
            delivery_option=delivery_option,
            items_price=items_price,
            tax_price=tax_price,
            shipping_price=shipping_price,
            discount_amount=discount,
            coupon_code=coupon.code if coupon else None,
            total_price=total_price,
            wallet_amount_used=pricing.ZERO,
            reward_points=pricing.ZERO,
            is_paid=False,
            status=OrderStatus.PROCESSING,
            estimated_delivery_date=pricing.estimated_delivery(delivery_option),
            items=[
                OrderItem(
                    product_id=product.id,
                    name=product.name,
                    image=product.images[0] if product.images else None,
                    price=product.effective_price,
                    quantity=int(item.get("quantity", 1)),
                    message_on_cake=item.get("message_on_cake"),
                    special_instructions=item.get("special_instructions"),
                )
                for product, item in lines
            ],
        )
        order.add_status(OrderStatus.PROCESSING, "Order placed")
        self.db.add(order)
        await self.db.flush()

        if coupon:
            await self.coupons.redeem(coupon, user.id, order.id)

        # Wallet points, capped at the order total
        if use_wallet_points and wallet_amount > 0:
            points = min(pricing.to_money(wallet_amount), total_price)
            if user.wallet_balance < points:
                raise ValidationError("Insufficient wallet balance")
            if points > 0:
                await self.wallet.debit(
                    user, points, f"Points used for order #{order.order_number}", order.id
                )
                order.wallet_amount_used = points
                await self.wallet.settle_order(order, user)

        # Reward points, credited exactly once per order
        rewards = pricing.reward_points_for(total_price, settings.reward_rate)
        if rewards > 0:
            await self.wallet.credit(
                user, rewards, f"Reward points for order #{order.order_number}", order.id
            )
        order.reward_points = rewards

        await self.db.flush()
        if self.cache is not None:
            after_commit(self.db, self.cache.invalidate)

        logger.info(
            f"Order {order.order_number} placed by user {user.id}: "
            f"total={total_price} wallet={order.wallet_amount_used} rewards={rewards}"
        )
        return order

    # ==================== Listings ====================

    async def list_orders(
        self,
        keyword: str | None = None,
        status: OrderStatus | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int = 1,
        page_size: int = 10,
    ) -> dict[str, Any]:
        """All orders, newest first, for administrators."""
        conditions = []
        if keyword:
            conditions.append(Order.order_number.ilike(f"%{keyword}%"))
        if status:
            conditions.append(Order.status == status)
        if start_date and end_date:
            conditions.append(Order.created_at.between(start_date, end_date))

        total = (await self.db.execute(select(func.count(Order.id)).where(*conditions))).scalar_one()
        query = (
            select(Order)
            .options(selectinload(Order.user))
            .where(*conditions)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(page_size)
            .offset(page_size * (page - 1))
        )
        orders = (await self.db.execute(query)).scalars().all()

        return {
            "orders": [order_to_dict(o, include_user=True) for o in orders],
            "page": page,
            "pages": math.ceil(total / page_size),
            "total": total,
        }

    async def list_user_orders(self, user: User, page: int = 1, page_size: int = 10) -> dict[str, Any]:
        """The user's own orders, newest first."""
        total = (
            await self.db.execute(select(func.count(Order.id)).where(Order.user_id == user.id))
        ).scalar_one()
        query = (
            select(Order)
            .where(Order.user_id == user.id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(page_size)
            .offset(page_size * (page - 1))
        )
        orders = (await self.db.execute(query)).scalars().all()

        return {
            "orders": [order_to_dict(o) for o in orders],
            "page": page,
            "pages": math.ceil(total / page_size),
            "total": total,
        }

    async def status_counts(self) -> dict[str, int]:
        """Number of orders per status."""
        query = select(Order.status, func.count(Order.id)).group_by(Order.status)
        rows = (await self.db.execute(query)).all()
        return {status.value: count for status, count in rows}

    # ==================== Lifecycle ====================

    def record_payment(self, order: Order, payment_result: dict[str, Any], comment: str) -> bool:
        """
        Mark an order paid.

        Returns:
            False if the order was already paid (nothing changed)
        """
        if order.is_paid:
            return False
        order.is_paid = True
        order.paid_at = datetime.utcnow()
        order.payment_result = payment_result
        order.add_status(order.status, comment)
        return True

    async def mark_paid(self, order_id: int, user: User, payment_result: dict[str, Any]) -> Order:
        """Record an externally completed payment."""
        order = await self._load(order_id)
        self._check_access(order, user, "update")

        if order.is_cancelled:
            raise ValidationError("Cannot pay for a cancelled order")
        if not self.record_payment(order, payment_result, "Payment completed"):
            raise ValidationError("Order is already paid")

        if order.reward_points <= 0:
            rewards = pricing.reward_points_for(order.total_price, settings.reward_rate)
            if rewards > 0:
                owner = await self.get_owner(order)
                await self.wallet.credit(
                    owner, rewards, f"Reward points for order #{order.order_number}", order.id
                )
                order.reward_points = rewards

        await self.db.flush()
        logger.info(f"Order {order.order_number} marked paid ({payment_result.get('id')})")
        return order

    async def update_status(
        self,
        order_id: int,
        status: OrderStatus,
        comment: str | None = None,
    ) -> Order:
        """Move an order to a new status (admin)."""
        order = await self._load(order_id)

        if status == OrderStatus.CANCELLED:
            return await self._cancel(order, comment or "Cancelled by admin")

        if order.status == OrderStatus.CANCELLED and status != OrderStatus.REFUNDED:
            raise ValidationError("Cannot change the status of a cancelled order")

        order.status = status
        order.add_status(status, comment or "")

        if status == OrderStatus.DELIVERED:
            order.is_delivered = True
            order.delivered_at = datetime.utcnow()

        await self.db.flush()
        logger.info(f"Order {order.order_number} status -> {status.value}")
        return order

    async def cancel_order(self, order_id: int, user: User, reason: str | None = None) -> Order:
        """Cancel an undelivered order (owner or admin)."""
        order = await self._load(order_id)
        self._check_access(order, user, "cancel")
        return await self._cancel(order, reason or "Cancelled by customer")

    async def _cancel(self, order: Order, reason: str) -> Order:
        if order.is_delivered:
            raise ValidationError("Cannot cancel an order that has been delivered")
        if order.status == OrderStatus.CANCELLED:
            raise ValidationError("Order is already cancelled")

        order.status = OrderStatus.CANCELLED
        order.cancel_reason = reason
        order.add_status(OrderStatus.CANCELLED, reason)

        if order.is_paid:
            order.add_status(OrderStatus.REFUNDED, "Refund initiated for cancelled order")

        if order.wallet_amount_used > 0:
            owner = await self.get_owner(order)
            await self.wallet.credit(
                owner,
                order.wallet_amount_used,
                f"Refund for cancelled order #{order.order_number}",
                order.id,
            )

        for item in order.items:
            if item.product_id is not None:
                await self.catalog.update_stock(item.product_id, item.quantity)

        await self.db.flush()
        if self.cache is not None:
            after_commit(self.db, self.cache.invalidate)

        logger.info(f"Order {order.order_number} cancelled: {reason}")
        return order

    async def delete_order(self, order_id: int) -> None:
        order = await self._load(order_id)
        await self.db.delete(order)
        await self.db.flush()
        logger.info(f"Order {order.order_number} deleted")
