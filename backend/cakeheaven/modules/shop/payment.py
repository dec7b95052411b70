"""
Payment Service - Stripe integration.

Handles:
- Direct card payments (confirmed PaymentIntents)
- Checkout sessions
- Webhook verification and order reconciliation
"""

import json
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.config import settings
from cakeheaven.core.exceptions import PaymentError, ValidationError
from cakeheaven.models.shop import Order
from cakeheaven.models.user import User
from cakeheaven.modules.shop.orders import OrderService


def to_cents(amount: Decimal) -> int:
    """Stripe expects integer amounts in the smallest currency unit."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentService:
    """
    Stripe payment service.

    Usage:
        payment = PaymentService(db_session)
        session = await payment.create_checkout_session(order_id, user)
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize Stripe with API key."""
        stripe.api_key = settings.stripe_secret_key
        self.db = db
        self.orders = OrderService(db)

    async def _payable_order(self, order_id: int, user: User) -> Order:
        order = await self.orders.get_order(order_id, user)
        if order.is_paid:
            raise ValidationError("Order is already paid")
        if order.is_cancelled:
            raise ValidationError("Cannot pay for a cancelled order")
        if order.amount_due <= 0:
            raise ValidationError("Nothing left to pay on this order")
        return order

    async def process_payment(
        self,
        order_id: int,
        payment_method_id: str,
        user: User,
    ) -> Order:
        """
        Charge the amount due with a confirmed PaymentIntent.

        Args:
            order_id: Order to pay
            payment_method_id: Stripe PaymentMethod created client-side
            user: Order owner or admin

        Returns:
            The paid order
        """
        order = await self._payable_order(order_id, user)

        try:
            intent = stripe.PaymentIntent.create(
                amount=to_cents(order.amount_due),
                currency=settings.shop_currency.lower(),
                payment_method=payment_method_id,
                confirm=True,
                description=f"Cake Heaven order #{order.order_number}",
                metadata={"order_id": str(order.id), "order_number": order.order_number},
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error processing payment for {order.order_number}: {e}")
            raise PaymentError(getattr(e, "user_message", None) or str(e))

        if intent.status != "succeeded":
            logger.warning(f"PaymentIntent {intent.id} for {order.order_number} is {intent.status}")
            raise PaymentError(f"Payment not completed (status: {intent.status})")

        self.orders.record_payment(
            order,
            {
                "id": intent.id,
                "status": intent.status,
                "update_time": datetime.utcnow().isoformat(),
                "email_address": user.email,
            },
            "Payment completed via Stripe",
        )
        await self.db.flush()

        logger.info(f"Order {order.order_number} paid via Stripe ({intent.id})")
        return order

    async def create_checkout_session(self, order_id: int, user: User) -> dict[str, Any]:
        """
        Create Stripe Checkout session for an unpaid order.

        Returns:
            Checkout session id and redirect URL
        """
        order = await self._payable_order(order_id, user)
        currency = settings.shop_currency.lower()

        def line(name: str, amount: Decimal, quantity: int = 1) -> dict[str, Any]:
            return {
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": name},
                    "unit_amount": to_cents(amount),
                },
                "quantity": quantity,
            }

        if order.discount_amount > 0 or order.wallet_amount_used > 0:
            line_items = [line(f"Cake Heaven order #{order.order_number}", order.amount_due)]
        else:
            line_items = [line(item.name, item.price, item.quantity) for item in order.items]
            if order.shipping_price > 0:
                line_items.append(line("Shipping", order.shipping_price))
            if order.tax_price > 0:
                line_items.append(line("Tax", order.tax_price))

        try:
            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                line_items=line_items,
                mode="payment",
                success_url=f"{settings.frontend_url}/order/{order.id}?success=true",
                cancel_url=f"{settings.frontend_url}/order/{order.id}?canceled=true",
                customer_email=user.email,
                metadata={"order_id": str(order.id), "order_number": order.order_number},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating checkout session: {e}")
            raise PaymentError(getattr(e, "user_message", None) or str(e))

        logger.info(f"Checkout session {session.id} created for {order.order_number}")
        return {
            "session_id": session.id,
            "url": session.url,
        }

    def verify_webhook(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Verify Stripe webhook signature and return event.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header

        Returns:
            {"type": ..., "data": <event object>}
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature or "",
                settings.stripe_webhook_secret,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Invalid Stripe webhook signature: {e}")
            raise PaymentError(f"Webhook Error: {e}")
        except ValueError as e:
            logger.warning(f"Malformed Stripe webhook payload: {e}")
            raise PaymentError(f"Webhook Error: {e}")

        # Reconcile from plain dicts of the verified body
        body = json.loads(payload)
        logger.debug(f"Verified Stripe event {event.id}")
        return {
            "type": body["type"],
            "data": body["data"]["object"],
        }

    async def handle_event(self, event: dict[str, Any]) -> None:
        """Reconcile a verified event with local orders."""
        if event["type"] != "checkout.session.completed":
            logger.info(f"Unhandled Stripe event type {event['type']}")
            return

        session = event["data"]
        metadata = session.get("metadata") or {}
        order_id = metadata.get("order_id")
        if not order_id:
            logger.warning(f"Checkout session {session.get('id')} has no order_id metadata")
            return

        order = await self.db.get(Order, int(order_id))
        if not order:
            logger.warning(f"Checkout session {session.get('id')} references unknown order {order_id}")
            return

        customer = session.get("customer_details") or {}
        paid = self.orders.record_payment(
            order,
            {
                "id": session.get("payment_intent") or session.get("id"),
                "status": "COMPLETED",
                "update_time": datetime.utcnow().isoformat(),
                "email_address": customer.get("email") or session.get("customer_email"),
            },
            "Payment completed via Stripe checkout",
        )
        if not paid:
            logger.info(f"Order {order.order_number} already paid, webhook ignored")
            return

        await self.db.flush()
        logger.info(f"Order {order.order_number} paid via Stripe checkout")
