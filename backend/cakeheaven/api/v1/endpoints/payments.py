"""
Payments API Endpoints.

Stripe card payments, Checkout sessions and the Stripe webhook.
"""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.database import get_db
from cakeheaven.core.security import get_current_user
from cakeheaven.models.user import User
from cakeheaven.modules.notifications import EmailService, get_email_service
from cakeheaven.modules.shop.orders import order_to_dict
from cakeheaven.modules.shop.payment import PaymentService

router = APIRouter()


class StripePaymentRequest(BaseModel):
    order_id: int
    payment_method_id: str


class CheckoutRequest(BaseModel):
    order_id: int


@router.post("/stripe")
async def stripe_payment(
    request: StripePaymentRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    mailer: EmailService = Depends(get_email_service),
) -> dict[str, Any]:
    """Charge a card for the amount due on an order."""
    order = await PaymentService(db).process_payment(
        request.order_id, request.payment_method_id, user
    )

    background_tasks.add_task(
        mailer.send_payment_confirmation,
        user.email,
        user.name,
        order.order_number,
        float(order.total_price),
    )
    return {
        "success": True,
        "message": "Payment successful",
        "order": order_to_dict(order),
    }


@router.post("/stripe/checkout")
async def stripe_checkout(
    request: CheckoutRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Create a hosted Checkout session and return its redirect URL."""
    return await PaymentService(db).create_checkout_session(request.order_id, user)


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    """
    Stripe Webhook Endpoint.

    Security:
    - Verifies the Stripe-Signature HMAC against the raw body
    - Returns 400 on invalid signature

    Reconciliation is idempotent, so Stripe retries are harmless.
    """
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature")

    payments = PaymentService(db)
    event = payments.verify_webhook(payload, signature)
    logger.info(f"Received Stripe webhook: {event['type']}")

    await payments.handle_event(event)
    return {"received": True}
