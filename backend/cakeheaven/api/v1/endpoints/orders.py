"""
Orders API Endpoints.

Order placement, customer order history and admin order management.
Customer emails go out as background tasks once the transaction has
been committed.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.database import get_db
from cakeheaven.core.security import get_current_user, require_admin
from cakeheaven.models.shop import DeliveryOption, OrderStatus, PaymentMethod
from cakeheaven.models.user import User
from cakeheaven.modules.notifications import EmailService, get_email_service
from cakeheaven.modules.shop.cache import CatalogCache, get_catalog_cache
from cakeheaven.modules.shop.orders import OrderService, order_to_dict

router = APIRouter()


# ==================== Schemas ====================


class OrderItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1)
    message_on_cake: str | None = Field(None, max_length=255)
    special_instructions: str | None = None


class ShippingAddressRequest(BaseModel):
    full_name: str = Field(..., min_length=1)
    mobile_number: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class OrderDetailsRequest(BaseModel):
    order_for: str | None = None
    birth_date: datetime | None = None
    special_instructions: str | None = None


class CreateOrderRequest(BaseModel):
    """Place a new order. Prices are computed server-side."""

    items: list[OrderItemRequest] = Field(..., min_length=1)
    shipping_address: ShippingAddressRequest
    payment_method: PaymentMethod
    delivery_option: DeliveryOption = DeliveryOption.STANDARD
    order_details: OrderDetailsRequest | None = None
    coupon_code: str | None = None
    use_wallet_points: bool = False
    wallet_amount: Decimal = Field(Decimal("0"), ge=0)


class PaymentResultRequest(BaseModel):
    id: str
    status: str
    update_time: str | None = None
    email_address: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class StatusUpdateRequest(BaseModel):
    status: OrderStatus
    comment: str | None = None


# ==================== Customer ====================


@router.post("", status_code=201)
async def create_order(
    request: CreateOrderRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
    mailer: EmailService = Depends(get_email_service),
) -> dict[str, Any]:
    """
    Place order.

    Reserves stock, applies coupon and wallet points and credits reward
    points in a single transaction.
    """
    order = await OrderService(db, cache).place_order(
        user,
        items=[item.model_dump() for item in request.items],
        shipping_address=request.shipping_address.model_dump(),
        payment_method=request.payment_method,
        delivery_option=request.delivery_option,
        order_details=request.order_details.model_dump() if request.order_details else None,
        coupon_code=request.coupon_code,
        use_wallet_points=request.use_wallet_points,
        wallet_amount=request.wallet_amount,
    )

    background_tasks.add_task(
        mailer.send_order_confirmation,
        user.email,
        user.name,
        order.order_number,
        float(order.total_price),
        order.payment_method.value,
        order.estimated_delivery_date.strftime("%Y-%m-%d"),
        float(order.reward_points),
    )
    return order_to_dict(order)


@router.get("/myorders")
async def get_my_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    return await OrderService(db).list_user_orders(user, page, page_size)


@router.get("/status-counts")
async def get_status_counts(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, int]:
    return await OrderService(db).status_counts()


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Get order by ID (owner or admin)."""
    order = await OrderService(db).get_order(order_id, user)
    return order_to_dict(order, include_user=True)


@router.put("/{order_id}/pay")
async def pay_order(
    order_id: int,
    request: PaymentResultRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    mailer: EmailService = Depends(get_email_service),
) -> dict[str, Any]:
    """Record a payment completed by an external provider."""
    orders = OrderService(db)
    order = await orders.mark_paid(order_id, user, request.model_dump())
    owner = await orders.get_owner(order)

    background_tasks.add_task(
        mailer.send_payment_confirmation,
        owner.email,
        owner.name,
        order.order_number,
        float(order.total_price),
    )
    return order_to_dict(order)


@router.put("/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    background_tasks: BackgroundTasks,
    request: CancelOrderRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
    mailer: EmailService = Depends(get_email_service),
) -> dict[str, Any]:
    """Cancel order; wallet points are returned and stock restored."""
    orders = OrderService(db, cache)
    order = await orders.cancel_order(order_id, user, request.reason if request else None)
    owner = await orders.get_owner(order)

    background_tasks.add_task(
        mailer.send_cancellation,
        owner.email,
        owner.name,
        order.order_number,
        order.cancel_reason,
        float(order.wallet_amount_used),
    )
    return {"message": "Order cancelled successfully", "order": order_to_dict(order)}


# ==================== Admin ====================


@router.get("")
async def list_orders(
    keyword: str | None = Query(None, description="Order number fragment"),
    status: OrderStatus | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    return await OrderService(db).list_orders(
        keyword=keyword,
        status=status,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    )


@router.put("/{order_id}/status")
async def update_order_status(
    order_id: int,
    request: StatusUpdateRequest,
    background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
    mailer: EmailService = Depends(get_email_service),
) -> dict[str, Any]:
    orders = OrderService(db, cache)
    order = await orders.update_status(order_id, request.status, request.comment)
    owner = await orders.get_owner(order)

    background_tasks.add_task(
        mailer.send_status_update,
        owner.email,
        owner.name,
        order.order_number,
        order.status.value,
        request.comment,
    )
    return order_to_dict(order)


@router.delete("/{order_id}")
async def delete_order(
    order_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    await OrderService(db).delete_order(order_id)
    return {"message": "Order removed"}
