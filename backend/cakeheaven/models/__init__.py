"""ORM models."""

from cakeheaven.models.coupon import Coupon, CouponScope, CouponUsage, DiscountType
from cakeheaven.models.settings import StoreSettings
from cakeheaven.models.shop import (
    CakeType,
    DeliveryOption,
    EggOption,
    Festival,
    Flavor,
    Layer,
    MainCategory,
    Occasion,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusEntry,
    PaymentMethod,
    Product,
    ProductReview,
    Shape,
    SubCategory,
)
from cakeheaven.models.user import Address, Gender, User, UserRole, WalletTransaction

__all__ = [
    "Address",
    "CakeType",
    "Coupon",
    "CouponScope",
    "CouponUsage",
    "DeliveryOption",
    "DiscountType",
    "EggOption",
    "Festival",
    "Flavor",
    "Gender",
    "Layer",
    "MainCategory",
    "Occasion",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusEntry",
    "PaymentMethod",
    "Product",
    "ProductReview",
    "Shape",
    "StoreSettings",
    "SubCategory",
    "User",
    "UserRole",
    "WalletTransaction",
]
