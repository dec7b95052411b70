"""
Shop models for the cake catalog and orders.

Includes:
- Products (cakes, cup-cakes, pastries, desserts)
- Reviews
- Orders with line items and status history
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cakeheaven.core.database import Base

if TYPE_CHECKING:
    from cakeheaven.models.user import User


# ==================== Catalog enums ====================


class MainCategory(str, PyEnum):
    CAKES = "Cakes"
    CUP_CAKES = "Cup-Cakes"
    PASTRY = "Pastry"
    DESSERTS = "Desserts"


class SubCategory(str, PyEnum):
    REGULAR = "Regular"
    TRENDING = "Trending Cakes"
    UNIQUE = "Unique Cakes"
    FEATURED = "Featured Cakes"


class Layer(str, PyEnum):
    ONE = "One"
    TWO = "Two"
    THREE = "Three"


class Flavor(str, PyEnum):
    CHOCOLATE = "Chocolate"
    BLUEBERRY = "Blueberry"
    PINEAPPLE = "Pineapple"
    FRESH_FRUIT = "Fresh Fruit"
    RED_VELVET = "Red Velvet"
    VANILLA = "Vanilla"
    BUTTERSCOTCH = "Butterscotch"
    OTHER = "Other"


class Shape(str, PyEnum):
    SQUARE = "Square"
    CIRCLE = "Circle"
    HEART = "Heart"
    TALL = "Tall"
    OTHER = "Other"


class Occasion(str, PyEnum):
    BIRTHDAY = "Birthday"
    ANNIVERSARY = "Anniversary"
    WEDDING = "Wedding"
    BABY_SHOWER = "Baby Shower"
    ENGAGEMENT = "Engagement"
    MOTHERS_DAY = "Mother's Day"
    FATHERS_DAY = "Father's Day"
    OTHER = "Other"


class Festival(str, PyEnum):
    VALENTINES_DAY = "Valentine's Day"
    CHRISTMAS = "Christmas"
    FRIENDSHIPS_DAY = "Friendship's Day"
    TEACHERS_DAY = "Teacher's Day"
    NEW_YEAR = "New Year"
    FAREWELL = "Farewell Cakes"
    CLASSIC = "Classic Cakes"
    NONE = "None"


class CakeType(str, PyEnum):
    REGULAR = "Regular"
    PULL_ME_UP = "Pull Me Up Cake"
    PINATA = "Pinata Cake"
    HALF = "Half Cake"
    BOMB = "Bomb Cake"
    BENTO = "Bento Cake"
    SURPRISE_BOX = "Surprise Cake Box"
    PHOTO_PULLING = "Photo Pulling Cake"
    MOUSSE = "Mousse"
    NONE = "None"


class EggOption(str, PyEnum):
    EGG = "Egg"
    EGGLESS = "Eggless"


# ==================== Order enums ====================


class OrderStatus(str, PyEnum):
    """Order processing status."""

    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, PyEnum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"
    WALLET = "wallet"
    CASH_ON_DELIVERY = "cash_on_delivery"


class DeliveryOption(str, PyEnum):
    STANDARD = "standard"
    EXPRESS = "express"
    SAME_DAY = "same-day"


# ==================== Catalog ====================


class Product(Base):
    """Cake or other bakery product for sale."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    description: Mapped[str] = mapped_column(Text)

    # Pricing
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    discount_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))

    # Classification
    main_category: Mapped[MainCategory] = mapped_column(Enum(MainCategory), index=True)
    sub_category: Mapped[SubCategory | None] = mapped_column(Enum(SubCategory))
    layer: Mapped[Layer] = mapped_column(Enum(Layer), default=Layer.ONE)
    flavor: Mapped[Flavor] = mapped_column(Enum(Flavor), index=True)
    shape: Mapped[Shape] = mapped_column(Enum(Shape))
    occasion: Mapped[Occasion] = mapped_column(Enum(Occasion), index=True)
    festival: Mapped[Festival] = mapped_column(Enum(Festival), default=Festival.NONE)
    cake_type: Mapped[CakeType] = mapped_column(Enum(CakeType), default=CakeType.REGULAR)
    egg_or_eggless: Mapped[EggOption] = mapped_column(Enum(EggOption))

    # Inventory
    stock: Mapped[int] = mapped_column(Integer, default=10)
    weight: Mapped[str] = mapped_column(String(50))

    # Media and details
    images: Mapped[list[str]] = mapped_column(JSON, default=list)
    customization: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    ingredients: Mapped[list[str]] = mapped_column(JSON, default=list)
    nutritional_info: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)

    # Flags
    featured: Mapped[bool] = mapped_column(Boolean, default=False)
    is_best_seller: Mapped[bool] = mapped_column(Boolean, default=False)
    is_new: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    available_from: Mapped[datetime | None] = mapped_column(DateTime, default=datetime.utcnow)
    available_until: Mapped[datetime | None] = mapped_column(DateTime)

    # Ratings
    avg_rating: Mapped[float] = mapped_column(Float, default=0.0)
    num_reviews: Mapped[int] = mapped_column(Integer, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    reviews: Mapped[list["ProductReview"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductReview.id",
        lazy="selectin",
    )

    @property
    def effective_price(self) -> Decimal:
        """Price a customer pays per unit."""
        return self.discount_price if self.discount_price else self.price

    def recalculate_rating(self) -> None:
        """Refresh avg_rating and num_reviews from the loaded reviews."""
        self.num_reviews = len(self.reviews)
        if self.num_reviews:
            self.avg_rating = sum(r.rating for r in self.reviews) / self.num_reviews
        else:
            self.avg_rating = 0.0

    def __repr__(self) -> str:
        return f"<Product {self.id}: {self.name}>"


class ProductReview(Base):
    """Product review from customer."""

    __tablename__ = "product_reviews"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"))
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))

    name: Mapped[str] = mapped_column(String(100))
    rating: Mapped[int] = mapped_column(Integer)  # 1-5
    comment: Mapped[str] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    product: Mapped["Product"] = relationship(back_populates="reviews")


# ==================== Orders ====================


class Order(Base):
    """Customer order."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)

    # Shipping address snapshot
    shipping_full_name: Mapped[str] = mapped_column(String(255))
    shipping_mobile_number: Mapped[str] = mapped_column(String(30))
    shipping_address: Mapped[str] = mapped_column(String(500))
    shipping_city: Mapped[str] = mapped_column(String(100))
    shipping_state: Mapped[str] = mapped_column(String(100))
    shipping_zip: Mapped[str] = mapped_column(String(20))
    shipping_country: Mapped[str] = mapped_column(String(100))

    # Order details
    order_for: Mapped[str | None] = mapped_column(String(255))
    birth_date: Mapped[datetime | None] = mapped_column(DateTime)
    special_instructions: Mapped[str | None] = mapped_column(Text)

    # Payment
    payment_method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod))
    delivery_option: Mapped[DeliveryOption] = mapped_column(
        Enum(DeliveryOption), default=DeliveryOption.STANDARD
    )
    payment_result: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Pricing
    items_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    tax_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    shipping_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    coupon_code: Mapped[str | None] = mapped_column(String(20))
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    wallet_amount_used: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    reward_points: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))

    # Fulfilment
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus), default=OrderStatus.PROCESSING, index=True
    )
    is_delivered: Mapped[bool] = mapped_column(Boolean, default=False)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime)
    cancel_reason: Mapped[str | None] = mapped_column(String(500))
    estimated_delivery_date: Mapped[datetime | None] = mapped_column(DateTime)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="orders")
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="selectin",
    )
    status_history: Mapped[list["OrderStatusEntry"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusEntry.id",
        lazy="selectin",
    )

    @property
    def amount_due(self) -> Decimal:
        """Part of the total not yet covered by wallet points."""
        return max(self.total_price - self.wallet_amount_used, Decimal("0"))

    @property
    def is_cancelled(self) -> bool:
        return self.status in (OrderStatus.CANCELLED, OrderStatus.REFUNDED)

    def add_status(self, status: OrderStatus, comment: str | None = None) -> None:
        """Append a status history entry."""
        self.status_history.append(OrderStatusEntry(status=status, comment=comment))

    def __repr__(self) -> str:
        return f"<Order {self.order_number}>"


class OrderItem(Base):
    """Line item in an order."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"))
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id", ondelete="SET NULL"))

    # Snapshot at time of order
    name: Mapped[str] = mapped_column(String(255))
    image: Mapped[str | None] = mapped_column(String(500))
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    quantity: Mapped[int] = mapped_column(Integer, default=1)

    # Customizations
    message_on_cake: Mapped[str | None] = mapped_column(String(255))
    special_instructions: Mapped[str | None] = mapped_column(Text)

    # Relationships
    order: Mapped["Order"] = relationship(back_populates="items")


class OrderStatusEntry(Base):
    """Append-only record of an order status transition."""

    __tablename__ = "order_status_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"))
    status: Mapped[OrderStatus] = mapped_column(Enum(OrderStatus))
    comment: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    order: Mapped["Order"] = relationship(back_populates="status_history")
