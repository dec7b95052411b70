"""
Coupon models.

A coupon is a discount rule scoped to everything, a category, specific
products or specific users, with global and per-user usage limits.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cakeheaven.core.database import Base


class DiscountType(str, PyEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class CouponScope(str, PyEnum):
    """What a coupon may be applied to."""

    ALL = "all"
    CATEGORY = "category"
    PRODUCT = "product"
    USER = "user"


class Coupon(Base):
    """Discount code."""

    __tablename__ = "coupons"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    description: Mapped[str] = mapped_column(String(500))

    # Discount rule
    discount_type: Mapped[DiscountType] = mapped_column(
        Enum(DiscountType), default=DiscountType.PERCENTAGE
    )
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    minimum_purchase: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    maximum_discount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))

    # Validity
    valid_from: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    valid_until: Mapped[datetime] = mapped_column(DateTime, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Scope
    applicable_to: Mapped[CouponScope] = mapped_column(Enum(CouponScope), default=CouponScope.ALL)
    applicable_products: Mapped[list[int]] = mapped_column(JSON, default=list)
    applicable_categories: Mapped[list[str]] = mapped_column(JSON, default=list)
    applicable_users: Mapped[list[int]] = mapped_column(JSON, default=list)

    # Usage limits
    usage_limit: Mapped[int | None] = mapped_column(Integer)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    per_user_limit: Mapped[int | None] = mapped_column(Integer)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    usages: Mapped[list["CouponUsage"]] = relationship(
        back_populates="coupon",
        cascade="all, delete-orphan",
        order_by="CouponUsage.id",
        passive_deletes=True,
    )

    def is_valid_at(self, moment: datetime) -> bool:
        """Active and inside its validity window."""
        return self.is_active and self.valid_from <= moment <= self.valid_until

    def __repr__(self) -> str:
        return f"<Coupon {self.code}>"


class CouponUsage(Base):
    """Audit record of one coupon redemption."""

    __tablename__ = "coupon_usages"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    coupon_id: Mapped[int] = mapped_column(ForeignKey("coupons.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    order_id: Mapped[int | None] = mapped_column(ForeignKey("orders.id", ondelete="SET NULL"))
    used_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    coupon: Mapped["Coupon"] = relationship(back_populates="usages")
