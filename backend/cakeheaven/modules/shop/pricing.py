"""
Pricing rules.

Pure functions over Decimal; all amounts are rounded to cents half-up.
Orders are always priced server-side with these helpers.
"""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from cakeheaven.models.coupon import DiscountType
from cakeheaven.models.shop import DeliveryOption

CENT = Decimal("0.01")
ZERO = Decimal("0")

DEFAULT_FREE_SHIPPING_THRESHOLD = Decimal("1000")
DEFAULT_TAX_RATE = Decimal("5")

# Flat delivery charges below the free-shipping threshold
DELIVERY_COSTS: dict[DeliveryOption, Decimal] = {
    DeliveryOption.STANDARD: Decimal("100"),
    DeliveryOption.EXPRESS: Decimal("150"),
    DeliveryOption.SAME_DAY: Decimal("200"),
}


def to_money(value: Any) -> Decimal:
    """Coerce to Decimal and round to cents."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_subtotal(lines: list[tuple[Decimal, int]]) -> Decimal:
    """Sum of unit price times quantity."""
    return to_money(sum((price * quantity for price, quantity in lines), ZERO))


def calculate_discount(
    discount_type: DiscountType,
    value: Decimal,
    base: Decimal,
    maximum: Decimal | None = None,
) -> Decimal:
    """
    Discount a coupon grants on `base`.

    Percentage discounts are capped at `maximum` when set; fixed
    discounts never exceed the base. The result is never negative.
    """
    value = Decimal(value)
    base = Decimal(base)

    if discount_type == DiscountType.PERCENTAGE:
        discount = base * value / Decimal("100")
        if maximum is not None and discount > maximum:
            discount = Decimal(maximum)
    else:
        discount = min(value, base)

    return to_money(max(discount, ZERO))


def calculate_tax(subtotal: Decimal, tax_rate: Decimal = DEFAULT_TAX_RATE) -> Decimal:
    """Tax on the item subtotal; `tax_rate` is a percentage."""
    return to_money(Decimal(subtotal) * Decimal(str(tax_rate)) / Decimal("100"))


def calculate_shipping(
    subtotal: Decimal,
    delivery_option: DeliveryOption = DeliveryOption.STANDARD,
    free_threshold: Decimal = DEFAULT_FREE_SHIPPING_THRESHOLD,
    method_costs: dict[str, Any] | None = None,
) -> Decimal:
    """
    Shipping charge for an order.

    Free once the subtotal exceeds the threshold; otherwise the flat cost
    of the delivery option, overridable per option by `method_costs`.
    """
    if Decimal(subtotal) > Decimal(str(free_threshold)):
        return ZERO.quantize(CENT)

    if method_costs and delivery_option.value in method_costs:
        return to_money(method_costs[delivery_option.value])

    return to_money(DELIVERY_COSTS[delivery_option])


def calculate_total(
    items_price: Decimal,
    shipping_price: Decimal,
    tax_price: Decimal,
    discount_amount: Decimal,
) -> Decimal:
    """total = items + shipping + tax - discount, floored at zero."""
    total = Decimal(items_price) + Decimal(shipping_price) + Decimal(tax_price)
    return to_money(max(total - Decimal(discount_amount), ZERO))


def reward_points_for(total: Decimal, rate: float = 0.10) -> Decimal:
    """Loyalty points earned on an order total, rounded to whole points."""
    points = Decimal(total) * Decimal(str(rate))
    return points.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def estimated_delivery(option: DeliveryOption, now: datetime | None = None) -> datetime:
    """Expected delivery time for a delivery option."""
    now = now or datetime.utcnow()
    if option == DeliveryOption.SAME_DAY:
        return now + timedelta(hours=12)
    if option == DeliveryOption.EXPRESS:
        return now + timedelta(days=1)
    return now + timedelta(days=3)
