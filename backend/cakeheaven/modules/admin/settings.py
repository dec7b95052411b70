"""
Settings Service - Store-wide configuration singleton.

Sections:
- general (store identity, currency, tax rate)
- email (SMTP used for outgoing mail)
- payment (gateway toggles and keys)
- shipping (free shipping threshold, delivery methods)
- user (registration and account policy)
"""

import smtplib
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from loguru import logger
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.exceptions import DeliveryError, ValidationError
from cakeheaven.models.settings import StoreSettings
from cakeheaven.modules.notifications.email import EmailService, SMTPConfig

# ==================== Sections ====================


class GeneralSection(BaseModel):
    store_name: str = "Cake Heaven"
    store_email: str = ""
    store_phone: str = ""
    store_address: str = ""
    currency: str = "INR"
    currency_symbol: str = "₹"
    tax_rate: float = 5
    enable_reviews: bool = True
    enable_wishlist: bool = True
    maintenance_mode: bool = False
    logo_url: str = "/logo.png"


class EmailSection(BaseModel):
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    smtp_from_name: str = "Cake Heaven"
    enable_ssl: bool = True
    enable_templates: bool = True


class CustomPaymentMethod(BaseModel):
    id: str
    name: str
    fee: float = 0
    is_active: bool = True


class PaymentSection(BaseModel):
    enable_paypal: bool = False
    paypal_client_id: str = ""
    paypal_client_secret: str = ""
    paypal_sandbox_mode: bool = True

    enable_stripe: bool = False
    stripe_publishable_key: str = ""
    stripe_secret_key: str = ""
    stripe_test_mode: bool = True

    enable_razorpay: bool = True
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_test_mode: bool = True

    enable_cash_on_delivery: bool = True
    cod_fee: float = 0

    custom_payment_methods: list[CustomPaymentMethod] = []


class ShippingMethod(BaseModel):
    id: str
    name: str
    cost: float = 0
    min_delivery_days: int = 1
    max_delivery_days: int = 5
    is_active: bool = True


class PickupLocation(BaseModel):
    id: str
    name: str
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    contact_number: str = ""
    opening_hours: str = ""
    is_active: bool = True


class ShippingOrigin(BaseModel):
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    country: str = "India"


class ShippingSection(BaseModel):
    enable_shipping: bool = True
    free_shipping_threshold: float = 1000
    shipping_methods: list[ShippingMethod] = [
        ShippingMethod(id="standard", name="Standard Delivery", cost=100, min_delivery_days=3, max_delivery_days=3),
        ShippingMethod(id="express", name="Express Delivery", cost=150, min_delivery_days=1, max_delivery_days=1),
        ShippingMethod(id="same-day", name="Same Day Delivery", cost=200, min_delivery_days=0, max_delivery_days=0),
    ]
    enable_local_pickup: bool = True
    pickup_locations: list[PickupLocation] = []
    shipping_origin: ShippingOrigin = ShippingOrigin()


class UserSection(BaseModel):
    user_registration: bool = True
    require_email_verification: bool = True
    require_approval: bool = False
    allow_guest_checkout: bool = True

    minimum_password_length: int = 8
    password_require_uppercase: bool = True
    password_require_number: bool = True
    password_require_symbol: bool = False

    session_timeout: int = 60
    max_login_attempts: int = 5
    remember_me_duration: int = 30

    store_customer_ip: bool = True
    store_customer_location: bool = False
    cookie_consent_required: bool = True

    send_welcome_email: bool = True
    send_order_confirmation: bool = True
    send_shipping_updates: bool = True
    send_abandoned_cart_reminder: bool = False


SECTIONS: dict[str, type[BaseModel]] = {
    "general": GeneralSection,
    "email": EmailSection,
    "payment": PaymentSection,
    "shipping": ShippingSection,
    "user": UserSection,
}

PAYMENT_GATEWAYS = {
    "paypal": "PayPal configuration is valid",
    "stripe": "Stripe configuration is valid",
    "razorpay": "Razorpay configuration is valid",
}


@dataclass
class PricingConfig:
    """Slice of store settings that feeds order pricing."""

    tax_rate: Decimal = Decimal("5")
    free_shipping_threshold: Decimal = Decimal("1000")
    method_costs: dict[str, float] = field(default_factory=dict)


def settings_to_dict(store: StoreSettings) -> dict[str, Any]:
    data: dict[str, Any] = {"id": store.id}
    for name, schema in SECTIONS.items():
        data[name] = schema.model_validate(getattr(store, name) or {}).model_dump()
    data["updated_at"] = store.updated_at.isoformat() if store.updated_at else None
    return data


class SettingsService:
    """
    Service for the store settings singleton.

    Usage:
        service = SettingsService(db_session)
        pricing = await service.get_pricing_config()
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self) -> StoreSettings:
        """Return the settings row, creating it with defaults on first use."""
        result = await self.db.execute(select(StoreSettings).order_by(StoreSettings.id).limit(1))
        store = result.scalar_one_or_none()
        if store:
            return store

        store = StoreSettings(
            **{name: schema().model_dump() for name, schema in SECTIONS.items()}
        )
        self.db.add(store)
        await self.db.flush()
        logger.info("Created default store settings")
        return store

    async def update(self, sections: dict[str, dict[str, Any] | None]) -> StoreSettings:
        """Replace every section present in `sections`."""
        store = await self.get()
        for name, values in sections.items():
            if name not in SECTIONS or values is None:
                continue
            validated = SECTIONS[name].model_validate(values)
            setattr(store, name, validated.model_dump())

        await self.db.flush()
        logger.info(f"Store settings updated: {', '.join(k for k, v in sections.items() if v is not None)}")
        return store

    async def get_pricing_config(self) -> PricingConfig:
        store = await self.get()
        general = GeneralSection.model_validate(store.general or {})
        shipping = ShippingSection.model_validate(store.shipping or {})
        return PricingConfig(
            tax_rate=Decimal(str(general.tax_rate)),
            free_shipping_threshold=Decimal(str(shipping.free_shipping_threshold)),
            method_costs={m.id: m.cost for m in shipping.shipping_methods if m.is_active},
        )

    async def test_email(self, config: EmailSection, test_email: str) -> None:
        """Send a test message with the supplied SMTP configuration."""
        if not all(
            [config.smtp_host, config.smtp_port, config.smtp_user, config.smtp_password, config.smtp_from, test_email]
        ):
            raise ValidationError("Please provide all required SMTP settings")

        mailer = EmailService(
            SMTPConfig(
                host=config.smtp_host,
                port=config.smtp_port,
                username=config.smtp_user,
                password=config.smtp_password,
                from_address=config.smtp_from,
                from_name=config.smtp_from_name,
                use_tls=config.enable_ssl,
            ),
            enabled=True,
        )
        try:
            await mailer.deliver(
                test_email,
                "Test Email from Cake Heaven",
                "This is a test email to verify your SMTP configuration.",
                "<p>This is a test email to verify your SMTP configuration.</p>"
                "<p>If you're seeing this, your email settings are working correctly!</p>",
            )
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Test email failed: {e}")
            raise DeliveryError(f"Failed to send test email: {e}")

    def test_payment_gateway(self, gateway: str) -> str:
        """Check a gateway name and return its confirmation message."""
        try:
            return PAYMENT_GATEWAYS[gateway]
        except KeyError:
            raise ValidationError("Invalid gateway specified")
