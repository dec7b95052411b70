"""
Store Settings API Endpoints (admin only).
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.database import get_db
from cakeheaven.core.security import require_admin
from cakeheaven.models.user import User
from cakeheaven.modules.admin.settings import (
    EmailSection,
    GeneralSection,
    PaymentSection,
    SettingsService,
    ShippingSection,
    UserSection,
    settings_to_dict,
)

router = APIRouter()


class SettingsUpdateRequest(BaseModel):
    """Sections to replace; omitted sections are left unchanged."""

    general: GeneralSection | None = None
    email: EmailSection | None = None
    payment: PaymentSection | None = None
    shipping: ShippingSection | None = None
    user: UserSection | None = None


class TestEmailRequest(BaseModel):
    config: EmailSection
    test_email: EmailStr


class TestPaymentRequest(BaseModel):
    gateway: str


@router.get("")
async def get_store_settings(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Store settings, created with defaults on first read."""
    return settings_to_dict(await SettingsService(db).get())


@router.put("")
async def update_store_settings(
    request: SettingsUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    sections = {
        name: section.model_dump() if section is not None else None
        for name, section in request
    }
    store = await SettingsService(db).update(sections)
    return settings_to_dict(store)


@router.post("/test-email")
async def test_email(
    request: TestEmailRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Send a test message with the supplied SMTP configuration."""
    await SettingsService(db).test_email(request.config, request.test_email)
    return {"success": True, "message": "Test email sent successfully"}


@router.post("/test-payment")
async def test_payment_gateway(
    request: TestPaymentRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    message = SettingsService(db).test_payment_gateway(request.gateway)
    return {"success": True, "message": message}
