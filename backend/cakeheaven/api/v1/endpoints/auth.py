"""
Auth API Endpoints.

Signup, login, profile, addresses, wallet, favorites and
admin user management.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.config import settings
from cakeheaven.core.database import get_db
from cakeheaven.core.security import create_access_token, get_current_user, require_admin
from cakeheaven.models.user import Gender, User
from cakeheaven.modules.accounts import AccountService, address_to_dict, user_to_dict
from cakeheaven.modules.notifications import EmailService, get_email_service
from cakeheaven.modules.shop.service import product_to_dict
from cakeheaven.modules.shop.wallet import WalletService

router = APIRouter()


# ==================== Schemas ====================


def check_password_strength(value: str) -> str:
    if not re.search(r"\d", value):
        raise ValueError("Password must contain a number")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain a lowercase letter")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain an uppercase letter")
    return value


class SignupRequest(BaseModel):
    """Register new account."""

    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)

    _strong_password = field_validator("password")(check_password_strength)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    password: str = Field(..., min_length=6)

    _strong_password = field_validator("password")(check_password_strength)


class ProfileUpdateRequest(BaseModel):
    """Partial profile update."""

    name: str | None = Field(None, min_length=2, max_length=50)
    email: EmailStr | None = None
    password: str | None = Field(None, min_length=6)
    date_of_birth: date | None = None
    gender: Gender | None = None
    phone_number: str | None = None
    profile_image: str | None = None

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str | None) -> str | None:
        return check_password_strength(value) if value else value


class AddressRequest(BaseModel):
    """Saved shipping address."""

    full_name: str = Field(..., min_length=1)
    mobile_number: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    is_default: bool = False


class AddressUpdateRequest(BaseModel):
    full_name: str | None = None
    mobile_number: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = None
    is_default: bool | None = None


class WalletAmountRequest(BaseModel):
    order_id: int
    amount: Decimal = Field(..., gt=0)


class UserStatusRequest(BaseModel):
    is_active: bool


def _session_response(user: User, token: str) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "wallet_balance": float(user.wallet_balance),
        "token": token,
    }


# ==================== Signup / Login ====================


@router.post("/signup", status_code=201)
async def signup(
    request: SignupRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    mailer: EmailService = Depends(get_email_service),
) -> dict[str, Any]:
    """Create account; new customers start with signup bonus points."""
    user, token = await AccountService(db, mailer).register(
        request.name, request.email, request.password
    )
    background_tasks.add_task(mailer.send_welcome, user.email, user.name, settings.signup_bonus_points)
    return _session_response(user, token)


@router.post("/login")
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    user, token = await AccountService(db).login(request.email, request.password)
    return _session_response(user, token)


@router.post("/forgotpassword")
async def forgot_password(
    request: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    mailer: EmailService = Depends(get_email_service),
) -> dict[str, Any]:
    """Email a password reset link."""
    await AccountService(db, mailer).forgot_password(request.email)
    return {"success": True, "data": "Email sent"}


@router.put("/resetpassword/{token}")
async def reset_password(
    token: str,
    request: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    await AccountService(db).reset_password(token, request.password)
    return {
        "success": True,
        "message": "Password reset successful. Please log in with your new password.",
    }


# ==================== Profile ====================


@router.get("/profile")
async def get_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    return await AccountService(db).get_profile(user)


@router.put("/profile")
async def update_profile(
    request: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Update profile fields; returns a fresh token."""
    accounts = AccountService(db)
    await accounts.update_profile(user, request.model_dump(exclude_unset=True))
    data = await accounts.get_profile(user)
    data["token"] = create_access_token(user.id)
    return data


@router.post("/profile/address", status_code=201)
async def add_address(
    request: AddressRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    addresses = await AccountService(db).add_address(user, request.model_dump())
    return {
        "message": "Address added successfully",
        "addresses": [address_to_dict(a) for a in addresses],
    }


@router.put("/profile/address/{address_id}")
async def update_address(
    address_id: int,
    request: AddressUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    addresses = await AccountService(db).update_address(
        user, address_id, request.model_dump(exclude_unset=True)
    )
    return {
        "message": "Address updated successfully",
        "addresses": [address_to_dict(a) for a in addresses],
    }


@router.delete("/profile/address/{address_id}")
async def delete_address(
    address_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    addresses = await AccountService(db).delete_address(user, address_id)
    return {
        "message": "Address deleted successfully",
        "addresses": [address_to_dict(a) for a in addresses],
    }


# ==================== Wallet ====================


@router.get("/wallet")
async def get_wallet(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Wallet balance and history, newest first."""
    return await WalletService(db).get_wallet(user)


@router.post("/wallet/rewards")
async def add_reward_points(
    request: WalletAmountRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    return await WalletService(db).add_reward_points(user, request.order_id, request.amount)


@router.post("/wallet/use")
async def use_wallet_points(
    request: WalletAmountRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Pay part or all of an unpaid order with points."""
    return await WalletService(db).use_wallet_points(user, request.order_id, request.amount)


# ==================== Favorites ====================


@router.get("/favorites")
async def get_favorites(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    favorites = await AccountService(db).get_favorites(user)
    return {
        "count": len(favorites),
        "favorites": [product_to_dict(p, include_reviews=False) for p in favorites],
    }


@router.post("/favorites/{product_id}")
async def add_favorite(
    product_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    favorites = await AccountService(db).add_favorite(user, product_id)
    return {
        "message": "Product added to favorites",
        "favorites": [p.id for p in favorites],
    }


@router.delete("/favorites/{product_id}")
async def remove_favorite(
    product_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    favorites = await AccountService(db).remove_favorite(user, product_id)
    return {
        "message": "Product removed from favorites",
        "favorites": [p.id for p in favorites],
    }


# ==================== Admin ====================


@router.get("/admin/users")
async def list_users(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    users = await AccountService(db).list_users()
    return [user_to_dict(u) for u in users]


@router.patch("/users/{user_id}/status")
async def update_user_status(
    user_id: int,
    request: UserStatusRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Activate or deactivate an account."""
    user = await AccountService(db).set_status(user_id, request.is_active)
    return {
        "success": True,
        "message": f"User {'activated' if user.is_active else 'deactivated'} successfully",
        "user": {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "is_active": user.is_active,
        },
    }


@router.post("/users/{user_id}/reset-password")
async def admin_reset_password(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    mailer: EmailService = Depends(get_email_service),
) -> dict[str, Any]:
    await AccountService(db, mailer).admin_reset_password(user_id)
    return {"success": True, "message": "Password reset email sent"}
