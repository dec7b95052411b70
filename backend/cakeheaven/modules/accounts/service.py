"""
Account Service - Registration, login and customer profile.

Covers:
- Signup (with wallet bonus) and login
- Profile and saved addresses
- Favorite products
- Password reset by emailed token
- Admin user management
"""

import secrets
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.config import settings
from cakeheaven.core.exceptions import (
    AuthenticationError,
    DeliveryError,
    NotFoundError,
    ValidationError,
)
from cakeheaven.core.security import (
    create_access_token,
    hash_password,
    hash_token,
    verify_password,
)
from cakeheaven.models.shop import Product
from cakeheaven.models.user import Address, User
from cakeheaven.modules.notifications.email import EmailService, get_email_service
from cakeheaven.modules.shop.wallet import WalletService

PROFILE_FIELDS = ("name", "email", "date_of_birth", "gender", "phone_number", "profile_image")
ADMIN_RESET_EXPIRE_MINUTES = 30


def address_to_dict(address: Address) -> dict[str, Any]:
    return {
        "id": address.id,
        "full_name": address.full_name,
        "mobile_number": address.mobile_number,
        "address": address.address,
        "city": address.city,
        "state": address.state,
        "zip": address.zip,
        "country": address.country,
        "is_default": address.is_default,
    }


def user_to_dict(user: User) -> dict[str, Any]:
    """Public account fields, safe to return to the user or an admin."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "date_of_birth": user.date_of_birth.isoformat() if user.date_of_birth else None,
        "gender": user.gender.value if user.gender else None,
        "phone_number": user.phone_number,
        "profile_image": user.profile_image,
        "wallet_balance": float(user.wallet_balance),
        "is_active": user.is_active,
        "last_login": user.last_login.isoformat() if user.last_login else None,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


class AccountService:
    """
    Service for customer accounts.

    Usage:
        accounts = AccountService(db_session)
        user, token = await accounts.login("jane@example.com", "Secret123")
    """

    def __init__(self, db: AsyncSession, mailer: EmailService | None = None) -> None:
        """Initialize account service with database session and email sender."""
        self.db = db
        self.mailer = mailer or get_email_service()
        self.wallet = WalletService(db)

    async def get_by_email(self, email: str) -> User | None:
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    # ==================== Signup / Login ====================

    async def register(self, name: str, email: str, password: str) -> tuple[User, str]:
        """
        Create a customer account with the signup bonus in its wallet.

        Returns:
            (user, access token)
        """
        if await self.get_by_email(email):
            raise ValidationError("User already exists")

        user = User(
            name=name,
            email=email.lower(),
            hashed_password=hash_password(password),
            wallet_balance=Decimal("0"),
            addresses=[],
        )
        self.db.add(user)
        await self.db.flush()

        await self.wallet.credit(user, Decimal(settings.signup_bonus_points), "Signup bonus")

        logger.info(f"User registered: {user.email} (id={user.id})")
        return user, create_access_token(user.id)

    async def login(self, email: str, password: str) -> tuple[User, str]:
        user = await self.get_by_email(email)
        if not user:
            raise AuthenticationError("Invalid email or password")
        if not user.is_active:
            raise AuthenticationError("Account is inactive or has been deactivated")
        if not verify_password(password, user.hashed_password):
            raise AuthenticationError("Invalid email or password")

        user.last_login = datetime.utcnow()
        await self.db.flush()

        logger.info(f"User logged in: {user.email}")
        return user, create_access_token(user.id)

    # ==================== Profile ====================

    async def get_profile(self, user: User) -> dict[str, Any]:
        """Account fields with addresses and favorite product ids."""
        await self.db.refresh(user, ["favorites"])
        data = user_to_dict(user)
        data["addresses"] = [address_to_dict(a) for a in user.addresses]
        data["favorites"] = [p.id for p in user.favorites]
        return data

    async def update_profile(self, user: User, data: dict[str, Any]) -> User:
        """Apply provided profile fields; a new password is re-hashed."""
        email = data.get("email")
        if email and email.lower() != user.email:
            if await self.get_by_email(email):
                raise ValidationError("Email already in use")
            data["email"] = email.lower()

        for field in PROFILE_FIELDS:
            if data.get(field) is not None:
                setattr(user, field, data[field])

        if data.get("password"):
            user.hashed_password = hash_password(data["password"])

        await self.db.flush()
        return user

    # ==================== Addresses ====================

    def _find_address(self, user: User, address_id: int) -> Address:
        for address in user.addresses:
            if address.id == address_id:
                return address
        raise NotFoundError("Address not found")

    def _clear_default(self, user: User) -> None:
        for address in user.addresses:
            address.is_default = False

    async def add_address(self, user: User, data: dict[str, Any]) -> list[Address]:
        """First address, or one flagged default, becomes the only default."""
        is_default = bool(data.pop("is_default", False)) or not user.addresses
        if is_default:
            self._clear_default(user)

        user.addresses.append(Address(**data, is_default=is_default))
        await self.db.flush()
        return user.addresses

    async def update_address(self, user: User, address_id: int, data: dict[str, Any]) -> list[Address]:
        address = self._find_address(user, address_id)

        if data.get("is_default"):
            self._clear_default(user)

        for field, value in data.items():
            if value is not None:
                setattr(address, field, value)

        await self.db.flush()
        return user.addresses

    async def delete_address(self, user: User, address_id: int) -> list[Address]:
        """Remove an address; the first remaining one inherits default."""
        address = self._find_address(user, address_id)
        was_default = address.is_default

        user.addresses.remove(address)
        if was_default and user.addresses:
            user.addresses[0].is_default = True

        await self.db.flush()
        return user.addresses

    # ==================== Favorites ====================

    async def get_favorites(self, user: User) -> list[Product]:
        await self.db.refresh(user, ["favorites"])
        return list(user.favorites)

    async def add_favorite(self, user: User, product_id: int) -> list[Product]:
        product = await self.db.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found")

        favorites = await self.get_favorites(user)
        if any(p.id == product_id for p in favorites):
            raise ValidationError("Product already in favorites")

        user.favorites.append(product)
        await self.db.flush()
        return list(user.favorites)

    async def remove_favorite(self, user: User, product_id: int) -> list[Product]:
        favorites = await self.get_favorites(user)
        product = next((p for p in favorites if p.id == product_id), None)
        if product is None:
            raise ValidationError("Product not in favorites")

        user.favorites.remove(product)
        await self.db.flush()
        return list(user.favorites)

    # ==================== Password reset ====================

    def _issue_reset_token(self, user: User, minutes: int) -> str:
        token = secrets.token_hex(20)
        user.reset_password_token = hash_token(token)
        user.reset_password_expire = datetime.utcnow() + timedelta(minutes=minutes)
        return token

    async def _send_reset(self, user: User, token: str) -> None:
        reset_url = f"{settings.frontend_url}/reset-password/{token}"
        if not await self.mailer.send_password_reset(user.email, reset_url):
            user.reset_password_token = None
            user.reset_password_expire = None
            await self.db.flush()
            raise DeliveryError("Email could not be sent")

    async def forgot_password(self, email: str) -> None:
        """Email a single-use reset link."""
        user = await self.get_by_email(email)
        if not user:
            raise NotFoundError("User not found")

        token = self._issue_reset_token(user, settings.password_reset_expire_minutes)
        await self.db.flush()
        await self._send_reset(user, token)
        logger.info(f"Password reset requested for {user.email}")

    async def reset_password(self, token: str, password: str) -> None:
        query = select(User).where(
            User.reset_password_token == hash_token(token),
            User.reset_password_expire > datetime.utcnow(),
        )
        user = (await self.db.execute(query)).scalar_one_or_none()
        if not user:
            raise ValidationError("Invalid or expired token")

        user.hashed_password = hash_password(password)
        user.reset_password_token = None
        user.reset_password_expire = None
        await self.db.flush()
        logger.info(f"Password reset for {user.email}")

    # ==================== Admin ====================

    async def list_users(self) -> list[User]:
        result = await self.db.execute(select(User).order_by(User.id))
        return list(result.scalars().all())

    async def set_status(self, user_id: int, is_active: bool) -> User:
        user = await self.get_user(user_id)
        user.is_active = is_active
        await self.db.flush()
        logger.info(f"User {user.email} {'activated' if is_active else 'deactivated'}")
        return user

    async def admin_reset_password(self, user_id: int) -> None:
        user = await self.get_user(user_id)
        token = self._issue_reset_token(user, ADMIN_RESET_EXPIRE_MINUTES)
        await self.db.flush()
        await self._send_reset(user, token)
        logger.info(f"Admin triggered password reset for {user.email}")
