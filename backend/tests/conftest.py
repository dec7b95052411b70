"""
Pytest configuration and fixtures.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from fakeredis import aioredis as fake_aioredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import cakeheaven.models  # noqa: F401
from cakeheaven.core.database import Base, commit_session, get_db, rollback_session
from cakeheaven.core.security import create_access_token, hash_password
from cakeheaven.main import app
from cakeheaven.models.coupon import Coupon, CouponScope, DiscountType
from cakeheaven.models.shop import (
    EggOption,
    Flavor,
    MainCategory,
    Occasion,
    Product,
    Shape,
)
from cakeheaven.models.user import User, UserRole, WalletTransaction
from cakeheaven.modules.notifications import EmailService, SMTPConfig, get_email_service
from cakeheaven.modules.shop.cache import CatalogCache, get_catalog_cache

PASSWORD = "Secret123"


class RecordingMailer(EmailService):
    """EmailService that records messages instead of talking SMTP."""

    def __init__(self) -> None:
        super().__init__(SMTPConfig(host="smtp.test", from_address="shop@test"), enabled=True)
        self.sent: list[dict[str, Any]] = []
        self.fail = False

    async def send(self, to: str, subject: str, text: str, html: str | None = None) -> bool:
        if self.fail:
            return False
        self.sent.append({"to": to, "subject": subject, "text": text})
        return True


# ==================== Infrastructure ====================


@pytest_asyncio.fixture
async def session_factory(tmp_path: Any) -> AsyncGenerator[async_sessionmaker[AsyncSession], Any]:
    """Fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db", poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    yield factory

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, Any]:
    """Session for driving services directly."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def cache() -> AsyncGenerator[CatalogCache, Any]:
    client = fake_aioredis.FakeRedis(decode_responses=True)
    catalog_cache = CatalogCache(client=client, ttl=300, enabled=True)
    yield catalog_cache
    await client.flushall()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    cache: CatalogCache,
    mailer: RecordingMailer,
) -> AsyncGenerator[AsyncClient, Any]:
    """HTTP client against the app with test database, cache and mailer."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, Any]:
        async with session_factory() as session:
            try:
                yield session
                await commit_session(session)
            except Exception:
                await rollback_session(session)
                raise

    async def override_get_catalog_cache() -> CatalogCache:
        return cache

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_catalog_cache] = override_get_catalog_cache
    app.dependency_overrides[get_email_service] = lambda: mailer

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== Data ====================


async def make_user(
    factory: async_sessionmaker[AsyncSession],
    email: str = "jane@example.com",
    name: str = "Jane Baker",
    role: UserRole = UserRole.USER,
    wallet_balance: Decimal = Decimal("100"),
    is_active: bool = True,
) -> User:
    """Persist a user whose balance is backed by a matching wallet entry."""
    async with factory() as session:
        user = User(
            name=name,
            email=email,
            hashed_password=hash_password(PASSWORD),
            role=role,
            wallet_balance=wallet_balance,
            is_active=is_active,
            addresses=[],
        )
        session.add(user)
        await session.flush()
        if wallet_balance:
            session.add(
                WalletTransaction(user_id=user.id, amount=wallet_balance, description="Signup bonus")
            )
        await session.commit()
        return user


async def make_product(
    factory: async_sessionmaker[AsyncSession],
    name: str = "Chocolate Truffle",
    price: Decimal = Decimal("500"),
    stock: int = 10,
    **overrides: Any,
) -> Product:
    fields = {
        "name": name,
        "description": f"{name} cake with rich ganache",
        "price": price,
        "main_category": MainCategory.CAKES,
        "flavor": Flavor.CHOCOLATE,
        "shape": Shape.CIRCLE,
        "occasion": Occasion.BIRTHDAY,
        "egg_or_eggless": EggOption.EGGLESS,
        "stock": stock,
        "weight": "1 kg",
        "images": [f"https://img.test/{name.lower().replace(' ', '-')}.jpg"],
        "tags": ["chocolate"],
        "reviews": [],
    }
    fields.update(overrides)
    async with factory() as session:
        product = Product(**fields)
        session.add(product)
        await session.commit()
        return product


async def make_coupon(
    factory: async_sessionmaker[AsyncSession],
    code: str = "SAVE10",
    discount_type: DiscountType = DiscountType.PERCENTAGE,
    discount_amount: Decimal = Decimal("10"),
    **overrides: Any,
) -> Coupon:
    now = datetime.utcnow()
    fields = {
        "code": code,
        "description": f"{discount_amount} off",
        "discount_type": discount_type,
        "discount_amount": discount_amount,
        "minimum_purchase": Decimal("0"),
        "valid_from": now - timedelta(days=1),
        "valid_until": now + timedelta(days=30),
        "applicable_to": CouponScope.ALL,
        "applicable_products": [],
        "applicable_categories": [],
        "applicable_users": [],
    }
    fields.update(overrides)
    async with factory() as session:
        coupon = Coupon(**fields)
        session.add(coupon)
        await session.commit()
        return coupon


def auth_header(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest_asyncio.fixture
async def customer(session_factory: async_sessionmaker[AsyncSession]) -> User:
    return await make_user(session_factory)


@pytest_asyncio.fixture
async def admin(session_factory: async_sessionmaker[AsyncSession]) -> User:
    return await make_user(
        session_factory,
        email="admin@example.com",
        name="Shop Admin",
        role=UserRole.ADMIN,
        wallet_balance=Decimal("0"),
    )


@pytest_asyncio.fixture
async def cake(session_factory: async_sessionmaker[AsyncSession]) -> Product:
    return await make_product(session_factory)


@pytest.fixture
def shipping_address() -> dict[str, str]:
    return {
        "full_name": "Jane Baker",
        "mobile_number": "9876543210",
        "address": "12 Frosting Lane",
        "city": "Pune",
        "state": "Maharashtra",
        "zip": "411001",
        "country": "India",
    }
