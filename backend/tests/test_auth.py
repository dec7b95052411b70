"""
Tests for accounts: signup, login, profile, addresses, favorites and
password reset.
"""

import re
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.exceptions import AuthenticationError
from cakeheaven.core.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from cakeheaven.models.shop import Product
from cakeheaven.models.user import User, WalletTransaction
from cakeheaven.modules.accounts import AccountService

from tests.conftest import PASSWORD, auth_header, make_user


def reset_token_from(mail: dict) -> str:
    match = re.search(r"reset-password/([0-9a-f]+)", mail["text"])
    assert match, mail["text"]
    return match.group(1)


@pytest.fixture
def address() -> dict:
    return {
        "full_name": "Jane Baker",
        "mobile_number": "9876543210",
        "address": "12 Frosting Lane",
        "city": "Pune",
        "state": "Maharashtra",
        "zip": "411001",
        "country": "India",
    }


class TestSecurityHelpers:
    """Password hashing and tokens."""

    @pytest.mark.unit
    def test_password_hash_roundtrip(self) -> None:
        hashed = hash_password("Secret123")

        assert hashed != "Secret123"
        assert verify_password("Secret123", hashed)
        assert not verify_password("secret123", hashed)

    @pytest.mark.unit
    def test_garbage_hash_does_not_verify(self) -> None:
        assert not verify_password("Secret123", "not-a-bcrypt-hash")

    @pytest.mark.unit
    def test_token_carries_user_id(self) -> None:
        assert decode_access_token(create_access_token(42))["id"] == 42

    @pytest.mark.unit
    def test_expired_token_rejected(self) -> None:
        token = create_access_token(42, expires_days=-1)

        with pytest.raises(AuthenticationError) as exc_info:
            decode_access_token(token)

        assert exc_info.value.message == "Not authorized, token expired"


class TestSignupAndLogin:
    """Account creation and authentication."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_signup_credits_bonus(self, client: AsyncClient, session_factory, mailer) -> None:
        response = await client.post(
            "/api/auth/signup",
            json={"name": "Priya", "email": "Priya@Example.com", "password": "Bake2024"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "priya@example.com"
        assert data["role"] == "user"
        assert data["wallet_balance"] == 100.0
        assert decode_access_token(data["token"])["id"] == data["id"]

        async with session_factory() as session:
            entries = (await session.execute(select(WalletTransaction))).scalars().all()
        assert [(float(e.amount), e.description) for e in entries] == [(100.0, "Signup bonus")]
        assert mailer.sent[0]["subject"] == "Welcome to Cake Heaven"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_register_leaves_welcome_mail_to_caller(self, db: AsyncSession, mailer) -> None:
        user, token = await AccountService(db, mailer).register("Priya", "priya@example.com", "Bake2024")

        assert user.wallet_balance == Decimal("100")
        assert decode_access_token(token)["id"] == user.id
        assert mailer.sent == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    @pytest.mark.parametrize("password", ["Ab1", "alllower1", "ALLUPPER1", "NoDigitsHere"])
    async def test_weak_password_rejected(self, client: AsyncClient, password: str) -> None:
        response = await client.post(
            "/api/auth/signup",
            json={"name": "Priya", "email": "priya@example.com", "password": password},
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "password"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_duplicate_email(self, client: AsyncClient, customer: User) -> None:
        response = await client.post(
            "/api/auth/signup",
            json={"name": "Jane", "email": "JANE@example.com", "password": "Secret123"},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "User already exists"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_login(self, client: AsyncClient, customer: User) -> None:
        response = await client.post(
            "/api/auth/login", json={"email": "jane@example.com", "password": PASSWORD}
        )

        assert response.status_code == 200
        assert response.json()["id"] == customer.id
        assert response.json()["wallet_balance"] == 100.0

        profile = await client.get("/api/auth/profile", headers={"Authorization": f"Bearer {response.json()['token']}"})
        assert profile.json()["last_login"] is not None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client: AsyncClient, customer: User) -> None:
        response = await client.post(
            "/api/auth/login", json={"email": "jane@example.com", "password": "Wrong123"}
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_inactive_account_locked_out(self, client: AsyncClient, session_factory) -> None:
        sleeper = await make_user(session_factory, email="gone@example.com", is_active=False)

        login = await client.post("/api/auth/login", json={"email": "gone@example.com", "password": PASSWORD})
        profile = await client.get("/api/auth/profile", headers=auth_header(sleeper))

        assert login.status_code == 401
        assert login.json()["message"] == "Account is inactive or has been deactivated"
        assert profile.status_code == 401

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_bad_token(self, client: AsyncClient) -> None:
        response = await client.get("/api/auth/profile", headers={"Authorization": "Bearer nonsense"})

        assert response.status_code == 401
        assert response.json()["message"] == "Not authorized, token failed"


class TestProfile:
    """Profile fields and saved addresses."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_update_profile(self, client: AsyncClient, customer: User) -> None:
        response = await client.put(
            "/api/auth/profile",
            json={"name": "Jane B", "gender": "female", "phone_number": "555-0101", "password": "NewPass99"},
            headers=auth_header(customer),
        )

        data = response.json()
        assert response.status_code == 200
        assert data["name"] == "Jane B"
        assert data["gender"] == "female"
        assert data["token"]

        login = await client.post("/api/auth/login", json={"email": "jane@example.com", "password": "NewPass99"})
        assert login.status_code == 200

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_email_must_stay_unique(self, client: AsyncClient, customer: User, admin: User) -> None:
        response = await client.put(
            "/api/auth/profile", json={"email": "admin@example.com"}, headers=auth_header(customer)
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Email already in use"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_single_default_address(self, client: AsyncClient, customer: User, address: dict) -> None:
        headers = auth_header(customer)

        first = await client.post("/api/auth/profile/address", json=address, headers=headers)
        assert first.status_code == 201
        assert first.json()["addresses"][0]["is_default"] is True

        second = await client.post(
            "/api/auth/profile/address",
            json={**address, "city": "Mumbai", "is_default": True},
            headers=headers,
        )
        addresses = second.json()["addresses"]
        assert [a["is_default"] for a in addresses] == [False, True]

        first_id = addresses[0]["id"]
        updated = await client.put(
            f"/api/auth/profile/address/{first_id}", json={"is_default": True}, headers=headers
        )
        assert [a["is_default"] for a in updated.json()["addresses"]] == [True, False]

        deleted = await client.delete(f"/api/auth/profile/address/{first_id}", headers=headers)
        remaining = deleted.json()["addresses"]
        assert len(remaining) == 1
        assert remaining[0]["city"] == "Mumbai"
        assert remaining[0]["is_default"] is True

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unknown_address(self, client: AsyncClient, customer: User) -> None:
        response = await client.delete("/api/auth/profile/address/99", headers=auth_header(customer))

        assert response.status_code == 404
        assert response.json()["message"] == "Address not found"


class TestFavorites:
    """Favorite products."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_add_list_remove(self, client: AsyncClient, customer: User, cake: Product) -> None:
        headers = auth_header(customer)

        added = await client.post(f"/api/auth/favorites/{cake.id}", headers=headers)
        assert added.json()["favorites"] == [cake.id]

        duplicate = await client.post(f"/api/auth/favorites/{cake.id}", headers=headers)
        assert duplicate.status_code == 400
        assert duplicate.json()["message"] == "Product already in favorites"

        listing = await client.get("/api/auth/favorites", headers=headers)
        assert listing.json()["count"] == 1
        assert listing.json()["favorites"][0]["name"] == "Chocolate Truffle"

        profile = await client.get("/api/auth/profile", headers=headers)
        assert profile.json()["favorites"] == [cake.id]

        removed = await client.delete(f"/api/auth/favorites/{cake.id}", headers=headers)
        assert removed.json()["favorites"] == []

        missing = await client.delete(f"/api/auth/favorites/{cake.id}", headers=headers)
        assert missing.status_code == 400
        assert missing.json()["message"] == "Product not in favorites"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unknown_product(self, client: AsyncClient, customer: User) -> None:
        response = await client.post("/api/auth/favorites/999", headers=auth_header(customer))
        assert response.status_code == 404


class TestPasswordReset:
    """Emailed reset tokens."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_reset_flow(self, client: AsyncClient, customer: User, mailer) -> None:
        response = await client.post("/api/auth/forgotpassword", json={"email": "jane@example.com"})

        assert response.json() == {"success": True, "data": "Email sent"}
        token = reset_token_from(mailer.sent[-1])

        reset = await client.put(f"/api/auth/resetpassword/{token}", json={"password": "Fresh1234"})
        assert reset.status_code == 200

        login = await client.post("/api/auth/login", json={"email": "jane@example.com", "password": "Fresh1234"})
        assert login.status_code == 200

        reused = await client.put(f"/api/auth/resetpassword/{token}", json={"password": "Again1234"})
        assert reused.status_code == 400
        assert reused.json()["message"] == "Invalid or expired token"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unknown_email(self, client: AsyncClient) -> None:
        response = await client.post("/api/auth/forgotpassword", json={"email": "nobody@example.com"})
        assert response.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_send_failure_clears_token(
        self, client: AsyncClient, session_factory, customer: User, mailer
    ) -> None:
        mailer.fail = True

        response = await client.post("/api/auth/forgotpassword", json={"email": "jane@example.com"})

        assert response.status_code == 500
        assert response.json()["message"] == "Email could not be sent"
        async with session_factory() as session:
            user = await session.get(User, customer.id)
            assert user.reset_password_token is None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_token_is_stored_hashed(self, client: AsyncClient, session_factory, customer: User, mailer) -> None:
        await client.post("/api/auth/forgotpassword", json={"email": "jane@example.com"})
        token = reset_token_from(mailer.sent[-1])

        async with session_factory() as session:
            user = await session.get(User, customer.id)
            assert user.reset_password_token not in (None, token)


class TestUserAdministration:
    """Admin user management."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_deactivate_and_reactivate(self, client: AsyncClient, customer: User, admin: User) -> None:
        off = await client.patch(
            f"/api/auth/users/{customer.id}/status", json={"is_active": False}, headers=auth_header(admin)
        )
        assert off.json()["message"] == "User deactivated successfully"
        assert (await client.get("/api/auth/profile", headers=auth_header(customer))).status_code == 401

        on = await client.patch(
            f"/api/auth/users/{customer.id}/status", json={"is_active": True}, headers=auth_header(admin)
        )
        assert on.json()["user"]["is_active"] is True

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_list_users_admin_only(self, client: AsyncClient, customer: User, admin: User) -> None:
        denied = await client.get("/api/auth/admin/users", headers=auth_header(customer))
        listing = await client.get("/api/auth/admin/users", headers=auth_header(admin))

        assert denied.status_code == 401
        assert [u["email"] for u in listing.json()] == ["jane@example.com", "admin@example.com"]
        assert "hashed_password" not in listing.json()[0]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_admin_triggered_reset(self, client: AsyncClient, customer: User, admin: User, mailer) -> None:
        response = await client.post(f"/api/auth/users/{customer.id}/reset-password", headers=auth_header(admin))

        assert response.json()["message"] == "Password reset email sent"
        assert mailer.sent[-1]["to"] == "jane@example.com"
