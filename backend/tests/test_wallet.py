"""
Tests for the wallet ledger and paying orders with points.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.exceptions import ValidationError
from cakeheaven.models.shop import Order, OrderStatus, Product
from cakeheaven.models.user import User
from cakeheaven.modules.shop.wallet import WalletService

from tests.conftest import auth_header, make_user


async def place(client: AsyncClient, user: User, product: Product, address: dict) -> dict:
    response = await client.post(
        "/api/orders",
        json={
            "items": [{"product_id": product.id, "quantity": 1}],
            "shipping_address": address,
            "payment_method": "wallet",
        },
        headers=auth_header(user),
    )
    assert response.status_code == 201
    return response.json()


class TestLedger:
    """credit() and debit() keep balance and history in step."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_credit_and_debit(self, db: AsyncSession, customer: User) -> None:
        user = await db.get(User, customer.id)
        wallet = WalletService(db)

        assert await wallet.credit(user, Decimal("25.50"), "Goodwill") == Decimal("125.50")
        assert await wallet.debit(user, Decimal("0.50"), "Adjustment") == Decimal("125.00")

        history = await wallet.get_history(user)
        assert [e.description for e in history] == ["Adjustment", "Goodwill", "Signup bonus"]
        assert sum(e.amount for e in history) == user.wallet_balance

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_debit_never_overdraws(self, db: AsyncSession, customer: User) -> None:
        user = await db.get(User, customer.id)
        wallet = WalletService(db)

        with pytest.raises(ValidationError) as exc_info:
            await wallet.debit(user, Decimal("100.01"), "Too much")

        assert exc_info.value.message == "Insufficient wallet balance"
        assert user.wallet_balance == Decimal("100")
        assert len(await wallet.get_history(user)) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_zero_credit_is_noop(self, db: AsyncSession, customer: User) -> None:
        user = await db.get(User, customer.id)
        wallet = WalletService(db)

        await wallet.credit(user, Decimal("0"), "Nothing")

        assert len(await wallet.get_history(user)) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_settle_skips_cancelled_orders(self, db: AsyncSession, customer: User) -> None:
        user = await db.get(User, customer.id)
        wallet = WalletService(db)
        order = Order(
            order_number="CAKE-20260101-000001234",
            status=OrderStatus.CANCELLED,
            is_paid=False,
            total_price=Decimal("125"),
            wallet_amount_used=Decimal("600"),
        )

        await wallet.settle_order(order, user)

        assert order.is_paid is False
        assert user.wallet_balance == Decimal("100")
        assert len(await wallet.get_history(user)) == 1


class TestUseWalletPoints:
    """POST /auth/wallet/use."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_partial_payment(
        self, client: AsyncClient, customer: User, cake: Product, shipping_address: dict
    ) -> None:
        order = await place(client, customer, cake, shipping_address)

        response = await client.post(
            "/api/auth/wallet/use", json={"order_id": order["id"], "amount": 100}, headers=auth_header(customer)
        )

        assert response.status_code == 200
        data = response.json()
        # 100 signup + 63 rewards - 100 used
        assert data["balance"] == 63.0
        assert data["wallet_amount_used"] == 100.0
        assert data["total_remaining"] == 525.0
        assert data["is_paid"] is False
        assert data["message"] == "100 points used for your order"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_excess_points_returned(
        self, client: AsyncClient, session_factory, cake: Product, shipping_address: dict
    ) -> None:
        rich = await make_user(session_factory, email="rich@example.com", wallet_balance=Decimal("2000"))
        order = await place(client, rich, cake, shipping_address)

        response = await client.post(
            "/api/auth/wallet/use", json={"order_id": order["id"], "amount": 700}, headers=auth_header(rich)
        )

        data = response.json()
        assert data["is_paid"] is True
        assert data["wallet_amount_used"] == 625.0
        assert data["total_remaining"] == 0.0
        # 2000 + 63 rewards - 700 + 75 excess
        assert data["balance"] == 1438.0

        wallet = (await client.get("/api/auth/wallet", headers=auth_header(rich))).json()
        assert wallet["history"][0]["amount"] == 75.0
        assert sum(e["amount"] for e in wallet["history"]) == wallet["balance"]

        fetched = (await client.get(f"/api/orders/{order['id']}", headers=auth_header(rich))).json()
        assert fetched["payment_result"]["id"].startswith("wallet-")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_insufficient_balance(
        self, client: AsyncClient, customer: User, cake: Product, shipping_address: dict
    ) -> None:
        order = await place(client, customer, cake, shipping_address)

        response = await client.post(
            "/api/auth/wallet/use", json={"order_id": order["id"], "amount": 500}, headers=auth_header(customer)
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Insufficient wallet balance"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_paid_or_cancelled_orders_rejected(
        self, client: AsyncClient, customer: User, cake: Product, shipping_address: dict
    ) -> None:
        paid = await place(client, customer, cake, shipping_address)
        await client.put(
            f"/api/orders/{paid['id']}/pay", json={"id": "PAY-1", "status": "COMPLETED"},
            headers=auth_header(customer),
        )
        cancelled = await place(client, customer, cake, shipping_address)
        await client.put(f"/api/orders/{cancelled['id']}/cancel", headers=auth_header(customer))

        on_paid = await client.post(
            "/api/auth/wallet/use", json={"order_id": paid["id"], "amount": 10}, headers=auth_header(customer)
        )
        on_cancelled = await client.post(
            "/api/auth/wallet/use", json={"order_id": cancelled["id"], "amount": 10}, headers=auth_header(customer)
        )

        assert on_paid.json()["message"] == "Order is already paid"
        assert on_cancelled.json()["message"] == "Cannot use wallet points on a cancelled order"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_only_own_orders(
        self, client: AsyncClient, session_factory, customer: User, cake: Product, shipping_address: dict
    ) -> None:
        order = await place(client, customer, cake, shipping_address)
        stranger = await make_user(session_factory, email="stranger@example.com")

        response = await client.post(
            "/api/auth/wallet/use", json={"order_id": order["id"], "amount": 10}, headers=auth_header(stranger)
        )

        assert response.status_code == 403

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_amount_must_be_positive(self, client: AsyncClient, customer: User) -> None:
        response = await client.post(
            "/api/auth/wallet/use", json={"order_id": 1, "amount": 0}, headers=auth_header(customer)
        )
        assert response.status_code == 400
