"""
Tests for store settings and admin analytics.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from cakeheaven.models.shop import Product
from cakeheaven.models.user import User
from cakeheaven.modules.admin.settings import SettingsService

from tests.conftest import auth_header, make_product


async def place_paid_order(client: AsyncClient, user: User, product: Product, address: dict, quantity: int = 1) -> dict:
    placed = await client.post(
        "/api/orders",
        json={
            "items": [{"product_id": product.id, "quantity": quantity}],
            "shipping_address": address,
            "payment_method": "credit_card",
        },
        headers=auth_header(user),
    )
    order = placed.json()
    await client.put(
        f"/api/orders/{order['id']}/pay",
        json={"id": f"PAY-{order['id']}", "status": "COMPLETED"},
        headers=auth_header(user),
    )
    return order


class TestStoreSettings:
    """GET/PUT /settings and the test endpoints."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_defaults_created_on_first_read(self, client: AsyncClient, admin: User) -> None:
        response = await client.get("/api/settings", headers=auth_header(admin))

        assert response.status_code == 200
        data = response.json()
        assert data["general"]["tax_rate"] == 5
        assert data["shipping"]["free_shipping_threshold"] == 1000
        assert [m["id"] for m in data["shipping"]["shipping_methods"]] == ["standard", "express", "same-day"]
        assert data["payment"]["enable_cash_on_delivery"] is True

        again = await client.get("/api/settings", headers=auth_header(admin))
        assert again.json()["id"] == data["id"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_customers_cannot_read(self, client: AsyncClient, customer: User) -> None:
        response = await client.get("/api/settings", headers=auth_header(customer))
        assert response.status_code == 401

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_update_replaces_only_given_sections(self, client: AsyncClient, admin: User) -> None:
        response = await client.put(
            "/api/settings",
            json={"general": {"store_name": "Cake Heaven Pune", "tax_rate": 12}},
            headers=auth_header(admin),
        )

        data = response.json()
        assert data["general"]["store_name"] == "Cake Heaven Pune"
        assert data["general"]["tax_rate"] == 12
        assert data["general"]["currency"] == "INR"
        assert data["shipping"]["free_shipping_threshold"] == 1000

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_tax_and_shipping_settings_feed_pricing(
        self, client: AsyncClient, admin: User, customer: User, cake: Product, shipping_address: dict
    ) -> None:
        await client.put(
            "/api/settings",
            json={
                "general": {"tax_rate": 10},
                "shipping": {
                    "free_shipping_threshold": 400,
                    "shipping_methods": [{"id": "standard", "name": "Standard", "cost": 60}],
                },
            },
            headers=auth_header(admin),
        )

        response = await client.post(
            "/api/orders",
            json={
                "items": [{"product_id": cake.id, "quantity": 1}],
                "shipping_address": shipping_address,
                "payment_method": "cash_on_delivery",
            },
            headers=auth_header(customer),
        )

        order = response.json()
        assert order["tax_price"] == 50.0
        assert order["shipping_price"] == 0.0
        assert order["total_price"] == 550.0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_pricing_config_ignores_inactive_methods(self, db) -> None:
        service = SettingsService(db)
        await service.update(
            {
                "shipping": {
                    "shipping_methods": [
                        {"id": "standard", "name": "Standard", "cost": 80},
                        {"id": "express", "name": "Express", "cost": 120, "is_active": False},
                    ]
                }
            }
        )

        config = await service.get_pricing_config()

        assert config.method_costs == {"standard": 80}
        assert config.tax_rate == Decimal("5")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_payment_gateway_check(self, client: AsyncClient, admin: User) -> None:
        ok = await client.post("/api/settings/test-payment", json={"gateway": "stripe"}, headers=auth_header(admin))
        bad = await client.post("/api/settings/test-payment", json={"gateway": "bitcoin"}, headers=auth_header(admin))

        assert ok.json() == {"success": True, "message": "Stripe configuration is valid"}
        assert bad.status_code == 400
        assert bad.json()["message"] == "Invalid gateway specified"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_email_check_requires_full_config(self, client: AsyncClient, admin: User) -> None:
        response = await client.post(
            "/api/settings/test-email",
            json={"config": {"smtp_host": "smtp.test"}, "test_email": "owner@example.com"},
            headers=auth_header(admin),
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Please provide all required SMTP settings"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_email_check_sends(self, client: AsyncClient, admin: User) -> None:
        config = {
            "smtp_host": "smtp.test",
            "smtp_port": 587,
            "smtp_user": "shop",
            "smtp_password": "secret",
            "smtp_from": "shop@test",
        }

        with patch("cakeheaven.modules.admin.settings.EmailService.deliver", new_callable=AsyncMock) as deliver:
            response = await client.post(
                "/api/settings/test-email",
                json={"config": config, "test_email": "owner@example.com"},
                headers=auth_header(admin),
            )

        assert response.json()["message"] == "Test email sent successfully"
        assert deliver.call_args.args[0] == "owner@example.com"


class TestAnalytics:
    """Admin analytics endpoints."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_dashboard(
        self, client: AsyncClient, admin: User, customer: User, cake: Product, shipping_address: dict
    ) -> None:
        await place_paid_order(client, customer, cake, shipping_address, quantity=2)
        await client.post(
            "/api/orders",
            json={
                "items": [{"product_id": cake.id, "quantity": 1}],
                "shipping_address": shipping_address,
                "payment_method": "cash_on_delivery",
            },
            headers=auth_header(customer),
        )

        data = (await client.get("/api/analytics/dashboard", headers=auth_header(admin))).json()

        assert data["total_orders"] == 2
        assert data["total_revenue"] == 1150.0
        assert data["total_users"] == 2
        assert data["total_products"] == 1
        assert data["popular_products"][0]["quantity"] == 3
        assert data["orders_by_status"] == [{"status": "processing", "count": 2}]
        assert len(data["recent_orders"]) == 2
        assert data["recent_orders"][0]["user"]["email"] == customer.email

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_sales(
        self, client: AsyncClient, admin: User, customer: User, cake: Product, shipping_address: dict
    ) -> None:
        await place_paid_order(client, customer, cake, shipping_address)

        data = (await client.get("/api/analytics/sales", headers=auth_header(admin))).json()

        assert len(data["sales_by_date"]) == 1
        assert data["sales_by_date"][0]["sales"] == 625.0
        assert data["sales_by_category"] == [{"category": "Cakes", "sales": 500.0, "count": 1}]
        assert data["average_order_value"] == {"average": 625.0, "total": 625.0, "count": 1}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_users(
        self, client: AsyncClient, admin: User, customer: User, cake: Product, shipping_address: dict
    ) -> None:
        await place_paid_order(client, customer, cake, shipping_address)
        await place_paid_order(client, customer, cake, shipping_address)

        data = (await client.get("/api/analytics/users", headers=auth_header(admin))).json()

        assert sum(d["count"] for d in data["users_by_date"]) == 2
        top = data["top_customers"][0]
        assert top["email"] == customer.email
        assert top["orders_count"] == 2
        assert top["average_order_value"] == 625.0
        assert data["user_retention"] == [{"orders": 2, "users": 1}]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_products(self, client: AsyncClient, session_factory, admin: User, cake: Product) -> None:
        await make_product(session_factory, name="Last Slice", stock=2, avg_rating=4.2)

        data = (await client.get("/api/analytics/products", headers=auth_header(admin))).json()

        assert data["products_by_category"] == [{"category": "Cakes", "count": 2}]
        assert [p["name"] for p in data["low_stock_products"]] == ["Last Slice"]
        assert data["ratings_distribution"] == [{"rating": 0, "count": 1}, {"rating": 5, "count": 1}]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_admin_only(self, client: AsyncClient, customer: User) -> None:
        response = await client.get("/api/analytics/dashboard", headers=auth_header(customer))
        assert response.status_code == 401
