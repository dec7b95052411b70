"""
Analytics Service - Read-only aggregations for the admin dashboard.
"""

import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cakeheaven.models.shop import Order, OrderItem, Product
from cakeheaven.models.user import User

LOW_STOCK_THRESHOLD = 5


def _money(value: Any) -> float:
    return float(value or 0)


class AnalyticsService:
    """
    Dashboard, sales, customer and product statistics.

    Usage:
        analytics = AnalyticsService(db_session)
        stats = await analytics.dashboard()
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _scalar(self, query) -> Any:
        return (await self.db.execute(query)).scalar_one()

    async def _top_products(self, order_by: str, limit: int) -> list[dict[str, Any]]:
        """Order items grouped by product, sorted by quantity or revenue."""
        quantity = func.sum(OrderItem.quantity).label("quantity")
        revenue = func.sum(OrderItem.quantity * OrderItem.price).label("revenue")
        query = (
            select(OrderItem.product_id, func.max(OrderItem.name).label("name"), quantity, revenue)
            .group_by(OrderItem.product_id)
            .order_by(desc(order_by))
            .limit(limit)
        )
        rows = (await self.db.execute(query)).all()
        return [
            {
                "product_id": row.product_id,
                "name": row.name,
                "quantity": int(row.quantity or 0),
                "revenue": _money(row.revenue),
            }
            for row in rows
        ]

    # ==================== Dashboard ====================

    async def dashboard(self) -> dict[str, Any]:
        total_orders = await self._scalar(select(func.count(Order.id)))
        total_revenue = await self._scalar(
            select(func.coalesce(func.sum(Order.total_price), 0)).where(Order.is_paid.is_(True))
        )
        total_users = await self._scalar(select(func.count(User.id)))
        total_products = await self._scalar(select(func.count(Product.id)))

        status_rows = (
            await self.db.execute(
                select(Order.status, func.count(Order.id).label("count"))
                .group_by(Order.status)
                .order_by(desc("count"))
            )
        ).all()

        recent = (
            await self.db.execute(
                select(Order)
                .options(selectinload(Order.user))
                .order_by(Order.created_at.desc(), Order.id.desc())
                .limit(5)
            )
        ).scalars().all()

        return {
            "total_orders": total_orders,
            "total_revenue": _money(total_revenue),
            "total_users": total_users,
            "total_products": total_products,
            "popular_products": await self._top_products("quantity", 5),
            "orders_by_status": [{"status": s.value, "count": c} for s, c in status_rows],
            "recent_orders": [
                {
                    "id": o.id,
                    "order_number": o.order_number,
                    "total_price": _money(o.total_price),
                    "status": o.status.value,
                    "is_paid": o.is_paid,
                    "created_at": o.created_at.isoformat(),
                    "user": {"name": o.user.name, "email": o.user.email} if o.user else None,
                }
                for o in recent
            ],
        }

    # ==================== Sales ====================

    async def sales(self, days: int = 30) -> dict[str, Any]:
        since = datetime.utcnow() - timedelta(days=days)
        day = func.date(Order.created_at).label("day")
        by_date = (
            await self.db.execute(
                select(day, func.sum(Order.total_price), func.count(Order.id))
                .where(Order.is_paid.is_(True), Order.created_at >= since)
                .group_by(day)
                .order_by(day)
            )
        ).all()

        line_total = func.sum(OrderItem.quantity * OrderItem.price).label("sales")
        by_category = (
            await self.db.execute(
                select(Product.main_category, line_total, func.sum(OrderItem.quantity))
                .join(Product, Product.id == OrderItem.product_id)
                .group_by(Product.main_category)
                .order_by(desc("sales"))
            )
        ).all()

        average = (
            await self.db.execute(
                select(
                    func.avg(Order.total_price),
                    func.sum(Order.total_price),
                    func.count(Order.id),
                ).where(Order.is_paid.is_(True))
            )
        ).one()

        return {
            "sales_by_date": [
                {"date": str(d), "sales": _money(total), "count": count} for d, total, count in by_date
            ],
            "sales_by_category": [
                {"category": category.value, "sales": _money(total), "count": int(count or 0)}
                for category, total, count in by_category
            ],
            "top_selling_products": await self._top_products("quantity", 10),
            "average_order_value": {
                "average": _money(average[0]),
                "total": _money(average[1]),
                "count": average[2],
            },
        }

    # ==================== Customers ====================

    async def users(self) -> dict[str, Any]:
        day = func.date(User.created_at).label("day")
        by_date = (
            await self.db.execute(select(day, func.count(User.id)).group_by(day).order_by(day))
        ).all()

        spent = func.sum(Order.total_price).label("total_spent")
        count = func.count(Order.id).label("orders_count")
        top = (
            await self.db.execute(
                select(User.id, User.name, User.email, spent, count)
                .join(Order, Order.user_id == User.id)
                .where(Order.is_paid.is_(True))
                .group_by(User.id, User.name, User.email)
                .order_by(desc("total_spent"))
                .limit(10)
            )
        ).all()

        per_user = (
            select(func.count(Order.id).label("order_count"))
            .group_by(Order.user_id)
            .subquery()
        )
        retention = (
            await self.db.execute(
                select(per_user.c.order_count, func.count())
                .group_by(per_user.c.order_count)
                .order_by(per_user.c.order_count)
            )
        ).all()

        return {
            "users_by_date": [{"date": str(d), "count": c} for d, c in by_date],
            "top_customers": [
                {
                    "id": row.id,
                    "name": row.name,
                    "email": row.email,
                    "total_spent": _money(row.total_spent),
                    "orders_count": row.orders_count,
                    "average_order_value": _money(row.total_spent) / row.orders_count,
                }
                for row in top
            ],
            "user_retention": [{"orders": n, "users": users} for n, users in retention],
        }

    # ==================== Products ====================

    async def products(self) -> dict[str, Any]:
        by_category = (
            await self.db.execute(
                select(Product.main_category, func.count(Product.id).label("count"))
                .group_by(Product.main_category)
                .order_by(desc("count"))
            )
        ).all()

        low_stock = (
            await self.db.execute(
                select(Product.id, Product.name, Product.stock, Product.main_category)
                .where(Product.stock <= LOW_STOCK_THRESHOLD, Product.is_active.is_(True))
                .order_by(Product.stock)
                .limit(10)
            )
        ).all()

        ratings = (await self.db.execute(select(Product.avg_rating))).scalars().all()
        distribution = Counter(math.ceil(r or 0) for r in ratings)

        return {
            "top_products_by_revenue": await self._top_products("revenue", 10),
            "products_by_category": [
                {"category": category.value, "count": c} for category, c in by_category
            ],
            "low_stock_products": [
                {"id": p.id, "name": p.name, "stock": p.stock, "category": p.main_category.value}
                for p in low_stock
            ],
            "ratings_distribution": [
                {"rating": rating, "count": distribution[rating]} for rating in sorted(distribution)
            ],
        }
