"""
Analytics API Endpoints (admin only).
"""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.database import get_db
from cakeheaven.core.security import require_admin
from cakeheaven.models.user import User
from cakeheaven.modules.admin import AnalyticsService

router = APIRouter()


@router.get("/dashboard")
async def get_dashboard(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Totals, popular products, orders by status and recent orders."""
    return await AnalyticsService(db).dashboard()


@router.get("/sales")
async def get_sales(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Paid sales over the last 30 days, by category and product."""
    return await AnalyticsService(db).sales()


@router.get("/users")
async def get_users(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    return await AnalyticsService(db).users()


@router.get("/products")
async def get_products(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    return await AnalyticsService(db).products()
