"""
Products API Endpoints.

Catalog browsing, search, admin product management and reviews.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.database import get_db
from cakeheaven.core.security import get_current_user, require_admin
from cakeheaven.models.shop import (
    CakeType,
    EggOption,
    Festival,
    Flavor,
    Layer,
    MainCategory,
    Occasion,
    Shape,
    SubCategory,
)
from cakeheaven.models.user import User
from cakeheaven.modules.shop.cache import CatalogCache, get_catalog_cache
from cakeheaven.modules.shop.service import CatalogService, product_to_dict, review_to_dict

router = APIRouter()


# ==================== Schemas ====================


class ProductRequest(BaseModel):
    """Create product."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)
    discount_price: Decimal | None = Field(None, ge=0)
    main_category: MainCategory
    sub_category: SubCategory | None = None
    layer: Layer = Layer.ONE
    flavor: Flavor
    shape: Shape
    occasion: Occasion
    festival: Festival = Festival.NONE
    cake_type: CakeType = CakeType.REGULAR
    egg_or_eggless: EggOption
    stock: int = Field(10, ge=0)
    weight: str
    images: list[str] = []
    customization: dict[str, Any] = {}
    ingredients: list[str] = []
    nutritional_info: dict[str, Any] = {}
    tags: list[str] = []
    featured: bool = False
    is_best_seller: bool = False
    is_new: bool = False
    is_active: bool = True
    available_from: datetime | None = None
    available_until: datetime | None = None


class ProductUpdateRequest(BaseModel):
    """Partial product update."""

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    price: Decimal | None = Field(None, ge=0)
    discount_price: Decimal | None = Field(None, ge=0)
    main_category: MainCategory | None = None
    sub_category: SubCategory | None = None
    layer: Layer | None = None
    flavor: Flavor | None = None
    shape: Shape | None = None
    occasion: Occasion | None = None
    festival: Festival | None = None
    cake_type: CakeType | None = None
    egg_or_eggless: EggOption | None = None
    stock: int | None = Field(None, ge=0)
    weight: str | None = None
    images: list[str] | None = None
    customization: dict[str, Any] | None = None
    ingredients: list[str] | None = None
    nutritional_info: dict[str, Any] | None = None
    tags: list[str] | None = None
    featured: bool | None = None
    is_best_seller: bool | None = None
    is_new: bool | None = None
    is_active: bool | None = None
    available_from: datetime | None = None
    available_until: datetime | None = None


class ReviewRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)


class ReviewUpdateRequest(BaseModel):
    rating: int | None = Field(None, ge=1, le=5)
    comment: str | None = None


# ==================== Browsing ====================


@router.get("")
async def list_products(
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> list[dict[str, Any]]:
    """All active products."""
    return await CatalogService(db, cache).list_products()


@router.get("/search")
async def search_products(
    keyword: str | None = Query(None, description="Name, description or tag"),
    main_category: MainCategory | None = Query(None),
    category: MainCategory | None = Query(None, description="Alias for main_category"),
    sub_category: SubCategory | None = Query(None),
    flavor: Flavor | None = Query(None),
    shape: Shape | None = Query(None),
    layer: Layer | None = Query(None),
    occasion: Occasion | None = Query(None),
    festival: Festival | None = Query(None),
    cake_type: CakeType | None = Query(None),
    egg_or_eggless: EggOption | None = Query(None),
    min_price: float | None = Query(None, ge=0),
    max_price: float | None = Query(None, ge=0),
    sort: str | None = Query(None, description="price-low, price-high, newest, ratings, popularity"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> dict[str, Any]:
    """
    Search products with filtering, sorting and pagination.

    Returns {products, page, pages, total}.
    """
    return await CatalogService(db, cache).search_products(
        keyword=keyword,
        main_category=main_category or category,
        sub_category=sub_category,
        flavor=flavor,
        shape=shape,
        layer=layer,
        occasion=occasion,
        festival=festival,
        cake_type=cake_type,
        egg_or_eggless=egg_or_eggless,
        min_price=min_price,
        max_price=max_price,
        sort=sort,
        page=page,
        page_size=page_size,
    )


@router.get("/filter-options")
async def get_filter_options(
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> dict[str, Any]:
    return await CatalogService(db, cache).get_filter_options()


@router.get("/categories")
async def get_categories(
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> dict[str, list[str]]:
    return await CatalogService(db, cache).get_categories()


@router.get("/featured")
async def get_featured(
    limit: int = Query(8, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> list[dict[str, Any]]:
    return await CatalogService(db, cache).get_featured(limit)


@router.get("/{product_id}")
async def get_product(
    product_id: int,
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> dict[str, Any]:
    """Get product details with reviews."""
    return await CatalogService(db, cache).get_product(product_id)


@router.get("/{product_id}/related")
async def get_related(
    product_id: int,
    limit: int = Query(4, ge=1, le=20),
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> list[dict[str, Any]]:
    """Products sharing the main category, occasion or flavor."""
    return await CatalogService(db, cache).get_related(product_id, limit)


# ==================== Management ====================


@router.post("", status_code=201)
async def create_product(
    request: ProductRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> dict[str, Any]:
    product = await CatalogService(db, cache).create_product(request.model_dump())
    return product_to_dict(product)


@router.put("/{product_id}")
async def update_product(
    product_id: int,
    request: ProductUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> dict[str, Any]:
    product = await CatalogService(db, cache).update_product(
        product_id, request.model_dump(exclude_unset=True)
    )
    return product_to_dict(product)


@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> dict[str, str]:
    await CatalogService(db, cache).delete_product(product_id)
    return {"message": "Product removed"}


# ==================== Reviews ====================


@router.post("/{product_id}/reviews", status_code=201)
async def add_review(
    product_id: int,
    request: ReviewRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> dict[str, Any]:
    """Review a product (once per customer)."""
    review = await CatalogService(db, cache).add_review(
        product_id, user, request.rating, request.comment
    )
    return {"message": "Review added", "review": review_to_dict(review)}


@router.put("/{product_id}/reviews/{review_id}")
async def update_review(
    product_id: int,
    review_id: int,
    request: ReviewUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> dict[str, Any]:
    review = await CatalogService(db, cache).update_review(
        product_id, review_id, user, request.rating, request.comment
    )
    return {"message": "Review updated", "review": review_to_dict(review)}


@router.delete("/{product_id}/reviews/{review_id}")
async def delete_review(
    product_id: int,
    review_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> dict[str, str]:
    await CatalogService(db, cache).delete_review(product_id, review_id, user)
    return {"message": "Review removed"}
