"""
Catalog Service - Product search, product management and reviews.
"""

import json
import math
from typing import Any

from loguru import logger
from sqlalchemy import String, cast, distinct, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.database import after_commit
from cakeheaven.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from cakeheaven.models.shop import (
    CakeType,
    EggOption,
    Festival,
    Flavor,
    Layer,
    MainCategory,
    Occasion,
    Product,
    ProductReview,
    Shape,
    SubCategory,
)
from cakeheaven.models.user import User
from cakeheaven.modules.shop.cache import CatalogCache

SORT_OPTIONS = {
    "price-low": Product.price.asc(),
    "price-high": Product.price.desc(),
    "newest": Product.created_at.desc(),
    "ratings": Product.avg_rating.desc(),
    "popularity": Product.num_reviews.desc(),
}


def _value(enum_member: Any) -> Any:
    return enum_member.value if enum_member is not None else None


def review_to_dict(review: ProductReview) -> dict[str, Any]:
    return {
        "id": review.id,
        "user_id": review.user_id,
        "name": review.name,
        "rating": review.rating,
        "comment": review.comment,
        "created_at": review.created_at.isoformat() if review.created_at else None,
    }


def product_to_dict(product: Product, include_reviews: bool = True) -> dict[str, Any]:
    """Serialize a product to a JSON-safe dict."""
    data = {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "price": float(product.price),
        "discount_price": float(product.discount_price) if product.discount_price else None,
        "main_category": _value(product.main_category),
        "sub_category": _value(product.sub_category),
        "layer": _value(product.layer),
        "flavor": _value(product.flavor),
        "shape": _value(product.shape),
        "occasion": _value(product.occasion),
        "festival": _value(product.festival),
        "cake_type": _value(product.cake_type),
        "egg_or_eggless": _value(product.egg_or_eggless),
        "stock": product.stock,
        "weight": product.weight,
        "images": list(product.images or []),
        "customization": product.customization or {},
        "ingredients": list(product.ingredients or []),
        "nutritional_info": product.nutritional_info or {},
        "tags": list(product.tags or []),
        "featured": product.featured,
        "is_best_seller": product.is_best_seller,
        "is_new": product.is_new,
        "is_active": product.is_active,
        "available_from": product.available_from.isoformat() if product.available_from else None,
        "available_until": product.available_until.isoformat() if product.available_until else None,
        "avg_rating": product.avg_rating,
        "num_reviews": product.num_reviews,
        "created_at": product.created_at.isoformat() if product.created_at else None,
    }
    if include_reviews:
        data["reviews"] = [review_to_dict(r) for r in product.reviews]
    return data


class CatalogService:
    """
    Service for browsing and managing the cake catalog.

    Read paths are served through the catalog cache; every write
    invalidates it once the transaction commits.

    Usage:
        catalog = CatalogService(db_session, cache)
        result = await catalog.search_products(flavor=Flavor.CHOCOLATE)
    """

    def __init__(self, db: AsyncSession, cache: CatalogCache | None = None) -> None:
        """Initialize catalog service with database session and cache."""
        self.db = db
        self.cache = cache

    async def _cache_get(self, key: str) -> Any | None:
        if self.cache is None:
            return None
        return await self.cache.get(key)

    async def _cache_set(self, key: str, value: Any) -> None:
        if self.cache is not None:
            await self.cache.set(key, value)

    def _invalidate(self) -> None:
        if self.cache is not None:
            after_commit(self.db, self.cache.invalidate)

    # ==================== Browsing ====================

    async def list_products(self) -> list[dict[str, Any]]:
        """All active products."""
        cached = await self._cache_get("all_products")
        if cached is not None:
            return cached

        query = select(Product).where(Product.is_active == True).order_by(Product.created_at.desc())
        result = await self.db.execute(query)
        products = [product_to_dict(p) for p in result.scalars().all()]

        await self._cache_set("all_products", products)
        return products

    async def search_products(
        self,
        keyword: str | None = None,
        main_category: MainCategory | None = None,
        sub_category: SubCategory | None = None,
        flavor: Flavor | None = None,
        shape: Shape | None = None,
        layer: Layer | None = None,
        occasion: Occasion | None = None,
        festival: Festival | None = None,
        cake_type: CakeType | None = None,
        egg_or_eggless: EggOption | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
        sort: str | None = None,
        page: int = 1,
        page_size: int = 10,
    ) -> dict[str, Any]:
        """
        Search and filter active products.

        Args:
            keyword: Case-insensitive match on name, description or tags
            festival: Ignored when "None"
            cake_type: Ignored when "Regular"
            sort: price-low, price-high, newest, ratings or popularity
            page: 1-based page number
            page_size: Products per page

        Returns:
            {products, page, pages, total}
        """
        page = max(page, 1)
        page_size = max(page_size, 1)

        params = {
            "keyword": keyword,
            "main_category": _value(main_category),
            "sub_category": _value(sub_category),
            "flavor": _value(flavor),
            "shape": _value(shape),
            "layer": _value(layer),
            "occasion": _value(occasion),
            "festival": _value(festival),
            "cake_type": _value(cake_type),
            "egg_or_eggless": _value(egg_or_eggless),
            "min_price": min_price,
            "max_price": max_price,
            "sort": sort,
            "page": page,
            "page_size": page_size,
        }
        cache_key = f"search_{json.dumps(params, sort_keys=True)}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return cached

        conditions = [Product.is_active == True]

        if keyword:
            pattern = f"%{keyword}%"
            conditions.append(
                or_(
                    Product.name.ilike(pattern),
                    Product.description.ilike(pattern),
                    cast(Product.tags, String).ilike(pattern),
                )
            )

        if main_category:
            conditions.append(Product.main_category == main_category)
        if sub_category:
            conditions.append(Product.sub_category == sub_category)
        if flavor:
            conditions.append(Product.flavor == flavor)
        if shape:
            conditions.append(Product.shape == shape)
        if layer:
            conditions.append(Product.layer == layer)
        if occasion:
            conditions.append(Product.occasion == occasion)
        if festival and festival != Festival.NONE:
            conditions.append(Product.festival == festival)
        if cake_type and cake_type != CakeType.REGULAR:
            conditions.append(Product.cake_type == cake_type)
        if egg_or_eggless:
            conditions.append(Product.egg_or_eggless == egg_or_eggless)
        if min_price is not None:
            conditions.append(Product.price >= min_price)
        if max_price is not None:
            conditions.append(Product.price <= max_price)

        total_query = select(func.count(Product.id)).where(*conditions)
        total = (await self.db.execute(total_query)).scalar_one()

        query = (
            select(Product)
            .where(*conditions)
            .order_by(SORT_OPTIONS.get(sort or "newest", Product.created_at.desc()), Product.id.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        result = await self.db.execute(query)

        data = {
            "products": [product_to_dict(p) for p in result.scalars().all()],
            "page": page,
            "pages": math.ceil(total / page_size),
            "total": total,
        }

        await self._cache_set(cache_key, data)
        return data

    async def _distinct(self, column: Any, *extra: Any) -> list[str]:
        query = select(distinct(column)).where(Product.is_active == True, column.is_not(None), *extra)
        result = await self.db.execute(query)
        return sorted(v.value for v in result.scalars().all())

    async def get_filter_options(self) -> dict[str, Any]:
        """Distinct attribute values over active products, for filter UIs."""
        cached = await self._cache_get("filter_options")
        if cached is not None:
            return cached

        price_query = select(func.min(Product.price), func.max(Product.price)).where(
            Product.is_active == True
        )
        min_price, max_price = (await self.db.execute(price_query)).one()
        if min_price is None:
            price_range = {"min": 0, "max": 5000}
        else:
            price_range = {"min": float(min_price), "max": float(max_price)}

        options = {
            "main_categories": await self._distinct(Product.main_category),
            "sub_categories": await self._distinct(Product.sub_category),
            "flavors": await self._distinct(Product.flavor),
            "shapes": await self._distinct(Product.shape),
            "layers": await self._distinct(Product.layer),
            "occasions": await self._distinct(Product.occasion),
            "festivals": await self._distinct(Product.festival, Product.festival != Festival.NONE),
            "cake_types": await self._distinct(
                Product.cake_type, Product.cake_type != CakeType.REGULAR
            ),
            "price_range": price_range,
            "egg_or_eggless": [e.value for e in EggOption],
        }

        await self._cache_set("filter_options", options)
        return options

    async def get_categories(self) -> dict[str, list[str]]:
        """Main and sub categories in use across the whole catalog."""
        cached = await self._cache_get("product_categories")
        if cached is not None:
            return cached

        main = await self.db.execute(select(distinct(Product.main_category)))
        sub = await self.db.execute(
            select(distinct(Product.sub_category)).where(Product.sub_category.is_not(None))
        )
        data = {
            "main_categories": sorted(v.value for v in main.scalars().all()),
            "sub_categories": sorted(v.value for v in sub.scalars().all()),
        }

        await self._cache_set("product_categories", data)
        return data

    async def get_product_model(self, product_id: int) -> Product | None:
        """Get product ORM object by ID."""
        return await self.db.get(Product, product_id)

    async def get_product(self, product_id: int) -> dict[str, Any]:
        """Get serialized product by ID."""
        cache_key = f"product_{product_id}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return cached

        product = await self.get_product_model(product_id)
        if not product:
            raise NotFoundError("Product not found")

        data = product_to_dict(product)
        await self._cache_set(cache_key, data)
        return data

    async def get_featured(self, limit: int = 8) -> list[dict[str, Any]]:
        """Featured active products."""
        cache_key = f"featured_products_{limit}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return cached

        query = (
            select(Product)
            .where(Product.featured == True, Product.is_active == True)
            .order_by(Product.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(query)
        products = [product_to_dict(p) for p in result.scalars().all()]

        await self._cache_set(cache_key, products)
        return products

    async def get_related(self, product_id: int, limit: int = 4) -> list[dict[str, Any]]:
        """Products sharing main category, occasion or flavor with the given one."""
        product = await self.get_product_model(product_id)
        if not product:
            raise NotFoundError("Product not found")

        cache_key = f"related_products_{product_id}_{limit}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return cached

        query = (
            select(Product)
            .where(
                Product.id != product.id,
                Product.is_active == True,
                or_(
                    Product.main_category == product.main_category,
                    Product.occasion == product.occasion,
                    Product.flavor == product.flavor,
                ),
            )
            .order_by(Product.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(query)
        products = [product_to_dict(p) for p in result.scalars().all()]

        await self._cache_set(cache_key, products)
        return products

    # ==================== Management ====================

    async def create_product(self, data: dict[str, Any]) -> Product:
        """Create new product from validated fields."""
        if not data.get("images"):
            raise ValidationError("At least one product image is required")

        product = Product(**data, reviews=[])
        self.db.add(product)
        await self.db.flush()
        self._invalidate()

        logger.info(f"Product created: {product.id} {product.name}")
        return product

    async def update_product(self, product_id: int, data: dict[str, Any]) -> Product:
        """Apply a partial update."""
        product = await self.get_product_model(product_id)
        if not product:
            raise NotFoundError("Product not found")

        if "images" in data and not data["images"]:
            raise ValidationError("At least one product image is required")

        for field, value in data.items():
            setattr(product, field, value)

        await self.db.flush()
        self._invalidate()
        return product

    async def delete_product(self, product_id: int) -> None:
        product = await self.get_product_model(product_id)
        if not product:
            raise NotFoundError("Product not found")

        await self.db.delete(product)
        await self.db.flush()
        self._invalidate()
        logger.info(f"Product deleted: {product_id}")

    async def update_stock(self, product_id: int, quantity_change: int) -> bool:
        """
        Adjust stock without ever letting it go negative.

        Args:
            product_id: Product ID
            quantity_change: Amount to add (positive) or subtract (negative)

        Returns:
            True if the row was updated
        """
        query = update(Product).where(Product.id == product_id)
        if quantity_change < 0:
            query = query.where(Product.stock >= -quantity_change)
        query = query.values(stock=Product.stock + quantity_change)

        result = await self.db.execute(query)
        return result.rowcount == 1

    # ==================== Reviews ====================

    async def add_review(
        self,
        product_id: int,
        user: User,
        rating: int,
        comment: str,
    ) -> ProductReview:
        """Add a review; each user may review a product once."""
        product = await self.get_product_model(product_id)
        if not product:
            raise NotFoundError("Product not found")

        if any(r.user_id == user.id for r in product.reviews):
            raise ValidationError("Product already reviewed")

        review = ProductReview(user_id=user.id, name=user.name, rating=rating, comment=comment)
        product.reviews.append(review)
        product.recalculate_rating()

        await self.db.flush()
        self._invalidate()
        return review

    def _find_review(self, product: Product, review_id: int) -> ProductReview:
        for review in product.reviews:
            if review.id == review_id:
                return review
        raise NotFoundError("Review not found")

    async def update_review(
        self,
        product_id: int,
        review_id: int,
        user: User,
        rating: int | None = None,
        comment: str | None = None,
    ) -> ProductReview:
        """Edit a review; only its author may."""
        product = await self.get_product_model(product_id)
        if not product:
            raise NotFoundError("Product not found")

        review = self._find_review(product, review_id)
        if review.user_id != user.id:
            raise PermissionDeniedError("Not authorized to update this review")

        if rating:
            review.rating = rating
        if comment:
            review.comment = comment
        product.recalculate_rating()

        await self.db.flush()
        self._invalidate()
        return review

    async def delete_review(self, product_id: int, review_id: int, user: User) -> None:
        """Remove a review; its author or an admin may."""
        product = await self.get_product_model(product_id)
        if not product:
            raise NotFoundError("Product not found")

        review = self._find_review(product, review_id)
        if review.user_id != user.id and not user.is_admin:
            raise PermissionDeniedError("Not authorized to delete this review")

        product.reviews.remove(review)
        product.recalculate_rating()

        await self.db.flush()
        self._invalidate()
