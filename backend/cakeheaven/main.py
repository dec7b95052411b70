"""
Cake Heaven Backend Application.

FastAPI application for the Cake Heaven bakery shop: catalog,
orders, coupons, wallet points, Stripe payments and admin tools.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from cakeheaven.api.v1 import router as api_router
from cakeheaven.core.config import settings
from cakeheaven.core.database import close_db, init_db
from cakeheaven.core.exceptions import ShopError
from cakeheaven.modules.shop.cache import close_catalog_cache


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("Starting Cake Heaven Backend...")

    # Initialize database
    await init_db()
    logger.info("Database initialized")

    logger.info("Cake Heaven Backend started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Cake Heaven Backend...")

    await close_catalog_cache()
    await close_db()

    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Cake Heaven Backend Platform

    ## Features

    - **Catalog**: Cakes with rich filters, reviews and a Redis cache
    - **Orders**: Server-side pricing, stock reservation, order lifecycle
    - **Coupons & Wallet**: Discount codes and loyalty points
    - **Payments**: Stripe card payments, Checkout and webhooks
    - **Admin**: Store settings and analytics

    ## Documentation

    - [API Docs](/docs) - Interactive Swagger UI
    - [ReDoc](/redoc) - Alternative documentation
    """,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== Error handlers ====================


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError) -> ORJSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return ORJSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> ORJSONResponse:
    return ORJSONResponse(status_code=exc.status_code, content={"message": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    message = errors[0]["message"] if errors else "Invalid request"
    return ORJSONResponse(status_code=400, content={"message": message, "errors": errors})


# Include API router
app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/health", tags=["System"])
async def health_check() -> dict:
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "version": settings.app_version,
    }


@app.get("/", tags=["System"])
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "api": settings.api_prefix,
    }
