"""FastAPI application for Price Tracker."""

import asyncio
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from ..orchestrator.coordinator import RefreshCoordinator, RefreshError, build_coordinator
from ..storage.models import ProductRecord
from ..utils.config import Config, get_config, get_settings


class TrackRequest(BaseModel):
    """Subscription request for a product."""

    url: str
    email: str
    target_price: Optional[float] = Field(default=None, gt=0)


def _product_summary(product: ProductRecord) -> dict:
    return {
        "url": product.url,
        "title": product.title,
        "currency": product.currency,
        "current_price": product.current_price,
        "lowest_price": product.lowest_price,
        "highest_price": product.highest_price,
        "average_price": product.average_price,
        "is_out_of_stock": product.is_out_of_stock,
        "observations": len(product.price_history),
        "subscribers": len(product.users),
    }


def create_app(
    coordinator: Optional[RefreshCoordinator] = None, config: Optional[Config] = None
) -> FastAPI:
    """Create the API application.

    Args:
        coordinator: Refresh coordinator, built from configuration if omitted
        config: Configuration, loaded from the environment if omitted

    Returns:
        Configured FastAPI app
    """
    if config is None:
        config = get_config()
    if coordinator is None:
        coordinator = build_coordinator(config, get_settings())

    app = FastAPI(
        title="Price Tracker API",
        description="Price history and alerts for tracked marketplace products",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.coordinator = coordinator
    app.state.refresh_lock = asyncio.Lock()

    @app.on_event("startup")
    async def startup_event():
        """Run on application startup."""
        logger.info("Price Tracker API starting up")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Run on application shutdown."""
        logger.info("Price Tracker API shutting down")
        coordinator.store.close()

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Price Tracker API",
            "version": "1.0.0",
            "status": "running",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
        }

    @app.get("/api/cron")
    async def run_refresh(request: Request):
        """Refresh every tracked product now.

        The run is bounded by ``refresh.max_duration_seconds``. Products
        finished before the deadline keep their updates.
        """
        lock: asyncio.Lock = request.app.state.refresh_lock
        if lock.locked():
            return JSONResponse(
                status_code=409,
                content={"status": "error", "message": "Refresh already running"},
            )

        max_duration = request.app.state.config.refresh.max_duration_seconds

        async with lock:
            try:
                summary = await asyncio.wait_for(
                    request.app.state.coordinator.run(), timeout=max_duration
                )
            except RefreshError as e:
                logger.error(f"Refresh failed: {e}")
                return JSONResponse(
                    status_code=500, content={"status": "error", "message": str(e)}
                )
            except asyncio.TimeoutError:
                logger.error(f"Refresh exceeded {max_duration}s time budget")
                return JSONResponse(
                    status_code=504,
                    content={
                        "status": "error",
                        "message": f"Refresh exceeded {max_duration}s time budget",
                    },
                )

        return {
            "status": "ok",
            "message": "Products updated successfully",
            "data": summary.to_dict(),
        }

    @app.get("/products")
    async def list_products(request: Request):
        """List all tracked products with their price statistics."""
        products = request.app.state.coordinator.store.get_all_products()
        return {
            "products": [_product_summary(p) for p in products],
            "total": len(products),
        }

    @app.get("/products/lookup")
    async def get_product(
        request: Request, url: str = Query(..., description="Product URL")
    ):
        """Get a tracked product including its full price history."""
        product = request.app.state.coordinator.store.get_product(url)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not tracked")

        return {
            "product": _product_summary(product),
            "price_history": [
                {"price": p.price, "observed_at": p.observed_at.isoformat()}
                for p in product.price_history
            ],
        }

    @app.post("/products/track")
    async def track_product(request: Request, payload: TrackRequest):
        """Subscribe an email address to a product."""
        try:
            product = await request.app.state.coordinator.track(
                payload.url, payload.email, payload.target_price
            )
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

        return {
            "status": "ok",
            "message": f"Tracking {product.url} for {payload.email}",
            "product": _product_summary(product),
        }

    return app
