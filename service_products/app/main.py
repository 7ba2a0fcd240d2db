"""
Products service: ``GET /product/{id}`` backed by PostgreSQL with a Redis read-through cache.
"""

from typing import Dict, Optional

from fastapi import Response

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.metrics import MetricsCollector

from .cache.redis_cache import ProductCache
from .errors import InvalidProductIdError
from .lookup.read_through import ReadThroughCoordinator, serialize_product
from .persistence.postgres import ProductStore


SERVICE_NAME = "products"
SERVICE_PORT = 8080


def parse_product_id(raw_id: str) -> int:
    """Parse a path segment into a product id; only positive decimal integers are accepted."""
    if not raw_id.isascii() or not raw_id.isdigit():
        raise InvalidProductIdError(raw_id)
    product_id = int(raw_id)
    if product_id <= 0:
        raise InvalidProductIdError(raw_id)
    return product_id


class ProductsService(BaseService):
    """Products service implementation.

    The store and cache handles are built from config unless they are
    passed in; either way they are owned by this service and are opened in
    ``start()`` and closed in ``stop()``.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[ProductStore] = None,
        cache: Optional[ProductCache] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        config = config or get_config(SERVICE_NAME, SERVICE_PORT)
        super().__init__(SERVICE_NAME, config.port, config=config, metrics=metrics)

        # Initialize components
        self.store = store or ProductStore(
            self.config.postgres_dsn,
            min_size=self.config.postgres_min_pool_size,
            max_size=self.config.postgres_max_pool_size,
            default_timeout=self.config.store_timeout_seconds,
        )
        self.cache = cache or ProductCache(
            self.config.redis_url,
            default_timeout=self.config.cache_timeout_seconds,
        )
        self.lookup = ReadThroughCoordinator(
            self.cache,
            self.store,
            cache_failure_policy=self.config.cache_failure_policy,
            cache_timeout=self.config.cache_timeout_seconds,
            store_timeout=self.config.store_timeout_seconds,
            metrics=self.metrics,
        )

        self._setup_product_routes()

    def _setup_product_routes(self):
        """Set up product-specific routes."""

        @self.app.get(
            "/product/{product_id}",
            responses={
                200: {"description": "Product record as JSON"},
                400: {"description": "Invalid product ID"},
                404: {"description": "Product not found"},
                500: {"description": "Failed to retrieve product"},
            },
        )
        async def get_product(product_id: str):
            """Get a product by id."""
            product = await self.lookup.get_by_id(parse_product_id(product_id))
            return Response(content=serialize_product(product), media_type="application/json")

        @self.app.get("/product/", include_in_schema=False)
        async def get_product_without_id():
            """An empty id segment is an invalid id, not an unknown route."""
            raise InvalidProductIdError("")

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check products service dependencies."""
        return {
            "redis": "ok" if await self.cache.health_check() else "error",
            "postgres": "ok" if await self.store.health_check() else "error",
        }

    async def start(self):
        """Start products service components."""
        await self.store.start(create_schema=self.config.postgres_create_schema)
        try:
            await self.cache.start()
        except Exception:
            await self.store.stop()
            raise

        self.logger.info(
            "Products service started",
            cache_failure_policy=self.config.cache_failure_policy
        )

    async def stop(self):
        """Stop products service components."""
        await self.cache.stop()
        await self.store.stop()

        self.logger.info("Products service stopped")


def create_app():
    """Create products service application."""
    service = ProductsService()
    return service.app


def main():
    """Console entry point; uvicorn exits non-zero if a backend cannot be reached at startup."""
    service = ProductsService()
    service.run()


if __name__ == "__main__":
    main()
