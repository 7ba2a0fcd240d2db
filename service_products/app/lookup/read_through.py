"""
Read-through coordination for product lookups.
"""

import time
from typing import Callable, Literal, Optional, TYPE_CHECKING

from pydantic import ValidationError as PayloadValidationError

from shared.logging import get_logger
from ..errors import (
    CacheCorruptionError,
    CacheUnavailableError,
    ProductLookupError,
    ProductNotFoundError,
    SerializationFailureError,
)
from ..models import Product, ProductPayload
from ..cache.redis_cache import PRODUCT_CACHE_TTL

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..cache.redis_cache import ProductCache
    from ..persistence.postgres import ProductStore
    from shared.metrics import MetricsCollector


CacheFailurePolicy = Literal["degrade", "fail"]


class Deadline:
    """Remaining time budget shared by the calls of one lookup."""

    def __init__(self, timeout: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = None if timeout is None else clock() + timeout

    def remaining(self, default: float) -> float:
        """Seconds left, capped at ``default``; never negative."""
        if self._expires_at is None:
            return default
        return max(0.0, min(default, self._expires_at - self._clock()))


class ReadThroughCoordinator:
    """Cache-aside lookup of a single product.

    Checks the cache first; on a miss reads the store and writes the result
    back under the fixed TTL. Cache writes are best-effort and never fail a
    lookup that already has its product. Concurrent misses for the same id
    may both populate the cache; the overwrite is idempotent so no locking
    is done here.
    """

    def __init__(
        self,
        cache: "ProductCache",
        store: "ProductStore",
        *,
        cache_failure_policy: CacheFailurePolicy = "degrade",
        cache_timeout: float = 1.0,
        store_timeout: float = 5.0,
        metrics: Optional["MetricsCollector"] = None,
    ):
        if cache_failure_policy not in ("degrade", "fail"):
            raise ValueError(f"Unknown cache failure policy: {cache_failure_policy}")
        self.cache = cache
        self.store = store
        self.cache_failure_policy = cache_failure_policy
        self.cache_timeout = cache_timeout
        self.store_timeout = store_timeout
        self.metrics = metrics
        self.logger = get_logger("products.lookup.read_through")

    async def get_by_id(self, product_id: int, timeout: Optional[float] = None) -> Product:
        """Return the product with ``product_id``.

        ``timeout`` bounds the whole lookup; every cache and store call gets
        whatever budget is left.

        Raises:
            ProductNotFoundError: the store has no such product.
            StoreUnavailableError: the store failed or ran out of time.
            CacheUnavailableError: the cache failed and the policy is ``fail``.
            CacheCorruptionError: the cached snapshot could not be decoded.
        """
        started = time.perf_counter()
        deadline = Deadline(timeout)
        key = self.cache.key_for(product_id)

        cached = await self._read_cache(product_id, key, deadline)
        if cached is not None:
            self._increment("product_cache_hits_total")
            self._observe(started, "cache")
            self.logger.debug("Product served from cache", product_id=product_id, cache_key=key)
            return cached

        self._increment("product_cache_misses_total")
        try:
            product = await self.store.get_by_id(product_id, timeout=deadline.remaining(self.store_timeout))
        except ProductNotFoundError:
            self._increment("product_store_reads_total", outcome="not_found")
            raise
        except ProductLookupError:
            self._increment("product_store_reads_total", outcome="error")
            raise
        self._increment("product_store_reads_total", outcome="hit")

        await self._populate(product, key, deadline)
        self._observe(started, "store")
        self.logger.debug("Product served from store", product_id=product_id)
        return product

    async def _read_cache(self, product_id: int, key: str, deadline: Deadline) -> Optional[Product]:
        try:
            if not await self.cache.exists(key, timeout=deadline.remaining(self.cache_timeout)):
                return None
            raw = await self.cache.get(key, timeout=deadline.remaining(self.cache_timeout))
        except CacheUnavailableError as e:
            if self.cache_failure_policy == "fail":
                raise CacheUnavailableError(
                    e.message, product_id=product_id, operation=e.operation, details=e.details
                ) from e
            self.logger.warning(
                "Cache unavailable, reading from store",
                product_id=product_id,
                operation=e.operation,
                error=e.message
            )
            return None

        # Expired between the presence check and the read.
        if raw is None:
            return None

        try:
            return ProductPayload.model_validate_json(raw).to_product()
        except (PayloadValidationError, ValueError) as e:
            raise CacheCorruptionError(
                f"Cached snapshot for product {product_id} could not be decoded: {e}",
                product_id=product_id,
                operation="cache.decode",
                details={"cache_key": key},
            ) from e

    async def _populate(self, product: Product, key: str, deadline: Deadline):
        try:
            snapshot = serialize_product(product)
            await self.cache.set(
                key, snapshot, PRODUCT_CACHE_TTL, timeout=deadline.remaining(self.cache_timeout)
            )
        except (CacheUnavailableError, SerializationFailureError) as e:
            self._increment("product_cache_population_failures_total")
            self.logger.warning(
                "Failed to populate product cache",
                product_id=product.product_id,
                cache_key=key,
                code=e.code,
                error=e.message
            )

    def _increment(self, metric_name: str, **labels):
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)

    def _observe(self, started: float, source: str):
        if self.metrics:
            self.metrics.observe_histogram(
                "product_lookup_duration_seconds", time.perf_counter() - started, source=source
            )


def serialize_product(product: Product) -> str:
    """JSON snapshot of ``product`` as stored in the cache and sent to clients."""
    try:
        return ProductPayload.from_product(product).to_json()
    except (PayloadValidationError, ValueError) as e:
        raise SerializationFailureError(
            f"Product {product.product_id} could not be serialized: {e}",
            product_id=product.product_id,
            operation="serialize",
        ) from e
