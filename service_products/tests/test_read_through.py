"""
Unit tests for the read-through product lookup.
"""

import json
import pytest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.test_helpers import FakeClock
from service_products.app.cache.redis_cache import PRODUCT_CACHE_TTL
from service_products.app.errors import (
    CacheCorruptionError,
    CacheUnavailableError,
    ProductNotFoundError,
    StoreUnavailableError,
)
from service_products.app.lookup.read_through import (
    Deadline,
    ReadThroughCoordinator,
    serialize_product,
)
from service_products.app.models import Product, ProductPayload


KEY = "cache_products:1"


class TestReadThroughCoordinator:
    """Test cases for ReadThroughCoordinator."""

    @pytest.mark.asyncio
    async def test_first_lookup_reads_store_and_populates_cache(self, coordinator, store, fake_redis, widget):
        """A miss returns the store value and leaves an equivalent snapshot behind."""
        product = await coordinator.get_by_id(1)

        assert product == widget
        assert store.get_calls == 1

        snapshot = fake_redis.raw(KEY)["data"]
        assert ProductPayload.model_validate_json(snapshot).to_product() == widget
        assert fake_redis.ttl(KEY) == PRODUCT_CACHE_TTL.total_seconds()

    @pytest.mark.asyncio
    async def test_second_lookup_within_ttl_skips_store(self, coordinator, store, fake_redis, clock, widget):
        """A hit inside the TTL never touches the store and writes nothing."""
        await coordinator.get_by_id(1)
        clock.advance(PRODUCT_CACHE_TTL.total_seconds() - 1)

        product = await coordinator.get_by_id(1)

        assert product == widget
        assert store.get_calls == 1
        assert fake_redis.commands("hset") == [KEY]

    @pytest.mark.asyncio
    async def test_lookup_after_ttl_requeries_store(self, coordinator, store, fake_redis, clock, widget):
        """Once the TTL has elapsed the entry is absent and the store is read again."""
        await coordinator.get_by_id(1)
        clock.advance(PRODUCT_CACHE_TTL)

        product = await coordinator.get_by_id(1)

        assert product == widget
        assert store.get_calls == 2
        assert fake_redis.commands("hset") == [KEY, KEY]

    @pytest.mark.asyncio
    async def test_cache_serves_stale_value_until_expiry(self, coordinator, store, clock, widget):
        """Store updates are invisible to readers until the cached snapshot expires."""
        await coordinator.get_by_id(1)
        store.products[1] = Product(1, "Widget v2", "A better widget", 11.0)

        assert await coordinator.get_by_id(1) == widget

        clock.advance(PRODUCT_CACHE_TTL)
        assert (await coordinator.get_by_id(1)).name == "Widget v2"

    @pytest.mark.asyncio
    async def test_missing_product_raises_not_found_without_cache_write(self, coordinator, fake_redis):
        """A missing id is NotFound and nothing is cached for it."""
        with pytest.raises(ProductNotFoundError) as exc_info:
            await coordinator.get_by_id(999)

        assert exc_info.value.status_code == 404
        assert fake_redis.commands("hset") == []
        assert fake_redis.raw("cache_products:999") == {}

    @pytest.mark.asyncio
    async def test_store_failure_propagates_without_cache_write(self, coordinator, store, fake_redis):
        """Store errors reach the caller and are never cached."""
        store.failure = StoreUnavailableError("connection reset", product_id=1, operation="store.get_by_id")

        with pytest.raises(StoreUnavailableError):
            await coordinator.get_by_id(1)

        assert fake_redis.commands("hset") == []

    @pytest.mark.asyncio
    async def test_cache_outage_degrades_to_store(self, coordinator, store, fake_redis, metrics, widget):
        """With the default policy a dead cache only costs a store read."""
        fake_redis.fail(RedisConnectionError("Connection refused"))

        product = await coordinator.get_by_id(1)

        assert product == widget
        assert store.get_calls == 1
        assert metrics.registry.get_sample_value("product_cache_population_failures_total") == 1.0

    @pytest.mark.asyncio
    async def test_cache_outage_fails_lookup_when_policy_is_fail(self, cache, store, fake_redis):
        """The fail policy surfaces the outage and leaves the store alone."""
        coordinator = ReadThroughCoordinator(cache, store, cache_failure_policy="fail")
        fake_redis.fail(RedisConnectionError("Connection refused"))

        with pytest.raises(CacheUnavailableError) as exc_info:
            await coordinator.get_by_id(1)

        assert exc_info.value.product_id == 1
        assert exc_info.value.operation == "cache.exists"
        assert store.get_calls == 0

    @pytest.mark.asyncio
    async def test_slow_cache_is_treated_as_unavailable(self, cache, store, fake_redis, widget):
        """A cache slower than its deadline degrades like an outage."""
        coordinator = ReadThroughCoordinator(cache, store, cache_timeout=0.01)
        fake_redis.delay = 0.2

        assert await coordinator.get_by_id(1) == widget
        assert store.get_calls == 1

    @pytest.mark.asyncio
    async def test_population_failure_is_swallowed(self, coordinator, store, fake_redis, metrics, widget):
        """A failed write-back never fails a lookup that already has its product."""
        fake_redis.fail(RedisConnectionError("READONLY"), commands=["hset"])

        product = await coordinator.get_by_id(1)

        assert product == widget
        assert fake_redis.raw(KEY) == {}
        assert metrics.registry.get_sample_value("product_cache_population_failures_total") == 1.0

    @pytest.mark.asyncio
    async def test_corrupt_snapshot_raises_cache_corruption(self, coordinator, store, fake_redis):
        """An undecodable snapshot is reported, not silently replaced."""
        fake_redis.seed(KEY, "data", "{not json", ttl=300)

        with pytest.raises(CacheCorruptionError) as exc_info:
            await coordinator.get_by_id(1)

        assert exc_info.value.status_code == 500
        assert store.get_calls == 0

    @pytest.mark.asyncio
    async def test_snapshot_with_invalid_fields_raises_cache_corruption(self, coordinator, fake_redis):
        """A snapshot missing fields or with a negative price is corrupt."""
        fake_redis.seed(KEY, "data", json.dumps({"ID": 1, "Name": "Widget", "Price": -1}), ttl=300)

        with pytest.raises(CacheCorruptionError):
            await coordinator.get_by_id(1)

    @pytest.mark.asyncio
    async def test_entry_expiring_between_check_and_read_is_a_miss(self, store, widget):
        """If the entry vanishes after the presence check the store is consulted."""
        cache = MagicMock()
        cache.key_for.return_value = KEY
        cache.exists = AsyncMock(return_value=True)
        cache.get = AsyncMock(return_value=None)
        cache.set = AsyncMock()
        coordinator = ReadThroughCoordinator(cache, store)

        product = await coordinator.get_by_id(1)

        assert product == widget
        assert store.get_calls == 1
        cache.set.assert_awaited_once()
        key, value, ttl = cache.set.await_args.args
        assert key == KEY
        assert ttl == PRODUCT_CACHE_TTL

    @pytest.mark.asyncio
    async def test_lookup_metrics(self, coordinator, metrics):
        """Hits, misses and store outcomes are counted."""
        await coordinator.get_by_id(1)
        await coordinator.get_by_id(1)
        with pytest.raises(ProductNotFoundError):
            await coordinator.get_by_id(999)

        registry = metrics.registry
        assert registry.get_sample_value("product_cache_hits_total") == 1.0
        assert registry.get_sample_value("product_cache_misses_total") == 2.0
        assert registry.get_sample_value("product_store_reads_total", {"outcome": "hit"}) == 1.0
        assert registry.get_sample_value("product_store_reads_total", {"outcome": "not_found"}) == 1.0
        assert registry.get_sample_value("product_lookup_duration_seconds_count", {"source": "cache"}) == 1.0
        assert registry.get_sample_value("product_lookup_duration_seconds_count", {"source": "store"}) == 1.0

    def test_unknown_cache_failure_policy_is_rejected(self, cache, store):
        with pytest.raises(ValueError):
            ReadThroughCoordinator(cache, store, cache_failure_policy="retry")


class TestSerialization:
    """Test cases for the cached snapshot format."""

    def test_snapshot_round_trip(self, products):
        for product in products.values():
            restored = ProductPayload.model_validate_json(serialize_product(product)).to_product()
            assert restored == product

    def test_snapshot_field_names(self, widget):
        assert json.loads(serialize_product(widget)) == {
            "ID": 1,
            "Name": "Widget",
            "Description": "A widget",
            "Price": 9.99,
        }

    def test_negative_price_is_rejected(self):
        with pytest.raises(ValueError):
            Product(1, "Broken", "Negative price", -0.01)


class TestDeadline:
    """Test cases for the per-lookup time budget."""

    def test_without_timeout_uses_default(self):
        assert Deadline(None).remaining(1.5) == 1.5

    def test_remaining_shrinks_and_caps_at_default(self):
        clock = FakeClock(100.0)
        deadline = Deadline(2.0, clock=clock)

        assert deadline.remaining(5.0) == 2.0
        assert deadline.remaining(1.0) == 1.0

        clock.advance(1.5)
        assert deadline.remaining(5.0) == pytest.approx(0.5)

        clock.advance(10)
        assert deadline.remaining(5.0) == 0.0
