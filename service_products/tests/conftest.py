"""
Shared fixtures for Products Service tests.
"""

import pytest
from typing import Dict, Iterable, Optional

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.metrics import MetricsCollector
from shared.test_helpers import FakeClock, InMemoryRedis, TestDataFactory
from service_products.app.cache.redis_cache import ProductCache
from service_products.app.errors import ProductNotFoundError
from service_products.app.lookup.read_through import ReadThroughCoordinator
from service_products.app.models import Product


class InMemoryProductStore:
    """Stand-in for ProductStore that counts point reads."""

    def __init__(self, products: Iterable[Product] = ()):
        self.products: Dict[int, Product] = {p.product_id: p for p in products}
        self.get_calls = 0
        self.started = False
        self.stopped = False
        self.healthy = True
        self.failure: Optional[Exception] = None

    async def start(self, create_schema: bool = False):
        self.started = True

    async def stop(self):
        self.stopped = True

    async def get_by_id(self, product_id: int, timeout: Optional[float] = None) -> Product:
        self.get_calls += 1
        if self.failure is not None:
            raise self.failure
        try:
            return self.products[product_id]
        except KeyError:
            raise ProductNotFoundError(product_id) from None

    async def health_check(self) -> bool:
        return self.healthy


@pytest.fixture
def products():
    """Test products keyed by id."""
    return {
        row["id"]: Product(
            product_id=row["id"],
            name=row["name"],
            description=row["description"],
            price=row["price"],
        )
        for row in TestDataFactory.create_test_products()
    }


@pytest.fixture
def widget(products):
    return products[1]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return InMemoryRedis(clock)


@pytest.fixture
def cache(fake_redis):
    return ProductCache("redis://test:6379/0", client=fake_redis)


@pytest.fixture
def store(products):
    return InMemoryProductStore(products.values())


@pytest.fixture
def metrics():
    return MetricsCollector("products")


@pytest.fixture
def coordinator(cache, store, metrics):
    return ReadThroughCoordinator(cache, store, metrics=metrics)
