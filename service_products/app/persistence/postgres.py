"""
PostgreSQL persistence layer for Products Service.
"""

import asyncio
from typing import Any, List, Optional

import asyncpg

from shared.logging import get_logger
from shared.errors import ServiceStartupError
from ..errors import ProductNotFoundError, StoreUnavailableError
from ..models import Product


Timeout = Optional[float]

PRODUCT_COLUMNS = "id, name, description, price"

# Upper bound of the SERIAL (int4) id column; larger ids cannot exist.
MAX_PRODUCT_ID = 2**31 - 1


class ProductStore:
    """PostgreSQL persistence layer for products, the source of truth."""

    def __init__(
        self,
        dsn: str,
        pool: Optional[asyncpg.Pool] = None,
        *,
        min_size: int = 2,
        max_size: int = 10,
        default_timeout: float = 5.0,
    ):
        self.dsn = dsn
        self.logger = get_logger("products.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = pool
        self.min_size = min_size
        self.max_size = max_size
        self.default_timeout = default_timeout

    async def start(self, create_schema: bool = False):
        """Start the persistence layer."""
        if self.pool is None:
            try:
                self.pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=self.min_size,
                    max_size=self.max_size,
                    command_timeout=30
                )
            except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
                self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
                raise ServiceStartupError("postgres", str(e)) from e

        if create_schema:
            try:
                await self.ensure_schema()
            except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
                self.logger.error("Failed to create products schema", error=str(e))
                await self.stop()
                raise ServiceStartupError("postgres", str(e)) from e

        self.logger.info("PostgreSQL persistence started")

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def ensure_schema(self):
        """Create the products table if it does not exist."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS products (
                    id SERIAL PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL,
                    price NUMERIC(12, 2) NOT NULL CHECK (price >= 0)
                );
            """)

    async def get_by_id(self, product_id: int, timeout: Timeout = None) -> Product:
        """Load a product by id.

        Raises ``ProductNotFoundError`` when no row matches and
        ``StoreUnavailableError`` for any other failure, including the
        deadline running out.
        """
        if product_id > MAX_PRODUCT_ID:
            raise ProductNotFoundError(product_id)

        async def _fetch():
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(
                    f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id = $1",
                    product_id
                )

        row = await self._run("get_by_id", _fetch(), timeout, product_id=product_id)
        if row is None:
            raise ProductNotFoundError(product_id)

        self.logger.debug("Fetched product from PostgreSQL", product_id=product_id)
        return self._row_to_product(row)

    async def list_all(self, timeout: Timeout = None) -> List[Product]:
        """Load every product, ordered by id."""
        async def _fetch():
            async with self.pool.acquire() as conn:
                return await conn.fetch(f"SELECT {PRODUCT_COLUMNS} FROM products ORDER BY id")

        rows = await self._run("list_all", _fetch(), timeout)
        return [self._row_to_product(row) for row in rows]

    async def create(self, product: Product, timeout: Timeout = None) -> Product:
        """Insert a product and return it with its assigned id."""
        async def _insert(conn):
            return await conn.fetchrow(
                f"INSERT INTO products (name, description, price) VALUES ($1, $2, $3) RETURNING {PRODUCT_COLUMNS}",
                product.name, product.description, product.price
            )

        row = await self._run("create", self._in_transaction("create", _insert), timeout)
        created = self._row_to_product(row)
        self.logger.info("Product created", product_id=created.product_id, name=created.name)
        return created

    async def update(self, product: Product, timeout: Timeout = None) -> Product:
        """Overwrite name, description and price of an existing product."""
        if product.product_id is not None and product.product_id > MAX_PRODUCT_ID:
            raise ProductNotFoundError(product.product_id)

        async def _update(conn):
            return await conn.fetchrow(
                f"UPDATE products SET name = $1, description = $2, price = $3 WHERE id = $4 RETURNING {PRODUCT_COLUMNS}",
                product.name, product.description, product.price, product.product_id
            )

        row = await self._run(
            "update", self._in_transaction("update", _update), timeout, product_id=product.product_id
        )
        if row is None:
            raise ProductNotFoundError(product.product_id)

        self.logger.info("Product updated", product_id=product.product_id)
        return self._row_to_product(row)

    async def delete(self, product_id: int, timeout: Timeout = None):
        """Delete a product by id."""
        if product_id > MAX_PRODUCT_ID:
            raise ProductNotFoundError(product_id)

        async def _delete(conn):
            return await conn.execute("DELETE FROM products WHERE id = $1", product_id)

        result = await self._run(
            "delete", self._in_transaction("delete", _delete), timeout, product_id=product_id
        )
        if result == "DELETE 0":
            raise ProductNotFoundError(product_id)

        self.logger.info("Product deleted", product_id=product_id)

    async def _in_transaction(self, operation: str, statement):
        # Rolled back explicitly so a failing rollback cannot replace the original error.
        async with self.pool.acquire() as conn:
            transaction = conn.transaction()
            await transaction.start()
            try:
                result = await statement(conn)
            except BaseException:
                try:
                    await transaction.rollback()
                except Exception as rollback_error:
                    self.logger.error(
                        "Transaction rollback failed",
                        operation=operation,
                        error=str(rollback_error)
                    )
                raise
            await transaction.commit()
            return result

    async def _run(self, operation: str, awaitable, timeout: Timeout, product_id: Optional[int] = None) -> Any:
        if timeout is None:
            timeout = self.default_timeout
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailableError(
                f"PostgreSQL {operation} timed out after {timeout}s",
                product_id=product_id,
                operation=f"store.{operation}",
            ) from e
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise StoreUnavailableError(
                f"PostgreSQL {operation} failed: {e}",
                product_id=product_id,
                operation=f"store.{operation}",
            ) from e

    def _row_to_product(self, row) -> Product:
        """Convert database row to Product object."""
        return Product(
            product_id=row['id'],
            name=row['name'],
            description=row['description'],
            price=float(row['price'])
        )

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError):
            return False
