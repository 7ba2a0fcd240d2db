"""
Products Service package.

This package answers product lookups by id. It provides:

- app.main: API surface for ``GET /product/{id}`` plus health and metrics.
- app.lookup: Read-through coordination between the cache and the store.
- app.cache: Redis-backed cache of product snapshots with a fixed TTL.
- app.persistence: PostgreSQL persistence, the source of truth for products.

Guidelines:
- The service is stateless; rely on external cache/DB.
- The cache is an accelerator only; a lookup never depends on it for correctness.
- Writes go to the store only. Cached snapshots may stay stale for up to
  their TTL after an update or delete.
"""
