"""
Cache package for Products Service.

Provides a Redis-backed cache that stores product snapshots under
``cache_products:<id>`` with a fixed five minute TTL.
"""
