"""
Persistence package for Products Service (PostgreSQL via asyncpg).
"""
