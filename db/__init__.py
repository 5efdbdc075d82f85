"""
GATHERLY - Data Stores

Subsystem handles for the relational database and the cache.
"""
from db.postgres import PostgresHandle
from db.redis_cache import RedisCacheHandle

__all__ = [
    "PostgresHandle",
    "RedisCacheHandle",
]
