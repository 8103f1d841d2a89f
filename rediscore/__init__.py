"""Redis cache helpers, RedisJSON commands and a mutable JSON value tree."""

__version__ = "0.1.0"
__all__ = ["cache", "json_store", "jsonvalue", "kinds", "rejson"]