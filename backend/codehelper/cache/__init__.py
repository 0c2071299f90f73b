"""In-memory caches shared by the client components."""

from .query_cache import QueryCache, QueryKey

__all__ = ["QueryCache", "QueryKey"]
