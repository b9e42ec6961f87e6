"""Storage package holding the in-memory opportunity cache."""

from .cache import CacheEntry, OpportunityCache

__all__ = ["CacheEntry", "OpportunityCache"]
