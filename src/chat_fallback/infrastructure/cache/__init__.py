"""Semantic cache storage."""

from .base import CacheStore
from .memory import InMemoryCacheStore

__all__ = ["CacheStore", "InMemoryCacheStore"]
