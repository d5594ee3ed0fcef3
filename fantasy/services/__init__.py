"""
Services package for the fantasy ranking engine.
"""

from .base import BaseService
from .cache_backends import CacheBackend, InMemoryCache, RedisCache

__all__ = ['BaseService', 'CacheBackend', 'InMemoryCache', 'RedisCache']
