"""
Expiring file cache for Last.FM responses.
"""
from lfm_curator.cache.context import CacheBehavior, CacheContext, TimingInfo
from lfm_curator.cache.eviction import EvictionWorker, SyncEviction, make_eviction
from lfm_curator.cache.key_generator import CacheKeyGenerator
from lfm_curator.cache.storage import (
    CacheEntry,
    CacheStatistics,
    FileCacheStorage,
    default_cache_dir,
)

__all__ = [
    'CacheBehavior',
    'CacheContext',
    'CacheEntry',
    'CacheKeyGenerator',
    'CacheStatistics',
    'EvictionWorker',
    'FileCacheStorage',
    'SyncEviction',
    'TimingInfo',
    'default_cache_dir',
    'make_eviction',
]
