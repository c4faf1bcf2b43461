"""Cache Module - freshness-gated recomputation."""
from core.cache.freshness import (
    FreshnessCache,
    hash_key_values,
    is_full_run,
    normalize_value,
    user_scope,
)
from core.cache.stores import (
    FreshnessRecord,
    FreshnessStore,
    InMemoryFreshnessStore,
    RedisFreshnessStore,
    SqlFreshnessStore,
    build_freshness_store,
)

__all__ = [
    'FreshnessCache',
    'hash_key_values',
    'is_full_run',
    'normalize_value',
    'user_scope',
    'FreshnessRecord',
    'FreshnessStore',
    'InMemoryFreshnessStore',
    'RedisFreshnessStore',
    'SqlFreshnessStore',
    'build_freshness_store',
]
