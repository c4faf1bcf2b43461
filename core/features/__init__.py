"""Features Module - data-access contract for feature bundles."""
from core.features.interfaces import FeatureSource
from core.features.memory import InMemoryFeatureSource

__all__ = ['FeatureSource', 'InMemoryFeatureSource']
