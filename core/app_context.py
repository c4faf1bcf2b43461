from dataclasses import dataclass, field
from typing import Callable, ContextManager, Optional
import logging

from core.cache.freshness import FreshnessCache, is_full_run
from core.cache.stores import FreshnessStore, SqlFreshnessStore, build_freshness_store
from core.config_loader import AppConfig
from core.errors import ValidationError
from core.features import FeatureSource, InMemoryFeatureSource
from core.scorer import MatchAggregator, Preferences
from database.uow import scoring_uow

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Application context container that holds all wired dependencies.

    Jobs receive everything through this object. DB access should be
    obtained via uow_factory() inside each unit of work.
    """
    config: AppConfig
    prefs: Preferences
    feature_source: FeatureSource
    freshness: FreshnessCache
    aggregator: MatchAggregator = field(default_factory=MatchAggregator)
    uow_factory: Callable[[], ContextManager] = scoring_uow

    @classmethod
    def build(
        cls,
        config: AppConfig,
        feature_source: Optional[FeatureSource] = None,
        freshness_store: Optional[FreshnessStore] = None,
        full: bool = False,
        uow_factory: Callable[[], ContextManager] = scoring_uow
    ) -> "AppContext":
        """Build an AppContext from config.

        Args:
            config: Loaded application configuration
            feature_source: Data source override; defaults to the JSON file in config.features
            freshness_store: Store override; defaults to config.freshness.backend
            full: Force recomputation of every scope
            uow_factory: Unit-of-work factory for result and bookkeeping writes

        Returns:
            Fully wired AppContext instance
        """
        prefs = Preferences.from_config(config.scoring)

        if feature_source is None:
            feature_source = cls._build_feature_source(config)

        if freshness_store is None:
            if config.freshness.backend == "database":
                freshness_store = SqlFreshnessStore(uow_factory)
            else:
                freshness_store = build_freshness_store(config.freshness)

        force = full or is_full_run()
        if force:
            logger.info("Full run requested: freshness checks disabled")

        return cls(
            config=config,
            prefs=prefs,
            feature_source=feature_source,
            freshness=FreshnessCache(freshness_store, force=force),
            uow_factory=uow_factory,
        )

    @staticmethod
    def _build_feature_source(config: AppConfig) -> FeatureSource:
        """Load the in-process feature source from the configured JSON file."""
        path = config.features.path
        if not path:
            raise ValidationError("No feature source configured (set features.path or FEATURES_PATH)")
        return InMemoryFeatureSource.from_file(path)
