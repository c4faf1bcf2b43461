"""
Pytest configuration and fixtures.

This file provides pytest-specific configuration and fixtures.
For standard test utilities, see tests/__init__.py
"""

import pytest

from core.cache.stores import InMemoryFreshnessStore
from core.config_loader import AppConfig
from core.features import InMemoryFeatureSource
from tests import get_test_db_url


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "db: marks tests as requiring database (deselect with '-m \"not db\"')"
    )


@pytest.fixture(autouse=True)
def clear_full_run_env(monkeypatch):
    """Full-recompute switches from the caller's shell must not leak into tests."""
    monkeypatch.delenv("JOB_FULL", raising=False)
    monkeypatch.delenv("JOB_FORCE", raising=False)


@pytest.fixture
def sqlite_db(tmp_path):
    """Engine bound to a fresh test database with all tables created."""
    from database.database import configure_database
    from database.init_db import init_db
    from database.models import Base

    engine = configure_database(get_test_db_url(str(tmp_path)))
    init_db(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        database={"url": get_test_db_url(str(tmp_path))},
        freshness={"backend": "memory"},
        jobs={
            "lock_dir": str(tmp_path),
            "match_scores": {"pause_ms": 0, "candidate_batch_size": 2, "user_batch_size": 2, "top_k": 3},
            "user_traits": {"pause_ms": 0, "user_batch_size": 2},
        },
    )


@pytest.fixture
def app_context(app_config, sqlite_db):
    """AppContext over an empty in-memory feature source and SQLite results."""
    from core.app_context import AppContext

    return AppContext.build(
        app_config,
        feature_source=InMemoryFeatureSource(),
        freshness_store=InMemoryFreshnessStore(),
    )

