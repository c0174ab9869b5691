"""Global test fixtures for progress engine tests"""
import pytest
from datetime import datetime, timedelta, timezone

from progress_engine import config
from progress_engine.db.memory_store import InMemoryStore
from progress_engine.models import ActivityKind, AppDefinition
from progress_engine.services.container import ServiceContainer


# ============================================================================
# Clock
# ============================================================================

class FakeClock:
    """Deterministic clock; call advance() to move time forward"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


# ============================================================================
# Catalog Fixtures
# ============================================================================

@pytest.fixture
def sample_apps():
    """
    Catalog with known recommendation scores:
    breathing 130, gad7 108, mood 90, journal 84 (retired is inactive)
    """
    return [
        AppDefinition(
            id="journal", app_type=ActivityKind.WORKSHEET, name="Thought Journal",
            popularity_score=80, clinical_rating=3.0
        ),
        AppDefinition(
            id="breathing", app_type=ActivityKind.EXERCISE, name="Box Breathing",
            evidence_based=True, popularity_score=50, clinical_rating=4.5
        ),
        AppDefinition(
            id="gad7", app_type=ActivityKind.ASSESSMENT, name="GAD-7",
            evidence_based=True, popularity_score=10, clinical_rating=4.0, max_score=21
        ),
        AppDefinition(
            id="mood", app_type=ActivityKind.EXERCISE, name="Mood Check",
            popularity_score=100, clinical_rating=3.0
        ),
        AppDefinition(
            id="retired", app_type=ActivityKind.EXERCISE, name="Retired Exercise",
            evidence_based=True, popularity_score=100, clinical_rating=5.0, is_active=False
        ),
    ]


# ============================================================================
# Store & Service Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """Keep retry backoff short so contention tests stay fast"""
    monkeypatch.setattr(config, "PROGRESS_RETRY_BASE_DELAY", 0.001)


@pytest.fixture
def store(sample_apps):
    return InMemoryStore(apps=sample_apps, lock_timeout=0.05)


@pytest.fixture
def container(store, clock):
    return ServiceContainer(store=store, clock=clock, max_retries=1)


@pytest.fixture
def sessions(container):
    return container.sessions


@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-1"
