"""Shared test fixtures for spriteforge."""

from unittest.mock import AsyncMock

import pytest

from spriteforge import metrics
from spriteforge.models import Stage
from spriteforge.pipeline import CharacterGenerationService
from spriteforge.rate_limiter import RateLimiter
from spriteforge.retry import RetryPolicy

from fakes import FakeClock, FakeImageClient, FakeRiggingClient, FakeVideoClient

API_KEY_VARS = (
    "OPENAI_API_KEY",
    "STABILITY_API_KEY",
    "GOOGLE_API_KEY",
    "RUNWAY_API_KEY",
    "TRIPO_API_KEY",
)


@pytest.fixture(autouse=True)
def _no_real_keys(monkeypatch):
    """Ensure tests never hit a real provider API."""
    for var in API_KEY_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def retry_policy():
    """Three attempts, no real sleeping."""
    return RetryPolicy(max_attempts=3, base_delay=2.0, sleep=AsyncMock())


@pytest.fixture
def make_service(retry_policy):
    """Build a CharacterGenerationService wired to fake provider clients."""

    def _make(image=None, video=None, rigging=None, rate_limiter=None, **kwargs):
        return CharacterGenerationService(
            rate_limiter or RateLimiter(),
            retry_policy,
            clients={
                Stage.IMAGE: image or FakeImageClient(),
                Stage.VIDEO: video or FakeVideoClient(),
                Stage.RIGGING: rigging or FakeRiggingClient(),
            },
            **kwargs,
        )

    return _make
