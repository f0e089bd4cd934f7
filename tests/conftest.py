"""Pytest configuration and shared fixtures."""

import os
import random
from typing import Generator

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing settings
os.environ.update({
    "ENVIRONMENT": "development",
    "MEDIA_BACKEND": "mock",  # Synthetic tracks, no camera needed
    "CONNECT_DELAY_MIN_MS": "10",
    "CONNECT_DELAY_MAX_MS": "30",
    "REPLY_DELAY_MIN_MS": "5",
    "REPLY_DELAY_MAX_MS": "15",
    "RANDOM_SEED": "7",
})


@pytest.fixture
def test_settings():
    """Provide test settings instance."""
    from pairchat.config.settings import Settings
    return Settings(
        _env_file=None,
        media_backend="mock",
        connect_delay_min_ms=10,
        connect_delay_max_ms=30,
        reply_delay_min_ms=5,
        reply_delay_max_ms=15,
    )


@pytest.fixture
def fast_config():
    """Session config with millisecond-scale timers."""
    from pairchat.orchestrator.session import SessionConfig
    return SessionConfig(
        connect_delay_min_ms=10,
        connect_delay_max_ms=30,
        reply_delay_min_ms=5,
        reply_delay_max_ms=15,
    )


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source."""
    return random.Random(1234)


@pytest.fixture
def mock_devices():
    """Mock host media capability."""
    from pairchat.media.devices import MockMediaDevices
    return MockMediaDevices()


@pytest.fixture
def chat_session(fast_config, mock_devices, rng):
    """Chat session with fast timers and mock media."""
    from pairchat.orchestrator.session import ChatSession
    return ChatSession(
        session_id="test-session",
        config=fast_config,
        media_devices=mock_devices,
        rng=rng,
    )


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Provide FastAPI test client."""
    from pairchat.main import app
    with TestClient(app) as c:
        yield c
