"""
Pytest configuration and shared fixtures.

Provides the scripted upstream, router configuration factories and a
TestClient wired through FastAPI dependency overrides.

IMPORTANT: Environment variables must be set BEFORE importing switchyard
modules that use pydantic-settings, as Settings validates on creation.
"""

import os

# Set test environment variables before importing switchyard modules
os.environ["OPENROUTER_API_KEY"] = "test-key-not-real"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["DEBUG"] = "false"

# Now safe to import everything else
import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

from tests.fixtures import UpstreamScript


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "asyncio: mark test as async")
    config.addinivalue_line("markers", "benchmark: mark test as performance benchmark")
    config.addinivalue_line(
        "markers", "integration: mark test as requiring real API calls"
    )
    config.addinivalue_line("markers", "slow: mark test as slow-running")


@pytest.fixture(autouse=True)
def reset_singletons():
    """
    Reset all singleton instances between tests.

    This ensures each test starts with a clean state.
    """
    yield

    from switchyard.config import get_settings
    from switchyard.dispatcher.handlers import reset_upstream_client
    from switchyard.gateway.ratelimit import reset_rate_limiter
    from switchyard.metrics import cost

    get_settings.cache_clear()
    reset_upstream_client()
    reset_rate_limiter()
    cost._calculator = None


@pytest.fixture
def router_config():
    """
    Factory fixture for RouterConfig values.

    Usage:
        config = router_config(cost_mode=CostMode.OFF)
    """
    from switchyard.config import RouterConfig

    def _create(**overrides):
        return RouterConfig(**overrides)

    return _create


@pytest.fixture
def make_settings():
    """
    Factory fixture for Settings that ignores any local .env file.

    Usage:
        settings = make_settings(rate_limit_enabled=True)
    """
    from switchyard.config import Settings

    def _create(**overrides):
        return Settings(_env_file=None, **overrides)

    return _create


@pytest.fixture
def make_context(router_config):
    """
    Factory fixture for RequestContext objects.

    Usage:
        ctx = make_context([{"role": "user", "content": "hi"}], stream=False)
    """
    from switchyard.router.context import RequestContext

    def _create(messages, config=None, stream=False, header=None, **body_fields):
        body = {"messages": messages, "stream": stream, **body_fields}
        return RequestContext.from_request(
            body,
            config or router_config(),
            confirmation_header=header,
            request_id="test",
        )

    return _create


@pytest.fixture
def upstream_script():
    """Scripted upstream behavior shared by the fake client."""
    return UpstreamScript()


@pytest.fixture
def fake_upstream(upstream_script):
    """
    Create a mocked UpstreamClient driven by the upstream script.

    ``complete`` and ``open_stream`` are AsyncMocks so tests can assert
    on call counts as well as on the script's recorded payloads.
    """
    from switchyard.dispatcher.handlers import UpstreamClient

    client = MagicMock(spec=UpstreamClient)
    client.complete = AsyncMock(side_effect=upstream_script.complete)
    client.open_stream = AsyncMock(side_effect=upstream_script.open_stream)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def client_factory(make_settings, fake_upstream):
    """
    Factory fixture for a TestClient with settings and upstream overridden.

    Usage:
        client = client_factory(high_stakes_confirm_mode="strict")
    """
    from switchyard.config import get_settings
    from switchyard.dispatcher.handlers import get_upstream_client
    from switchyard.main import app

    clients = []

    def _create(**settings_overrides):
        settings = make_settings(**settings_overrides)
        app.dependency_overrides[get_settings] = lambda: settings
        app.dependency_overrides[get_upstream_client] = lambda: fake_upstream
        client = TestClient(app)
        clients.append(client)
        return client

    yield _create

    app.dependency_overrides.clear()


@pytest.fixture
def test_client(client_factory):
    """TestClient with default settings and the scripted upstream."""
    return client_factory()
