"""
Pytest configuration and shared fixtures for workflow_engine tests.
"""
from typing import Callable, Dict, List

import httpx
import pytest

from workflow_engine.core.config import EngineSettings
from workflow_engine.core.engine import ExecutionEngine
from workflow_engine.runners.factory import NodeDispatcher
from workflow_engine.services.credential_encryption import CredentialEncryption
from workflow_engine.services.http_client import HTTPClient
from workflow_engine.services.repository import InMemoryExecutionLogRepository

TEST_KEY = "0123456789abcdef0123456789abcdef"


@pytest.fixture
def settings():
    return EngineSettings(
        credential_encryption_key=TEST_KEY,
        max_wait_seconds=5,
        default_batch_size=10,
    )


@pytest.fixture
def codec(settings):
    return CredentialEncryption(settings=settings)


@pytest.fixture
def mock_http():
    """HTTPClient backed by httpx.MockTransport.

    ``mock_http.routes`` maps a URL prefix to ``handler(request) -> httpx.Response``;
    unmatched requests get ``200 {"ok": true}``. Every request lands in
    ``mock_http.calls``.
    """
    calls: List[httpx.Request] = []
    routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        for prefix, respond in routes.items():
            if str(request.url).startswith(prefix):
                return respond(request)
        return httpx.Response(200, json={"ok": True})

    client = HTTPClient(transport=httpx.MockTransport(handler))
    client.calls = calls
    client.routes = routes
    return client


@pytest.fixture
def dispatcher(mock_http, settings):
    return NodeDispatcher(http=mock_http, settings=settings)


@pytest.fixture
def repository():
    return InMemoryExecutionLogRepository()


@pytest.fixture
def engine(repository, codec, dispatcher):
    return ExecutionEngine(repository=repository, codec=codec, dispatcher=dispatcher)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
