"""Shared fixtures for the edge server tests."""

import sys
from pathlib import Path
from typing import List, Optional, Type

import httpx
import pytest
from fastapi.testclient import TestClient

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from edge.config import EdgeConfig
from server import create_app

UPSTREAM_URL = "http://backend.test:8080"


class FakeUpstream:
    """Backend stand-in that records every request it receives."""

    def __init__(self):
        self.calls: List[httpx.Request] = []
        self.status_code = 200
        self.body = b'{"test":"ok"}'
        self.headers = [("content-type", "application/json")]
        self.error: Optional[Type[httpx.HTTPError]] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.calls.append(request)
        if self.error is not None:
            raise self.error("upstream failure", request=request)
        headers = self.headers + [("content-length", str(len(self.body)))]
        return httpx.Response(
            self.status_code,
            headers=headers,
            stream=httpx.ByteStream(self.body),
        )


@pytest.fixture
def upstream():
    """Fake backend reachable through httpx.MockTransport."""
    return FakeUpstream()


@pytest.fixture
def static_root(tmp_path):
    """Empty SPA build directory."""
    root = tmp_path / "dist"
    root.mkdir()
    return root


@pytest.fixture
def make_client(static_root, upstream):
    """Factory for a TestClient around a freshly built app."""
    def _make(**overrides):
        values = {
            "upstream": UPSTREAM_URL,
            "static_dir": str(static_root),
            "version": "1.0.0",
        }
        values.update(overrides)
        app = create_app(EdgeConfig(**values), transport=httpx.MockTransport(upstream))
        return TestClient(app)
    return _make


@pytest.fixture
def client(make_client):
    return make_client()
