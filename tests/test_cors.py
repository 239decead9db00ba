"""Tests for CORS headers and preflight handling."""

import pytest

from edge.cors import ALLOW_HEADERS, ALLOW_METHODS, cors_headers


class TestCorsHeaders:
    """Test the header set applied to every response."""

    def test_origin_echoed(self):
        """Test that a present Origin is echoed back exactly."""
        headers = cors_headers("http://example.com")
        assert headers["Access-Control-Allow-Origin"] == "http://example.com"

    def test_missing_origin_is_wildcard(self):
        """Test that no Origin gives '*'."""
        assert cors_headers(None)["Access-Control-Allow-Origin"] == "*"

    def test_empty_origin_is_wildcard(self):
        """Test that an empty Origin is treated as absent."""
        assert cors_headers("")["Access-Control-Allow-Origin"] == "*"

    def test_fixed_values(self):
        """Test the fixed methods, headers, credentials and max-age."""
        headers = cors_headers(None)
        assert headers["Access-Control-Allow-Methods"] == "GET, POST, PUT, DELETE, OPTIONS, PATCH"
        assert headers["Access-Control-Allow-Headers"] == "Content-Type, Authorization, X-Requested-With"
        assert headers["Access-Control-Allow-Credentials"] == "true"
        assert headers["Access-Control-Max-Age"] == "86400"


class TestCorsMiddleware:
    """Test CORS headers on real responses."""

    def test_static_response_echoes_origin(self, client, static_root):
        """Test Origin echo on a served static file."""
        (static_root / "index.html").write_text("<html></html>")
        resp = client.get("/", headers={"Origin": "http://example.com"})
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "http://example.com"

    def test_not_found_without_origin(self, client):
        """Test that even a 404 carries the wildcard origin."""
        resp = client.get("/missing")
        assert resp.status_code == 404
        assert resp.headers["access-control-allow-origin"] == "*"
        assert resp.headers["access-control-allow-methods"] == ALLOW_METHODS
        assert resp.headers["access-control-allow-headers"] == ALLOW_HEADERS

    def test_proxied_response_gets_headers(self, client):
        """Test CORS headers on a forwarded API response."""
        resp = client.get("/api/v1/test", headers={"Origin": "http://ui.local"})
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "http://ui.local"
        assert resp.headers["access-control-allow-credentials"] == "true"

    def test_upstream_cannot_override(self, client, upstream):
        """Test that upstream CORS headers are replaced, not duplicated."""
        upstream.headers = [
            ("content-type", "application/json"),
            ("access-control-allow-origin", "http://evil.example"),
            ("access-control-max-age", "5"),
        ]
        resp = client.get("/api/v1/test", headers={"Origin": "http://ui.local"})
        assert resp.headers.get_list("access-control-allow-origin") == ["http://ui.local"]
        assert resp.headers.get_list("access-control-max-age") == ["86400"]


class TestPreflight:
    """Test OPTIONS short-circuit."""

    @pytest.mark.parametrize("path", [
        "/",
        "/some/path",
        "/api/v1/test",
        "/api/v1/ui/version",
    ])
    def test_options_short_circuits(self, client, upstream, path):
        """Test OPTIONS on any path returns 200, empty body, no routing."""
        resp = client.options(path, headers={"Origin": "http://example.com"})
        assert resp.status_code == 200
        assert resp.content == b""
        assert resp.headers["access-control-allow-origin"] == "http://example.com"
        assert resp.headers["access-control-max-age"] == "86400"
        assert upstream.calls == []

    def test_options_without_origin(self, client):
        """Test preflight without Origin uses the wildcard."""
        resp = client.options("/api/v1/test")
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"
